"""Fire-and-forget dispatcher for notification side effects.

Lifecycle operations hand callables to :class:`NotificationDispatcher` once
their own state is committed. The dispatcher runs each callable inside a fresh
application context, either on a small thread pool (``thread`` mode) or
immediately on the calling thread (``inline`` mode, used by tests and
one-off CLI runs). Every failure is logged and swallowed so a broken mail
server can never fail or slow down the request that triggered it.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional

from flask import Flask, current_app


class NotificationDispatcher:
    def __init__(self, app: Optional[Flask] = None) -> None:
        self._executor: Optional[ThreadPoolExecutor] = None
        self.mode = "inline"
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        self.mode = (app.config.get("NOTIFICATION_MODE") or "thread").lower()
        if self.mode == "thread":
            workers = int(app.config.get("NOTIFICATION_WORKERS", 4))
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        else:
            self._executor = None
        app.extensions["notifier"] = self

    def submit(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Queue ``func`` and return immediately; never raises for task failures."""
        app = current_app._get_current_object()
        if self._executor is None:
            self._run(app, func, args, kwargs)
            return
        try:
            self._executor.submit(self._run, app, func, args, kwargs)
        except RuntimeError:
            # Executor already shut down (interpreter exit); drop the task.
            app.logger.warning("Notification dropped", extra={"task": _task_name(func)})

    @staticmethod
    def _run(app: Flask, func: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        with app.app_context():
            try:
                func(*args, **kwargs)
            except Exception:
                app.logger.exception("Background notification failed", extra={"task": _task_name(func)})

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None


def _task_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__name__", repr(func))
