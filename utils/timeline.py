"""Append-only audit trail for complaint lifecycle transitions."""
from __future__ import annotations

from typing import Iterable, Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from extensions import db
from models import TimelineEvent

ACTION_CREATED = "Created"
ACTION_STATUS_UPDATE = "Status Update"
ACTION_ESCALATED = "Escalated"


def log_event(complaint_id: str, actor_id: Optional[str], action: str, details: str = "") -> Optional[TimelineEvent]:
    """Record a timeline event in its own transaction.

    The triggering operation has already committed by the time this runs, so a
    failed write is rolled back and logged instead of propagated.
    """
    event = TimelineEvent(
        complaint_id=complaint_id,
        user_id=actor_id,
        action=action,
        details=(details or "")[:500],
    )
    try:
        db.session.add(event)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to log timeline event",
            extra={"complaint_id": complaint_id, "action": action},
        )
        return None
    return event


def timeline_for(complaint_id: str) -> list[TimelineEvent]:
    return (
        TimelineEvent.query.filter_by(complaint_id=complaint_id)
        .order_by(TimelineEvent.created_at.desc(), TimelineEvent.id.desc())
        .all()
    )


def events_for_complaints(complaint_ids: Iterable[str], limit: int = 50) -> list[TimelineEvent]:
    ids = list(complaint_ids)
    if not ids:
        return []
    return (
        TimelineEvent.query.filter(TimelineEvent.complaint_id.in_(ids))
        .order_by(TimelineEvent.created_at.desc(), TimelineEvent.id.desc())
        .limit(limit)
        .all()
    )
