"""SMTP-backed email dispatcher for complaint, status and account notifications.

Complaint notifications take ids rather than model instances: they run on the
notification pool in a fresh application context and reload what they need.
"""
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Dict, List, Tuple

from flask import current_app, render_template

from extensions import db
from models import Complaint, User
from utils.ai_markdown_formatter import (
    format_admin_alert_markdown,
    format_complaint_confirmation_markdown,
    format_otp_markdown,
    format_status_update_markdown,
    format_welcome_markdown,
    markdown_to_email_html,
    markdown_to_plaintext,
)
from utils.gamification import POINTS_COMPLAINT_RESOLVED

STATUS_COLORS = {
    "Submitted": "#6366f1",
    "Assigned": "#3b82f6",
    "In Progress": "#f59e0b",
    "Resolved": "#10b981",
    "Closed": "#6b7280",
}


class EmailDeliveryError(Exception):
    """Raised when email dispatch fails."""


def _render_email_content(template: str, subject: str, markdown_body: str, context: Dict) -> Tuple[str, str]:
    """Return plaintext and HTML bodies using a shared markdown source."""
    text_body = markdown_to_plaintext(markdown_body)
    ctx = dict(context or {})
    preheader = ctx.pop("preheader", "")
    html_body = render_template(
        template,
        subject=subject,
        content_html=markdown_to_email_html(markdown_body),
        preheader=preheader,
        **ctx,
    )
    return text_body, html_body


def _complaint_context(complaint: Complaint) -> Dict:
    return {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "address": complaint.address,
        "category": complaint.category_name,
        "status": complaint.status,
    }


def _resolve_sender() -> str:
    sender = current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME")
    if not sender:
        raise EmailDeliveryError("MAIL_DEFAULT_SENDER is not configured")
    return sender


def _load_complaint(complaint_id: str) -> Complaint:
    complaint = db.session.get(Complaint, complaint_id)
    if complaint is None:
        raise EmailDeliveryError(f"Complaint {complaint_id} no longer exists")
    return complaint


def _dispatch_email(subject: str, text_body: str, html_body: str, sender: str, recipients: List[str]) -> None:
    if not recipients:
        raise EmailDeliveryError("No recipients resolved for email dispatch")

    msg = EmailMessage()
    msg["Subject"] = subject
    msg["From"] = sender
    msg["To"] = ", ".join(recipients)
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    fallback_text = text_body or markdown_to_plaintext(html_body)
    msg.set_content(fallback_text)
    msg.add_alternative(html_body, subtype="html")

    host = current_app.config.get("MAIL_SERVER")
    port = int(current_app.config.get("MAIL_PORT", 25))
    username = current_app.config.get("MAIL_USERNAME")
    password = current_app.config.get("MAIL_PASSWORD")
    use_tls = bool(current_app.config.get("MAIL_USE_TLS"))
    use_ssl = bool(current_app.config.get("MAIL_USE_SSL"))
    timeout = int(current_app.config.get("MAIL_TIMEOUT", 10))

    if not host:
        raise EmailDeliveryError("MAIL_SERVER is not configured")

    try:
        if use_ssl:
            context = ssl.create_default_context()
            with smtplib.SMTP_SSL(host, port, context=context, timeout=timeout) as server:
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
        else:
            with smtplib.SMTP(host, port, timeout=timeout) as server:
                server.ehlo()
                if use_tls:
                    server.starttls(context=ssl.create_default_context())
                if username and password:
                    server.login(username, password)
                server.send_message(msg)
    except Exception as exc:  # pragma: no cover - external I/O
        raise EmailDeliveryError(str(exc)) from exc

    current_app.logger.info("Email dispatched", extra={"subject": subject, "recipient_count": len(recipients)})


def send_complaint_confirmation(complaint_id: str) -> None:
    """Tell the reporter their complaint was filed."""
    complaint = _load_complaint(complaint_id)
    reporter = complaint.reporter
    if not reporter or not reporter.email:
        return
    context = _complaint_context(complaint)
    markdown_body = format_complaint_confirmation_markdown(context)
    subject = f"Report Filed: {complaint.title or 'New Issue'} - CivicPulse"
    text_body, html_body = _render_email_content(
        "email/complaint_submitted.html",
        subject,
        markdown_body,
        {"preheader": "Your complaint has been registered.", "status_color": STATUS_COLORS["Submitted"]},
    )
    _dispatch_email(subject, text_body, html_body, _resolve_sender(), [reporter.email])


def send_admin_alert(complaint_id: str) -> None:
    recipient = current_app.config.get("ADMIN_ALERT_EMAIL")
    if not recipient:
        current_app.logger.debug("ADMIN_ALERT_EMAIL not set; skipping admin alert", extra={"complaint_id": complaint_id})
        return
    complaint = _load_complaint(complaint_id)
    markdown_body = format_admin_alert_markdown(_complaint_context(complaint))
    subject = f"New Report: {complaint.title or 'Issue'} - CivicPulse Admin"
    text_body, html_body = _render_email_content(
        "email/admin_alert.html",
        subject,
        markdown_body,
        {"preheader": "A new civic issue requires attention."},
    )
    _dispatch_email(subject, text_body, html_body, _resolve_sender(), [recipient])


def send_status_update(complaint_id: str, new_status: str) -> None:
    complaint = _load_complaint(complaint_id)
    reporter = complaint.reporter
    if not reporter or not reporter.email:
        return
    points = POINTS_COMPLAINT_RESOLVED if new_status == "Resolved" else None
    markdown_body = format_status_update_markdown(_complaint_context(complaint), new_status, points_awarded=points)
    subject = f"Status Update: {complaint.title or 'Issue'} -> {new_status} - CivicPulse"
    text_body, html_body = _render_email_content(
        "email/status_update.html",
        subject,
        markdown_body,
        {
            "preheader": f"Your complaint is now {new_status}.",
            "status_color": STATUS_COLORS.get(new_status, "#6b7280"),
        },
    )
    _dispatch_email(subject, text_body, html_body, _resolve_sender(), [reporter.email])


def send_otp_email(recipient: str, user_name: str, code: str, ttl_seconds: int) -> None:
    ttl_minutes = max(1, ttl_seconds // 60)
    markdown_body = format_otp_markdown(user_name, code, ttl_minutes)
    subject = "Verify your CivicPulse account"
    text_body, html_body = _render_email_content(
        "email/verify_email.html",
        subject,
        markdown_body,
        {"preheader": f"Your verification code expires in {ttl_minutes} minutes."},
    )
    _dispatch_email(subject, text_body, html_body, _resolve_sender(), [recipient])


def send_welcome_email(user_id: str) -> None:
    user = db.session.get(User, user_id)
    if user is None or not user.email:
        return
    markdown_body = format_welcome_markdown(user.name)
    subject = "Welcome to CivicPulse"
    text_body, html_body = _render_email_content(
        "email/welcome.html",
        subject,
        markdown_body,
        {"preheader": "Your account is ready."},
    )
    _dispatch_email(subject, text_body, html_body, _resolve_sender(), [user.email])
