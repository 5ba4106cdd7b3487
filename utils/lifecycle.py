"""Complaint lifecycle: creation, status transitions, voting and detail reads.

Each operation commits its own state change (including point awards) in one
transaction, then records the timeline event and hands notifications to the
background dispatcher. Timeline and notification failures never undo or fail
the operation that triggered them.
"""
from __future__ import annotations

import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from extensions import db, notifier
from models import COMPLAINT_STATUSES, MAX_INTEGER_ID, Complaint, User, Vote
from utils import email_service
from utils.categories import resolve_category
from utils.errors import ForbiddenError, NotFoundError, RateLimitError, ValidationError
from utils.fraud_heuristics import detail_flags, priority_score_for
from utils.gamification import POINTS_COMPLAINT_CREATED, POINTS_COMPLAINT_RESOLVED, POINTS_VOTE_CAST, award_points
from utils.security import clean_text, parse_bool
from utils.timeline import ACTION_CREATED, ACTION_STATUS_UPDATE, log_event
from utils.visibility import is_privileged, isoformat, reporter_fields

DAILY_COMPLAINT_LIMIT = 10
TITLE_FALLBACK_LENGTH = 80
UNTITLED_REPORT = "Untitled Report"


def _parse_uuid(value):
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def _uuid_candidates(value) -> list[str]:
    candidates: list[str] = []
    if value:
        candidates.append(str(value))
    parsed = _parse_uuid(value)
    if parsed:
        candidates.append(str(parsed))
    seen = set()
    unique: list[str] = []
    for c in candidates:
        if c not in seen:
            seen.add(c)
            unique.append(c)
    return unique


def _legacy_id(value: str) -> Optional[int]:
    # Longer digit strings cannot fit a 64-bit column.
    if not value.isdecimal() or len(value) > 19:
        return None
    number = int(value)
    return number if 0 < number <= MAX_INTEGER_ID else None


def find_complaint(ref: Any) -> Complaint:
    """Resolve a complaint by UUID, falling back to its pre-migration integer id."""
    ref_text = str(ref).strip() if ref is not None else ""
    for candidate in _uuid_candidates(ref_text):
        complaint = db.session.get(Complaint, candidate)
        if complaint:
            return complaint
    # Legacy integer ids remain valid until every client links by UUID.
    legacy_id = _legacy_id(ref_text)
    if legacy_id is not None:
        complaint = Complaint.query.filter_by(legacy_id=legacy_id).first()
        if complaint:
            return complaint
    raise NotFoundError("Complaint not found")


def local_day_start_utc(now: Optional[datetime] = None) -> datetime:
    """Midnight of the server's local day, as a naive UTC timestamp."""
    local_now = (now or datetime.now(timezone.utc)).astimezone()
    midnight = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight.astimezone(timezone.utc).replace(tzinfo=None)


def _coordinate(value: Any, label: str, bound: float) -> Optional[float]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")
    if not math.isfinite(number) or not -bound <= number <= bound:
        raise ValidationError(f"{label} must be between -{bound:g} and {bound:g}")
    return number


def create_complaint(reporter: User, data: dict) -> dict:
    title = clean_text(data.get("title"), 255)
    description = clean_text(data.get("description"))
    if not title and not description:
        raise ValidationError("Please provide a title or description for the complaint")

    latitude = _coordinate(data.get("latitude"), "Latitude", 90)
    longitude = _coordinate(data.get("longitude"), "Longitude", 180)

    category, sla_hours = resolve_category(data.get("category_id"), clean_text(data.get("category")))

    todays_count = Complaint.query.filter(
        Complaint.user_id == reporter.id,
        Complaint.created_at >= local_day_start_utc(),
    ).count()
    if todays_count >= DAILY_COMPLAINT_LIMIT:
        current_app.logger.info("Daily complaint limit reached", extra={"user_id": reporter.id})
        raise RateLimitError(f"You have reached the daily limit of {DAILY_COMPLAINT_LIMIT} complaints.")

    now = datetime.utcnow()
    complaint = Complaint(
        user_id=reporter.id,
        category_id=category.id if category else None,
        title=title or description[:TITLE_FALLBACK_LENGTH] or UNTITLED_REPORT,
        description=description,
        latitude=latitude,
        longitude=longitude,
        address=clean_text(data.get("address"), 500),
        photo_url=clean_text(data.get("photo_url"), 1024) or None,
        priority_score=priority_score_for(category),
        sla_deadline=now + timedelta(hours=sla_hours),
        is_public=parse_bool(data.get("is_public")),
        is_anonymous=parse_bool(data.get("is_anonymous")),
        created_at=now,
        updated_at=now,
    )
    try:
        db.session.add(complaint)
        db.session.flush()
        award_points(reporter.id, POINTS_COMPLAINT_CREATED)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while saving complaint", extra={"user_id": reporter.id})
        raise

    current_app.logger.info(
        "Complaint created",
        extra={"complaint_id": complaint.id, "user_id": reporter.id, "category_id": complaint.category_id},
    )
    log_event(complaint.id, reporter.id, ACTION_CREATED, "Report submitted successfully")
    notifier.submit(email_service.send_complaint_confirmation, complaint.id)
    notifier.submit(email_service.send_admin_alert, complaint.id)

    return {
        "id": complaint.id,
        "title": complaint.title,
        "status": complaint.status,
        "priority": complaint.priority,
        "created_at": isoformat(complaint.created_at),
    }


def update_status(actor: User, complaint_ref: Any, new_status: Any, resolution_photo_url: Any = None) -> dict:
    status = clean_text(new_status)
    if status not in COMPLAINT_STATUSES:
        raise ValidationError("Invalid status. Must be one of: " + ", ".join(COMPLAINT_STATUSES))
    photo_url = clean_text(resolution_photo_url, 1024) or None
    if status == "Resolved" and not photo_url:
        raise ValidationError("A resolution photo is required when marking a complaint as Resolved.")
    if actor is None or not actor.is_privileged:
        raise ForbiddenError("Only admins can update complaint status")

    complaint = find_complaint(complaint_ref)
    previous_status = complaint.status
    now = datetime.utcnow()
    try:
        # Any status may follow any other, including reopening a closed complaint.
        complaint.status = status
        complaint.updated_at = now
        if photo_url:
            complaint.resolution_photo_url = photo_url
        if status == "Resolved":
            complaint.resolved_at = now
            award_points(complaint.user_id, POINTS_COMPLAINT_RESOLVED)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while updating status", extra={"complaint_id": complaint.id})
        raise

    current_app.logger.info(
        "Complaint status updated",
        extra={
            "complaint_id": complaint.id,
            "actor_id": actor.id,
            "from_status": previous_status,
            "to_status": status,
        },
    )
    log_event(complaint.id, actor.id, ACTION_STATUS_UPDATE, f"Status changed to {status}")
    notifier.submit(email_service.send_status_update, complaint.id, status)

    return {
        "id": complaint.id,
        "status": complaint.status,
        "updated_at": isoformat(complaint.updated_at),
        "resolution_photo_url": complaint.resolution_photo_url,
    }


def _adjust_upvotes(complaint_id: str, delta: int) -> None:
    Complaint.query.filter_by(id=complaint_id).update(
        {Complaint.upvotes: Complaint.upvotes + delta},
        synchronize_session=False,
    )


def _remove_vote(complaint_id: str, voter_id: str) -> bool:
    removed = Vote.query.filter_by(complaint_id=complaint_id, user_id=voter_id).delete(synchronize_session=False)
    if not removed:
        return False
    _adjust_upvotes(complaint_id, -removed)
    db.session.commit()
    return True


def toggle_vote(voter: User, complaint_ref: Any) -> dict:
    """Add the voter's upvote, or remove it if one already exists.

    Removing a vote keeps the points earned when it was cast.
    """
    complaint = find_complaint(complaint_ref)
    complaint_id = complaint.id
    try:
        if _remove_vote(complaint_id, voter.id):
            return {"voted": False}

        db.session.add(Vote(complaint_id=complaint_id, user_id=voter.id))
        db.session.flush()
        _adjust_upvotes(complaint_id, 1)
        award_points(voter.id, POINTS_VOTE_CAST)
        db.session.commit()
    except IntegrityError:
        # A concurrent request inserted the same vote first; treat this one as the toggle-off.
        db.session.rollback()
        current_app.logger.info(
            "Concurrent vote collision resolved as removal",
            extra={"complaint_id": complaint_id, "user_id": voter.id},
        )
        _remove_vote(complaint_id, voter.id)
        return {"voted": False}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database error while toggling vote", extra={"complaint_id": complaint_id})
        raise
    return {"voted": True}


def assemble_read_projection(viewer: Optional[User], complaint: Complaint) -> dict:
    category = complaint.category
    fraud_flags = detail_flags(complaint) if is_privileged(viewer) else []
    payload = {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "status": complaint.status,
        "priority": complaint.priority,
        "priority_score": complaint.priority_score,
        "address": complaint.address,
        "photo_url": complaint.photo_url,
        "upvotes": complaint.upvotes,
        "latitude": complaint.latitude,
        "longitude": complaint.longitude,
        "resolution_photo_url": complaint.resolution_photo_url,
        "resolution_type": complaint.resolution_type,
        "is_escalated": bool(complaint.is_escalated),
        "is_anonymous": bool(complaint.is_anonymous),
        "is_public": bool(complaint.is_public),
        "created_at": isoformat(complaint.created_at),
        "updated_at": isoformat(complaint.updated_at),
        "resolved_at": isoformat(complaint.resolved_at),
        "sla_deadline": isoformat(complaint.sla_deadline),
        "category": complaint.category_name,
        "department": category.department if category else None,
        "sla_hours": category.sla_hours if category else 24,
        "fraud_flags": fraud_flags,
    }
    payload.update(reporter_fields(viewer, complaint))
    return payload
