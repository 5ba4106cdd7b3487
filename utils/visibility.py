"""Privacy rules deciding which reporter fields a viewer may see."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from models import Complaint, TimelineEvent, User

ANONYMOUS_LABEL = "Anonymous Citizen"
UNKNOWN_REPORTER = "Anonymous"


def isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def is_privileged(viewer: Optional[User]) -> bool:
    return bool(viewer is not None and getattr(viewer, "is_authenticated", False) and viewer.is_privileged)


def is_owner(viewer: Optional[User], complaint: Complaint) -> bool:
    return bool(
        viewer is not None
        and getattr(viewer, "is_authenticated", False)
        and viewer.id == complaint.user_id
    )


def can_see_reporter(viewer: Optional[User], complaint: Complaint) -> bool:
    return is_privileged(viewer) or is_owner(viewer, complaint)


def reporter_fields(viewer: Optional[User], complaint: Complaint) -> dict:
    """Reporter identity for the detail view.

    Staff and the reporter see everything; other viewers of an anonymous
    complaint get only the anonymous label; everyone else gets the display name.
    """
    reporter = complaint.reporter
    name = reporter.name if reporter else UNKNOWN_REPORTER
    if can_see_reporter(viewer, complaint):
        return {
            "reporter_name": name,
            "reporter_email": reporter.email if reporter else None,
            "user_id": reporter.id if reporter else None,
        }
    if complaint.is_anonymous:
        return {"reporter_name": ANONYMOUS_LABEL, "reporter_email": None, "user_id": None}
    return {"reporter_name": name, "reporter_email": None, "user_id": None}


def list_reporter_name(complaint: Complaint) -> str:
    if complaint.is_anonymous:
        return ANONYMOUS_LABEL
    return complaint.reporter.name if complaint.reporter else UNKNOWN_REPORTER


def complaint_summary(complaint: Complaint) -> dict:
    """Fields shared by every list projection; never includes reporter identity."""
    return {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "status": complaint.status,
        "priority": complaint.priority,
        "priority_score": complaint.priority_score,
        "address": complaint.address,
        "photo_url": complaint.photo_url,
        "upvotes": complaint.upvotes,
        "category": complaint.category_name,
        "created_at": isoformat(complaint.created_at),
        "updated_at": isoformat(complaint.updated_at),
        "sla_deadline": isoformat(complaint.sla_deadline),
    }


def feed_projection(complaint: Complaint) -> dict:
    return {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "status": complaint.status,
        "category": complaint.category_name,
        "address": complaint.address,
        "photo_url": complaint.photo_url,
        "upvotes": complaint.upvotes,
        "created_at": isoformat(complaint.created_at),
        "reporter_name": list_reporter_name(complaint),
        "is_anonymous": bool(complaint.is_anonymous),
    }


def admin_projection(complaint: Complaint) -> dict:
    payload = complaint_summary(complaint)
    payload.update(
        {
            "department": complaint.category.department if complaint.category else None,
            "reporter_name": complaint.reporter.name if complaint.reporter else UNKNOWN_REPORTER,
            "latitude": complaint.latitude,
            "longitude": complaint.longitude,
            "is_anonymous": bool(complaint.is_anonymous),
            "is_public": bool(complaint.is_public),
            "is_escalated": bool(complaint.is_escalated),
        }
    )
    return payload


def duplicate_projection(complaint: Complaint) -> dict:
    return {
        "id": complaint.id,
        "title": complaint.title,
        "description": complaint.description,
        "status": complaint.status,
        "upvotes": complaint.upvotes,
        "address": complaint.address,
        "photo_url": complaint.photo_url,
        "created_at": isoformat(complaint.created_at),
        "category": complaint.category_name,
    }


def timeline_projection(viewer: Optional[User], complaint: Complaint, event: TimelineEvent) -> dict:
    actor = event.actor
    hide_actor = (
        complaint.is_anonymous
        and event.user_id is not None
        and event.user_id == complaint.user_id
        and not can_see_reporter(viewer, complaint)
    )
    if hide_actor:
        user_id, user_name, user_role = None, ANONYMOUS_LABEL, None
    else:
        user_id = actor.id if actor else None
        user_name = actor.name if actor else None
        user_role = actor.role if actor else None
    return {
        "id": event.id,
        "complaint_id": event.complaint_id,
        "user_id": user_id,
        "user_name": user_name,
        "user_role": user_role,
        "action": event.action,
        "details": event.details,
        "created_at": isoformat(event.created_at),
    }
