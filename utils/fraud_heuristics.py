"""Read-only spam and duplicate heuristics over complaint history.

Two views share the same signals with different cut-offs. The detail view,
shown to staff reviewing a single complaint, flags a reporter above
``DETAIL_VELOCITY_THRESHOLD`` recent reports or above
``DETAIL_DUPLICATE_THRESHOLD`` reports sharing the complaint's title. The
self-check, run by a citizen before submitting, flags at
``SELF_CHECK_VELOCITY_THRESHOLD`` recent reports or when any title repeats
more than ``SELF_CHECK_DUPLICATE_THRESHOLD`` times.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func

from extensions import db
from models import CLOSED_STATUSES, Category, Complaint

VELOCITY_WINDOW = timedelta(minutes=10)
DETAIL_VELOCITY_THRESHOLD = 5
DETAIL_DUPLICATE_THRESHOLD = 1
SELF_CHECK_VELOCITY_THRESHOLD = 5
SELF_CHECK_DUPLICATE_THRESHOLD = 2

GEO_BOX_DEGREES = 0.009  # roughly 1 km of latitude
GEO_DUPLICATE_LIMIT = 5


def recent_submission_count(user_id: str, now: Optional[datetime] = None) -> int:
    since = (now or datetime.utcnow()) - VELOCITY_WINDOW
    return Complaint.query.filter(Complaint.user_id == user_id, Complaint.created_at >= since).count()


def detail_flags(complaint: Complaint) -> list[dict]:
    flags: list[dict] = []
    if recent_submission_count(complaint.user_id) > DETAIL_VELOCITY_THRESHOLD:
        flags.append(
            {"type": "rate_limit", "severity": "high", "message": "High submission rate (Potential Spam)"}
        )
    same_title = Complaint.query.filter_by(user_id=complaint.user_id, title=complaint.title).count()
    if same_title > DETAIL_DUPLICATE_THRESHOLD:
        flags.append(
            {
                "type": "duplicate",
                "severity": "medium",
                "message": "User has submitted multiple reports with this title",
            }
        )
    return flags


def self_check_flags(user_id: str) -> list[dict]:
    flags: list[dict] = []
    if recent_submission_count(user_id) >= SELF_CHECK_VELOCITY_THRESHOLD:
        flags.append({"type": "rate_limit", "severity": "high", "message": "Unusually high submission rate"})

    repeated_title = (
        db.session.query(Complaint.title)
        .filter(Complaint.user_id == user_id)
        .group_by(Complaint.title)
        .having(func.count(Complaint.id) > SELF_CHECK_DUPLICATE_THRESHOLD)
        .first()
    )
    if repeated_title is not None:
        flags.append(
            {
                "type": "duplicate_title",
                "severity": "medium",
                "message": "Multiple complaints with identical titles",
            }
        )
    return flags


def nearby_open_complaints(latitude: Optional[float], longitude: Optional[float]) -> list[Complaint]:
    """Open complaints inside a square box around the point, most upvoted first."""
    if latitude is None or longitude is None:
        return []
    return (
        Complaint.query.outerjoin(Category)
        .filter(
            Complaint.latitude.between(latitude - GEO_BOX_DEGREES, latitude + GEO_BOX_DEGREES),
            Complaint.longitude.between(longitude - GEO_BOX_DEGREES, longitude + GEO_BOX_DEGREES),
            Complaint.status.notin_(CLOSED_STATUSES),
        )
        .order_by(Complaint.upvotes.desc(), Complaint.created_at.desc())
        .limit(GEO_DUPLICATE_LIMIT)
        .all()
    )


def priority_score_for(category: Optional[Category]) -> float:
    return float(category.base_priority) if category is not None else 0.0
