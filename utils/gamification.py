"""Civic points ledger, badge tiers and the citizen leaderboard."""
from __future__ import annotations

from sqlalchemy import func

from extensions import db
from models import Complaint, User

POINTS_COMPLAINT_CREATED = 10
POINTS_VOTE_CAST = 5
POINTS_COMPLAINT_RESOLVED = 50

# Highest threshold first; the first tier the balance reaches wins.
BADGE_TIERS: tuple[tuple[int, str], ...] = (
    (5000, "Civic Hero"),
    (2500, "Neighborhood Guardian"),
    (1000, "Verified Reporter"),
)
DEFAULT_BADGE = "Active Citizen"

LEADERBOARD_SIZE = 20


def award_points(user_id: str, delta: int) -> None:
    """Stage an in-database increment of ``user_id``'s balance.

    The caller owns the transaction, so the award commits or rolls back together
    with the lifecycle change that earned it.
    """
    if delta <= 0:
        raise ValueError("Point awards must be positive")
    User.query.filter_by(id=user_id).update(
        {User.points: User.points + delta},
        synchronize_session=False,
    )


def badge_for(points: int | None) -> str:
    balance = points or 0
    for threshold, label in BADGE_TIERS:
        if balance >= threshold:
            return label
    return DEFAULT_BADGE


def report_count(user_id: str) -> int:
    return Complaint.query.filter_by(user_id=user_id).count()


def profile_payload(user: User) -> dict:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "role": user.role,
        "points": user.points or 0,
        "is_verified": bool(user.is_verified),
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "total_reports": report_count(user.id),
        "badge": badge_for(user.points),
    }


def leaderboard(limit: int = LEADERBOARD_SIZE) -> list[dict]:
    """Top verified citizens by points, with their report counts."""
    report_counts = (
        db.session.query(Complaint.user_id.label("user_id"), func.count(Complaint.id).label("reports"))
        .group_by(Complaint.user_id)
        .subquery()
    )
    rows = (
        db.session.query(User, func.coalesce(report_counts.c.reports, 0))
        .outerjoin(report_counts, report_counts.c.user_id == User.id)
        .filter(User.role == "citizen", User.is_verified.is_(True))
        .order_by(User.points.desc(), User.created_at.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "rank": index,
            "id": user.id,
            "name": user.name,
            "points": user.points or 0,
            "reports": int(reports or 0),
            "badge": badge_for(user.points),
        }
        for index, (user, reports) in enumerate(rows, start=1)
    ]
