"""Read-only aggregate views: dashboards, feeds, heatmaps and derived notifications."""
from __future__ import annotations

import math
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.orm import joinedload

from extensions import db
from models import CLOSED_STATUSES, Category, Complaint, TimelineEvent, User, Vote
from utils.categories import find_category_by_name
from utils.timeline import ACTION_CREATED, ACTION_ESCALATED, ACTION_STATUS_UPDATE, events_for_complaints, timeline_for
from utils.visibility import admin_projection, complaint_summary, feed_projection, isoformat, timeline_projection

TREND_MONTHS = 6
TOP_AREAS_LIMIT = 5
NEGLECTED_AREAS_LIMIT = 10
DOMINANCE_LIMIT = 20
NOTIFICATION_EVENT_LIMIT = 50
NOTIFICATION_VOTE_LIMIT = 20
NOTIFICATION_LIMIT = 30

STATUS_NOTIFICATIONS = {
    "Resolved": ("resolution", "Issue Resolved!", '"{title}" has been resolved.'),
    "Assigned": ("status_change", "Assigned to Worker", '"{title}" has been assigned to a department worker.'),
    "In Progress": ("status_change", "Work Started", '"{title}" is now being worked on.'),
    "Closed": ("status_change", "Issue Closed", '"{title}" has been closed.'),
}


def _count(*criteria) -> int:
    return Complaint.query.filter(*criteria).count()


def complaint_stats() -> dict:
    return {
        "total": Complaint.query.count(),
        "submitted": _count(Complaint.status == "Submitted"),
        "assigned": _count(Complaint.status == "Assigned"),
        "in_progress": _count(Complaint.status == "In Progress"),
        "resolved": _count(Complaint.status == "Resolved"),
        "closed": _count(Complaint.status == "Closed"),
        "escalated": _count(Complaint.is_escalated.is_(True)),
    }


def public_stats() -> dict:
    return {
        "total_complaints": Complaint.query.count(),
        "resolved": _count(Complaint.status.in_(CLOSED_STATUSES)),
        "active_citizens": User.query.filter_by(role="citizen").count(),
    }


def _months_ago(now: datetime, months: int) -> datetime:
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    # Clamp the day so 31 March minus one month lands on 28/29 February.
    day = min(now.day, _days_in_month(year, month))
    return now.replace(year=year, month=month, day=day)


def _days_in_month(year: int, month: int) -> int:
    next_month = datetime(year + (month == 12), month % 12 + 1, 1)
    return (next_month - timedelta(days=1)).day


def analytics(now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()

    category_label = func.coalesce(Category.name, "Uncategorized")
    by_category = [
        {"category": name, "count": count}
        for name, count in (
            db.session.query(category_label, func.count(Complaint.id))
            .select_from(Complaint)
            .outerjoin(Category, Complaint.category_id == Category.id)
            .group_by(category_label)
            .order_by(func.count(Complaint.id).desc())
            .all()
        )
    ]

    by_status = [
        {"status": status, "count": count}
        for status, count in db.session.query(Complaint.status, func.count(Complaint.id)).group_by(Complaint.status).all()
    ]

    trends: "OrderedDict[str, dict]" = OrderedDict()
    recent = (
        db.session.query(Complaint.created_at, Complaint.status)
        .filter(Complaint.created_at >= _months_ago(now, TREND_MONTHS))
        .order_by(Complaint.created_at.asc())
        .all()
    )
    for created_at, status in recent:
        month = created_at.strftime("%Y-%m")
        bucket = trends.setdefault(month, {"month": month, "total": 0, "resolved": 0})
        bucket["total"] += 1
        if status == "Resolved":
            bucket["resolved"] += 1

    top_areas = [
        {"address": address, "count": count}
        for address, count in (
            db.session.query(Complaint.address, func.count(Complaint.id))
            .filter(Complaint.address.isnot(None), Complaint.address != "")
            .group_by(Complaint.address)
            .order_by(func.count(Complaint.id).desc())
            .limit(TOP_AREAS_LIMIT)
            .all()
        )
    ]

    return {
        "by_category": by_category,
        "by_status": by_status,
        "monthly_trends": list(trends.values()),
        "top_areas": top_areas,
    }


def heatmap(period_days: Optional[int] = None, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    days = period_days if period_days and period_days > 0 else current_app.config.get("HEATMAP_DEFAULT_DAYS", 30)
    days = min(days, int(current_app.config.get("HEATMAP_MAX_DAYS", 3650)))
    cutoff = now - timedelta(days=days)

    points = [
        {
            "id": complaint_id,
            "latitude": latitude,
            "longitude": longitude,
            "status": status,
            "priority_score": priority_score,
            "category": category,
            "created_at": isoformat(created_at),
        }
        for complaint_id, latitude, longitude, status, priority_score, category, created_at in (
            db.session.query(
                Complaint.id,
                Complaint.latitude,
                Complaint.longitude,
                Complaint.status,
                Complaint.priority_score,
                Category.name,
                Complaint.created_at,
            )
            .outerjoin(Category, Complaint.category_id == Category.id)
            .filter(
                Complaint.latitude.isnot(None),
                Complaint.longitude.isnot(None),
                Complaint.created_at >= cutoff,
            )
            .all()
        )
    ]

    neglected_rows = (
        db.session.query(Complaint.address, func.count(Complaint.id), func.min(Complaint.created_at))
        .filter(
            Complaint.status.notin_(CLOSED_STATUSES),
            Complaint.address.isnot(None),
            Complaint.address != "",
        )
        .group_by(Complaint.address)
        .all()
    )
    neglected = [
        {"address": address, "count": count, "oldest_days": max(0, (now - oldest).days) if oldest else 0}
        for address, count, oldest in neglected_rows
    ]
    neglected.sort(key=lambda row: (row["count"], row["oldest_days"]), reverse=True)

    dominance = [
        {"address": address, "category": category, "count": count}
        for address, category, count in (
            db.session.query(Complaint.address, Category.name, func.count(Complaint.id))
            .outerjoin(Category, Complaint.category_id == Category.id)
            .filter(
                Complaint.address.isnot(None),
                Complaint.address != "",
                Complaint.created_at >= cutoff,
            )
            .group_by(Complaint.address, Category.name)
            .order_by(func.count(Complaint.id).desc())
            .limit(DOMINANCE_LIMIT)
            .all()
        )
    ]

    return {
        "period_days": days,
        "points": points,
        "neglected_areas": neglected[:NEGLECTED_AREAS_LIMIT],
        "category_dominance": dominance,
    }


def community_feed(page: int = 1, limit: Optional[int] = None, sort: str = "newest", category: Optional[str] = None) -> dict:
    """Paginated public complaints; anonymous reporters are labelled, never named."""
    default_limit = int(current_app.config.get("COMMUNITY_PAGE_SIZE", 20))
    max_limit = int(current_app.config.get("COMMUNITY_MAX_PAGE_SIZE", 100))
    page = max(page or 1, 1)
    limit = min(max(limit or default_limit, 1), max_limit)

    query = Complaint.public_query()
    if category and category.lower() != "all":
        match = find_category_by_name(category)
        if match:
            query = query.filter(Complaint.category_id == match.id)
    total = query.count()

    if sort == "most_voted":
        query = query.order_by(Complaint.upvotes.desc(), Complaint.created_at.desc())
    else:
        query = query.order_by(Complaint.created_at.desc())
    offset = (page - 1) * limit
    # Pages past the end are empty; the offset never exceeds the row count.
    posts = []
    if offset < total:
        posts = (
            query.options(joinedload(Complaint.reporter), joinedload(Complaint.category))
            .offset(offset)
            .limit(limit)
            .all()
        )
    return {
        "posts": [feed_projection(complaint) for complaint in posts],
        "results": len(posts),
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


def my_complaints(user: User) -> list[dict]:
    complaints = (
        Complaint.query.options(joinedload(Complaint.category))
        .filter_by(user_id=user.id)
        .order_by(Complaint.created_at.desc())
        .all()
    )
    return [complaint_summary(complaint) for complaint in complaints]


def admin_complaints() -> list[dict]:
    complaints = (
        Complaint.query.options(joinedload(Complaint.category), joinedload(Complaint.reporter))
        .order_by(Complaint.created_at.desc())
        .all()
    )
    return [admin_projection(complaint) for complaint in complaints]


def complaint_timeline(viewer: Optional[User], complaint: Complaint) -> list[dict]:
    return [timeline_projection(viewer, complaint, event) for event in timeline_for(complaint.id)]


def _event_notification(event: TimelineEvent, title: str) -> dict:
    kind, heading, message = "system", "Update", event.details or ""
    if event.action == ACTION_CREATED:
        heading = "Report Submitted"
        message = f'Your report "{title}" was successfully submitted.'
    elif event.action == ACTION_STATUS_UPDATE:
        new_status = (event.details or "").replace("Status changed to", "", 1).strip()
        kind, heading, template = STATUS_NOTIFICATIONS.get(
            new_status,
            ("status_change", "Status Updated", '"{title}" status changed to {status}.'),
        )
        message = template.format(title=title, status=new_status)
    elif event.action == ACTION_ESCALATED:
        kind = "status_change"
        heading = "Escalated!"
        message = f'SLA deadline passed, "{title}" has been escalated.'
    return {
        "id": str(event.id),
        "type": kind,
        "title": heading,
        "message": message,
        "time": event.created_at,
        "read": False,
        "link": f"/dashboard/{event.complaint_id}",
    }


def notifications_for(user: User) -> list[dict]:
    """Derive a notification feed from activity on the user's complaints."""
    titles = dict(db.session.query(Complaint.id, Complaint.title).filter(Complaint.user_id == user.id).all())
    if not titles:
        return []

    notifications = [
        _event_notification(event, titles.get(event.complaint_id) or "Your complaint")
        for event in events_for_complaints(titles.keys(), limit=NOTIFICATION_EVENT_LIMIT)
    ]

    recent_votes = (
        Vote.query.filter(Vote.complaint_id.in_(list(titles.keys())))
        .order_by(Vote.created_at.desc())
        .limit(NOTIFICATION_VOTE_LIMIT)
        .all()
    )
    grouped: "OrderedDict[str, dict]" = OrderedDict()
    for vote in recent_votes:
        bucket = grouped.setdefault(vote.complaint_id, {"count": 0, "latest": vote.created_at})
        bucket["count"] += 1
        if vote.created_at > bucket["latest"]:
            bucket["latest"] = vote.created_at
    for complaint_id, bucket in grouped.items():
        count = bucket["count"]
        notifications.append(
            {
                "id": f"vote_{complaint_id}",
                "type": "upvote",
                "title": "New Upvotes!",
                "message": f'"{titles.get(complaint_id) or "Your complaint"}" received {count} new upvote{"s" if count > 1 else ""}.',
                "time": bucket["latest"],
                "read": False,
                "link": f"/dashboard/{complaint_id}",
            }
        )

    notifications.sort(key=lambda item: item["time"], reverse=True)
    trimmed = notifications[:NOTIFICATION_LIMIT]
    for item in trimmed:
        item["time"] = isoformat(item["time"])
    return trimmed
