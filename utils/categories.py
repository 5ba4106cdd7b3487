"""Category lookup, SLA resolution and default seeding."""
from __future__ import annotations

from typing import Optional

from flask import current_app
from sqlalchemy import func

from extensions import db
from models import MAX_INTEGER_ID, Category

DEFAULT_SLA_HOURS = 24

# (name, department, sla_hours, base_priority)
DEFAULT_CATEGORIES: tuple[tuple[str, str, int, int], ...] = (
    ("Pothole", "Roads", 168, 5),
    ("Garbage", "Sanitation", 24, 4),
    ("Street Light", "Electricity", 48, 4),
    ("Water Leakage", "Water Supply", 24, 6),
    ("Stray Animals", "Animal Control", 48, 3),
    ("Road Damage", "Roads", 168, 5),
    ("Drainage", "Water Supply", 48, 5),
    ("Public Safety", "Safety", 12, 8),
    ("Electricity", "Electricity", 24, 6),
)


def _coerce_id(value) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return None
    return number if 0 < number <= MAX_INTEGER_ID else None


def find_category_by_name(name: str) -> Optional[Category]:
    """Case-insensitive match: exact name first, then the first name containing ``name``."""
    needle = (name or "").strip()
    if not needle:
        return None
    exact = Category.query.filter(func.lower(Category.name) == needle.lower()).first()
    if exact:
        return exact
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return (
        Category.query.filter(Category.name.ilike(f"%{escaped}%", escape="\\"))
        .order_by(Category.id.asc())
        .first()
    )


def resolve_category(category_id=None, category_name: Optional[str] = None) -> tuple[Optional[Category], int]:
    """Return ``(category, sla_hours)`` for a declared reference or free-text name.

    An explicit id is authoritative: when given, the name is ignored even if the
    id does not match a row. Unresolved input yields ``(None, DEFAULT_SLA_HOURS)``.
    """
    category: Optional[Category] = None
    if category_id not in (None, ""):
        lookup_id = _coerce_id(category_id)
        if lookup_id is not None:
            category = db.session.get(Category, lookup_id)
    elif category_name:
        category = find_category_by_name(category_name)

    if category is None:
        return None, DEFAULT_SLA_HOURS
    return category, category.sla_hours or DEFAULT_SLA_HOURS


def list_categories() -> list[dict]:
    return [
        {
            "id": category.id,
            "name": category.name,
            "department": category.department,
            "sla_hours": category.sla_hours,
            "base_priority": category.base_priority,
        }
        for category in Category.query.order_by(Category.name.asc()).all()
    ]


def seed_default_categories() -> int:
    """Insert any missing default categories; returns how many were created."""
    existing = {name.lower() for (name,) in db.session.query(Category.name).all()}
    created = 0
    for name, department, sla_hours, base_priority in DEFAULT_CATEGORIES:
        if name.lower() in existing:
            continue
        db.session.add(
            Category(name=name, department=department, sla_hours=sla_hours, base_priority=base_priority)
        )
        created += 1
    if created:
        db.session.commit()
        current_app.logger.info("Seeded default categories", extra={"created_count": created})
    return created
