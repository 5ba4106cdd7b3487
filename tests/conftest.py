"""Shared fixtures: an in-memory application, seeded users and captured email."""

from datetime import datetime, timedelta

import pytest

from app import create_app
from extensions import db
from models import Category, Complaint, User

PASSWORD = "Str0ng!Password"


@pytest.fixture
def app(tmp_path):
    """Application bound to a fresh in-memory database per test."""
    application = create_app("testing", {"LOG_DIR": str(tmp_path / "logs")})
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    """Push an application context for service-level tests."""
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of talking to SMTP."""
    sent = []

    def fake_dispatch(subject, text_body, html_body, sender, recipients):
        sent.append(
            {
                "subject": subject,
                "text": text_body,
                "html": html_body,
                "sender": sender,
                "recipients": list(recipients),
            }
        )

    monkeypatch.setattr("utils.email_service._dispatch_email", fake_dispatch)
    return sent


def create_user(app, *, name="Asha Citizen", email=None, role="citizen", verified=True, points=0):
    """Insert a user and return its id."""
    with app.app_context():
        user = User(
            name=name,
            email=email or f"{name.split()[0].lower()}.{role}@civicpulse.in",
            role=role,
            is_verified=verified,
            is_active=True,
            points=points,
        )
        user.set_password(PASSWORD)
        db.session.add(user)
        db.session.commit()
        return user.id


def make_complaint(user_id, *, title="Broken streetlight", minutes_ago=0, category_name=None, **fields):
    """Insert a complaint directly, bypassing lifecycle side effects. Requires an app context."""
    created_at = datetime.utcnow() - timedelta(minutes=minutes_ago)
    category = Category.query.filter_by(name=category_name).first() if category_name else None
    complaint = Complaint(
        user_id=user_id,
        title=title,
        description=fields.pop("description", f"{title} near the market"),
        category_id=category.id if category else None,
        sla_deadline=created_at + timedelta(hours=category.sla_hours if category else 24),
        created_at=created_at,
        updated_at=created_at,
        **fields,
    )
    db.session.add(complaint)
    db.session.commit()
    return complaint


def login(client, user_id):
    """Attach a Flask-Login session for ``user_id`` to the test client."""
    with client.session_transaction() as sess:
        sess["_user_id"] = user_id
        sess["_fresh"] = True


@pytest.fixture
def citizen(app):
    return create_user(app, name="Asha Citizen", email="asha@civicpulse.in")


@pytest.fixture
def neighbour(app):
    return create_user(app, name="Ravi Neighbour", email="ravi@civicpulse.in")


@pytest.fixture
def admin(app):
    return create_user(app, name="Meera Admin", email="meera@civicpulse.in", role="admin")


@pytest.fixture
def worker(app):
    return create_user(app, name="Kiran Worker", email="kiran@civicpulse.in", role="worker")
