"""Timeline event recording and ordering."""

from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from conftest import make_complaint
from extensions import db
from models import TimelineEvent
from utils.timeline import events_for_complaints, log_event, timeline_for


class TestLogEvent:
    """Events are written in their own transaction."""

    def test_records_event(self, ctx, citizen):
        complaint = make_complaint(citizen)

        event = log_event(complaint.id, citizen, "Created", "Report submitted successfully")

        assert event is not None
        stored = TimelineEvent.query.one()
        assert (stored.action, stored.details, stored.user_id) == ("Created", "Report submitted successfully", citizen)

    def test_system_events_have_no_actor(self, ctx, citizen):
        complaint = make_complaint(citizen)
        log_event(complaint.id, None, "Escalated", "SLA deadline passed")
        assert TimelineEvent.query.one().user_id is None

    def test_truncates_long_details(self, ctx, citizen):
        complaint = make_complaint(citizen)
        log_event(complaint.id, citizen, "Created", "x" * 900)
        assert len(TimelineEvent.query.one().details) == 500

    def test_write_failure_is_swallowed(self, ctx, citizen, monkeypatch):
        complaint = make_complaint(citizen)

        def failing_commit():
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(db.session, "commit", failing_commit)
        assert log_event(complaint.id, citizen, "Created", "Report submitted successfully") is None

        assert TimelineEvent.query.count() == 0


class TestTimelineQueries:
    """Newest-first reads."""

    def test_newest_first(self, ctx, citizen):
        complaint = make_complaint(citizen)
        base = datetime.utcnow()
        for offset, action in enumerate(["Created", "Status Update", "Escalated"]):
            db.session.add(
                TimelineEvent(
                    complaint_id=complaint.id,
                    user_id=citizen,
                    action=action,
                    details="",
                    created_at=base + timedelta(minutes=offset),
                )
            )
        db.session.commit()

        assert [event.action for event in timeline_for(complaint.id)] == ["Escalated", "Status Update", "Created"]

    def test_events_for_several_complaints(self, ctx, citizen):
        first = make_complaint(citizen, title="First")
        second = make_complaint(citizen, title="Second")
        log_event(first.id, citizen, "Created")
        log_event(second.id, citizen, "Created")

        assert len(events_for_complaints([first.id, second.id])) == 2
        assert len(events_for_complaints([first.id, second.id], limit=1)) == 1
        assert events_for_complaints([]) == []
