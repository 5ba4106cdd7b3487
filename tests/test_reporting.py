"""Dashboards, community feed, heatmap and derived notifications."""

from datetime import datetime, timedelta

from conftest import make_complaint
from extensions import db
from models import User, Vote
from utils.reporting import (
    _months_ago,
    analytics,
    community_feed,
    complaint_stats,
    heatmap,
    notifications_for,
    public_stats,
)
from utils.timeline import log_event


class TestStats:
    """Counts by status."""

    def test_complaint_stats(self, ctx, citizen):
        make_complaint(citizen)
        make_complaint(citizen, status="In Progress")
        make_complaint(citizen, status="Resolved")
        make_complaint(citizen, status="Closed", is_escalated=True)

        stats = complaint_stats()

        assert stats["total"] == 4
        assert stats["submitted"] == 1
        assert stats["in_progress"] == 1
        assert stats["resolved"] == 1
        assert stats["closed"] == 1
        assert stats["escalated"] == 1
        assert stats["assigned"] == 0

    def test_public_stats_count_closed_as_resolved(self, ctx, citizen, admin):
        make_complaint(citizen, status="Resolved")
        make_complaint(citizen, status="Closed")
        make_complaint(citizen)

        assert public_stats() == {"total_complaints": 3, "resolved": 2, "active_citizens": 1}


class TestAnalytics:
    """Category, status and monthly breakdowns."""

    def test_groups_uncategorized(self, ctx, citizen):
        make_complaint(citizen, category_name="Pothole")
        make_complaint(citizen, category_name="Pothole", title="Second pothole")
        make_complaint(citizen)

        by_category = {row["category"]: row["count"] for row in analytics()["by_category"]}
        assert by_category == {"Pothole": 2, "Uncategorized": 1}

    def test_monthly_trends_count_resolved(self, ctx, citizen):
        make_complaint(citizen, status="Resolved")
        make_complaint(citizen)

        trends = analytics()["monthly_trends"]
        assert trends == [{"month": datetime.utcnow().strftime("%Y-%m"), "total": 2, "resolved": 1}]

    def test_top_areas(self, ctx, citizen):
        for _ in range(3):
            make_complaint(citizen, address="Indiranagar")
        make_complaint(citizen, address="Koramangala")
        make_complaint(citizen, address="")

        assert analytics()["top_areas"][0] == {"address": "Indiranagar", "count": 3}
        assert len(analytics()["top_areas"]) == 2

    def test_months_ago_clamps_day(self):
        assert _months_ago(datetime(2026, 3, 31), 1) == datetime(2026, 2, 28)
        assert _months_ago(datetime(2026, 1, 15), 6) == datetime(2025, 7, 15)


class TestHeatmap:
    """Geo points and neglected areas."""

    def test_points_within_period(self, ctx, citizen):
        recent = make_complaint(citizen, latitude=12.97, longitude=77.59)
        make_complaint(citizen, latitude=12.98, longitude=77.6, minutes_ago=60 * 24 * 40)
        make_complaint(citizen)

        data = heatmap()

        assert data["period_days"] == 30
        assert [point["id"] for point in data["points"]] == [recent.id]

    def test_custom_period(self, ctx, citizen):
        make_complaint(citizen, latitude=12.98, longitude=77.6, minutes_ago=60 * 24 * 40)
        assert len(heatmap(period_days=60)["points"]) == 1

    def test_neglected_areas_rank_by_count(self, ctx, citizen):
        make_complaint(citizen, address="Whitefield", minutes_ago=60 * 24 * 3)
        make_complaint(citizen, address="Whitefield")
        make_complaint(citizen, address="Jayanagar", minutes_ago=60 * 24 * 10)
        make_complaint(citizen, address="Hebbal", status="Resolved")

        neglected = heatmap()["neglected_areas"]

        assert [row["address"] for row in neglected] == ["Whitefield", "Jayanagar"]
        assert neglected[0]["oldest_days"] == 3

    def test_period_is_capped(self, ctx, citizen):
        make_complaint(citizen, latitude=12.98, longitude=77.6, minutes_ago=60 * 24 * 400)

        data = heatmap(period_days=999999999)

        assert data["period_days"] == 3650
        assert len(data["points"]) == 1

    def test_cap_follows_config(self, ctx, citizen):
        ctx.config["HEATMAP_MAX_DAYS"] = 90
        make_complaint(citizen, latitude=12.98, longitude=77.6, minutes_ago=60 * 24 * 100)

        data = heatmap(period_days=365)

        assert data["period_days"] == 90
        assert data["points"] == []


class TestCommunityFeed:
    """Public, paginated feed."""

    def test_only_public_complaints(self, ctx, citizen):
        make_complaint(citizen, title="Shared", is_public=True)
        make_complaint(citizen, title="Private")

        feed = community_feed()

        assert [post["title"] for post in feed["posts"]] == ["Shared"]
        assert feed["total"] == 1

    def test_pagination(self, ctx, citizen):
        for index in range(5):
            make_complaint(citizen, title=f"Post {index}", is_public=True, minutes_ago=index)

        feed = community_feed(page=2, limit=2)

        assert [post["title"] for post in feed["posts"]] == ["Post 2", "Post 3"]
        assert (feed["total"], feed["page"], feed["pages"], feed["results"]) == (5, 2, 3, 2)

    def test_most_voted_sort(self, ctx, citizen):
        make_complaint(citizen, title="Quiet", is_public=True, upvotes=1)
        make_complaint(citizen, title="Loud", is_public=True, upvotes=7, minutes_ago=30)

        assert community_feed(sort="most_voted")["posts"][0]["title"] == "Loud"

    def test_category_filter(self, ctx, citizen):
        make_complaint(citizen, title="Hole", is_public=True, category_name="Pothole")
        make_complaint(citizen, title="Trash", is_public=True, category_name="Garbage")

        assert [post["title"] for post in community_feed(category="pothole")["posts"]] == ["Hole"]
        assert len(community_feed(category="all")["posts"]) == 2

    def test_limit_is_capped(self, ctx, citizen):
        make_complaint(citizen, is_public=True)
        assert community_feed(limit=5000)["pages"] == 1

    def test_page_past_the_end_is_empty(self, ctx, citizen):
        make_complaint(citizen, title="Shared", is_public=True)

        feed = community_feed(page=100000000000000000000, limit=10)

        assert feed["posts"] == []
        assert (feed["total"], feed["pages"], feed["results"]) == (1, 1, 0)


class TestNotifications:
    """Feed derived from timeline events and votes."""

    def test_maps_lifecycle_events(self, ctx, citizen, admin):
        complaint = make_complaint(citizen, title="Broken pipe")
        log_event(complaint.id, citizen, "Created", "Report submitted successfully")
        log_event(complaint.id, admin, "Status Update", "Status changed to Resolved")
        log_event(complaint.id, None, "Escalated", "SLA deadline passed")

        titles = {item["title"] for item in notifications_for(db.session.get(User, citizen))}

        assert titles == {"Report Submitted", "Issue Resolved!", "Escalated!"}

    def test_unknown_status_uses_generic_title(self, ctx, citizen, admin):
        complaint = make_complaint(citizen)
        log_event(complaint.id, admin, "Status Update", "Status changed to Submitted")

        [item] = notifications_for(db.session.get(User, citizen))
        assert item["title"] == "Status Updated"
        assert item["type"] == "status_change"

    def test_groups_votes_per_complaint(self, ctx, citizen, neighbour, admin):
        complaint = make_complaint(citizen, title="Broken pipe")
        now = datetime.utcnow()
        db.session.add(Vote(complaint_id=complaint.id, user_id=neighbour, created_at=now - timedelta(minutes=5)))
        db.session.add(Vote(complaint_id=complaint.id, user_id=admin, created_at=now))
        db.session.commit()

        [item] = notifications_for(db.session.get(User, citizen))

        assert item["id"] == f"vote_{complaint.id}"
        assert item["title"] == "New Upvotes!"
        assert "2 new upvotes" in item["message"]
        assert item["time"] == now.isoformat()

    def test_user_without_complaints(self, ctx, neighbour):
        assert notifications_for(db.session.get(User, neighbour)) == []
