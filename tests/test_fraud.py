"""Spam and duplicate heuristics."""

from conftest import make_complaint
from utils.fraud_heuristics import detail_flags, nearby_open_complaints, self_check_flags


def _types(flags):
    return {flag["type"] for flag in flags}


class TestDetailFlags:
    """Flags shown to staff reviewing one complaint."""

    def test_clean_reporter_has_no_flags(self, ctx, citizen):
        complaint = make_complaint(citizen)
        assert detail_flags(complaint) == []

    def test_five_recent_reports_are_not_flagged(self, ctx, citizen):
        complaints = [make_complaint(citizen, title=f"Report {index}") for index in range(5)]
        assert "rate_limit" not in _types(detail_flags(complaints[-1]))

    def test_six_recent_reports_are_flagged(self, ctx, citizen):
        complaints = [make_complaint(citizen, title=f"Report {index}") for index in range(6)]

        flags = detail_flags(complaints[-1])
        rate_flag = next(flag for flag in flags if flag["type"] == "rate_limit")
        assert rate_flag["severity"] == "high"
        assert rate_flag["message"] == "High submission rate (Potential Spam)"

    def test_old_reports_do_not_count_toward_velocity(self, ctx, citizen):
        for index in range(6):
            make_complaint(citizen, title=f"Old {index}", minutes_ago=30)
        complaint = make_complaint(citizen, title="Fresh")
        assert "rate_limit" not in _types(detail_flags(complaint))

    def test_repeated_title_is_flagged(self, ctx, citizen):
        make_complaint(citizen, title="Garbage pile", minutes_ago=60)
        complaint = make_complaint(citizen, title="Garbage pile")

        flags = detail_flags(complaint)
        assert _types(flags) == {"duplicate"}
        assert flags[0]["severity"] == "medium"


class TestSelfCheckFlags:
    """Flags a citizen sees before submitting."""

    def test_five_recent_reports_trigger_rate_flag(self, ctx, citizen):
        for index in range(5):
            make_complaint(citizen, title=f"Report {index}")
        assert _types(self_check_flags(citizen)) == {"rate_limit"}

    def test_four_recent_reports_are_fine(self, ctx, citizen):
        for index in range(4):
            make_complaint(citizen, title=f"Report {index}")
        assert self_check_flags(citizen) == []

    def test_title_repeated_three_times(self, ctx, citizen):
        for _ in range(3):
            make_complaint(citizen, title="Same title", minutes_ago=120)
        assert _types(self_check_flags(citizen)) == {"duplicate_title"}

    def test_title_repeated_twice_is_fine(self, ctx, citizen):
        for _ in range(2):
            make_complaint(citizen, title="Same title", minutes_ago=120)
        assert self_check_flags(citizen) == []


class TestNearbyComplaints:
    """Geographic duplicate lookup."""

    def test_finds_open_complaints_in_box(self, ctx, citizen):
        near = make_complaint(citizen, title="Near", latitude=12.9716, longitude=77.5946)
        make_complaint(citizen, title="Far", latitude=13.5, longitude=77.5946)
        make_complaint(citizen, title="Fixed", latitude=12.9717, longitude=77.5947, status="Resolved")

        assert [complaint.id for complaint in nearby_open_complaints(12.972, 77.595)] == [near.id]

    def test_orders_by_upvotes(self, ctx, citizen):
        quiet = make_complaint(citizen, title="Quiet", latitude=12.97, longitude=77.59, upvotes=1)
        popular = make_complaint(citizen, title="Popular", latitude=12.971, longitude=77.591, upvotes=9)

        assert [c.id for c in nearby_open_complaints(12.97, 77.59)] == [popular.id, quiet.id]

    def test_caps_results(self, ctx, citizen):
        for index in range(7):
            make_complaint(citizen, title=f"Spot {index}", latitude=12.97, longitude=77.59, minutes_ago=60)
        assert len(nearby_open_complaints(12.97, 77.59)) == 5

    def test_missing_coordinates(self, ctx):
        assert nearby_open_complaints(None, 77.59) == []
