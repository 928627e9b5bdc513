# =============================================================================
# TESTS FOR STANDING RESPONSIBILITIES
# =============================================================================

from datetime import datetime, timedelta, timezone

import pytest

from orchestrator.responsibilities import (
    DEFAULT_RESPONSIBILITIES,
    ResponsibilitySchedule,
    parse_frequency,
)
from shared.exceptions import NotFoundError, ValidationError

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def schedule(tmp_path):
    return ResponsibilitySchedule(tmp_path / "responsibilities.json")


def _mark_all(schedule, when):
    for role, duties in DEFAULT_RESPONSIBILITIES.items():
        for name in duties:
            schedule.mark_run(role, name, when)


class TestParseFrequency:

    @pytest.mark.parametrize("text,expected", [
        ("30m", timedelta(minutes=30)),
        ("4h", timedelta(hours=4)),
        ("7d", timedelta(days=7)),
    ])
    def test_valid(self, text, expected):
        assert parse_frequency(text) == expected

    @pytest.mark.parametrize("text", ["", "4", "h4", "4w", "-1h", "1.5h", None])
    def test_invalid(self, text):
        with pytest.raises(ValidationError):
            parse_frequency(text)


class TestDue:

    def test_never_run_is_due(self, schedule):
        due = schedule.get_due_for("trade-research", NOW)
        assert {d.name for d in due} == set(DEFAULT_RESPONSIBILITIES["trade-research"])
        assert all(d.last_run is None for d in due)

    def test_most_overdue_first(self, schedule):
        _mark_all(schedule, NOW - timedelta(hours=5))
        due = schedule.get_due_for("trade-research", NOW)
        assert [d.name for d in due][0] == "check-exit-triggers"
        assert due[0].overdue_by == timedelta(hours=4, minutes=30)
        assert "weekly-review" not in {d.name for d in due}

    def test_nothing_due_after_run(self, schedule):
        _mark_all(schedule, NOW)
        assert schedule.get_due_for("trade-research", NOW + timedelta(minutes=10)) == []
        assert schedule.get_next_due(NOW + timedelta(minutes=10)) is None

    def test_next_due_across_roles(self, schedule):
        _mark_all(schedule, NOW)
        schedule.mark_run("agent-engineer", "health-check", NOW - timedelta(days=3))
        due = schedule.get_next_due(NOW + timedelta(minutes=45))
        assert (due.role, due.name) == ("agent-engineer", "health-check")

    def test_unknown_role_has_no_duties(self, schedule):
        assert schedule.get_due_for("market-analyst", NOW) == []


class TestMutations:

    def test_mark_run_persists(self, schedule, tmp_path):
        schedule.mark_run("trade-research", "weekly-review", NOW)
        reopened = ResponsibilitySchedule(tmp_path / "responsibilities.json")
        status = {(s["role"], s["name"]): s for s in reopened.get_status(NOW)}
        entry = status[("trade-research", "weekly-review")]
        assert entry["last_run"] == NOW.isoformat()
        assert entry["is_due"] is False

    def test_mark_run_unknown(self, schedule):
        with pytest.raises(NotFoundError):
            schedule.mark_run("trade-research", "feed-the-cat", NOW)

    def test_set_frequency_adds_and_reschedules(self, schedule):
        schedule.set_frequency("agent-engineer", "rotate-logs", "2d")
        schedule.set_frequency("trade-research", "check-exit-triggers", "15m")
        status = {(s["role"], s["name"]): s["frequency"] for s in schedule.get_status(NOW)}
        assert status[("agent-engineer", "rotate-logs")] == "2d"
        assert status[("trade-research", "check-exit-triggers")] == "15m"

    def test_set_frequency_rejects_bad_input(self, schedule):
        with pytest.raises(ValidationError):
            schedule.set_frequency("trade-research", "x", "often")
        with pytest.raises(ValidationError):
            schedule.set_frequency("nobody", "x", "1h")
