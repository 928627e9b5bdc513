# =============================================================================
# TESTS FOR HYPOTHESIS SELECTION SCORING
# =============================================================================

from datetime import datetime, timedelta, timezone

import pytest

from hypotheses.models import Evidence, Hypothesis
from hypotheses.selection import (
    closing_time_for,
    evidence_score,
    score_hypothesis,
    select_next,
    status_score,
    time_score,
)
from shared.engine_config import EngineConfig

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _hyp(hid, status="proposed", confidence=0.5, idle_hours=0.0, **fields):
    stamp = (NOW - timedelta(hours=idle_hours)).isoformat()
    return Hypothesis(
        id=hid,
        statement=f"statement {hid}",
        status=status,
        confidence=confidence,
        created_at=stamp,
        updated_at=stamp,
        **fields,
    )


def _evidence(days_ago, supports=True):
    return Evidence(
        date=(NOW - timedelta(days=days_ago)).isoformat(),
        observation="obs",
        supports=supports,
        confidence_impact=0.01,
    )


class TestComponents:

    def test_evidence_score_without_support_is_zero(self):
        h = _hyp("H1", evidence=[_evidence(0, supports=False)])
        assert evidence_score(h, NOW, 7.0) == 0.0

    def test_evidence_score_saturates(self):
        h = _hyp("H1", evidence=[_evidence(0) for _ in range(8)])
        assert evidence_score(h, NOW, 7.0) == pytest.approx(1.0)

    def test_stale_evidence_loses_recency(self):
        h = _hyp("H1", evidence=[_evidence(30)])
        assert evidence_score(h, NOW, 7.0) == pytest.approx(0.6 * 0.2)

    @pytest.mark.parametrize("hours,expected", [
        (-1, 0.0),
        (12, 1.0),
        (48, 0.6),
        (100, 0.0),
    ])
    def test_time_score(self, hours, expected):
        closes_at = (NOW + timedelta(hours=hours)).isoformat()
        assert time_score(closes_at, NOW, 24.0, 72.0) == expected

    def test_time_score_without_market(self):
        assert time_score(None, NOW, 24.0, 72.0) == 0.0

    def test_status_score(self):
        assert status_score(_hyp("H1", status="testing"), NOW, 48.0) == 0.5
        assert status_score(_hyp("H2", idle_hours=60), NOW, 48.0) == 1.0
        assert status_score(_hyp("H3", idle_hours=10), NOW, 48.0) == 0.0

    def test_market_metadata_overrides_stored_close(self):
        h = _hyp("H1", linked_market="MKT-1", linked_market_closes_at="2026-04-01T00:00:00+00:00")
        assert closing_time_for(h, {"MKT-1": "2026-03-02T00:00:00+00:00"}) == "2026-03-02T00:00:00+00:00"
        assert closing_time_for(h) == "2026-04-01T00:00:00+00:00"
        assert closing_time_for(_hyp("H2"), {"MKT-1": "x"}) is None

    def test_unreadable_feed_entry_falls_back_to_stored_close(self):
        h = _hyp("H1", linked_market="MKT-1", linked_market_closes_at="2026-04-01T00:00:00+00:00")
        assert closing_time_for(h, {"MKT-1": "soon"}) == "2026-04-01T00:00:00+00:00"
        score = score_hypothesis(h, NOW, EngineConfig(), {"MKT-1": "soon"})
        assert score.breakdown["time"] == 0.0


class TestSelectNext:

    def test_idle_proposed_hypothesis_wins_tie(self):
        """Equal confidence: the one idle 60h beats the one idle 10h."""
        fresh = _hyp("FRESH", idle_hours=10)
        idle = _hyp("IDLE", idle_hours=60)
        result = select_next([fresh, idle], now=NOW, config=EngineConfig())
        assert result.hypothesis.id == "IDLE"
        assert result.score.breakdown["status"] == 1.0
        assert result.alternatives[0]["id"] == "FRESH"

    def test_terminal_and_blocked_are_ineligible(self):
        hypotheses = [
            _hyp("V", status="validated", confidence=0.9),
            _hyp("I", status="invalidated"),
            _hyp("B", status="blocked"),
        ]
        result = select_next(hypotheses, now=NOW, config=EngineConfig())
        assert result.hypothesis is None
        assert result.alternatives == []

    def test_closing_market_lifts_priority(self):
        plain = _hyp("PLAIN", status="testing", confidence=0.55)
        closing = _hyp("CLOSING", status="testing", confidence=0.5, linked_market="MKT-1")
        result = select_next(
            [plain, closing],
            now=NOW,
            config=EngineConfig(),
            market_closing={"MKT-1": (NOW + timedelta(hours=6)).isoformat()},
        )
        assert result.hypothesis.id == "CLOSING"

    def test_score_tie_goes_to_oldest(self):
        older = _hyp("OLD", status="testing", idle_hours=5)
        newer = _hyp("NEW", status="testing", idle_hours=1)
        result = select_next([newer, older], now=NOW, config=EngineConfig())
        assert result.hypothesis.id == "OLD"

    def test_alternatives_capped_by_top_n(self):
        hypotheses = [_hyp(f"H{i}", status="testing", confidence=0.1 * i) for i in range(1, 9)]
        result = select_next(hypotheses, now=NOW, config=EngineConfig())
        assert result.hypothesis.id == "H8"
        assert len(result.alternatives) == 4

    def test_score_is_weighted_sum(self):
        h = _hyp("H1", status="testing", confidence=0.6)
        score = score_hypothesis(h, NOW, EngineConfig())
        assert score.score == pytest.approx(0.35 * 0.6 + 0.20 * 0.5)
