# =============================================================================
# TESTS FOR PRIORITY DETECTION
# =============================================================================

from datetime import datetime, timedelta, timezone

from hypotheses.models import Hypothesis
from orchestrator.priorities import (
    PrioritySignal,
    detect_priorities,
    get_priority_report,
    near_stop_loss,
    rank_signals,
)
from paper_trader.models import ExitCriteria, Portfolio, Position
from shared.engine_config import EngineConfig

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _position(current, direction="YES", entry=0.40, take_profit=0.60, stop_loss=0.30, pid="POS-1"):
    return Position(
        id=pid,
        market="MKT-1",
        direction=direction,
        entry_price=entry,
        shares=100.0,
        cost=entry * 100.0,
        hypothesis_id="HYP-1",
        exit_criteria=ExitCriteria(take_profit=take_profit, stop_loss=stop_loss),
        rationale="test",
        entry_date=NOW.isoformat(),
        current_price=current,
    )


def _portfolio(*positions):
    return Portfolio(cash=5000.0, starting_capital=10000.0, positions=list(positions))


def _hyp(hid, status="testing", idle_hours=1.0, **fields):
    stamp = (NOW - timedelta(hours=idle_hours)).isoformat()
    return Hypothesis(
        id=hid,
        statement=f"statement {hid}",
        status=status,
        confidence=0.5,
        created_at=stamp,
        updated_at=stamp,
        **fields,
    )


def _detect(portfolio=None, hypotheses=(), market_closing=None):
    return detect_priorities(
        portfolio or _portfolio(),
        list(hypotheses),
        now=NOW,
        market_closing=market_closing,
        config=EngineConfig(),
    )


class TestPortfolioRisk:

    def test_near_stop_loss_yes(self):
        assert near_stop_loss(_position(0.32), 0.10)
        assert not near_stop_loss(_position(0.36), 0.10)

    def test_near_stop_loss_no(self):
        position = _position(0.52, direction="NO", take_profit=0.20, stop_loss=0.55)
        assert near_stop_loss(position, 0.10)
        position = _position(0.45, direction="NO", take_profit=0.20, stop_loss=0.55)
        assert not near_stop_loss(position, 0.10)

    def test_stop_loss_and_loss_signals(self):
        """0.32 against a 0.30 stop on a 0.40 entry: both risk signals."""
        signals = _detect(_portfolio(_position(0.32)))
        assert [(s.urgency, s.action) for s in signals] == [
            (95, "stop-loss-warning"),
            (90, "review-position"),
        ]
        assert signals[0].context["position"]["id"] == "POS-1"
        assert signals[1].context["pnl_pct"] == -0.2

    def test_healthy_position_is_quiet(self):
        assert _detect(_portfolio(_position(0.45))) == []

    def test_moderate_loss_is_quiet(self):
        assert _detect(_portfolio(_position(0.345))) == []


class TestHypothesisSignals:

    def test_market_closing_within_window(self):
        h = _hyp("HYP-1", linked_market="MKT-1",
                 linked_market_closes_at=(NOW + timedelta(hours=6)).isoformat())
        signals = _detect(hypotheses=[h])
        assert len(signals) == 1
        assert signals[0].urgency == 80
        assert signals[0].action == "closing-market-decision"
        assert signals[0].context["hours_to_close"] == 6.0

    def test_closed_or_distant_market_ignored(self):
        past = _hyp("HYP-1", linked_market="MKT-1",
                    linked_market_closes_at=(NOW - timedelta(hours=1)).isoformat())
        later = _hyp("HYP-2", linked_market="MKT-2",
                     linked_market_closes_at=(NOW + timedelta(hours=30)).isoformat())
        assert _detect(hypotheses=[past, later]) == []

    def test_market_feed_overrides_stored_close(self):
        h = _hyp("HYP-1", linked_market="MKT-1",
                 linked_market_closes_at=(NOW + timedelta(days=10)).isoformat())
        feed = {"MKT-1": (NOW + timedelta(hours=2)).isoformat()}
        assert [s.action for s in _detect(hypotheses=[h], market_closing=feed)] == [
            "closing-market-decision"
        ]

    def test_stuck_hypothesis(self):
        signals = _detect(hypotheses=[_hyp("HYP-1", idle_hours=49)])
        assert [(s.urgency, s.action) for s in signals] == [(60, "unstick-hypothesis")]
        assert signals[0].context["hours_stuck"] == 49

    def test_blocked_counts_as_stuck(self):
        signals = _detect(hypotheses=[_hyp("HYP-1", status="blocked", idle_hours=72)])
        assert signals[0].context["status"] == "blocked"

    def test_terminal_never_stuck(self):
        hypotheses = [
            _hyp("HYP-1", status="validated", idle_hours=500),
            _hyp("HYP-2", status="invalidated", idle_hours=500),
        ]
        assert _detect(hypotheses=hypotheses) == []


class TestRanking:

    def test_urgency_then_class(self):
        signals = [
            PrioritySignal("stuck-hypothesis", 60, "unstick-hypothesis"),
            PrioritySignal("time-sensitive", 80, "closing-market-decision"),
            PrioritySignal("portfolio-risk", 95, "stop-loss-warning"),
        ]
        assert [s.urgency for s in rank_signals(signals)] == [95, 80, 60]

    def test_full_scan_ordering(self):
        closing = _hyp("HYP-1", idle_hours=60, linked_market="MKT-1",
                       linked_market_closes_at=(NOW + timedelta(hours=3)).isoformat())
        signals = _detect(_portfolio(_position(0.32)), hypotheses=[closing])
        assert [s.urgency for s in signals] == [95, 90, 80, 60]

    def test_detection_is_pure(self):
        portfolio = _portfolio(_position(0.32))
        before = portfolio.to_dict()
        _detect(portfolio)
        assert portfolio.to_dict() == before


class TestReport:

    def test_empty(self):
        assert get_priority_report([]) == "No priorities detected."

    def test_lines_and_overflow(self):
        signals = [
            PrioritySignal("stuck-hypothesis", 60, "unstick-hypothesis", {"hypothesis_id": f"HYP-{i}"})
            for i in range(7)
        ]
        report = get_priority_report(signals, limit=5)
        lines = report.splitlines()
        assert lines[0] == "## Current Priorities (7)"
        assert lines[1] == "1. [60 MEDIUM] unstick-hypothesis HYP-0"
        assert lines[-1].strip() == "...and 2 more"
