# =============================================================================
# INTEGRATION: HYPOTHESIS LIFECYCLE
# =============================================================================
#
# State machine, evidence, auto-transitions, blocking through the handoff
# queue, and the confidence/learnings side documents.
#
# =============================================================================

from unittest.mock import patch

import pytest

from hypotheses.models import TestResults
from shared.exceptions import ConcurrencyError
from tests.helpers import interleaved_write


class TestCreate:

    def test_defaults(self, lifecycle):
        result = lifecycle.create_hypothesis("  Favourites under 10c are overpriced  ")
        h = result.hypothesis
        assert result.success
        assert h.id.startswith("HYP-")
        assert h.statement == "Favourites under 10c are overpriced"
        assert (h.status, h.confidence, h.min_sample_size) == ("proposed", 0.5, 5)

    @pytest.mark.parametrize("kwargs", [
        {"statement": "   "},
        {"statement": "x", "initial_confidence": 1.2},
        {"statement": "x", "min_sample_size": 0},
    ])
    def test_rejects_bad_input(self, lifecycle, kwargs):
        result = lifecycle.create_hypothesis(**kwargs)
        assert not result.success
        assert result.error_type == "ValidationError"
        assert lifecycle.list_hypotheses() == []


class TestTransitions:

    def test_start_testing(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        result = lifecycle.transition(h.id, "testing", "rules written")
        assert result.success
        assert result.hypothesis.status == "testing"
        assert result.hypothesis.test_started_at is not None
        assert result.hypothesis.status_reason == "rules written"

    def test_testing_needs_rules(self, lifecycle):
        h = lifecycle.create_hypothesis("bare idea").hypothesis
        result = lifecycle.transition(h.id, "testing", "go")
        assert not result.success
        assert result.error.startswith("precondition not met")
        assert "test_method" in result.error

    def test_illegal_jump(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        result = lifecycle.transition(h.id, "validated", "trust me")
        assert result.error == "illegal transition: proposed -> validated"
        assert result.error_type == "TransitionError"

    def test_terminal_rejection_is_stable(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="invalidated")
        before = lifecycle.store.path.read_bytes()

        first = lifecycle.transition(h.id, "testing", "retry")
        second = lifecycle.transition(h.id, "testing", "retry")

        assert not first.success
        assert first.error == second.error
        assert lifecycle.store.path.read_bytes() == before

    def test_manual_validation_needs_record(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.6)
        result = lifecycle.transition(h.id, "validated", "looks good")
        assert result.error.startswith("precondition not met")
        assert "0 trades, need 5" in result.error

    def test_manual_validation(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.6,
                            test_results=TestResults(wins=4, losses=1, pnl=50.0))
        result = lifecycle.transition(h.id, "validated", "4 of 5 won")
        assert result.success
        assert result.hypothesis.conclusion == "4 of 5 won"
        assert result.hypothesis.test_ended_at is not None

    def test_invalidation_by_losing_record(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.5,
                            test_results=TestResults(wins=1, losses=4, pnl=-80.0))
        assert lifecycle.transition(h.id, "invalidated", "lost 4 of 5").success

    def test_invalidation_needs_grounds(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.5)
        assert not lifecycle.transition(h.id, "invalidated", "gut feel").success

    def test_blocked_only_through_block(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing")
        result = lifecycle.transition(h.id, "blocked", "stuck")
        assert "use block()" in result.error

    def test_missing_hypothesis(self, lifecycle):
        assert lifecycle.transition("HYP-nope", "testing", "x").error_type == "NotFoundError"

    def test_terminal_transition_logs_learning(self, engine, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.6,
                            test_results=TestResults(wins=4, losses=1, pnl=50.0))
        lifecycle.transition(h.id, "validated", "edge confirmed")

        learnings = lifecycle.learnings.all()
        assert len(learnings) == 1
        assert learnings[0]["verdict"] == "validated"
        assert learnings[0]["actionable"] is True
        assert engine.gateway.sent[-1].title == "Hypothesis validated"


class TestEvidence:

    def test_confidence_moves_and_is_recorded(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing")
        result = lifecycle.add_evidence(h.id, "favourite drifted 3c", True, 0.05)

        assert result.success
        assert result.transitioned_to is None
        assert result.hypothesis.confidence == 0.55
        assert len(result.hypothesis.supporting_evidence) == 1

        movements = lifecycle.history.all()
        assert [(m.previous, m.current) for m in movements] == [(0.5, 0.55)]

    def test_auto_invalidation(self, lifecycle, make_hypothesis):
        """0.32 - 0.05 -> 0.27, below the 0.30 floor."""
        h = make_hypothesis(status="testing", confidence=0.32)
        result = lifecycle.add_evidence(h.id, "edge vanished", False, -0.05)

        assert result.success
        assert result.hypothesis.confidence == 0.27
        assert result.transitioned_to == "invalidated"
        assert result.hypothesis.status == "invalidated"
        assert result.hypothesis.conclusion.startswith("auto-invalidated")
        assert lifecycle.learnings.all()[0]["verdict"] == "invalidated"

    def test_auto_validation_needs_criteria(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.68)
        result = lifecycle.add_evidence(h.id, "another win", True, 0.05)
        assert result.transitioned_to is None
        assert result.hypothesis.status == "testing"

    def test_auto_validation(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.68,
                            test_results=TestResults(wins=4, losses=1, pnl=40.0))
        result = lifecycle.add_evidence(h.id, "another win", True, 0.05)
        assert result.transitioned_to == "validated"
        assert result.hypothesis.confidence == 0.73

    def test_only_testing_auto_transitions(self, lifecycle, make_hypothesis):
        h = make_hypothesis(confidence=0.32)
        result = lifecycle.add_evidence(h.id, "bad sign", False, -0.05)
        assert result.hypothesis.status == "proposed"
        assert result.hypothesis.confidence == 0.27

    def test_terminal_hypothesis_still_takes_evidence(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="validated", confidence=0.8)
        result = lifecycle.add_evidence(h.id, "still holds", True, 0.05)
        assert result.success
        assert result.hypothesis.status == "validated"
        assert len(result.hypothesis.evidence) == 1

    @pytest.mark.parametrize("start,impact,expected", [(0.95, 0.2, 1.0), (0.1, -0.3, 0.0)])
    def test_confidence_clamped(self, lifecycle, make_hypothesis, start, impact, expected):
        h = make_hypothesis(confidence=start)
        assert lifecycle.add_evidence(h.id, "obs", None, impact).hypothesis.confidence == expected

    def test_impact_limit(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        result = lifecycle.add_evidence(h.id, "huge", True, 0.6)
        assert result.error_type == "ValidationError"
        assert lifecycle.get(h.id).evidence == []

    def test_evidence_is_append_only(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        lifecycle.add_evidence(h.id, "first", True, 0.01)
        lifecycle.add_evidence(h.id, "second", None, 0.0)
        observations = [e.observation for e in lifecycle.get(h.id).evidence]
        assert observations == ["first", "second"]

    def test_weekly_progress(self, lifecycle, make_hypothesis):
        a = make_hypothesis(status="testing", confidence=0.48)
        b = make_hypothesis(status="testing")
        lifecycle.add_evidence(a.id, "crossed", True, 0.05)
        lifecycle.add_evidence(b.id, "nudge", True, 0.01)

        progress = lifecycle.get_weekly_progress()
        assert progress.total_movement == pytest.approx(0.06)
        assert progress.hypotheses_advanced == 1
        assert progress.threshold_crossings == 1


class TestTradeFeedback:

    def test_record_trade_result_never_changes_status(self, lifecycle, make_hypothesis):
        h = make_hypothesis(status="testing", confidence=0.2)
        for _ in range(5):
            lifecycle.record_trade_result(h.id, False, -10.0)
        after = lifecycle.get(h.id)
        assert after.status == "testing"
        assert (after.test_results.losses, after.test_results.pnl) == (5, -50.0)

    def test_trade_validation_sources(self, lifecycle, make_hypothesis):
        weak_backtest = make_hypothesis(status="testing")
        lifecycle.attach_backtest(weak_backtest.id, sample_size=8, win_rate=0.9)
        check = lifecycle.has_trade_validation(weak_backtest.id)
        assert (check.validated, check.basis) == (False, "backtest")

        traded = make_hypothesis(status="testing",
                                 test_results=TestResults(wins=3, losses=2, pnl=5.0))
        assert lifecycle.has_trade_validation(traded.id).basis == "trades"

        observed = make_hypothesis(status="testing", confidence=0.55)
        for i in range(5):
            lifecycle.add_evidence(observed.id, f"obs {i}", True, 0.0)
        assert lifecycle.has_trade_validation(observed.id).basis == "evidence"

        assert not lifecycle.has_trade_validation("HYP-nope").validated


class TestBlocking:

    def test_block_and_unblock(self, lifecycle, handoffs, make_hypothesis):
        h = make_hypothesis(status="testing")
        blocked = lifecycle.block_hypothesis(h.id, "order book history", "high")

        assert blocked.success
        assert blocked.hypothesis.status == "blocked"
        handoff_id = blocked.hypothesis.blocked_handoff_id
        handoff = handoffs.get(handoff_id)
        assert (handoff.type, handoff.to_role, handoff.priority) == (
            "build_capability", "agent-engineer", "high"
        )
        assert handoff.context["hypothesis_id"] == h.id

        early = lifecycle.unblock_hypothesis(h.id)
        assert early.error.startswith("precondition not met")
        assert "pending" in early.error

        handoffs.complete_handoff(handoff_id, "agent-engineer", "built")
        resumed = lifecycle.unblock_hypothesis(h.id, "testing")
        assert resumed.success
        assert resumed.hypothesis.status == "testing"
        assert resumed.hypothesis.blocked_handoff_id is None
        assert resumed.hypothesis.blocked_reason is None

    def test_unblock_target_restricted(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        lifecycle.block_hypothesis(h.id, "data")
        result = lifecycle.unblock_hypothesis(h.id, "validated")
        assert result.error.startswith("illegal transition")

    def test_unblock_to_testing_checks_rules(self, lifecycle, handoffs):
        h = lifecycle.create_hypothesis("no rules yet").hypothesis
        blocked = lifecycle.block_hypothesis(h.id, "data")
        handoffs.complete_handoff(blocked.hypothesis.blocked_handoff_id, "agent-engineer")

        assert not lifecycle.unblock_hypothesis(h.id, "testing").success
        assert lifecycle.unblock_hypothesis(h.id, "proposed").success

    def test_cannot_block_twice(self, lifecycle, handoffs, make_hypothesis):
        h = make_hypothesis()
        lifecycle.block_hypothesis(h.id, "data")
        again = lifecycle.block_hypothesis(h.id, "more data")
        assert again.error.startswith("illegal transition")
        assert len(handoffs.all()) == 1

    def test_failed_block_withdraws_its_handoff(self, lifecycle, handoffs, make_hypothesis):
        h = make_hypothesis(status="testing")
        stale = ConcurrencyError("hypotheses", 3, 4)

        with patch.object(lifecycle.store, "mutate", side_effect=stale):
            result = lifecycle.block_hypothesis(h.id, "order book history")

        assert result.error_type == "ConcurrencyError"
        assert lifecycle.get(h.id).status == "testing"
        assert handoffs.get_pending("agent-engineer") == []
        [handoff] = handoffs.all()
        assert handoff.status == "done"
        assert handoff.result["cancelled"].startswith("block failed")

    def test_summary_groups_by_status(self, lifecycle, make_hypothesis):
        make_hypothesis()
        make_hypothesis(status="testing")
        summary = lifecycle.get_hypothesis_summary()
        assert len(summary["proposed"]) == 1
        assert len(summary["testing"]) == 1
        assert summary["blocked"] == []


class TestStaleWrites:
    """Another writer commits between our read and our write."""

    @pytest.fixture
    def touched(self, lifecycle, make_hypothesis):
        h = make_hypothesis()
        snapshots = []

        def _touch():
            lifecycle.store.mutate(h.id, lambda x: None)
            snapshots.append(lifecycle.store.path.read_bytes())

        return h, _touch, snapshots

    def test_transition_rejected(self, lifecycle, touched):
        h, touch, snapshots = touched

        with interleaved_write(lifecycle.store._doc, touch):
            result = lifecycle.transition(h.id, "testing", "start paper trading")

        assert result.error_type == "ConcurrencyError"
        assert lifecycle.store.path.read_bytes() == snapshots[0]
        assert lifecycle.get(h.id).status == "proposed"

    def test_evidence_rejected(self, lifecycle, touched):
        h, touch, snapshots = touched

        with interleaved_write(lifecycle.store._doc, touch):
            result = lifecycle.add_evidence(h.id, "favourite drifted", True, 0.05)

        assert result.error_type == "ConcurrencyError"
        assert lifecycle.store.path.read_bytes() == snapshots[0]
        after = lifecycle.get(h.id)
        assert (after.evidence, after.confidence) == ([], h.confidence)
