# =============================================================================
# TESTS FOR THE HANDOFF QUEUE
# =============================================================================

import pytest

from handoffs.queue import HandoffQueue
from shared.exceptions import NotFoundError, ValidationError

TR = "trade-research"
AE = "agent-engineer"


@pytest.fixture
def queue(tmp_path):
    return HandoffQueue(tmp_path / "handoffs.json")


class TestCreate:

    def test_create_persists_pending(self, queue, tmp_path):
        handoff = queue.create_handoff(TR, AE, "build_capability", {"description": "odds feed"}, "high")
        assert handoff.id.startswith("HANDOFF-")
        assert handoff.status == "pending"

        reopened = HandoffQueue(tmp_path / "handoffs.json")
        stored = reopened.get(handoff.id)
        assert stored.to_role == AE
        assert stored.description == "odds feed"

    @pytest.mark.parametrize("args", [
        (TR, TR, "fix_issue", None, "medium"),
        (TR, "market-analyst", "fix_issue", None, "medium"),
        (TR, AE, "make_coffee", None, "medium"),
        (TR, AE, "fix_issue", None, "urgent"),
    ])
    def test_rejects_bad_input(self, queue, args):
        with pytest.raises(ValidationError):
            queue.create_handoff(*args)
        assert queue.all() == []

    def test_helpers_route_by_role(self, queue):
        capability = queue.request_capability("historical odds")
        analysis = queue.request_analysis("is the edge real?")
        issue = queue.report_issue("exit job crashed", priority="critical")

        assert (capability.from_role, capability.to_role, capability.type) == (TR, AE, "build_capability")
        assert (analysis.from_role, analysis.to_role, analysis.type) == (AE, TR, "analysis_request")
        assert analysis.description == "is the edge real?"
        assert (issue.to_role, issue.priority) == (AE, "critical")

    def test_dedupe_key_reuses_open_handoff(self, queue):
        first = queue.request_capability("validation data", dedupe_key="trade-validation:HYP-1")
        again = queue.request_capability("validation data", dedupe_key="trade-validation:HYP-1")
        other = queue.request_capability("validation data", dedupe_key="trade-validation:HYP-2")

        assert again.id == first.id
        assert other.id != first.id
        assert len(queue.all()) == 2

    def test_dedupe_key_ignores_done_handoffs(self, queue):
        first = queue.request_capability("validation data", dedupe_key="trade-validation:HYP-1")
        queue.complete_handoff(first.id, AE, "built")

        fresh = queue.request_capability("validation data", dedupe_key="trade-validation:HYP-1")
        assert fresh.id != first.id
        assert fresh.status == "pending"


class TestPending:

    def test_priority_then_age(self, queue):
        low = queue.create_handoff(TR, AE, "fix_issue", {"description": "low"}, "low")
        first_high = queue.create_handoff(TR, AE, "fix_issue", {"description": "h1"}, "high")
        critical = queue.create_handoff(TR, AE, "fix_issue", {"description": "c"}, "critical")
        second_high = queue.create_handoff(TR, AE, "fix_issue", {"description": "h2"}, "high")

        order = [h.id for h in queue.get_pending(AE)]
        assert order == [critical.id, first_high.id, second_high.id, low.id]

    def test_only_addressed_role(self, queue):
        queue.request_capability("x")
        assert queue.get_pending(TR) == []
        assert len(queue.get_pending(AE)) == 1

    def test_unknown_role(self, queue):
        with pytest.raises(ValidationError):
            queue.get_pending("nobody")


class TestLifecycle:

    def test_start_then_complete(self, queue):
        handoff = queue.request_capability("x")

        started = queue.start_handoff(handoff.id, AE)
        assert started.success
        assert started.handoff.status == "in_progress"
        assert started.handoff.started_at
        assert queue.get_pending(AE) == []

        done = queue.complete_handoff(handoff.id, AE, {"built": "tool"})
        assert done.success
        assert done.handoff.status == "done"
        assert queue.get(handoff.id).result == {"built": "tool"}

    def test_complete_directly_from_pending(self, queue):
        handoff = queue.request_capability("x")
        assert queue.complete_handoff(handoff.id, AE).success

    def test_no_backwards_moves(self, queue):
        handoff = queue.request_capability("x")
        queue.complete_handoff(handoff.id, AE)

        again = queue.start_handoff(handoff.id, AE)
        assert not again.success
        assert again.error_type == "ValidationError"
        assert not queue.complete_handoff(handoff.id, AE).success
        assert queue.get(handoff.id).status == "done"

    def test_wrong_role_cannot_act(self, queue):
        handoff = queue.request_capability("x")
        result = queue.start_handoff(handoff.id, TR)
        assert not result.success
        assert queue.get(handoff.id).status == "pending"

    def test_missing_id(self, queue):
        result = queue.start_handoff("HANDOFF-nope", AE)
        assert not result.success
        assert result.error_type == "NotFoundError"
        with pytest.raises(NotFoundError):
            queue.get("HANDOFF-nope")


class TestSummaryAndCleanup:

    def test_summary_counts(self, queue):
        a = queue.request_capability("a")
        queue.request_capability("b")
        queue.request_analysis("c")
        queue.start_handoff(a.id, AE)

        summary = queue.get_summary()
        assert summary["total"] == 3
        assert summary["by_status"] == {"pending": 2, "in_progress": 1, "done": 0}
        assert summary["pending_by_role"] == {AE: 1, TR: 1}
        assert summary["in_progress"][0]["id"] == a.id

    def test_cleanup_keeps_recent_done_and_all_open(self, queue):
        ids = [queue.request_capability(f"job {i}").id for i in range(4)]
        for hid in ids[:3]:
            queue.complete_handoff(hid, AE)

        assert queue.cleanup(keep=1) == 2
        remaining = {h.id for h in queue.all()}
        assert remaining == {ids[2], ids[3]}
