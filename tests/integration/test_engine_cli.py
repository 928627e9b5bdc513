# =============================================================================
# INTEGRATION: OPERATOR CLI
# =============================================================================

import json

import pytest

from tests.helpers import seed_position, trade_params
from tools.engine_cli import build_parser, main


def _run(engine, capsys, *argv):
    code = main(list(argv), engine=engine)
    return code, capsys.readouterr().out


class TestParser:

    def test_handoffs_requires_known_role(self):
        parser = build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["handoffs", "--role", "janitor"])
        args = parser.parse_args(["--json", "handoffs", "--role", "agent-engineer"])
        assert args.json and args.role == "agent-engineer"


class TestReadCommands:

    def test_default_is_status(self, engine, capsys):
        code, out = _run(engine, capsys)
        assert code == 0
        assert "## Portfolio Summary" in out
        assert "$10,000.00" in out

    def test_status_json(self, engine, capsys, make_hypothesis):
        make_hypothesis()
        code, out = _run(engine, capsys, "--json", "status")
        payload = json.loads(out)
        assert payload["portfolio"]["cash"] == 10000.0
        assert len(payload["hypotheses"]["proposed"]) == 1
        assert payload["handoffs"]["total"] == 0

    def test_priorities(self, engine, capsys, make_hypothesis):
        h = make_hypothesis(status="testing")
        seed_position(engine.portfolio, h.id, current_price=0.32)
        code, out = _run(engine, capsys, "priorities")
        assert code == 0
        assert "## Current Priorities (2)" in out
        assert "Decision: Urgency 95 > 70: stop-loss-warning" in out

    def test_priorities_json(self, engine, capsys):
        code, out = _run(engine, capsys, "--json", "priorities")
        payload = json.loads(out)
        assert payload["signals"] == []
        assert payload["decision"]["should_dispatch"] is False

    def test_next_hypothesis(self, engine, capsys, make_hypothesis):
        _, empty = _run(engine, capsys, "next-hypothesis")
        assert "No proposed or testing hypotheses." in empty

        h = make_hypothesis(status="testing")
        _, out = _run(engine, capsys, "next-hypothesis")
        assert h.id in out
        assert "confidence" in out

    def test_exit_triggers(self, engine, capsys, make_hypothesis):
        h = make_hypothesis(status="testing")
        position = seed_position(engine.portfolio, h.id, current_price=0.65)
        _, out = _run(engine, capsys, "--json", "exit-triggers")
        payload = json.loads(out)
        assert [(t["position_id"], t["trigger"]) for t in payload] == [(position.id, "take_profit")]

    def test_handoffs(self, engine, capsys):
        engine.handoffs.request_capability("resolution feed", priority="high")
        _, out = _run(engine, capsys, "handoffs", "--role", "agent-engineer")
        assert "resolution feed" in out
        _, none = _run(engine, capsys, "handoffs", "--role", "trade-research")
        assert "No pending handoffs for trade-research." in none


class TestApprovalCommands:

    @pytest.fixture
    def parked(self, engine, validated_hypothesis):
        result = engine.executor.execute_paper_trade(trade_params(validated_hypothesis.id, amount=500))
        assert result.requires_approval
        return result.approval_id

    def test_list_approvals(self, engine, capsys, parked):
        _, out = _run(engine, capsys, "approvals")
        assert parked in out
        assert "$500.00" in out

    def test_approve_executes(self, engine, capsys, parked):
        code, out = _run(engine, capsys, "approve", parked, "--note", "size ok")
        assert code == 0
        assert "Executed" in out
        assert len(engine.portfolio.load().positions) == 1
        assert engine.approvals.get(parked).decision_note == "size ok"

    def test_reject(self, engine, capsys, parked):
        code, out = _run(engine, capsys, "reject", parked)
        assert code == 0
        assert f"Rejected {parked}." in out
        assert engine.portfolio.load().positions == []

    def test_approve_unknown(self, engine, capsys):
        code, out = _run(engine, capsys, "approve", "APPROVAL-nope")
        assert code == 1
        assert "Approve failed" in out
