#!/usr/bin/env python3
# =============================================================================
# POLYMARKET RESEARCH DESK - ENGINE CLI
# =============================================================================
#
# Operator view into the decision engine.
#
# COMMANDS:
# - status:           Portfolio summary and hypothesis counts
# - priorities:       Current priority signals and the tick decision
# - next-hypothesis:  Which hypothesis to work on next, with scores
# - exit-triggers:    Positions whose exit conditions are met
# - handoffs:         Pending handoffs for a role
# - approvals:        Trades waiting for a human decision
# - approve <id>:     Approve and execute a parked trade
# - reject <id>:      Reject a parked trade
#
# PAPER TRADING ONLY. Nothing here touches real funds.
#
# =============================================================================

import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from notifications.gateway import LoggingGateway
from orchestrator.engine import Engine, build_engine
from orchestrator.priorities import detect_priorities, get_priority_report
from orchestrator.scheduler import decide
from shared.engine_config import get_engine_config
from shared.enums import Role
from shared.logging_config import setup_logging

logger = logging.getLogger(__name__)


# =============================================================================
# CLI COLORS
# =============================================================================

class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    @classmethod
    def disable(cls):
        """Disable colors (for non-terminal output)."""
        cls.RED = cls.GREEN = cls.YELLOW = cls.CYAN = cls.BOLD = cls.RESET = ""


def _header(title: str) -> None:
    print(f"\n{Colors.BOLD}{title}{Colors.RESET}")
    print("-" * len(title))


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


# =============================================================================
# COMMANDS
# =============================================================================


def cmd_status(engine: Engine, args) -> int:
    view = engine.executor.get_portfolio_summary()
    if args.json:
        _print_json({
            "portfolio": view.to_dict(),
            "hypotheses": engine.lifecycle.get_hypothesis_summary(),
            "handoffs": engine.handoffs.get_summary(),
        })
        return 0

    print(view.render())
    _header("Hypotheses")
    for status, items in engine.lifecycle.get_hypothesis_summary().items():
        print(f"  {status:<12} {len(items)}")
    summary = engine.handoffs.get_summary()
    _header("Handoffs")
    for role, count in summary["pending_by_role"].items():
        print(f"  {role:<15} {count} pending")
    return 0


def cmd_priorities(engine: Engine, args) -> int:
    now = datetime.now(timezone.utc)
    signals = detect_priorities(
        engine.portfolio.load(), engine.lifecycle.list_hypotheses(), now, config=engine.config
    )
    decision = decide(signals, engine.responsibilities.get_next_due(now), engine.config)
    if args.json:
        _print_json({
            "signals": [s.to_dict() for s in signals],
            "decision": decision.to_dict(),
        })
        return 0

    print(get_priority_report(signals))
    color = Colors.YELLOW if decision.should_dispatch else Colors.GREEN
    print(f"\n{color}Decision: {decision.reason}{Colors.RESET}")
    return 0


def cmd_next_hypothesis(engine: Engine, args) -> int:
    selection = engine.lifecycle.select_next_hypothesis()
    if args.json:
        _print_json(selection.to_dict())
        return 0

    if selection.hypothesis is None:
        print("No proposed or testing hypotheses.")
        return 0
    h = selection.hypothesis
    print(f"{Colors.BOLD}{h.id}{Colors.RESET} [{h.status}] score {selection.score.score:.3f}")
    print(f"  {h.statement}")
    for component, value in selection.score.breakdown.items():
        print(f"    {component:<11} {value:.3f}")
    if selection.alternatives:
        _header("Alternatives")
        for alt in selection.alternatives:
            print(f"  {alt['id']}  {alt['score']:.3f}")
    return 0


def cmd_exit_triggers(engine: Engine, args) -> int:
    triggers = engine.executor.check_exit_triggers()
    if args.json:
        _print_json([t.to_dict() for t in triggers])
        return 0

    if not triggers:
        print(f"{Colors.GREEN}No exit triggers.{Colors.RESET}")
        return 0
    for t in triggers:
        color = Colors.RED if t.trigger == "stop_loss" else Colors.YELLOW
        print(
            f"{color}{t.trigger:<12}{Colors.RESET} {t.position.id} {t.position.direction} "
            f"{t.position.label} @ {t.current_price * 100:.1f}c"
        )
    return 0


def cmd_handoffs(engine: Engine, args) -> int:
    pending = engine.handoffs.get_pending(args.role)
    if args.json:
        _print_json([h.to_dict() for h in pending])
        return 0

    if not pending:
        print(f"No pending handoffs for {args.role}.")
        return 0
    for h in pending:
        print(f"  [{h.priority:<8}] {h.id} {h.type} from {h.from_role}: {h.description[:60]}")
    return 0


def cmd_approvals(engine: Engine, args) -> int:
    pending = engine.executor.list_pending_approvals()
    if args.json:
        _print_json([a.to_dict() for a in pending])
        return 0

    if not pending:
        print("No trades waiting for approval.")
        return 0
    for a in pending:
        p = a.trade_params
        print(
            f"  {a.id}  {p.direction} {p.label}  ${p.amount:,.2f} @ {p.price * 100:.1f}c  "
            f"({p.hypothesis_id}, proposed {a.proposed_at[:16]})"
        )
    return 0


def cmd_approve(engine: Engine, args) -> int:
    decision = engine.executor.approve(args.approval_id, args.note)
    if not decision.success:
        print(f"{Colors.RED}Approve failed: {decision.error}{Colors.RESET}")
        return 1
    result = engine.executor.execute_approved_trade(args.approval_id)
    if args.json:
        _print_json(result.to_dict())
    elif result.success:
        print(f"{Colors.GREEN}Executed {result.trade_id}: {result.shares:.2f} shares, ${result.cost:,.2f}{Colors.RESET}")
    else:
        print(f"{Colors.RED}Approved but not executed: {result.error}{Colors.RESET}")
    return 0 if result.success else 1


def cmd_reject(engine: Engine, args) -> int:
    decision = engine.executor.reject(args.approval_id, args.note)
    if args.json:
        _print_json(decision.to_dict())
    elif decision.success:
        print(f"Rejected {args.approval_id}.")
    else:
        print(f"{Colors.RED}Reject failed: {decision.error}{Colors.RESET}")
    return 0 if decision.success else 1


# =============================================================================
# ENTRY POINT
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Decision engine operator CLI (paper trading only)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tools.engine_cli status
  python -m tools.engine_cli handoffs --role agent-engineer
  python -m tools.engine_cli approve APPR-20260101-1a2b3c4d --note "size ok"
        """,
    )
    parser.add_argument("--json", action="store_true", help="Machine-readable output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("status", help="Portfolio and hypothesis overview").set_defaults(func=cmd_status)
    subparsers.add_parser("priorities", help="Current priority signals").set_defaults(func=cmd_priorities)
    subparsers.add_parser("next-hypothesis", help="Hypothesis to work on next").set_defaults(func=cmd_next_hypothesis)
    subparsers.add_parser("exit-triggers", help="Positions to close").set_defaults(func=cmd_exit_triggers)

    handoffs_parser = subparsers.add_parser("handoffs", help="Pending handoffs for a role")
    handoffs_parser.add_argument(
        "--role", required=True, choices=[r.value for r in Role], help="Addressed role"
    )
    handoffs_parser.set_defaults(func=cmd_handoffs)

    subparsers.add_parser("approvals", help="Trades waiting for approval").set_defaults(func=cmd_approvals)

    approve_parser = subparsers.add_parser("approve", help="Approve and execute a parked trade")
    approve_parser.add_argument("approval_id")
    approve_parser.add_argument("--note", default=None)
    approve_parser.set_defaults(func=cmd_approve)

    reject_parser = subparsers.add_parser("reject", help="Reject a parked trade")
    reject_parser.add_argument("approval_id")
    reject_parser.add_argument("--note", default=None)
    reject_parser.set_defaults(func=cmd_reject)

    return parser


def main(argv: Optional[List[str]] = None, engine: Optional[Engine] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.json or not sys.stdout.isatty():
        Colors.disable()

    if engine is None:
        setup_logging(
            "cli",
            level=logging.DEBUG if args.verbose else logging.WARNING,
            file_output=False,
        )
        # Operator is at the terminal, alerts go to the log.
        engine = build_engine(get_engine_config(), gateway=LoggingGateway())

    func = getattr(args, "func", cmd_status)
    return func(engine, args)


if __name__ == "__main__":
    sys.exit(main())
