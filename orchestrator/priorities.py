# =============================================================================
# POLYMARKET RESEARCH DESK - PRIORITY ORCHESTRATOR
# =============================================================================
#
# What actually matters right now?
#
# Code detects signals and assigns urgency. Judgment is left to the
# reasoning agent the scheduler dispatches to.
#
# SIGNALS:
#
#   class             action                   urgency  when
#   ----------------  -----------------------  -------  -------------------------
#   portfolio-risk    stop-loss-warning             95  price within 10% of stop
#   portfolio-risk    review-position               90  pnl < -15% of cost
#   time-sensitive    closing-market-decision       80  linked market closes < 24h
#   stuck-hypothesis  unstick-hypothesis            60  unchanged > 48h
#
# Sorted by urgency, ties by class (risk > time > stuck).
# Signals are computed on every tick and never persisted.
#
# =============================================================================

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from hypotheses.models import Hypothesis
from hypotheses.selection import closing_time_for
from paper_trader.models import Portfolio, Position, PositionView
from shared.document_store import parse_iso
from shared.engine_config import EngineConfig, get_engine_config
from shared.enums import (
    ACTIVE_STATUSES,
    Direction,
    Role,
    SIGNAL_CLASS_RANK,
    SignalClass,
    TERMINAL_STATUSES,
)

logger = logging.getLogger(__name__)

URGENCY_STOP_LOSS_WARNING = 95
URGENCY_REVIEW_POSITION = 90
URGENCY_CLOSING_MARKET = 80
URGENCY_STUCK_HYPOTHESIS = 60


@dataclass(frozen=True)
class PrioritySignal:
    type: str
    urgency: int
    action: str
    context: Dict[str, Any] = field(default_factory=dict)
    agent_role: str = Role.TRADE_RESEARCH.value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "urgency": self.urgency,
            "action": self.action,
            "context": dict(self.context),
            "agent_role": self.agent_role,
        }


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


# =============================================================================
# DETECTORS
# =============================================================================


def near_stop_loss(position: Position, buffer_pct: float) -> bool:
    """
    Price at or within buffer_pct of the stop-loss.

    YES stops sit below the price, NO stops above it.
    """
    stop = position.exit_criteria.stop_loss
    price = position.current_price
    if position.direction == Direction.YES.value:
        return price <= stop * (1 + buffer_pct)
    return price >= stop * (1 - buffer_pct)


def detect_portfolio_risks(portfolio: Portfolio, config: EngineConfig) -> List[PrioritySignal]:
    thresholds = config.orchestrator
    signals = []
    for position in portfolio.positions:
        view = PositionView.of(position).to_dict()

        if near_stop_loss(position, thresholds.near_stop_loss_pct):
            signals.append(PrioritySignal(
                type=SignalClass.PORTFOLIO_RISK.value,
                urgency=URGENCY_STOP_LOSS_WARNING,
                action="stop-loss-warning",
                context={
                    "position": view,
                    "stop_loss": position.exit_criteria.stop_loss,
                    "take_profit": position.exit_criteria.take_profit,
                    "rationale": position.rationale,
                },
            ))

        if position.pnl_pct < thresholds.position_loss_pct:
            signals.append(PrioritySignal(
                type=SignalClass.PORTFOLIO_RISK.value,
                urgency=URGENCY_REVIEW_POSITION,
                action="review-position",
                context={
                    "position": view,
                    "pnl_pct": round(position.pnl_pct, 4),
                    "exit_criteria": position.exit_criteria.to_dict(),
                    "rationale": position.rationale,
                },
            ))
    return signals


def detect_time_sensitive(
    hypotheses: Iterable[Hypothesis],
    now: datetime,
    config: EngineConfig,
    market_closing: Optional[Dict[str, str]] = None,
) -> List[PrioritySignal]:
    window = config.orchestrator.market_closing_hours
    signals = []
    for h in hypotheses:
        if h.status not in ACTIVE_STATUSES:
            continue
        closes_at = closing_time_for(h, market_closing)
        if not closes_at:
            continue
        hours_left = _hours_between(now, parse_iso(closes_at))
        if 0 < hours_left <= window:
            signals.append(PrioritySignal(
                type=SignalClass.TIME_SENSITIVE.value,
                urgency=URGENCY_CLOSING_MARKET,
                action="closing-market-decision",
                context={
                    "hypothesis_id": h.id,
                    "statement": h.statement,
                    "market": h.linked_market,
                    "closes_at": closes_at,
                    "hours_to_close": round(hours_left, 1),
                    "confidence": h.confidence,
                    "status": h.status,
                },
            ))
    return signals


def detect_stuck_hypotheses(
    hypotheses: Iterable[Hypothesis],
    now: datetime,
    config: EngineConfig,
) -> List[PrioritySignal]:
    limit = config.orchestrator.stuck_hypothesis_hours
    signals = []
    for h in hypotheses:
        if h.status in TERMINAL_STATUSES:
            continue
        hours_idle = _hours_between(parse_iso(h.updated_at), now)
        if hours_idle > limit:
            signals.append(PrioritySignal(
                type=SignalClass.STUCK_HYPOTHESIS.value,
                urgency=URGENCY_STUCK_HYPOTHESIS,
                action="unstick-hypothesis",
                context={
                    "hypothesis_id": h.id,
                    "statement": h.statement,
                    "status": h.status,
                    "hours_stuck": round(hours_idle, 0),
                    "confidence": h.confidence,
                    "evidence_count": len(h.evidence),
                    "blocked_handoff_id": h.blocked_handoff_id,
                },
            ))
    return signals


def rank_signals(signals: Iterable[PrioritySignal]) -> List[PrioritySignal]:
    """Highest urgency first, then risk > time > stuck. Stable otherwise."""
    return sorted(
        signals,
        key=lambda s: (-s.urgency, SIGNAL_CLASS_RANK.get(s.type, len(SIGNAL_CLASS_RANK))),
    )


def detect_priorities(
    portfolio: Portfolio,
    hypotheses: List[Hypothesis],
    now: Optional[datetime] = None,
    market_closing: Optional[Dict[str, str]] = None,
    config: Optional[EngineConfig] = None,
) -> List[PrioritySignal]:
    """
    Scan current state for everything that needs attention. Pure.

    Args:
        portfolio: Current portfolio (positions carry current prices)
        hypotheses: All hypotheses
        now: Evaluation time (defaults to UTC now)
        market_closing: Optional {market: closes_at ISO} from a market feed
    """
    config = config or get_engine_config()
    now = now or datetime.now(timezone.utc)

    signals: List[PrioritySignal] = []
    signals.extend(detect_portfolio_risks(portfolio, config))
    signals.extend(detect_time_sensitive(hypotheses, now, config, market_closing))
    signals.extend(detect_stuck_hypotheses(hypotheses, now, config))
    return rank_signals(signals)


# =============================================================================
# REPORTING
# =============================================================================


def _urgency_marker(urgency: int) -> str:
    if urgency >= 90:
        return "CRITICAL"
    if urgency >= 70:
        return "HIGH"
    if urgency >= 50:
        return "MEDIUM"
    return "LOW"


def _subject(signal: PrioritySignal) -> str:
    ctx = signal.context
    if "position" in ctx:
        return f"{ctx['position']['id']} ({ctx['position']['market']})"
    if "hypothesis_id" in ctx:
        return ctx["hypothesis_id"]
    return ""


def get_priority_report(signals: List[PrioritySignal], limit: int = 5) -> str:
    if not signals:
        return "No priorities detected."
    lines = [f"## Current Priorities ({len(signals)})"]
    for i, signal in enumerate(signals[:limit], start=1):
        lines.append(
            f"{i}. [{signal.urgency} {_urgency_marker(signal.urgency)}] "
            f"{signal.action} {_subject(signal)}".rstrip()
        )
    if len(signals) > limit:
        lines.append(f"   ...and {len(signals) - limit} more")
    return "\n".join(lines)
