# =============================================================================
# POLYMARKET RESEARCH DESK - SHARED ENUMS
# =============================================================================
#
# These enums define the shared vocabulary of the decision engine.
# Persisted documents store the enum VALUES (plain strings) so that the
# JSON files stay readable without this module.
#
# =============================================================================

from enum import Enum


class Direction(Enum):
    """Side of a paper position. Prices are always quoted in YES terms."""
    YES = "YES"
    NO = "NO"


class TradeAction(Enum):
    """Kind of realized trade record."""
    ENTRY = "ENTRY"
    EXIT = "EXIT"


class ExitReason(Enum):
    """Why a position was closed."""
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"
    TIME_LIMIT = "time_limit"
    MANUAL = "manual"


class ApprovalTier(Enum):
    """
    Human sign-off level required for a trade of a given size.

    AUTO:    execute silently
    NOTIFY:  execute, then alert
    APPROVE: do not execute, create a pending approval
    """
    AUTO = "auto"
    NOTIFY = "notify"
    APPROVE = "approve"


class ApprovalStatus(Enum):
    """Lifecycle of a pending trade approval."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"


class HypothesisStatus(Enum):
    """
    Lifecycle states of a trading hypothesis.

    VALIDATED and INVALIDATED are terminal for trading purposes but still
    accept evidence for the record.
    """
    PROPOSED = "proposed"
    TESTING = "testing"
    VALIDATED = "validated"
    INVALIDATED = "invalidated"
    BLOCKED = "blocked"


TERMINAL_STATUSES = frozenset({
    HypothesisStatus.VALIDATED.value,
    HypothesisStatus.INVALIDATED.value,
})

ACTIVE_STATUSES = frozenset({
    HypothesisStatus.PROPOSED.value,
    HypothesisStatus.TESTING.value,
})


class Role(Enum):
    """The two operating roles that exchange handoffs."""
    TRADE_RESEARCH = "trade-research"
    AGENT_ENGINEER = "agent-engineer"


class HandoffType(Enum):
    BUILD_CAPABILITY = "build_capability"
    FIX_ISSUE = "fix_issue"
    ANALYSIS_REQUEST = "analysis_request"
    TRADE_EXECUTION = "trade_execution"


class HandoffPriority(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Lower rank sorts first
PRIORITY_RANK = {
    HandoffPriority.CRITICAL.value: 0,
    HandoffPriority.HIGH.value: 1,
    HandoffPriority.MEDIUM.value: 2,
    HandoffPriority.LOW.value: 3,
}


class HandoffStatus(Enum):
    """Handoffs only move forward: PENDING -> IN_PROGRESS -> DONE."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class SignalClass(Enum):
    """
    Class of a priority signal.

    The declaration order is the tie-break order when two signals share
    the same urgency: RISK beats TIME beats BLOCKED.
    """
    PORTFOLIO_RISK = "portfolio-risk"
    TIME_SENSITIVE = "time-sensitive"
    STUCK_HYPOTHESIS = "stuck-hypothesis"


SIGNAL_CLASS_RANK = {cls.value: rank for rank, cls in enumerate(SignalClass)}
