"""
Input schemas for the tools the reasoning agent can call.

One model per tool. Unknown fields are rejected so a misspelled argument
fails loudly instead of being dropped. Timestamps are parsed here, so an
unreadable one never reaches the stores.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.enums import (
    Direction,
    ExitReason,
    HandoffPriority,
    HandoffType,
    HypothesisStatus,
    Role,
)


class ToolInput(BaseModel):
    model_config = ConfigDict(extra="forbid", use_enum_values=True, validate_default=True)


class NoArguments(ToolInput):
    pass


# =============================================================================
# TRADE
# =============================================================================


class ExitCriteriaInput(ToolInput):
    take_profit: float = Field(description="Close at this price for profit")
    stop_loss: float = Field(description="Close at this price to cut the loss")
    time_limit: Optional[datetime] = Field(default=None, description="ISO timestamp to close by")
    notes: Optional[str] = None


class TradeInput(ToolInput):
    market: str = Field(min_length=1, description="Market id or slug")
    direction: Direction
    amount: float = Field(description="USD to spend")
    price: float = Field(description="Expected entry price in YES terms")
    hypothesis_id: str = Field(min_length=1)
    rationale: str = Field(min_length=1, description="Why this trade, tied to the hypothesis")
    exit_criteria: ExitCriteriaInput
    market_question: Optional[str] = None
    outcome: Optional[str] = Field(default=None, description="Outcome label for multi-outcome markets")


class ExitPositionInput(ToolInput):
    position_id: str = Field(min_length=1)
    exit_price: float = Field(ge=0, le=1)
    reason: ExitReason = ExitReason.MANUAL


class ApprovalTierInput(ToolInput):
    amount: float


class CheckExitTriggersInput(ToolInput):
    now: Optional[datetime] = Field(default=None, description="Evaluate as of this ISO time")


# =============================================================================
# HYPOTHESIS
# =============================================================================


class CreateHypothesisInput(ToolInput):
    statement: str = Field(min_length=1, description="Falsifiable trading thesis")
    rationale: str = ""
    test_method: Optional[str] = None
    entry_rules: Optional[str] = None
    exit_rules: Optional[str] = None
    source: Optional[str] = None
    expected_win_rate: Optional[float] = Field(default=None, ge=0, le=1)
    expected_payoff: Optional[float] = None
    min_sample_size: Optional[int] = Field(default=None, ge=1)
    initial_confidence: Optional[float] = Field(default=None, ge=0, le=1)


class TransitionInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)
    target: HypothesisStatus
    reason: str = Field(min_length=1)


class AddEvidenceInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)
    observation: str = Field(min_length=1)
    supports: Optional[bool] = Field(description="True supports, False contradicts, null is neutral")
    confidence_impact: float


class BlockInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)
    capability_needed: str = Field(min_length=1)
    priority: HandoffPriority = HandoffPriority.MEDIUM


class SelectNextInput(ToolInput):
    market_closing: Optional[Dict[str, datetime]] = Field(
        default=None, description="{market: closes_at ISO} from a market feed"
    )


class RecordTradeResultInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)
    won: bool
    pnl: float


class HypothesisIdInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)


class LinkMarketInput(ToolInput):
    hypothesis_id: str = Field(min_length=1)
    market: str = Field(min_length=1)
    closes_at: Optional[datetime] = Field(default=None, description="ISO timestamp the market closes")


# =============================================================================
# HANDOFF
# =============================================================================


class CreateHandoffInput(ToolInput):
    from_role: Role
    to_role: Role
    type: HandoffType
    context: Dict[str, Any] = Field(default_factory=dict)
    priority: HandoffPriority = HandoffPriority.MEDIUM


class GetPendingInput(ToolInput):
    role: Role
