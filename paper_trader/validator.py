# =============================================================================
# POLYMARKET RESEARCH DESK - TRADE VALIDATOR
# =============================================================================
#
# Code enforces the risk rules so the reasoning agent does not have to
# remember them. Validation is pure: it never writes anything.
#
# CHECK ORDER (first failure wins):
#   0. sanity        amount >= $5, 0 < price < 1, exit criteria on correct
#                    sides, time_limit is an ISO timestamp
#   1. cash reserve  cash - amount >= 20% of starting capital, then the
#                    $2,000 per-trade cap
#   2. position cap  < 10 positions unless the market is already held
#   3. exposure      (market exposure + amount) / total value <= 20%
#   4. hypothesis    exists, not invalidated, not blocked
#   5. size gate     amount > $50 needs a trade-validated hypothesis
#
# APPROVAL TIERS (upper bound inclusive on the lower tier):
#   amount <= 50         -> auto
#   50 < amount <= 200   -> notify
#   amount > 200         -> approve
#
# =============================================================================

import logging
from typing import List, Optional

from paper_trader.models import Portfolio, TradeParams, ValidationResult
from shared.document_store import require_iso
from shared.engine_config import EngineConfig, get_engine_config
from shared.enums import ApprovalTier, Direction, HypothesisStatus
from shared.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# Error prefixes. Callers match on these, keep them stable.
ERR_SINGLE_MARKET = "exceeds single-market limit"
ERR_POSITION_LIMIT = "position limit reached"
ERR_CASH_RESERVE = "breaches cash reserve"
ERR_HYPOTHESIS = "hypothesis not tradeable"
ERR_INSUFFICIENT_VALIDATION = "insufficient validation for trade size"
ERR_BELOW_MINIMUM = "below minimum trade size"
ERR_SAFETY_CAP = "exceeds trade size cap"

UNTRADEABLE_STATUSES = frozenset({
    HypothesisStatus.INVALIDATED.value,
    HypothesisStatus.BLOCKED.value,
})


def get_approval_tier(amount: float, config: Optional[EngineConfig] = None) -> ApprovalTier:
    """Map a trade size to the human sign-off it needs."""
    tiers = (config or get_engine_config()).tiers
    if amount <= tiers.auto_approve_limit:
        return ApprovalTier.AUTO
    if amount <= tiers.notify_limit:
        return ApprovalTier.NOTIFY
    return ApprovalTier.APPROVE


class TradeValidator:
    """
    Risk gate in front of the paper executor.

    Args:
        hypotheses: Anything with get(id) -> Hypothesis (raising NotFoundError)
                    and has_trade_validation(id) -> TradeValidationCheck.
                    In production this is the HypothesisLifecycle.
    """

    def __init__(self, hypotheses, config: Optional[EngineConfig] = None):
        self.hypotheses = hypotheses
        self.config = config or get_engine_config()

    def validate_trade(self, params: TradeParams, portfolio: Portfolio) -> ValidationResult:
        """Run every check. Never raises for a rule violation."""
        warnings: List[str] = []
        try:
            self._check_sanity(params)
            self._check_risk_limits(params, portfolio, warnings)
            self._check_hypothesis(params, warnings)
        except ValidationError as e:
            logger.info(f"Trade rejected ({params.market}, ${params.amount:,.2f}): {e.message}")
            return ValidationResult(valid=False, error=e.message)

        return ValidationResult(valid=True, warnings=warnings or None)

    # -------------------------------------------------------------------------
    # Checks. Each raises ValidationError on the first violation.
    # -------------------------------------------------------------------------

    def _check_sanity(self, params: TradeParams) -> None:
        if params.amount <= 0:
            raise ValidationError(f"invalid amount {params.amount}: must be positive")
        if params.amount < self.config.risk.min_trade_size:
            raise ValidationError(
                f"{ERR_BELOW_MINIMUM}: ${params.amount:,.2f}, "
                f"minimum is ${self.config.risk.min_trade_size:,.2f}"
            )
        if not 0 < params.price < 1:
            raise ValidationError(f"invalid price {params.price}: must be between 0 and 1")
        if params.direction not in (Direction.YES.value, Direction.NO.value):
            raise ValidationError(f"invalid direction {params.direction!r}: must be YES or NO")

        criteria = params.exit_criteria
        if criteria is None or criteria.take_profit is None or criteria.stop_loss is None:
            raise ValidationError("exit criteria (take_profit and stop_loss) are required")
        for name, value in (("take_profit", criteria.take_profit), ("stop_loss", criteria.stop_loss)):
            if not 0 <= value <= 1:
                raise ValidationError(f"invalid {name} {value}: must be between 0 and 1")

        if params.direction == Direction.YES.value:
            ok = criteria.stop_loss < params.price < criteria.take_profit
            expected = "stop_loss < price < take_profit"
        else:
            ok = criteria.take_profit < params.price < criteria.stop_loss
            expected = "take_profit < price < stop_loss"
        if not ok:
            raise ValidationError(
                f"invalid exit criteria for {params.direction} at {params.price}: "
                f"expected {expected} (take_profit={criteria.take_profit}, "
                f"stop_loss={criteria.stop_loss})"
            )
        if criteria.time_limit is not None:
            require_iso(criteria.time_limit, "time_limit")

    def _check_risk_limits(
        self, params: TradeParams, portfolio: Portfolio, warnings: List[str]
    ) -> None:
        risk = self.config.risk

        min_cash = portfolio.starting_capital * risk.min_cash_reserve_pct
        cash_after = portfolio.cash - params.amount
        if cash_after < min_cash:
            raise ValidationError(
                f"{ERR_CASH_RESERVE}: ${cash_after:,.2f} left, "
                f"reserve is ${min_cash:,.2f} "
                f"({risk.min_cash_reserve_pct:.0%} of starting capital)"
            )
        if params.amount > risk.max_trade_size:
            raise ValidationError(
                f"{ERR_SAFETY_CAP}: ${params.amount:,.2f}, cap is ${risk.max_trade_size:,.2f}"
            )

        already_held = portfolio.has_market(params.market)
        if not already_held and len(portfolio.positions) >= risk.max_concurrent_positions:
            raise ValidationError(
                f"{ERR_POSITION_LIMIT}: {len(portfolio.positions)} of "
                f"{risk.max_concurrent_positions} positions open"
            )

        total_value = portfolio.total_value
        exposure = portfolio.market_exposure(params.market) + params.amount
        exposure_pct = exposure / total_value if total_value > 0 else float("inf")
        if exposure_pct > risk.max_single_market_pct:
            raise ValidationError(
                f"{ERR_SINGLE_MARKET}: {exposure_pct:.1%} of portfolio in "
                f"{params.market}, limit {risk.max_single_market_pct:.0%}"
            )

        if already_held:
            warnings.append(f"adds to existing position in {params.market}")

    def _check_hypothesis(self, params: TradeParams, warnings: List[str]) -> None:
        if not params.hypothesis_id:
            raise ValidationError(f"{ERR_HYPOTHESIS}: trade must be linked to a hypothesis")
        try:
            hypothesis = self.hypotheses.get(params.hypothesis_id)
        except NotFoundError as e:
            raise ValidationError(f"{ERR_HYPOTHESIS}: {e.message}", params.hypothesis_id) from e

        if hypothesis.status in UNTRADEABLE_STATUSES:
            raise ValidationError(
                f"{ERR_HYPOTHESIS}: {hypothesis.id} is {hypothesis.status}",
                hypothesis.id,
            )

        if params.amount > self.config.tiers.auto_approve_limit:
            check = self.hypotheses.has_trade_validation(hypothesis.id)
            if not check.validated:
                raise ValidationError(
                    f"{ERR_INSUFFICIENT_VALIDATION}: trades above "
                    f"${self.config.tiers.auto_approve_limit:,.0f} need a validated "
                    f"hypothesis ({check.reason})",
                    hypothesis.id,
                )
            warnings.append(f"validation: {check.reason}")
