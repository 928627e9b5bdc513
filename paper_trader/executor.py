# =============================================================================
# POLYMARKET RESEARCH DESK - PAPER TRADE EXECUTOR
# =============================================================================
#
# PAPER TRADING ONLY:
# Positions are simulated against the portfolio document. No orders are
# routed anywhere and no real funds move.
#
# RESPONSIBILITIES:
# - Entry:  validate -> resolve approval tier -> open position (or park it)
# - Exit:   realize P&L -> credit cash -> feed the result to the hypothesis
# - Marks:  update_prices() sets current prices from a price feed
# - Reads:  exit triggers, portfolio summary
#
# Every mutation is ONE read-modify-write of the portfolio document.
# A failed validation writes nothing.
#
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from notifications.gateway import NotificationGateway, LoggingGateway
from paper_trader.approvals import ApprovalResult, ApprovalStore
from paper_trader.models import (
    ExitTrigger,
    Portfolio,
    PortfolioView,
    Position,
    PositionView,
    TradeParams,
    TradeRecord,
    TradeResult,
    generate_exit_id,
    generate_position_id,
)
from paper_trader.portfolio_store import PortfolioStore
from paper_trader.validator import ERR_INSUFFICIENT_VALIDATION, TradeValidator, get_approval_tier
from shared.document_store import parse_iso
from shared.engine_config import EngineConfig, get_engine_config
from shared.enums import (
    ApprovalStatus,
    ApprovalTier,
    Direction,
    ExitReason,
    HandoffPriority,
    TradeAction,
)
from shared.exceptions import (
    ConcurrencyError,
    EngineError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from shared.logging_config import AuditLogger

logger = logging.getLogger(__name__)

EXIT_REASONS = frozenset(r.value for r in ExitReason)


def exit_trigger_for(position: Position, price: float, now: datetime) -> Optional[str]:
    """
    First exit condition met by a position, or None.

    Precedence: stop_loss > take_profit > time_limit.
    NO positions profit from a falling price, so the comparisons flip.
    """
    criteria = position.exit_criteria
    if position.direction == Direction.YES.value:
        hit_stop = price <= criteria.stop_loss
        hit_target = price >= criteria.take_profit
    else:
        hit_stop = price >= criteria.stop_loss
        hit_target = price <= criteria.take_profit

    if hit_stop:
        return ExitReason.STOP_LOSS.value
    if hit_target:
        return ExitReason.TAKE_PROFIT.value
    if criteria.time_limit and now >= parse_iso(criteria.time_limit):
        return ExitReason.TIME_LIMIT.value
    return None


class PaperExecutor:
    """
    Executes paper trades against the portfolio store.

    Args:
        store: Portfolio document
        approvals: Pending approval document
        hypotheses: HypothesisLifecycle (get, has_trade_validation,
                    record_trade_result, add_evidence)
        handoffs: Optional HandoffQueue for capability requests when a trade
                  is refused for lack of validation
        gateway: Where alerts and approval requests go
        audit: Optional audit logger
    """

    def __init__(
        self,
        store: PortfolioStore,
        approvals: ApprovalStore,
        hypotheses,
        gateway: Optional[NotificationGateway] = None,
        audit: Optional[AuditLogger] = None,
        config: Optional[EngineConfig] = None,
        handoffs=None,
    ):
        self.store = store
        self.approvals = approvals
        self.hypotheses = hypotheses
        self.handoffs = handoffs
        self.gateway = gateway or LoggingGateway()
        self.audit = audit
        self.config = config or get_engine_config()
        self.validator = TradeValidator(hypotheses, self.config)

    # -------------------------------------------------------------------------
    # Validation passthroughs
    # -------------------------------------------------------------------------

    def validate_trade(self, params: TradeParams, portfolio: Optional[Portfolio] = None):
        return self.validator.validate_trade(params, portfolio or self.store.load())

    def get_approval_tier(self, amount: float) -> ApprovalTier:
        return get_approval_tier(amount, self.config)

    # -------------------------------------------------------------------------
    # Entry
    # -------------------------------------------------------------------------

    def execute_paper_trade(self, params: TradeParams) -> TradeResult:
        """
        Validate and execute an entry.

        auto/notify tiers open the position immediately. approve tier parks
        the trade as a pending approval and leaves the portfolio untouched.
        """
        try:
            portfolio, version = self.store.load_versioned()
            validation = self.validator.validate_trade(params, portfolio)
            if not validation.valid:
                if validation.error.startswith(ERR_INSUFFICIENT_VALIDATION):
                    self._request_validation_capability(params, validation.error)
                return TradeResult(
                    success=False,
                    error=validation.error,
                    error_type=ValidationError.__name__,
                )

            tier = self.get_approval_tier(params.amount)
            if tier == ApprovalTier.APPROVE:
                return self._park_for_approval(params)

            position = self._open_position(portfolio, params)
            self.store.save(portfolio, version)
        except ConcurrencyError as e:
            return TradeResult(success=False, error=e.message, error_type=e.error_type)

        logger.info(
            f"Executed {position.id} [{tier.value}]: {params.direction} "
            f"{position.shares:.2f} shares of {params.market} @ {params.price} "
            f"(cost ${position.cost:,.2f}, cash ${portfolio.cash:,.2f})"
        )
        self._audit("TRADE_ENTRY", {
            "trade_id": position.id,
            "tier": tier.value,
            "params": params.to_dict(),
            "shares": position.shares,
            "cost": position.cost,
            "cash_after": portfolio.cash,
        })
        if tier == ApprovalTier.NOTIFY:
            self._notify(
                "Trade executed",
                f"{params.direction} {params.label}\n"
                f"Shares: {position.shares:.2f} @ {params.price * 100:.1f}c\n"
                f"Cost: ${position.cost:,.2f}\n"
                f"Hypothesis: {params.hypothesis_id}\n\n"
                f"Cash remaining: ${portfolio.cash:,.2f}",
            )
        self._record_entry_evidence(position)

        return TradeResult(
            success=True,
            trade_id=position.id,
            shares=position.shares,
            cost=position.cost,
            tier=tier.value,
        )

    def _request_validation_capability(self, params: TradeParams, reason: str) -> None:
        """Ask the agent engineer for a way to validate a hypothesis the size gate refused."""
        if self.handoffs is None:
            return
        try:
            handoff = self.handoffs.request_capability(
                f"Need validation capability for hypothesis {params.hypothesis_id}",
                {
                    "hypothesis_id": params.hypothesis_id,
                    "market": params.market,
                    "trade_amount": params.amount,
                    "validation_reason": reason,
                },
                priority=HandoffPriority.HIGH.value,
                dedupe_key=f"trade-validation:{params.hypothesis_id}",
            )
        except PersistenceError:
            raise
        except EngineError as e:
            logger.warning(
                f"Validation capability request for {params.hypothesis_id} not filed: {e.message}"
            )
            return
        logger.info(f"Validation capability for {params.hypothesis_id} requested in {handoff.id}")

    def _park_for_approval(self, params: TradeParams) -> TradeResult:
        approval = self.approvals.create(params)
        delivered = self.gateway.request_approval(approval)
        if not delivered:
            logger.warning(f"Approval request {approval.id} could not be delivered")
        self._audit("APPROVAL_REQUESTED", {
            "approval_id": approval.id,
            "params": params.to_dict(),
            "delivered": delivered,
        })
        return TradeResult(
            success=False,
            requires_approval=True,
            approval_id=approval.id,
            tier=ApprovalTier.APPROVE.value,
            error=(
                f"trade requires human approval "
                f"(above ${self.config.tiers.notify_limit:,.0f})"
            ),
        )

    def _open_position(self, portfolio: Portfolio, params: TradeParams) -> Position:
        """Mutates the in-memory portfolio only. The caller saves."""
        now = datetime.now(timezone.utc).isoformat()
        shares = params.amount / params.price
        cost = params.price * shares

        position = Position(
            id=generate_position_id(),
            market=params.market,
            direction=params.direction,
            entry_price=params.price,
            shares=shares,
            cost=cost,
            hypothesis_id=params.hypothesis_id,
            exit_criteria=params.exit_criteria,
            rationale=params.rationale,
            entry_date=now,
            current_price=params.price,
            market_question=params.market_question,
            outcome=params.outcome,
        )
        portfolio.cash -= cost
        portfolio.positions.append(position)
        portfolio.trade_history.append(TradeRecord(
            id=position.id,
            position_id=position.id,
            action=TradeAction.ENTRY.value,
            market=params.market,
            direction=params.direction,
            price=params.price,
            shares=shares,
            amount=cost,
            hypothesis_id=params.hypothesis_id,
            timestamp=now,
            cash_after=portfolio.cash,
        ))
        return position

    # -------------------------------------------------------------------------
    # Approvals
    # -------------------------------------------------------------------------

    def list_pending_approvals(self):
        return self.approvals.list_pending()

    def approve(self, approval_id: str, note: Optional[str] = None) -> ApprovalResult:
        return self._decide(self.approvals.approve, approval_id, note)

    def reject(self, approval_id: str, note: Optional[str] = None) -> ApprovalResult:
        return self._decide(self.approvals.reject, approval_id, note)

    def _decide(self, action, approval_id: str, note: Optional[str]) -> ApprovalResult:
        try:
            approval = action(approval_id, note)
        except PersistenceError:
            raise
        except EngineError as e:
            return ApprovalResult(success=False, error=e.message, error_type=e.error_type)
        return ApprovalResult(success=True, approval=approval)

    def execute_approved_trade(self, approval_id: str) -> TradeResult:
        """
        Execute a human-approved trade regardless of tier.

        The trade is validated again against the CURRENT portfolio.
        """
        try:
            approval = self.approvals.get(approval_id)
            if approval.status != ApprovalStatus.APPROVED.value:
                raise ValidationError(
                    f"approval {approval_id} is not approved (status: {approval.status})",
                    approval_id,
                )

            params = approval.trade_params
            portfolio, version = self.store.load_versioned()
            validation = self.validator.validate_trade(params, portfolio)
            if not validation.valid:
                raise ValidationError(validation.error, approval_id)

            position = self._open_position(portfolio, params)
            self.store.save(portfolio, version)
            self.approvals.mark_executed(approval_id, position.id)
        except PersistenceError:
            raise
        except EngineError as e:
            return TradeResult(success=False, error=e.message, error_type=e.error_type)

        logger.info(f"Executed approved trade {approval_id} as {position.id}")
        self._audit("APPROVED_TRADE_EXECUTED", {
            "approval_id": approval_id,
            "trade_id": position.id,
            "shares": position.shares,
            "cost": position.cost,
            "cash_after": portfolio.cash,
        })
        self._notify(
            "Approved trade executed",
            f"{params.direction} {params.label}\n"
            f"Shares: {position.shares:.2f} @ {params.price * 100:.1f}c\n"
            f"Cost: ${position.cost:,.2f}\n\n"
            f"Cash remaining: ${portfolio.cash:,.2f}",
        )
        self._record_entry_evidence(position)
        return TradeResult(
            success=True,
            trade_id=position.id,
            shares=position.shares,
            cost=position.cost,
            tier=ApprovalTier.APPROVE.value,
        )

    # -------------------------------------------------------------------------
    # Exit
    # -------------------------------------------------------------------------

    def exit_position(
        self,
        position_id: str,
        exit_price: float,
        reason: str = ExitReason.MANUAL.value,
    ) -> TradeResult:
        """
        Close a position and realize its P&L.

        YES: pnl = (exit - entry) * shares
        NO:  pnl = (entry - exit) * shares
        The loss is capped at the position cost, so proceeds never go negative.
        """
        try:
            if not 0 <= exit_price <= 1:
                raise ValidationError(f"invalid exit price {exit_price}: must be between 0 and 1")
            if reason not in EXIT_REASONS:
                raise ValidationError(
                    f"invalid exit reason {reason!r}: expected one of {sorted(EXIT_REASONS)}"
                )

            portfolio, version = self.store.load_versioned()
            position = portfolio.find_position(position_id)
            if position is None:
                raise NotFoundError("position", position_id)

            raw_pnl = max(position.pnl_at(exit_price), -position.cost)
            proceeds = position.cost + raw_pnl
            pnl = round(raw_pnl, 2)

            portfolio.positions = [p for p in portfolio.positions if p.id != position_id]
            portfolio.cash += proceeds
            portfolio.metrics.realized_pnl = round(portfolio.metrics.realized_pnl + pnl, 2)
            if pnl > 0:
                portfolio.metrics.win_count += 1
            else:
                portfolio.metrics.loss_count += 1

            record = TradeRecord(
                id=generate_exit_id(),
                position_id=position.id,
                action=TradeAction.EXIT.value,
                market=position.market,
                direction=position.direction,
                price=exit_price,
                shares=position.shares,
                amount=round(proceeds, 2),
                hypothesis_id=position.hypothesis_id,
                timestamp=datetime.now(timezone.utc).isoformat(),
                cash_after=portfolio.cash,
                reason=reason,
                pnl=pnl,
                entry_price=position.entry_price,
            )
            portfolio.trade_history.append(record)
            self.store.save(portfolio, version)
        except PersistenceError:
            raise
        except EngineError as e:
            return TradeResult(success=False, error=e.message, error_type=e.error_type)

        won = pnl > 0
        logger.info(
            f"Closed {position_id} ({reason}): {position.direction} {position.market} "
            f"{position.entry_price} -> {exit_price}, pnl {pnl:+.2f}"
        )
        self._audit("TRADE_EXIT", {
            "trade_id": record.id,
            "position_id": position_id,
            "reason": reason,
            "exit_price": exit_price,
            "pnl": pnl,
            "proceeds": record.amount,
            "cash_after": portfolio.cash,
        })

        # The portfolio is already committed. A failure to update the
        # hypothesis is reported but does not undo the exit.
        feedback = self.hypotheses.record_trade_result(position.hypothesis_id, won, pnl)
        pnl_pct = raw_pnl / position.cost if position.cost > 0 else 0.0
        if not feedback.success:
            logger.warning(
                f"Trade result for {position.hypothesis_id} not recorded: {feedback.error}"
            )
        else:
            outcome = "WIN" if won else "LOSS"
            self._add_trade_evidence(
                position.hypothesis_id,
                f"Trade closed: {outcome} ${pnl:+,.2f} ({pnl_pct:+.1%}). {reason}",
                won,
            )

        self._notify(
            "Position closed",
            f"{position.direction} {position.label}\n"
            f"Entry: {position.entry_price * 100:.1f}c -> Exit: {exit_price * 100:.1f}c\n"
            f"P&L: {pnl:+,.2f} ({pnl_pct:+.1%})\n"
            f"Reason: {reason}\n\n"
            f"Cash: ${portfolio.cash:,.2f}",
            level="warning" if reason == ExitReason.STOP_LOSS.value else "info",
        )
        return TradeResult(success=True, trade_id=record.id, shares=position.shares, pnl=pnl)

    # -------------------------------------------------------------------------
    # Marks and reads
    # -------------------------------------------------------------------------

    def update_prices(self, prices: Dict[str, float]) -> int:
        """
        Mark open positions to market. Returns the number of positions marked.

        Raises:
            ConcurrencyError: portfolio changed while marking
        """
        def _mark(portfolio: Portfolio) -> int:
            marked = 0
            for position in portfolio.positions:
                price = prices.get(position.market)
                if price is None:
                    continue
                if not 0 <= price <= 1:
                    logger.warning(f"Ignoring price {price} for {position.market}")
                    continue
                position.mark(price)
                marked += 1
            return marked

        count = self.store.mutate(_mark)
        logger.debug(f"Marked {count} position(s) to market")
        return count

    def check_exit_triggers(
        self,
        portfolio: Optional[Portfolio] = None,
        now: Optional[datetime] = None,
    ) -> List[ExitTrigger]:
        """
        Positions whose exit conditions are met. Read-only.

        Reports at most one trigger per position. Never closes anything,
        the caller decides.
        """
        portfolio = portfolio or self.store.load()
        now = now or datetime.now(timezone.utc)
        triggers = []
        for position in portfolio.positions:
            trigger = exit_trigger_for(position, position.current_price, now)
            if trigger:
                triggers.append(ExitTrigger(
                    position=position,
                    trigger=trigger,
                    current_price=position.current_price,
                ))
        return triggers

    def get_portfolio_summary(self) -> PortfolioView:
        portfolio = self.store.load()
        risk = self.config.risk
        tiers = self.config.tiers

        unrealized = sum(p.pnl_at(p.current_price) for p in portfolio.positions)
        total_return = portfolio.metrics.realized_pnl + unrealized
        starting = portfolio.starting_capital

        return PortfolioView(
            cash=round(portfolio.cash, 2),
            starting_capital=starting,
            cash_pct=round(portfolio.cash / starting, 4) if starting else 0.0,
            position_count=len(portfolio.positions),
            max_positions=risk.max_concurrent_positions,
            realized_pnl=round(portfolio.metrics.realized_pnl, 2),
            unrealized_pnl=round(unrealized, 2),
            total_return=round(total_return, 2),
            total_return_pct=round(total_return / starting, 4) if starting else 0.0,
            win_count=portfolio.metrics.win_count,
            loss_count=portfolio.metrics.loss_count,
            win_rate=round(portfolio.metrics.win_rate, 4),
            positions=[PositionView.of(p) for p in portfolio.positions],
            constraints={
                "max_single_market_pct": risk.max_single_market_pct,
                "max_concurrent_positions": risk.max_concurrent_positions,
                "min_cash_reserve_pct": risk.min_cash_reserve_pct,
                "auto_approve_limit": tiers.auto_approve_limit,
                "notify_limit": tiers.notify_limit,
            },
        )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _record_entry_evidence(self, position: Position) -> None:
        self._add_trade_evidence(
            position.hypothesis_id,
            f"Trade executed: {position.direction} {position.shares:.2f} shares "
            f"@ {position.entry_price * 100:.1f}c. Cost: ${position.cost:,.2f}. "
            f"Rationale: {position.rationale[:100]}",
            None,
        )

    def _add_trade_evidence(self, hypothesis_id: str, observation: str, supports) -> None:
        """Trades go into the evidence trail without moving confidence."""
        result = self.hypotheses.add_evidence(hypothesis_id, observation, supports, 0.0)
        if not result.success:
            logger.warning(f"Trade evidence for {hypothesis_id} not recorded: {result.error}")

    def _notify(self, title: str, message: str, level: str = "info") -> None:
        if not self.gateway.send_alert(title, message, level):
            logger.warning(f"Notification not delivered: {title}")

    def _audit(self, event_type: str, details: Dict) -> None:
        if self.audit is not None:
            self.audit.log_event(event_type, details)
