# =============================================================================
# POLYMARKET RESEARCH DESK - AGENT TOOL REGISTRY
# =============================================================================
#
# The only door the reasoning agent has into the engine.
#
#   call(name, arguments) -> {"success": bool, ...}
#
# - arguments are validated against the tool's pydantic model first
# - engine errors come back as {"success": false, "error", "error_type"}
# - PersistenceError is the one exception that escapes: the store is gone
#   and the caller has to know
#
# =============================================================================

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from agent_tools import schemas
from paper_trader.models import ExitCriteria, TradeParams
from shared.exceptions import EngineError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_model: Type[BaseModel]
    handler: Callable[[BaseModel], Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(),
        }


def _error(message: str, error_type: str) -> Dict[str, Any]:
    return {"success": False, "error": message, "error_type": error_type}


def _schema_message(e: SchemaError) -> str:
    parts = []
    for err in e.errors():
        location = ".".join(str(part) for part in err["loc"]) or "arguments"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive timestamps from the agent are taken as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = _utc(value)
    return value.isoformat() if value is not None else None


def _trade_params(args: schemas.TradeInput) -> TradeParams:
    return TradeParams(
        market=args.market,
        direction=args.direction,
        amount=args.amount,
        price=args.price,
        hypothesis_id=args.hypothesis_id,
        rationale=args.rationale,
        exit_criteria=ExitCriteria(
            take_profit=args.exit_criteria.take_profit,
            stop_loss=args.exit_criteria.stop_loss,
            time_limit=_iso(args.exit_criteria.time_limit),
            notes=args.exit_criteria.notes,
        ),
        market_question=args.market_question,
        outcome=args.outcome,
    )


class ToolRegistry:
    """
    Args:
        executor: PaperExecutor
        lifecycle: HypothesisLifecycle
        handoffs: HandoffQueue
    """

    def __init__(self, executor, lifecycle, handoffs):
        self.executor = executor
        self.lifecycle = lifecycle
        self.handoffs = handoffs
        self._tools: Dict[str, ToolSpec] = {}
        self._register_all()

    def register(self, name: str, description: str, input_model: Type[BaseModel], handler) -> None:
        self._tools[name] = ToolSpec(name, description, input_model, handler)

    @property
    def names(self) -> List[str]:
        return sorted(self._tools)

    def describe(self) -> List[Dict[str, Any]]:
        """Tool catalogue with JSON schemas, for the agent's system context."""
        return [self._tools[name].to_dict() for name in self.names]

    def call(self, name: str, arguments: Dict[str, Any] = None) -> Dict[str, Any]:
        tool = self._tools.get(name)
        if tool is None:
            return _error(f"unknown tool {name!r}", "UnknownTool")

        try:
            args = tool.input_model.model_validate(arguments or {})
        except SchemaError as e:
            logger.info(f"Tool {name} rejected input: {_schema_message(e)}")
            return _error(_schema_message(e), "ValidationError")

        try:
            result = tool.handler(args)
        except PersistenceError:
            raise
        except EngineError as e:
            logger.info(f"Tool {name} failed: {e.message}")
            return _error(e.message, e.error_type)

        logger.debug(f"Tool {name} -> success={result.get('success')}")
        return result

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def _register_all(self) -> None:
        s = schemas
        # Trade
        self.register("execute_trade", "Validate and open a paper position", s.TradeInput, self._execute_trade)
        self.register("exit_position", "Close a position at a price", s.ExitPositionInput, self._exit_position)
        self.register("validate_trade", "Dry-run the risk checks for a trade", s.TradeInput, self._validate_trade)
        self.register("get_approval_tier", "Approval tier for a trade size", s.ApprovalTierInput, self._get_approval_tier)
        self.register("get_portfolio_summary", "Cash, positions and P&L", s.NoArguments, self._get_portfolio_summary)
        self.register("check_exit_triggers", "Positions whose exit conditions are met", s.CheckExitTriggersInput, self._check_exit_triggers)
        # Hypothesis
        self.register("create_hypothesis", "Propose a new trading hypothesis", s.CreateHypothesisInput, self._create_hypothesis)
        self.register("transition", "Move a hypothesis to another status", s.TransitionInput, self._transition)
        self.register("add_evidence", "Record an observation for a hypothesis", s.AddEvidenceInput, self._add_evidence)
        self.register("block", "Block a hypothesis on a missing capability", s.BlockInput, self._block)
        self.register("select_next", "Pick the hypothesis to work on next", s.SelectNextInput, self._select_next)
        self.register("record_trade_result", "Count a closed trade against a hypothesis", s.RecordTradeResultInput, self._record_trade_result)
        self.register("has_trade_validation", "May this hypothesis size trades above auto?", s.HypothesisIdInput, self._has_trade_validation)
        self.register("link_market", "Attach a market to a hypothesis", s.LinkMarketInput, self._link_market)
        # Handoff
        self.register("create_handoff", "Ask the other role for work", s.CreateHandoffInput, self._create_handoff)
        self.register("get_pending", "Pending handoffs for a role", s.GetPendingInput, self._get_pending)

    # -------------------------------------------------------------------------
    # Trade handlers
    # -------------------------------------------------------------------------

    def _execute_trade(self, args: schemas.TradeInput) -> Dict[str, Any]:
        return self.executor.execute_paper_trade(_trade_params(args)).to_dict()

    def _exit_position(self, args: schemas.ExitPositionInput) -> Dict[str, Any]:
        return self.executor.exit_position(args.position_id, args.exit_price, args.reason).to_dict()

    def _validate_trade(self, args: schemas.TradeInput) -> Dict[str, Any]:
        validation = self.executor.validate_trade(_trade_params(args))
        return {"success": True, **validation.to_dict()}

    def _get_approval_tier(self, args: schemas.ApprovalTierInput) -> Dict[str, Any]:
        tier = self.executor.get_approval_tier(args.amount)
        return {"success": True, "amount": args.amount, "tier": tier.value}

    def _get_portfolio_summary(self, args: schemas.NoArguments) -> Dict[str, Any]:
        return {"success": True, "portfolio": self.executor.get_portfolio_summary().to_dict()}

    def _check_exit_triggers(self, args: schemas.CheckExitTriggersInput) -> Dict[str, Any]:
        triggers = self.executor.check_exit_triggers(now=_utc(args.now))
        return {"success": True, "triggers": [t.to_dict() for t in triggers]}

    # -------------------------------------------------------------------------
    # Hypothesis handlers
    # -------------------------------------------------------------------------

    def _create_hypothesis(self, args: schemas.CreateHypothesisInput) -> Dict[str, Any]:
        result = self.lifecycle.create_hypothesis(**args.model_dump())
        payload = result.to_dict()
        if result.success:
            payload["hypothesis_id"] = result.hypothesis.id
        return payload

    def _transition(self, args: schemas.TransitionInput) -> Dict[str, Any]:
        return self.lifecycle.transition(args.hypothesis_id, args.target, args.reason).to_dict()

    def _add_evidence(self, args: schemas.AddEvidenceInput) -> Dict[str, Any]:
        return self.lifecycle.add_evidence(
            args.hypothesis_id, args.observation, args.supports, args.confidence_impact
        ).to_dict()

    def _block(self, args: schemas.BlockInput) -> Dict[str, Any]:
        return self.lifecycle.block_hypothesis(
            args.hypothesis_id, args.capability_needed, args.priority
        ).to_dict()

    def _select_next(self, args: schemas.SelectNextInput) -> Dict[str, Any]:
        market_closing = None
        if args.market_closing is not None:
            market_closing = {market: _iso(closes) for market, closes in args.market_closing.items()}
        selection = self.lifecycle.select_next_hypothesis(market_closing=market_closing)
        return {"success": True, **selection.to_dict()}

    def _record_trade_result(self, args: schemas.RecordTradeResultInput) -> Dict[str, Any]:
        return self.lifecycle.record_trade_result(args.hypothesis_id, args.won, args.pnl).to_dict()

    def _has_trade_validation(self, args: schemas.HypothesisIdInput) -> Dict[str, Any]:
        check = self.lifecycle.has_trade_validation(args.hypothesis_id)
        return {"success": True, **check.to_dict()}

    def _link_market(self, args: schemas.LinkMarketInput) -> Dict[str, Any]:
        return self.lifecycle.link_market(
            args.hypothesis_id, args.market, _iso(args.closes_at)
        ).to_dict()

    # -------------------------------------------------------------------------
    # Handoff handlers
    # -------------------------------------------------------------------------

    def _create_handoff(self, args: schemas.CreateHandoffInput) -> Dict[str, Any]:
        handoff = self.handoffs.create_handoff(
            from_role=args.from_role,
            to_role=args.to_role,
            handoff_type=args.type,
            context=args.context,
            priority=args.priority,
        )
        return {"success": True, "handoff_id": handoff.id, "handoff": handoff.to_dict()}

    def _get_pending(self, args: schemas.GetPendingInput) -> Dict[str, Any]:
        pending = self.handoffs.get_pending(args.role)
        return {"success": True, "count": len(pending), "handoffs": [h.to_dict() for h in pending]}
