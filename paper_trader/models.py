# =============================================================================
# POLYMARKET RESEARCH DESK - PAPER TRADING DATA MODELS
# =============================================================================
#
# Records of the simulated portfolio.
#
# PRICE CONVENTION:
# Every price is the market price in YES terms (0-1).
# A YES position profits when the price rises, a NO position when it falls.
# cost = entry_price * shares for either direction.
#
# Trade records are IMMUTABLE (frozen=True) for audit trail integrity.
# Portfolio and Position are mutable working copies of the stored document;
# they are only ever written back whole through the portfolio store.
#
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
import uuid

from shared.enums import Direction


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


# =============================================================================
# TRADE INPUT
# =============================================================================


@dataclass(frozen=True)
class ExitCriteria:
    """Price/time thresholds that define when a position should be closed."""
    take_profit: float
    stop_loss: float
    time_limit: Optional[str] = None  # ISO timestamp
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "take_profit": self.take_profit,
            "stop_loss": self.stop_loss,
            "time_limit": self.time_limit,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExitCriteria":
        return cls(
            take_profit=float(data["take_profit"]),
            stop_loss=float(data["stop_loss"]),
            time_limit=data.get("time_limit"),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class TradeParams:
    """A request to enter a paper position."""
    market: str
    direction: str  # "YES" or "NO"
    amount: float  # USD to spend
    price: float  # expected entry price, YES terms
    hypothesis_id: str
    rationale: str
    exit_criteria: ExitCriteria
    market_question: Optional[str] = None
    outcome: Optional[str] = None  # multi-outcome markets

    def to_dict(self) -> Dict[str, Any]:
        return {
            "market": self.market,
            "direction": self.direction,
            "amount": self.amount,
            "price": self.price,
            "hypothesis_id": self.hypothesis_id,
            "rationale": self.rationale,
            "exit_criteria": self.exit_criteria.to_dict(),
            "market_question": self.market_question,
            "outcome": self.outcome,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeParams":
        return cls(
            market=data["market"],
            direction=data["direction"],
            amount=float(data["amount"]),
            price=float(data["price"]),
            hypothesis_id=data["hypothesis_id"],
            rationale=data.get("rationale", ""),
            exit_criteria=ExitCriteria.from_dict(data["exit_criteria"]),
            market_question=data.get("market_question"),
            outcome=data.get("outcome"),
        )

    @property
    def label(self) -> str:
        return self.outcome or self.market_question or self.market


# =============================================================================
# PORTFOLIO RECORDS
# =============================================================================


def realized_pnl(direction: str, entry_price: float, exit_price: float, shares: float) -> float:
    """
    P&L of closing `shares` at exit_price.

    YES: (exit - entry) * shares
    NO:  (entry - exit) * shares
    """
    move = (exit_price - entry_price) * shares
    return move if direction == Direction.YES.value else -move


@dataclass
class Position:
    """An open paper position."""
    id: str
    market: str
    direction: str
    entry_price: float
    shares: float
    cost: float
    hypothesis_id: str
    exit_criteria: ExitCriteria
    rationale: str
    entry_date: str
    current_price: float
    unrealized_pnl: float = 0.0
    market_question: Optional[str] = None
    outcome: Optional[str] = None

    @property
    def label(self) -> str:
        return self.outcome or self.market_question or self.market

    def pnl_at(self, price: float) -> float:
        return realized_pnl(self.direction, self.entry_price, price, self.shares)

    @property
    def pnl_pct(self) -> float:
        """Unrealized P&L as a fraction of cost (-0.15 = down 15%)."""
        if self.cost <= 0:
            return 0.0
        return self.pnl_at(self.current_price) / self.cost

    def mark(self, price: float) -> None:
        self.current_price = price
        self.unrealized_pnl = self.pnl_at(price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "market": self.market,
            "direction": self.direction,
            "entry_price": self.entry_price,
            "shares": self.shares,
            "cost": self.cost,
            "hypothesis_id": self.hypothesis_id,
            "exit_criteria": self.exit_criteria.to_dict(),
            "rationale": self.rationale,
            "entry_date": self.entry_date,
            "current_price": self.current_price,
            "unrealized_pnl": self.unrealized_pnl,
            "market_question": self.market_question,
            "outcome": self.outcome,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            id=data["id"],
            market=data["market"],
            direction=data["direction"],
            entry_price=data["entry_price"],
            shares=data["shares"],
            cost=data["cost"],
            hypothesis_id=data["hypothesis_id"],
            exit_criteria=ExitCriteria.from_dict(data["exit_criteria"]),
            rationale=data.get("rationale", ""),
            entry_date=data["entry_date"],
            current_price=data.get("current_price", data["entry_price"]),
            unrealized_pnl=data.get("unrealized_pnl", 0.0),
            market_question=data.get("market_question"),
            outcome=data.get("outcome"),
        )


@dataclass(frozen=True)
class TradeRecord:
    """
    Realized entry or exit. Never modified after it is appended.

    amount is the cost for ENTRY records and the proceeds for EXIT records.
    """
    id: str
    position_id: str
    action: str  # "ENTRY" or "EXIT"
    market: str
    direction: str
    price: float
    shares: float
    amount: float
    hypothesis_id: str
    timestamp: str
    cash_after: float
    reason: Optional[str] = None  # exits: take_profit|stop_loss|time_limit|manual
    pnl: Optional[float] = None
    entry_price: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "position_id": self.position_id,
            "action": self.action,
            "market": self.market,
            "direction": self.direction,
            "price": self.price,
            "shares": self.shares,
            "amount": self.amount,
            "hypothesis_id": self.hypothesis_id,
            "timestamp": self.timestamp,
            "cash_after": self.cash_after,
            "reason": self.reason,
            "pnl": self.pnl,
            "entry_price": self.entry_price,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TradeRecord":
        return cls(
            id=data["id"],
            position_id=data["position_id"],
            action=data["action"],
            market=data["market"],
            direction=data["direction"],
            price=data["price"],
            shares=data["shares"],
            amount=data["amount"],
            hypothesis_id=data["hypothesis_id"],
            timestamp=data["timestamp"],
            cash_after=data["cash_after"],
            reason=data.get("reason"),
            pnl=data.get("pnl"),
            entry_price=data.get("entry_price"),
        )


@dataclass
class PortfolioMetrics:
    realized_pnl: float = 0.0
    win_count: int = 0
    loss_count: int = 0

    @property
    def win_rate(self) -> float:
        total = self.win_count + self.loss_count
        return self.win_count / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "realized_pnl": self.realized_pnl,
            "win_count": self.win_count,
            "loss_count": self.loss_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortfolioMetrics":
        return cls(
            realized_pnl=data.get("realized_pnl", 0.0),
            win_count=data.get("win_count", 0),
            loss_count=data.get("loss_count", 0),
        )


@dataclass
class Portfolio:
    """
    Simulated portfolio.

    starting_capital never changes after bootstrap. Positions are appended on
    entry and removed on exit; the realized record lives in trade_history.
    """
    cash: float
    starting_capital: float
    positions: List[Position] = field(default_factory=list)
    trade_history: List[TradeRecord] = field(default_factory=list)
    metrics: PortfolioMetrics = field(default_factory=PortfolioMetrics)
    created_at: str = field(default_factory=_now_iso)

    @property
    def invested(self) -> float:
        return sum(p.cost for p in self.positions)

    @property
    def total_value(self) -> float:
        """Cash plus open positions at cost."""
        return self.cash + self.invested

    def market_exposure(self, market: str) -> float:
        return sum(p.cost for p in self.positions if p.market == market)

    def has_market(self, market: str) -> bool:
        return any(p.market == market for p in self.positions)

    def find_position(self, position_id: str) -> Optional[Position]:
        for position in self.positions:
            if position.id == position_id:
                return position
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cash": self.cash,
            "starting_capital": self.starting_capital,
            "positions": [p.to_dict() for p in self.positions],
            "trade_history": [t.to_dict() for t in self.trade_history],
            "metrics": self.metrics.to_dict(),
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        return cls(
            cash=data["cash"],
            starting_capital=data["starting_capital"],
            positions=[Position.from_dict(p) for p in data.get("positions", [])],
            trade_history=[TradeRecord.from_dict(t) for t in data.get("trade_history", [])],
            metrics=PortfolioMetrics.from_dict(data.get("metrics", {})),
            created_at=data.get("created_at", _now_iso()),
        )


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    warnings: Optional[List[str]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "valid": self.valid,
            "error": self.error,
            "warnings": self.warnings,
        })


@dataclass(frozen=True)
class TradeResult:
    """Outcome of an entry, exit or approved-trade execution."""
    success: bool
    trade_id: Optional[str] = None
    shares: Optional[float] = None
    cost: Optional[float] = None
    pnl: Optional[float] = None
    tier: Optional[str] = None
    requires_approval: Optional[bool] = None
    approval_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "success": self.success,
            "trade_id": self.trade_id,
            "shares": self.shares,
            "cost": self.cost,
            "pnl": self.pnl,
            "tier": self.tier,
            "requires_approval": self.requires_approval,
            "approval_id": self.approval_id,
            "error": self.error,
            "error_type": self.error_type,
        })


@dataclass(frozen=True)
class ExitTrigger:
    """An exit condition currently met by an open position."""
    position: Position
    trigger: str  # take_profit | stop_loss | time_limit
    current_price: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position_id": self.position.id,
            "market": self.position.market,
            "hypothesis_id": self.position.hypothesis_id,
            "trigger": self.trigger,
            "current_price": self.current_price,
            "take_profit": self.position.exit_criteria.take_profit,
            "stop_loss": self.position.exit_criteria.stop_loss,
            "time_limit": self.position.exit_criteria.time_limit,
        }


@dataclass(frozen=True)
class PositionView:
    id: str
    label: str
    market: str
    direction: str
    entry_price: float
    current_price: float
    shares: float
    cost: float
    unrealized_pnl: float
    pnl_pct: float
    hypothesis_id: str

    @classmethod
    def of(cls, position: Position) -> "PositionView":
        return cls(
            id=position.id,
            label=position.label,
            market=position.market,
            direction=position.direction,
            entry_price=position.entry_price,
            current_price=position.current_price,
            shares=position.shares,
            cost=round(position.cost, 2),
            unrealized_pnl=round(position.pnl_at(position.current_price), 2),
            pnl_pct=round(position.pnl_pct, 4),
            hypothesis_id=position.hypothesis_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "market": self.market,
            "direction": self.direction,
            "entry_price": self.entry_price,
            "current_price": self.current_price,
            "shares": self.shares,
            "cost": self.cost,
            "unrealized_pnl": self.unrealized_pnl,
            "pnl_pct": self.pnl_pct,
            "hypothesis_id": self.hypothesis_id,
        }


@dataclass(frozen=True)
class PortfolioView:
    """Read-only summary handed to agents and the CLI."""
    cash: float
    starting_capital: float
    cash_pct: float
    position_count: int
    max_positions: int
    realized_pnl: float
    unrealized_pnl: float
    total_return: float
    total_return_pct: float
    win_count: int
    loss_count: int
    win_rate: float
    positions: List[PositionView]
    constraints: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cash": self.cash,
            "starting_capital": self.starting_capital,
            "cash_pct": self.cash_pct,
            "position_count": self.position_count,
            "max_positions": self.max_positions,
            "realized_pnl": self.realized_pnl,
            "unrealized_pnl": self.unrealized_pnl,
            "total_return": self.total_return,
            "total_return_pct": self.total_return_pct,
            "win_count": self.win_count,
            "loss_count": self.loss_count,
            "win_rate": self.win_rate,
            "positions": [p.to_dict() for p in self.positions],
            "constraints": dict(self.constraints),
        }

    def render(self) -> str:
        lines = [
            "## Portfolio Summary",
            f"- Cash: ${self.cash:,.2f} / ${self.starting_capital:,.2f} ({self.cash_pct:.0%})",
            f"- Positions: {self.position_count}/{self.max_positions}",
            f"- Total Return: {self.total_return:+,.2f} ({self.total_return_pct:+.2%})",
            f"- Win Rate: {self.win_rate:.0%} ({self.win_count}W/{self.loss_count}L)",
            "",
            "## Open Positions",
        ]
        if not self.positions:
            lines.append("  (none)")
        for p in self.positions:
            lines.append(
                f"  - {p.direction} {p.label}: {p.entry_price * 100:.1f}c -> "
                f"{p.current_price * 100:.1f}c ({p.pnl_pct:+.1%}, {p.unrealized_pnl:+,.2f})"
            )
        return "\n".join(lines)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================


def _short_id(prefix: str) -> str:
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{prefix}-{date_part}-{uuid.uuid4().hex[:8]}"


def generate_position_id() -> str:
    """Format: POS-{date}-{short_uuid}. The entry trade shares this id."""
    return _short_id("POS")


def generate_exit_id() -> str:
    """Format: EXIT-{date}-{short_uuid}"""
    return _short_id("EXIT")


def generate_approval_id() -> str:
    """Format: APPR-{date}-{short_uuid}"""
    return _short_id("APPR")
