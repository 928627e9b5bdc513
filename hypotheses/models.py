# =============================================================================
# POLYMARKET RESEARCH DESK - HYPOTHESIS DATA MODELS
# =============================================================================
#
# A hypothesis is a falsifiable trading thesis with a lifecycle:
#
#   proposed -> testing -> validated
#                      \-> invalidated
#   (any) -> blocked -> proposed | testing
#
# The evidence list is APPEND-ONLY. Evidence records are frozen.
# confidence only moves through evidence or explicit lifecycle actions.
#
# =============================================================================

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import uuid
from datetime import datetime, timezone


@dataclass(frozen=True)
class Evidence:
    date: str
    observation: str
    supports: Optional[bool]  # None = neutral / inconclusive
    confidence_impact: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "observation": self.observation,
            "supports": self.supports,
            "confidence_impact": self.confidence_impact,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Evidence":
        return cls(
            date=data["date"],
            observation=data["observation"],
            supports=data.get("supports"),
            confidence_impact=data.get("confidence_impact", 0.0),
        )


@dataclass
class TestResults:
    """Realized paper-trade record of a hypothesis."""
    __test__ = False  # not a pytest test class

    wins: int = 0
    losses: int = 0
    pnl: float = 0.0

    @property
    def trades(self) -> int:
        return self.wins + self.losses

    @property
    def win_rate(self) -> float:
        return self.wins / self.trades if self.trades > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "wins": self.wins,
            "losses": self.losses,
            "pnl": self.pnl,
            "trades": self.trades,
            "win_rate": round(self.win_rate, 4),
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "TestResults":
        data = data or {}
        return cls(
            wins=data.get("wins", 0),
            losses=data.get("losses", 0),
            pnl=data.get("pnl", 0.0),
        )


@dataclass(frozen=True)
class BacktestResult:
    sample_size: int
    win_rate: float
    avg_return: float = 0.0
    market_type: Optional[str] = None
    sharpe_ratio: Optional[float] = None
    max_drawdown: Optional[float] = None
    notes: Optional[str] = None
    run_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sample_size": self.sample_size,
            "win_rate": self.win_rate,
            "avg_return": self.avg_return,
            "market_type": self.market_type,
            "sharpe_ratio": self.sharpe_ratio,
            "max_drawdown": self.max_drawdown,
            "notes": self.notes,
            "run_date": self.run_date,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BacktestResult":
        return cls(
            sample_size=int(data["sample_size"]),
            win_rate=float(data["win_rate"]),
            avg_return=data.get("avg_return", 0.0),
            market_type=data.get("market_type"),
            sharpe_ratio=data.get("sharpe_ratio"),
            max_drawdown=data.get("max_drawdown"),
            notes=data.get("notes"),
            run_date=data.get("run_date"),
        )


@dataclass
class Hypothesis:
    id: str
    statement: str
    status: str
    confidence: float
    created_at: str
    updated_at: str
    rationale: str = ""
    source: Optional[str] = None
    test_method: Optional[str] = None
    entry_rules: Optional[str] = None
    exit_rules: Optional[str] = None
    expected_win_rate: Optional[float] = None
    expected_payoff: Optional[float] = None
    min_sample_size: int = 5
    evidence: List[Evidence] = field(default_factory=list)
    test_results: TestResults = field(default_factory=TestResults)
    backtest: Optional[BacktestResult] = None
    linked_market: Optional[str] = None
    linked_market_closes_at: Optional[str] = None
    status_reason: Optional[str] = None
    blocked_reason: Optional[str] = None
    blocked_handoff_id: Optional[str] = None
    conclusion: Optional[str] = None
    test_started_at: Optional[str] = None
    test_ended_at: Optional[str] = None

    @property
    def supporting_evidence(self) -> List[Evidence]:
        return [e for e in self.evidence if e.supports is True]

    @property
    def contradicting_evidence(self) -> List[Evidence]:
        return [e for e in self.evidence if e.supports is False]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "statement": self.statement,
            "status": self.status,
            "confidence": self.confidence,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "rationale": self.rationale,
            "source": self.source,
            "test_method": self.test_method,
            "entry_rules": self.entry_rules,
            "exit_rules": self.exit_rules,
            "expected_win_rate": self.expected_win_rate,
            "expected_payoff": self.expected_payoff,
            "min_sample_size": self.min_sample_size,
            "evidence": [e.to_dict() for e in self.evidence],
            "test_results": self.test_results.to_dict(),
            "backtest": self.backtest.to_dict() if self.backtest else None,
            "linked_market": self.linked_market,
            "linked_market_closes_at": self.linked_market_closes_at,
            "status_reason": self.status_reason,
            "blocked_reason": self.blocked_reason,
            "blocked_handoff_id": self.blocked_handoff_id,
            "conclusion": self.conclusion,
            "test_started_at": self.test_started_at,
            "test_ended_at": self.test_ended_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Hypothesis":
        backtest = data.get("backtest")
        return cls(
            id=data["id"],
            statement=data["statement"],
            status=data["status"],
            confidence=data["confidence"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
            rationale=data.get("rationale", ""),
            source=data.get("source"),
            test_method=data.get("test_method"),
            entry_rules=data.get("entry_rules"),
            exit_rules=data.get("exit_rules"),
            expected_win_rate=data.get("expected_win_rate"),
            expected_payoff=data.get("expected_payoff"),
            min_sample_size=data.get("min_sample_size", 5),
            evidence=[Evidence.from_dict(e) for e in data.get("evidence", [])],
            test_results=TestResults.from_dict(data.get("test_results")),
            backtest=BacktestResult.from_dict(backtest) if backtest else None,
            linked_market=data.get("linked_market"),
            linked_market_closes_at=data.get("linked_market_closes_at"),
            status_reason=data.get("status_reason"),
            blocked_reason=data.get("blocked_reason"),
            blocked_handoff_id=data.get("blocked_handoff_id"),
            conclusion=data.get("conclusion"),
            test_started_at=data.get("test_started_at"),
            test_ended_at=data.get("test_ended_at"),
        )


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class HypothesisResult:
    """Outcome of a lifecycle operation."""
    success: bool
    hypothesis: Optional[Hypothesis] = None
    transitioned_to: Optional[str] = None  # set when add_evidence auto-transitioned
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.hypothesis is not None:
            payload["hypothesis"] = self.hypothesis.to_dict()
        if self.transitioned_to is not None:
            payload["transitioned_to"] = self.transitioned_to
        if self.error is not None:
            payload["error"] = self.error
            payload["error_type"] = self.error_type
        return payload


@dataclass(frozen=True)
class TradeValidationCheck:
    """Whether a hypothesis has earned trades above the auto-approve size."""
    validated: bool
    reason: str
    basis: Optional[str] = None  # backtest | trades | evidence

    def to_dict(self) -> Dict[str, Any]:
        return {"validated": self.validated, "reason": self.reason, "basis": self.basis}


def generate_hypothesis_id() -> str:
    """Format: HYP-{date}-{short_uuid}"""
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"HYP-{date_part}-{uuid.uuid4().hex[:8]}"
