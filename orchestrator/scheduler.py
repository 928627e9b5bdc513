# =============================================================================
# POLYMARKET RESEARCH DESK - SCHEDULER
# =============================================================================
#
# One tick = detect -> decide -> dispatch.
#
#   1. detect_priorities() over the current portfolio and hypotheses
#   2. decide(): top signal if urgency > dispatch_urgency,
#      otherwise the most overdue standing responsibility
#   3. hand a focused request to the ReasoningAgent and wait for it
#
# The agent is an external capability. It may call back into the engine
# through agent_tools, but the scheduler itself never mutates state except
# to stamp a responsibility as run.
#
# =============================================================================

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from orchestrator.priorities import PrioritySignal, detect_priorities
from orchestrator.responsibilities import DueResponsibility, ResponsibilitySchedule
from shared.engine_config import EngineConfig, get_engine_config
from shared.exceptions import PersistenceError

logger = logging.getLogger(__name__)


# =============================================================================
# AGENT BOUNDARY
# =============================================================================


@dataclass(frozen=True)
class AgentRequest:
    """What the agent is asked to look at, with only the state it needs."""
    role: str
    kind: str  # signal | responsibility
    action: str
    urgency: Optional[int] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "kind": self.kind,
            "action": self.action,
            "urgency": self.urgency,
            "context": dict(self.context),
        }


@dataclass(frozen=True)
class AgentOutcome:
    success: bool
    summary: str = ""
    actions_taken: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "summary": self.summary,
            "actions_taken": list(self.actions_taken),
        }


class ReasoningAgent(ABC):
    """Judgment lives here. Tests swap in a mock."""

    @abstractmethod
    def handle(self, request: AgentRequest) -> AgentOutcome:
        ...


# =============================================================================
# DECISION
# =============================================================================


@dataclass(frozen=True)
class OrchestratorDecision:
    should_dispatch: bool
    reason: str
    signal: Optional[PrioritySignal] = None
    responsibility: Optional[DueResponsibility] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "should_dispatch": self.should_dispatch,
            "reason": self.reason,
            "signal": self.signal.to_dict() if self.signal else None,
            "responsibility": self.responsibility.to_dict() if self.responsibility else None,
        }


def decide(
    signals: List[PrioritySignal],
    next_due: Optional[DueResponsibility] = None,
    config: Optional[EngineConfig] = None,
) -> OrchestratorDecision:
    """
    Dispatch the top signal if it is urgent enough, else fall back to the
    scheduled responsibility. signals must already be ranked.
    """
    config = config or get_engine_config()
    threshold = config.orchestrator.dispatch_urgency

    if signals and signals[0].urgency > threshold:
        top = signals[0]
        return OrchestratorDecision(
            should_dispatch=True,
            signal=top,
            reason=f"Urgency {top.urgency} > {threshold}: {top.action}",
        )

    if signals:
        reason = f"Top signal urgency {signals[0].urgency} <= {threshold}"
    else:
        reason = "No priority signals"

    if next_due is not None:
        return OrchestratorDecision(
            should_dispatch=False,
            responsibility=next_due,
            reason=f"{reason}, running {next_due.role}/{next_due.name}",
        )
    return OrchestratorDecision(should_dispatch=False, reason=f"{reason}, nothing due")


# =============================================================================
# SCHEDULER
# =============================================================================


@dataclass(frozen=True)
class TickResult:
    decision: OrchestratorDecision
    signals: List[PrioritySignal]
    request: Optional[AgentRequest] = None
    outcome: Optional[AgentOutcome] = None
    error: Optional[str] = None

    @property
    def idle(self) -> bool:
        return self.request is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.to_dict(),
            "signal_count": len(self.signals),
            "request": self.request.to_dict() if self.request else None,
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "error": self.error,
        }


class Scheduler:
    """
    Args:
        executor: PaperExecutor (portfolio, exit triggers)
        lifecycle: HypothesisLifecycle
        handoffs: HandoffQueue
        responsibilities: ResponsibilitySchedule
        agent: ReasoningAgent that does the thinking
        market_closing: Optional callable returning {market: closes_at ISO}
    """

    def __init__(
        self,
        executor,
        lifecycle,
        handoffs,
        responsibilities: ResponsibilitySchedule,
        agent: ReasoningAgent,
        config: Optional[EngineConfig] = None,
        market_closing: Optional[Callable[[], Dict[str, str]]] = None,
    ):
        self.executor = executor
        self.lifecycle = lifecycle
        self.handoffs = handoffs
        self.responsibilities = responsibilities
        self.agent = agent
        self.config = config or get_engine_config()
        self.market_closing = market_closing

    def _closing_times(self) -> Optional[Dict[str, str]]:
        return self.market_closing() if self.market_closing else None

    def detect(self, now: Optional[datetime] = None) -> List[PrioritySignal]:
        now = now or datetime.now(timezone.utc)
        return detect_priorities(
            self.executor.store.load(),
            self.lifecycle.list_hypotheses(),
            now,
            self._closing_times(),
            self.config,
        )

    def _responsibility_context(self, due: DueResponsibility, now: datetime) -> Dict[str, Any]:
        context: Dict[str, Any] = {"responsibility": due.to_dict()}
        if due.name == "check-exit-triggers":
            context["exit_triggers"] = [
                t.to_dict() for t in self.executor.check_exit_triggers(now=now)
            ]
        elif due.name == "review-hypotheses":
            context["next_hypothesis"] = self.lifecycle.select_next_hypothesis(
                now, self._closing_times()
            ).to_dict()
        elif due.name == "process-handoffs":
            context["pending_handoffs"] = [
                h.to_dict() for h in self.handoffs.get_pending(due.role)
            ]
        elif due.name == "weekly-review":
            context["portfolio"] = self.executor.get_portfolio_summary().to_dict()
            context["progress"] = self.lifecycle.get_weekly_progress(now).to_dict()
            context["hypotheses"] = self.lifecycle.get_hypothesis_summary()
        return context

    def _build_request(self, decision: OrchestratorDecision, now: datetime) -> Optional[AgentRequest]:
        if decision.signal is not None:
            signal = decision.signal
            return AgentRequest(
                role=signal.agent_role,
                kind="signal",
                action=signal.action,
                urgency=signal.urgency,
                context=dict(signal.context),
            )
        if decision.responsibility is not None:
            due = decision.responsibility
            return AgentRequest(
                role=due.role,
                kind="responsibility",
                action=due.name,
                context=self._responsibility_context(due, now),
            )
        return None

    def tick(self, now: Optional[datetime] = None) -> TickResult:
        now = now or datetime.now(timezone.utc)

        signals = self.detect(now)
        decision = decide(signals, self.responsibilities.get_next_due(now), self.config)
        logger.info(f"Tick: {decision.reason}")

        request = self._build_request(decision, now)
        if request is None:
            return TickResult(decision=decision, signals=signals)

        try:
            outcome = self.agent.handle(request)
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Agent failed on {request.kind} {request.action}: {e}", exc_info=True)
            return TickResult(
                decision=decision,
                signals=signals,
                request=request,
                error=f"{type(e).__name__}: {e}",
            )

        if decision.responsibility is not None and outcome.success:
            due = decision.responsibility
            self.responsibilities.mark_run(due.role, due.name, now)

        logger.info(
            f"Agent {'completed' if outcome.success else 'gave up on'} "
            f"{request.kind} {request.action}: {outcome.summary[:80]}"
        )
        return TickResult(
            decision=decision,
            signals=signals,
            request=request,
            outcome=outcome,
        )
