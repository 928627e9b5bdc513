# =============================================================================
# POLYMARKET RESEARCH DESK - HYPOTHESIS LIFECYCLE MANAGER
# =============================================================================
#
# Code enforces the state machine so the reasoning agent does not have to
# remember the rules.
#
# TRANSITIONS:
#
#   From      To           Precondition
#   --------  -----------  ------------------------------------------------
#   proposed  testing      test_method, entry_rules and exit_rules are set
#   testing   validated    confidence > 0.55, trades >= min_sample_size,
#                          win rate > 0.50
#   testing   invalidated  confidence < 0.35, or trades >= min_sample_size
#                          with win rate < 0.40
#   any       blocked      a capability handoff exists (use block())
#   blocked   proposed     linked handoff is done or unknown
#   blocked   testing      as above, plus the testing preconditions
#
# AUTO-TRANSITIONS (only while testing, evaluated after each evidence):
#   confidence < 0.30                          -> invalidated
#   confidence > 0.70 and validation criteria  -> validated
#   Invalidation is checked first and wins when both would apply.
#
# _apply_transition() is the ONLY place that changes status.
# Every operation is one read-modify-write of the hypothesis document.
#
# =============================================================================

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from hypotheses.models import (
    BacktestResult,
    Evidence,
    Hypothesis,
    HypothesisResult,
    TradeValidationCheck,
    generate_hypothesis_id,
)
from hypotheses.progress import ConfidenceHistory, LearningsLog, WeeklyProgress
from hypotheses.selection import SelectionResult, select_next
from hypotheses.storage import HypothesisStore
from notifications.gateway import NotificationGateway
from shared.document_store import require_iso
from shared.engine_config import EngineConfig, get_engine_config
from shared.enums import (
    HandoffPriority,
    HandoffStatus,
    HandoffType,
    HypothesisStatus,
    Role,
    TERMINAL_STATUSES,
)
from shared.exceptions import (
    EngineError,
    PersistenceError,
    TransitionError,
    ValidationError,
)
from shared.logging_config import AuditLogger

logger = logging.getLogger(__name__)

PROPOSED = HypothesisStatus.PROPOSED.value
TESTING = HypothesisStatus.TESTING.value
VALIDATED = HypothesisStatus.VALIDATED.value
INVALIDATED = HypothesisStatus.INVALIDATED.value
BLOCKED = HypothesisStatus.BLOCKED.value

ERR_ILLEGAL = "illegal transition"
ERR_PRECONDITION = "precondition not met"

LEGAL_TRANSITIONS = {
    PROPOSED: frozenset({TESTING, BLOCKED}),
    TESTING: frozenset({VALIDATED, INVALIDATED, BLOCKED}),
    VALIDATED: frozenset({BLOCKED}),
    INVALIDATED: frozenset({BLOCKED}),
    BLOCKED: frozenset({PROPOSED, TESTING}),
}

CONFIDENCE_DECIMALS = 4


def _now_iso(now: Optional[datetime] = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class HypothesisLifecycle:
    """
    Lifecycle operations on the hypothesis store.

    Public methods return HypothesisResult and never raise for rule
    violations. PersistenceError always propagates.

    Args:
        store: Hypothesis document
        handoffs: HandoffQueue for block/unblock (optional)
        history: Confidence movement log (optional)
        learnings: Verdict log (optional)
        gateway: Alerts on status changes (optional)
        audit: Audit logger (optional)
    """

    def __init__(
        self,
        store: HypothesisStore,
        handoffs=None,
        history: Optional[ConfidenceHistory] = None,
        learnings: Optional[LearningsLog] = None,
        gateway: Optional[NotificationGateway] = None,
        audit: Optional[AuditLogger] = None,
        config: Optional[EngineConfig] = None,
    ):
        self.store = store
        self.handoffs = handoffs
        self.history = history
        self.learnings = learnings
        self.gateway = gateway
        self.audit = audit
        self.config = config or get_engine_config()
        self.thresholds = self.config.hypothesis

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get(self, hypothesis_id: str) -> Hypothesis:
        """Raises NotFoundError."""
        return self.store.get(hypothesis_id)

    def list_hypotheses(self, status: Optional[str] = None) -> List[Hypothesis]:
        return self.store.list_all(status)

    def get_hypothesis_summary(self) -> Dict[str, List[Dict[str, Any]]]:
        """Hypotheses grouped by status."""
        summary: Dict[str, List[Dict[str, Any]]] = {s.value: [] for s in HypothesisStatus}
        for h in self.store.list_all():
            summary.setdefault(h.status, []).append({
                "id": h.id,
                "statement": h.statement,
                "confidence": h.confidence,
                "evidence": len(h.evidence),
                "trades": h.test_results.trades,
            })
        return summary

    def select_next_hypothesis(
        self,
        now: Optional[datetime] = None,
        market_closing: Optional[Dict[str, str]] = None,
    ) -> SelectionResult:
        return select_next(self.store.list_all(), now, self.config, market_closing)

    def get_weekly_progress(self, now: Optional[datetime] = None) -> WeeklyProgress:
        if self.history is None:
            return WeeklyProgress(0.0, 0, 0, [])
        return self.history.weekly_progress(now)

    def meets_validation_criteria(self, hypothesis: Hypothesis) -> bool:
        """Enough trades with a winning record."""
        results = hypothesis.test_results
        return (
            results.trades >= hypothesis.min_sample_size
            and results.win_rate > self.thresholds.validation_win_rate
        )

    def has_trade_validation(self, hypothesis_id: str) -> TradeValidationCheck:
        """
        Has this hypothesis earned trades above the auto-approve size?

        1. A backtest decides alone when present: >= 10 samples, >= 45% wins
        2. Paper trades: >= min_sample_size trades with > 50% wins
        3. Evidence: >= 5 observations and confidence >= 0.55
        """
        t = self.thresholds
        hypothesis = self.store.find(hypothesis_id)
        if hypothesis is None:
            return TradeValidationCheck(False, f"hypothesis {hypothesis_id} not found")

        bt = hypothesis.backtest
        if bt is not None:
            summary = f"backtest: {bt.sample_size} samples, {bt.win_rate:.0%} win rate"
            if bt.sample_size >= t.backtest_min_samples and bt.win_rate >= t.backtest_min_win_rate:
                return TradeValidationCheck(True, summary, "backtest")
            return TradeValidationCheck(
                False,
                f"{summary} (need >= {t.backtest_min_samples} samples, "
                f">= {t.backtest_min_win_rate:.0%} win rate)",
                "backtest",
            )

        results = hypothesis.test_results
        if self.meets_validation_criteria(hypothesis):
            return TradeValidationCheck(
                True,
                f"trades: {results.trades} closed, {results.win_rate:.0%} win rate",
                "trades",
            )

        n_evidence = len(hypothesis.evidence)
        if (n_evidence >= t.trade_validation_min_evidence
                and hypothesis.confidence >= t.trade_validation_min_confidence):
            return TradeValidationCheck(
                True,
                f"evidence: {n_evidence} observations, {hypothesis.confidence:.0%} confidence, "
                f"{len(hypothesis.supporting_evidence)} supporting",
                "evidence",
            )

        needs = []
        if n_evidence < t.trade_validation_min_evidence:
            needs.append(f"{t.trade_validation_min_evidence - n_evidence} more observations")
        if hypothesis.confidence < t.trade_validation_min_confidence:
            needs.append(
                f"confidence {hypothesis.confidence:.0%} -> "
                f"{t.trade_validation_min_confidence:.0%}"
            )
        return TradeValidationCheck(
            False,
            f"needs {', '.join(needs)}; or attach a backtest or close more trades",
        )

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _check_preconditions(self, h: Hypothesis, target: str) -> None:
        t = self.thresholds

        if target == TESTING:
            missing = [
                name for name in ("test_method", "entry_rules", "exit_rules")
                if not getattr(h, name)
            ]
            if missing:
                raise TransitionError(
                    f"{ERR_PRECONDITION}: {', '.join(missing)} required to start testing",
                    h.id, h.status, target,
                )

        elif target == VALIDATED:
            results = h.test_results
            if h.confidence <= t.validation_confidence:
                raise TransitionError(
                    f"{ERR_PRECONDITION}: confidence {h.confidence:.0%} not above "
                    f"{t.validation_confidence:.0%}",
                    h.id, h.status, target,
                )
            if results.trades < h.min_sample_size:
                raise TransitionError(
                    f"{ERR_PRECONDITION}: {results.trades} trades, need {h.min_sample_size}",
                    h.id, h.status, target,
                )
            if results.win_rate <= t.validation_win_rate:
                raise TransitionError(
                    f"{ERR_PRECONDITION}: win rate {results.win_rate:.0%} not above "
                    f"{t.validation_win_rate:.0%}",
                    h.id, h.status, target,
                )

        elif target == INVALIDATED:
            results = h.test_results
            low_confidence = h.confidence < t.invalidation_confidence
            poor_record = (
                results.trades >= h.min_sample_size
                and results.win_rate < t.invalidation_win_rate
            )
            if not (low_confidence or poor_record):
                raise TransitionError(
                    f"{ERR_PRECONDITION}: confidence {h.confidence:.0%} not below "
                    f"{t.invalidation_confidence:.0%} and no losing record over "
                    f"{h.min_sample_size} trades",
                    h.id, h.status, target,
                )

        elif target == BLOCKED:
            if not h.blocked_handoff_id:
                raise TransitionError(
                    f"{ERR_PRECONDITION}: blocking needs a capability handoff, use block()",
                    h.id, h.status, target,
                )

        if h.status == BLOCKED:
            self._check_unblock(h, target)

    def _check_unblock(self, h: Hypothesis, target: str) -> None:
        """A blocked hypothesis may move on once its handoff is done or unknown."""
        if not h.blocked_handoff_id or self.handoffs is None:
            return
        handoff = self.handoffs.find(h.blocked_handoff_id)
        if handoff is not None and handoff.status != HandoffStatus.DONE.value:
            raise TransitionError(
                f"{ERR_PRECONDITION}: handoff {handoff.id} is {handoff.status}",
                h.id, h.status, target,
            )

    def _apply_transition(
        self,
        h: Hypothesis,
        target: str,
        reason: str,
        now: Optional[datetime] = None,
    ) -> str:
        """
        Validate and apply one status change to an in-memory hypothesis.

        Returns the previous status. Raises TransitionError and leaves the
        hypothesis untouched when the change is not allowed.
        """
        if target not in LEGAL_TRANSITIONS.get(h.status, frozenset()):
            raise TransitionError(
                f"{ERR_ILLEGAL}: {h.status} -> {target}", h.id, h.status, target
            )
        self._check_preconditions(h, target)

        previous = h.status
        stamp = _now_iso(now)
        h.status = target
        h.status_reason = reason
        h.updated_at = stamp

        if target == TESTING:
            h.test_started_at = stamp
        elif target in TERMINAL_STATUSES:
            h.test_ended_at = stamp
            h.conclusion = reason
        elif target == BLOCKED:
            h.blocked_reason = reason

        if previous == BLOCKED:
            h.blocked_reason = None
            h.blocked_handoff_id = None

        return previous

    def _after_transition(self, h: Hypothesis, previous: str, reason: str) -> None:
        """Side effects once the transition is committed."""
        logger.info(f"Hypothesis {h.id}: {previous} -> {h.status} ({reason})")
        if self.audit is not None:
            self.audit.log_event("HYPOTHESIS_TRANSITION", {
                "hypothesis_id": h.id,
                "from": previous,
                "to": h.status,
                "reason": reason,
                "confidence": h.confidence,
            })
        if h.status in TERMINAL_STATUSES and self.learnings is not None:
            self.learnings.append(h, reason)
        if self.gateway is not None:
            self.gateway.send_alert(
                f"Hypothesis {h.status}",
                f"{h.id}: {h.statement[:100]}\n\n{previous} -> {h.status}\nReason: {reason}",
            )

    def transition(self, hypothesis_id: str, target: str, reason: str) -> HypothesisResult:
        """
        Move a hypothesis to another status.

        Errors start with "illegal transition" or "precondition not met".
        A rejected call writes nothing, so repeating it yields the same error.
        """
        try:
            def _do(h: Hypothesis) -> str:
                return self._apply_transition(h, target, reason)

            previous = self.store.mutate(hypothesis_id, _do)
            hypothesis = self.store.get(hypothesis_id)
        except PersistenceError:
            raise
        except EngineError as e:
            logger.info(f"Transition of {hypothesis_id} to {target} rejected: {e.message}")
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        self._after_transition(hypothesis, previous, reason)
        return HypothesisResult(success=True, hypothesis=hypothesis)

    def unblock_hypothesis(
        self,
        hypothesis_id: str,
        target: str = PROPOSED,
        reason: str = "capability delivered",
    ) -> HypothesisResult:
        if target not in (PROPOSED, TESTING):
            return HypothesisResult(
                success=False,
                error=f"{ERR_ILLEGAL}: unblock target must be proposed or testing, not {target}",
                error_type=TransitionError.__name__,
            )
        return self.transition(hypothesis_id, target, reason)

    # =========================================================================
    # EVIDENCE
    # =========================================================================

    def add_evidence(
        self,
        hypothesis_id: str,
        observation: str,
        supports: Optional[bool],
        confidence_impact: float,
    ) -> HypothesisResult:
        """
        Append an observation and move confidence by confidence_impact.

        Terminal and blocked hypotheses still take evidence for the record,
        only testing hypotheses auto-transition.
        """
        t = self.thresholds
        limit = t.max_evidence_impact
        if not -limit <= confidence_impact <= limit:
            return HypothesisResult(
                success=False,
                error=f"confidence impact {confidence_impact} outside [-{limit}, {limit}]",
                error_type=ValidationError.__name__,
            )
        if not observation or not observation.strip():
            return HypothesisResult(
                success=False,
                error="observation must not be empty",
                error_type=ValidationError.__name__,
            )

        state: Dict[str, Any] = {}

        def _do(h: Hypothesis) -> None:
            now = datetime.now(timezone.utc)
            h.evidence.append(Evidence(
                date=_now_iso(now),
                observation=observation,
                supports=supports,
                confidence_impact=confidence_impact,
            ))
            state["previous_confidence"] = h.confidence
            h.confidence = round(_clamp(h.confidence + confidence_impact), CONFIDENCE_DECIMALS)
            h.updated_at = _now_iso(now)

            if h.status != TESTING:
                return
            if h.confidence < t.auto_invalidate_confidence:
                reason = f"auto-invalidated: confidence dropped to {h.confidence:.0%}"
                state["previous_status"] = self._apply_transition(h, INVALIDATED, reason, now)
                state["reason"] = reason
            elif h.confidence > t.auto_validate_confidence and self.meets_validation_criteria(h):
                reason = f"auto-validated: confidence reached {h.confidence:.0%} with criteria met"
                state["previous_status"] = self._apply_transition(h, VALIDATED, reason, now)
                state["reason"] = reason

        try:
            self.store.mutate(hypothesis_id, _do)
            hypothesis = self.store.get(hypothesis_id)
        except PersistenceError:
            raise
        except EngineError as e:
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        self._track_confidence(
            hypothesis, state["previous_confidence"], f"evidence: {observation[:50]}"
        )
        transitioned_to = None
        if "previous_status" in state:
            transitioned_to = hypothesis.status
            self._after_transition(hypothesis, state["previous_status"], state["reason"])

        return HypothesisResult(
            success=True, hypothesis=hypothesis, transitioned_to=transitioned_to
        )

    def _track_confidence(self, h: Hypothesis, previous: float, reason: str) -> None:
        if self.history is None or abs(h.confidence - previous) < 0.0001:
            return
        self.history.record(h.id, previous, h.confidence, reason)

    # =========================================================================
    # TRADE FEEDBACK
    # =========================================================================

    def record_trade_result(self, hypothesis_id: str, won: bool, pnl: float) -> HypothesisResult:
        """Count a closed trade. Never changes status by itself."""
        def _do(h: Hypothesis) -> None:
            if won:
                h.test_results.wins += 1
            else:
                h.test_results.losses += 1
            h.test_results.pnl = round(h.test_results.pnl + pnl, 2)
            h.updated_at = _now_iso()

        try:
            self.store.mutate(hypothesis_id, _do)
            hypothesis = self.store.get(hypothesis_id)
        except PersistenceError:
            raise
        except EngineError as e:
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        logger.info(
            f"Trade result for {hypothesis_id}: {'win' if won else 'loss'} {pnl:+.2f} "
            f"({hypothesis.test_results.wins}W/{hypothesis.test_results.losses}L)"
        )
        return HypothesisResult(success=True, hypothesis=hypothesis)

    # =========================================================================
    # CREATION AND METADATA
    # =========================================================================

    def create_hypothesis(
        self,
        statement: str,
        rationale: str = "",
        test_method: Optional[str] = None,
        entry_rules: Optional[str] = None,
        exit_rules: Optional[str] = None,
        source: Optional[str] = None,
        expected_win_rate: Optional[float] = None,
        expected_payoff: Optional[float] = None,
        min_sample_size: Optional[int] = None,
        initial_confidence: Optional[float] = None,
    ) -> HypothesisResult:
        t = self.thresholds
        confidence = t.default_confidence if initial_confidence is None else initial_confidence
        sample_size = t.default_min_sample_size if min_sample_size is None else min_sample_size

        if not statement or not statement.strip():
            return HypothesisResult(
                success=False, error="statement must not be empty",
                error_type=ValidationError.__name__,
            )
        if not 0 <= confidence <= 1:
            return HypothesisResult(
                success=False, error=f"initial confidence {confidence} outside [0, 1]",
                error_type=ValidationError.__name__,
            )
        if sample_size < 1:
            return HypothesisResult(
                success=False, error=f"min sample size {sample_size} must be at least 1",
                error_type=ValidationError.__name__,
            )

        now = _now_iso()
        hypothesis = Hypothesis(
            id=generate_hypothesis_id(),
            statement=statement.strip(),
            status=PROPOSED,
            confidence=round(confidence, CONFIDENCE_DECIMALS),
            created_at=now,
            updated_at=now,
            rationale=rationale,
            source=source,
            test_method=test_method,
            entry_rules=entry_rules,
            exit_rules=exit_rules,
            expected_win_rate=expected_win_rate,
            expected_payoff=expected_payoff,
            min_sample_size=sample_size,
            status_reason="proposed",
        )
        try:
            self.store.add(hypothesis)
        except PersistenceError:
            raise
        except EngineError as e:
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        logger.info(f"Created {hypothesis.id}: {hypothesis.statement[:50]}")
        return HypothesisResult(success=True, hypothesis=hypothesis)

    def _update_fields(self, hypothesis_id: str, mutator) -> HypothesisResult:
        def _do(h: Hypothesis) -> None:
            mutator(h)
            h.updated_at = _now_iso()

        try:
            self.store.mutate(hypothesis_id, _do)
            return HypothesisResult(success=True, hypothesis=self.store.get(hypothesis_id))
        except PersistenceError:
            raise
        except EngineError as e:
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

    def attach_backtest(
        self,
        hypothesis_id: str,
        sample_size: int,
        win_rate: float,
        avg_return: float = 0.0,
        **extra: Any,
    ) -> HypothesisResult:
        if sample_size < 0 or not 0 <= win_rate <= 1:
            return HypothesisResult(
                success=False,
                error=f"invalid backtest: sample_size={sample_size}, win_rate={win_rate}",
                error_type=ValidationError.__name__,
            )
        backtest = BacktestResult(
            sample_size=sample_size,
            win_rate=win_rate,
            avg_return=avg_return,
            market_type=extra.get("market_type"),
            sharpe_ratio=extra.get("sharpe_ratio"),
            max_drawdown=extra.get("max_drawdown"),
            notes=extra.get("notes"),
            run_date=extra.get("run_date") or _now_iso(),
        )

        def _set(h: Hypothesis) -> None:
            h.backtest = backtest

        return self._update_fields(hypothesis_id, _set)

    def link_market(
        self,
        hypothesis_id: str,
        market: str,
        closes_at: Optional[str] = None,
    ) -> HypothesisResult:
        try:
            if not market or not market.strip():
                raise ValidationError("market must not be empty", hypothesis_id)
            if closes_at is not None:
                require_iso(closes_at, "closes_at")
        except ValidationError as e:
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        def _set(h: Hypothesis) -> None:
            h.linked_market = market
            h.linked_market_closes_at = closes_at

        return self._update_fields(hypothesis_id, _set)

    # =========================================================================
    # BLOCKING
    # =========================================================================

    def block_hypothesis(
        self,
        hypothesis_id: str,
        capability_needed: str,
        priority: str = HandoffPriority.MEDIUM.value,
    ) -> HypothesisResult:
        """
        Park a hypothesis until a capability exists.

        Creates a build_capability handoff to the agent engineer and stores
        its id on the hypothesis.
        If the hypothesis write fails the handoff is closed again.
        """
        if self.handoffs is None:
            return HypothesisResult(
                success=False,
                error="no handoff queue configured, cannot block",
                error_type=ValidationError.__name__,
            )

        handoff = None
        try:
            current = self.store.get(hypothesis_id)
            if BLOCKED not in LEGAL_TRANSITIONS.get(current.status, frozenset()):
                raise TransitionError(
                    f"{ERR_ILLEGAL}: {current.status} -> {BLOCKED}",
                    hypothesis_id, current.status, BLOCKED,
                )

            handoff = self.handoffs.create_handoff(
                from_role=Role.TRADE_RESEARCH.value,
                to_role=Role.AGENT_ENGINEER.value,
                handoff_type=HandoffType.BUILD_CAPABILITY.value,
                context={
                    "hypothesis_id": hypothesis_id,
                    "capability_needed": capability_needed,
                    "hypothesis_statement": current.statement[:200],
                },
                priority=priority,
            )
            reason = f"awaiting capability: {capability_needed}"

            def _do(h: Hypothesis) -> str:
                h.blocked_handoff_id = handoff.id
                return self._apply_transition(h, BLOCKED, reason)

            previous = self.store.mutate(hypothesis_id, _do)
            hypothesis = self.store.get(hypothesis_id)
        except PersistenceError:
            raise
        except EngineError as e:
            if handoff is not None:
                self._withdraw_handoff(handoff.id, e.message)
            return HypothesisResult(success=False, error=e.message, error_type=e.error_type)

        self._after_transition(hypothesis, previous, reason)
        return HypothesisResult(success=True, hypothesis=hypothesis)

    def _withdraw_handoff(self, handoff_id: str, error: str) -> None:
        closed = self.handoffs.complete_handoff(
            handoff_id, Role.AGENT_ENGINEER.value, {"cancelled": f"block failed: {error}"}
        )
        if closed.success:
            logger.warning(f"Withdrew {handoff_id}: block failed ({error})")
        else:
            logger.warning(f"Could not withdraw {handoff_id}: {closed.error}")
