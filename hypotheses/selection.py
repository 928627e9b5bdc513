# =============================================================================
# POLYMARKET RESEARCH DESK - HYPOTHESIS SELECTION
# =============================================================================
#
# Which hypothesis should the research agent work on next?
#
# SCORE = weighted sum of four components, each in [0, 1]:
#
#   confidence (0.35)  current confidence
#   evidence   (0.25)  0.6 * min(supporting / 5, 1)
#                      + 0.4 * recency of the latest supporting observation
#                      (1.0 today, linear to 0 after 7 days)
#   time       (0.20)  linked market closes within 24h -> 1.0
#                      within 72h -> 0.6, otherwise 0
#   status     (0.20)  proposed and idle > 48h -> 1.0 (force a decision)
#                      testing -> 0.5, otherwise 0
#
# Only proposed and testing hypotheses are eligible.
# Ties go to the hypothesis with the OLDEST updated_at (no starvation).
#
# =============================================================================

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from hypotheses.models import Hypothesis
from shared.document_store import parse_iso, require_iso
from shared.engine_config import EngineConfig, get_engine_config
from shared.enums import ACTIVE_STATUSES, HypothesisStatus
from shared.exceptions import ValidationError

logger = logging.getLogger(__name__)

EVIDENCE_COUNT_SHARE = 0.6
EVIDENCE_RECENCY_SHARE = 0.4
SUPPORTING_SATURATION = 5
NEAR_CLOSE_SCORE = 0.6
TESTING_STATUS_SCORE = 0.5


@dataclass(frozen=True)
class PriorityScore:
    hypothesis_id: str
    score: float
    breakdown: Dict[str, float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hypothesis_id": self.hypothesis_id,
            "score": self.score,
            "breakdown": dict(self.breakdown),
        }


@dataclass(frozen=True)
class SelectionResult:
    hypothesis: Optional[Hypothesis]
    score: Optional[PriorityScore]
    alternatives: List[Dict[str, Any]]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hypothesis": self.hypothesis.to_dict() if self.hypothesis else None,
            "score": self.score.to_dict() if self.score else None,
            "alternatives": list(self.alternatives),
        }


def _hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600.0


def evidence_score(hypothesis: Hypothesis, now: datetime, recency_days: float) -> float:
    supporting = hypothesis.supporting_evidence
    if not supporting:
        return 0.0
    count_part = min(len(supporting) / SUPPORTING_SATURATION, 1.0)

    latest = max(parse_iso(e.date) for e in supporting)
    age_days = max(_hours_between(latest, now) / 24.0, 0.0)
    recency_part = max(0.0, 1.0 - age_days / recency_days) if recency_days > 0 else 0.0

    return EVIDENCE_COUNT_SHARE * count_part + EVIDENCE_RECENCY_SHARE * recency_part


def time_score(
    closes_at: Optional[str],
    now: datetime,
    soon_hours: float,
    window_hours: float,
) -> float:
    if not closes_at:
        return 0.0
    hours_left = _hours_between(now, parse_iso(closes_at))
    if hours_left < 0:
        return 0.0
    if hours_left <= soon_hours:
        return 1.0
    if hours_left <= window_hours:
        return NEAR_CLOSE_SCORE
    return 0.0


def status_score(hypothesis: Hypothesis, now: datetime, idle_hours: float) -> float:
    if hypothesis.status == HypothesisStatus.TESTING.value:
        return TESTING_STATUS_SCORE
    if hypothesis.status == HypothesisStatus.PROPOSED.value:
        idle = _hours_between(parse_iso(hypothesis.updated_at), now)
        return 1.0 if idle > idle_hours else 0.0
    return 0.0


def closing_time_for(
    hypothesis: Hypothesis,
    market_closing: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """
    Closing time of the linked market. Caller-supplied metadata wins.

    A feed entry that is not an ISO timestamp is ignored and the stored
    closing time is used instead.
    """
    market = hypothesis.linked_market
    if not market:
        return None
    if market_closing and market in market_closing:
        try:
            return require_iso(market_closing[market], "closes_at")
        except ValidationError as e:
            logger.warning(f"Ignoring market feed entry for {market}: {e.message}")
    return hypothesis.linked_market_closes_at


def score_hypothesis(
    hypothesis: Hypothesis,
    now: datetime,
    config: Optional[EngineConfig] = None,
    market_closing: Optional[Dict[str, str]] = None,
) -> PriorityScore:
    config = config or get_engine_config()
    weights = config.selection

    breakdown = {
        "confidence": hypothesis.confidence,
        "evidence": evidence_score(hypothesis, now, weights.evidence_recency_days),
        "time": time_score(
            closing_time_for(hypothesis, market_closing),
            now,
            weights.closing_soon_hours,
            weights.closing_window_hours,
        ),
        "status": status_score(hypothesis, now, config.hypothesis.idle_decision_hours),
    }
    score = (
        weights.confidence * breakdown["confidence"]
        + weights.evidence * breakdown["evidence"]
        + weights.time * breakdown["time"]
        + weights.status * breakdown["status"]
    )
    return PriorityScore(
        hypothesis_id=hypothesis.id,
        score=round(score, 4),
        breakdown={k: round(v, 4) for k, v in breakdown.items()},
    )


def select_next(
    hypotheses: Iterable[Hypothesis],
    now: Optional[datetime] = None,
    config: Optional[EngineConfig] = None,
    market_closing: Optional[Dict[str, str]] = None,
) -> SelectionResult:
    """Pick the highest-scoring eligible hypothesis, plus runners-up."""
    config = config or get_engine_config()
    now = now or datetime.now(timezone.utc)

    eligible = [h for h in hypotheses if h.status in ACTIVE_STATUSES]
    if not eligible:
        return SelectionResult(hypothesis=None, score=None, alternatives=[])

    scored = [(h, score_hypothesis(h, now, config, market_closing)) for h in eligible]
    scored.sort(key=lambda pair: (-pair[1].score, parse_iso(pair[0].updated_at)))
    top = scored[: config.selection.top_n]

    best, best_score = top[0]
    return SelectionResult(
        hypothesis=best,
        score=best_score,
        alternatives=[{"id": h.id, "score": s.score} for h, s in top[1:]],
    )
