# =============================================================================
# POLYMARKET RESEARCH DESK - RESEARCH PROGRESS TRACKING
# =============================================================================
#
# Two append-only logs next to the hypothesis store:
#
# confidence_history.json  every confidence change (last 500 kept)
# learnings.json           one record per hypothesis that reached a verdict
#
# Weekly progress answers "is research actually moving?": total absolute
# confidence movement, hypotheses moved by >= 5 points, and crossings of
# the 50% / 75% confidence lines.
#
# =============================================================================

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from hypotheses.models import Hypothesis
from shared.document_store import JsonDocumentStore, parse_iso
from shared.engine_config import get_engine_config

logger = logging.getLogger(__name__)

HISTORY_FILENAME = "confidence_history.json"
LEARNINGS_FILENAME = "learnings.json"

MAX_HISTORY = 500
MEANINGFUL_MOVE = 0.05
CROSSING_LINES = (0.50, 0.75)


@dataclass(frozen=True)
class ConfidenceMovement:
    hypothesis_id: str
    previous: float
    current: float
    reason: str
    timestamp: str

    @property
    def delta(self) -> float:
        return self.current - self.previous

    def crosses(self, line: float) -> bool:
        return (self.previous < line) != (self.current < line)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hypothesis_id": self.hypothesis_id,
            "previous": self.previous,
            "current": self.current,
            "delta": round(self.delta, 4),
            "reason": self.reason,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConfidenceMovement":
        return cls(
            hypothesis_id=data["hypothesis_id"],
            previous=data["previous"],
            current=data["current"],
            reason=data.get("reason", ""),
            timestamp=data["timestamp"],
        )


@dataclass(frozen=True)
class WeeklyProgress:
    total_movement: float
    hypotheses_advanced: int
    threshold_crossings: int
    movements: List[ConfidenceMovement]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_movement": round(self.total_movement, 4),
            "hypotheses_advanced": self.hypotheses_advanced,
            "threshold_crossings": self.threshold_crossings,
            "movements": [m.to_dict() for m in self.movements],
        }


class ConfidenceHistory:

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_engine_config().paths.state_dir / HISTORY_FILENAME
        self._doc = JsonDocumentStore(self.path, "confidence_history", lambda: {"movements": []})

    def record(
        self,
        hypothesis_id: str,
        previous: float,
        current: float,
        reason: str,
        timestamp: Optional[str] = None,
    ) -> ConfidenceMovement:
        movement = ConfidenceMovement(
            hypothesis_id=hypothesis_id,
            previous=previous,
            current=current,
            reason=reason[:120],
            timestamp=timestamp or datetime.now(timezone.utc).isoformat(),
        )

        def _append(data: Dict) -> None:
            movements = data.setdefault("movements", [])
            movements.append(movement.to_dict())
            if len(movements) > MAX_HISTORY:
                del movements[:-MAX_HISTORY]

        self._doc.update(_append)
        return movement

    def all(self) -> List[ConfidenceMovement]:
        return [
            ConfidenceMovement.from_dict(m)
            for m in self._doc.read().data.get("movements", [])
        ]

    def weekly_progress(self, now: Optional[datetime] = None) -> WeeklyProgress:
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(days=7)

        week = [
            m for m in self.all()
            if parse_iso(m.timestamp) >= cutoff
        ]
        return WeeklyProgress(
            total_movement=sum(abs(m.delta) for m in week),
            hypotheses_advanced=len({
                m.hypothesis_id for m in week if abs(m.delta) >= MEANINGFUL_MOVE - 1e-9
            }),
            threshold_crossings=sum(
                1 for m in week if any(m.crosses(line) for line in CROSSING_LINES)
            ),
            movements=week,
        )


class LearningsLog:

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_engine_config().paths.state_dir / LEARNINGS_FILENAME
        self._doc = JsonDocumentStore(self.path, "learnings", lambda: {"learnings": []})

    def append(self, hypothesis: Hypothesis, conclusion: str) -> Dict[str, Any]:
        results = hypothesis.test_results
        learning = {
            "id": f"LEARN-{hypothesis.id}-{uuid.uuid4().hex[:6]}",
            "hypothesis_id": hypothesis.id,
            "verdict": hypothesis.status,
            "statement": hypothesis.statement,
            "conclusion": conclusion,
            "evidence_total": len(hypothesis.evidence),
            "evidence_supporting": len(hypothesis.supporting_evidence),
            "evidence_contradicting": len(hypothesis.contradicting_evidence),
            "final_confidence": hypothesis.confidence,
            "trades": results.trades,
            "win_rate": round(results.win_rate, 4),
            "pnl": results.pnl,
            "key_evidence": [e.observation[:150] for e in hypothesis.evidence[-3:]],
            "actionable": hypothesis.status == "validated",
            "created_at": hypothesis.updated_at,
        }

        def _append(data: Dict) -> None:
            data.setdefault("learnings", []).append(learning)

        self._doc.update(_append)
        logger.info(f"Learning logged for {hypothesis.id} ({hypothesis.status})")
        return learning

    def all(self) -> List[Dict[str, Any]]:
        return list(self._doc.read().data.get("learnings", []))
