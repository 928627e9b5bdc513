# =============================================================================
# POLYMARKET RESEARCH DESK - HYPOTHESIS STORE
# =============================================================================
#
# state/hypotheses.json:
#   {"hypotheses": {"HYP-...": {...}, ...}}
#
# Keyed by id. Whole-document atomic writes through JsonDocumentStore.
#
# =============================================================================

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, TypeVar

from hypotheses.models import Hypothesis
from shared.document_store import JsonDocumentStore
from shared.engine_config import get_engine_config
from shared.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HYPOTHESES_FILENAME = "hypotheses.json"


class HypothesisStore:

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else (
            get_engine_config().paths.state_dir / HYPOTHESES_FILENAME
        )
        self._doc = JsonDocumentStore(self.path, "hypotheses", lambda: {"hypotheses": {}})

    def get(self, hypothesis_id: str) -> Hypothesis:
        raw = self._doc.read().data.get("hypotheses", {}).get(hypothesis_id)
        if raw is None:
            raise NotFoundError("hypothesis", hypothesis_id)
        return Hypothesis.from_dict(raw)

    def find(self, hypothesis_id: str) -> Optional[Hypothesis]:
        raw = self._doc.read().data.get("hypotheses", {}).get(hypothesis_id)
        return Hypothesis.from_dict(raw) if raw else None

    def list_all(self, status: Optional[str] = None) -> List[Hypothesis]:
        """All hypotheses in creation order, optionally filtered by status."""
        hypotheses = [
            Hypothesis.from_dict(raw)
            for raw in self._doc.read().data.get("hypotheses", {}).values()
        ]
        if status is not None:
            hypotheses = [h for h in hypotheses if h.status == status]
        return sorted(hypotheses, key=lambda h: h.created_at)

    def add(self, hypothesis: Hypothesis) -> None:
        def _add(data: Dict) -> None:
            bucket = data.setdefault("hypotheses", {})
            if hypothesis.id in bucket:
                raise ValidationError(f"hypothesis {hypothesis.id} already exists", hypothesis.id)
            bucket[hypothesis.id] = hypothesis.to_dict()

        self._doc.update(_add)

    def mutate(self, hypothesis_id: str, mutator: Callable[[Hypothesis], T]) -> T:
        """
        Load one hypothesis, apply mutator, write the document back.

        Nothing is written if the mutator raises.
        """
        def _apply(data: Dict) -> T:
            bucket = data.setdefault("hypotheses", {})
            raw = bucket.get(hypothesis_id)
            if raw is None:
                raise NotFoundError("hypothesis", hypothesis_id)
            hypothesis = Hypothesis.from_dict(raw)
            result = mutator(hypothesis)
            bucket[hypothesis_id] = hypothesis.to_dict()
            return result

        return self._doc.update(_apply)
