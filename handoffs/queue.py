# =============================================================================
# POLYMARKET RESEARCH DESK - HANDOFF QUEUE
# =============================================================================
#
# Durable queue of cross-role work requests (state/handoffs.json).
#
#   {"handoffs": [ {...}, {...} ]}     insertion order = creation order
#
# Pending handoffs for a role are served by priority
# (critical > high > medium > low), then oldest first.
#
# =============================================================================

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from handoffs.models import Handoff, HandoffResult, generate_handoff_id
from shared.document_store import JsonDocumentStore
from shared.engine_config import get_engine_config
from shared.enums import (
    HandoffPriority,
    HandoffStatus,
    HandoffType,
    PRIORITY_RANK,
    Role,
)
from shared.exceptions import EngineError, NotFoundError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

HANDOFFS_FILENAME = "handoffs.json"
DEFAULT_KEEP_DONE = 50
DEDUPE_KEY = "dedupe_key"

ROLES = frozenset(r.value for r in Role)
TYPES = frozenset(t.value for t in HandoffType)
PRIORITIES = frozenset(p.value for p in HandoffPriority)

PENDING = HandoffStatus.PENDING.value
IN_PROGRESS = HandoffStatus.IN_PROGRESS.value
DONE = HandoffStatus.DONE.value


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HandoffQueue:

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else get_engine_config().paths.state_dir / HANDOFFS_FILENAME
        self._doc = JsonDocumentStore(self.path, "handoffs", lambda: {"handoffs": []})

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def all(self) -> List[Handoff]:
        return [Handoff.from_dict(h) for h in self._doc.read().data.get("handoffs", [])]

    def find(self, handoff_id: str) -> Optional[Handoff]:
        for handoff in self.all():
            if handoff.id == handoff_id:
                return handoff
        return None

    def get(self, handoff_id: str) -> Handoff:
        handoff = self.find(handoff_id)
        if handoff is None:
            raise NotFoundError("handoff", handoff_id)
        return handoff

    def _find_open(self, dedupe_key: str) -> Optional[Handoff]:
        for handoff in self.all():
            if handoff.status != DONE and handoff.context.get(DEDUPE_KEY) == dedupe_key:
                return handoff
        return None

    def get_pending(self, role: str) -> List[Handoff]:
        """Pending handoffs addressed to role, most urgent first."""
        if role not in ROLES:
            raise ValidationError(f"unknown role {role!r}, expected one of {sorted(ROLES)}")
        pending = [h for h in self.all() if h.to_role == role and h.status == PENDING]
        return sorted(pending, key=lambda h: (PRIORITY_RANK[h.priority], h.created_at))

    def get_summary(self) -> Dict[str, Any]:
        handoffs = self.all()
        by_status = {s.value: 0 for s in HandoffStatus}
        for h in handoffs:
            by_status[h.status] = by_status.get(h.status, 0) + 1
        pending_by_role = {
            role: len([h for h in handoffs if h.to_role == role and h.status == PENDING])
            for role in sorted(ROLES)
        }
        return {
            "total": len(handoffs),
            "by_status": by_status,
            "pending_by_role": pending_by_role,
            "in_progress": [
                {"id": h.id, "type": h.type, "to": h.to_role, "description": h.description[:60]}
                for h in handoffs if h.status == IN_PROGRESS
            ],
        }

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_handoff(
        self,
        from_role: str,
        to_role: str,
        handoff_type: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = HandoffPriority.MEDIUM.value,
        dedupe_key: Optional[str] = None,
    ) -> Handoff:
        """
        Args:
            dedupe_key: When set and an open handoff carries the same key,
                        that handoff is returned and nothing is written.

        Raises:
            ValidationError: unknown role, type or priority, or from == to
        """
        if from_role not in ROLES or to_role not in ROLES:
            raise ValidationError(f"unknown role in {from_role!r} -> {to_role!r}")
        if from_role == to_role:
            raise ValidationError(f"handoff must go to the other role, got {from_role} -> {to_role}")
        if handoff_type not in TYPES:
            raise ValidationError(f"unknown handoff type {handoff_type!r}")
        if priority not in PRIORITIES:
            raise ValidationError(f"unknown priority {priority!r}")

        handoff = Handoff(
            id=generate_handoff_id(),
            from_role=from_role,
            to_role=to_role,
            type=handoff_type,
            priority=priority,
            status=PENDING,
            context=dict(context or {}),
            created_at=_now_iso(),
        )
        if dedupe_key is not None:
            handoff.context[DEDUPE_KEY] = dedupe_key

        existing = self._find_open(dedupe_key) if dedupe_key is not None else None
        if existing is not None:
            logger.debug(f"Handoff {existing.id} already open for {dedupe_key}")
            return existing

        def _append(data: Dict) -> None:
            data.setdefault("handoffs", []).append(handoff.to_dict())

        self._doc.update(_append)
        logger.info(
            f"Handoff {handoff.id} [{priority}] {from_role} -> {to_role}: "
            f"{handoff_type} ({handoff.description[:60]})"
        )
        return handoff

    def _advance(self, handoff_id: str, role: str, allowed_from: frozenset, **fields: Any) -> Handoff:
        target = fields["status"]

        def _set(data: Dict) -> Handoff:
            for raw in data.get("handoffs", []):
                if raw["id"] != handoff_id:
                    continue
                if raw["to"] != role:
                    raise ValidationError(
                        f"handoff is addressed to {raw['to']}, not {role}", handoff_id
                    )
                if raw["status"] not in allowed_from:
                    raise ValidationError(
                        f"handoff is {raw['status']}, cannot move to {target}", handoff_id
                    )
                raw.update(fields)
                return Handoff.from_dict(raw)
            raise NotFoundError("handoff", handoff_id)

        handoff = self._doc.update(_set)
        logger.info(f"Handoff {handoff_id} -> {target} by {role}")
        return handoff

    def start_handoff(self, handoff_id: str, role: str) -> HandoffResult:
        try:
            handoff = self._advance(
                handoff_id, role, frozenset({PENDING}),
                status=IN_PROGRESS, started_at=_now_iso(),
            )
        except PersistenceError:
            raise
        except EngineError as e:
            return HandoffResult(success=False, error=e.message, error_type=e.error_type)
        return HandoffResult(success=True, handoff=handoff)

    def complete_handoff(self, handoff_id: str, role: str, result: Any = None) -> HandoffResult:
        try:
            handoff = self._advance(
                handoff_id, role, frozenset({PENDING, IN_PROGRESS}),
                status=DONE, completed_at=_now_iso(), result=result,
            )
        except PersistenceError:
            raise
        except EngineError as e:
            return HandoffResult(success=False, error=e.message, error_type=e.error_type)
        return HandoffResult(success=True, handoff=handoff)

    def cleanup(self, keep: int = DEFAULT_KEEP_DONE) -> int:
        """Drop the oldest done handoffs beyond `keep`. Returns how many were removed."""
        def _trim(data: Dict) -> int:
            handoffs = data.get("handoffs", [])
            done = sorted(
                (h for h in handoffs if h["status"] == DONE),
                key=lambda h: h.get("completed_at") or h.get("created_at", ""),
                reverse=True,
            )
            keep_ids = {h["id"] for h in done[:keep]}
            kept = [h for h in handoffs if h["status"] != DONE or h["id"] in keep_ids]
            removed = len(handoffs) - len(kept)
            data["handoffs"] = kept
            return removed

        removed = self._doc.update(_trim)
        if removed:
            logger.info(f"Removed {removed} old handoff(s)")
        return removed

    # -------------------------------------------------------------------------
    # Common patterns
    # -------------------------------------------------------------------------

    def request_capability(
        self,
        description: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = HandoffPriority.MEDIUM.value,
        dedupe_key: Optional[str] = None,
    ) -> Handoff:
        """Trade research is blocked and needs infrastructure."""
        return self.create_handoff(
            Role.TRADE_RESEARCH.value,
            Role.AGENT_ENGINEER.value,
            HandoffType.BUILD_CAPABILITY.value,
            {"description": description, **(context or {})},
            priority,
            dedupe_key=dedupe_key,
        )

    def request_analysis(
        self,
        question: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = HandoffPriority.MEDIUM.value,
    ) -> Handoff:
        """The agent engineer needs trading insight."""
        return self.create_handoff(
            Role.AGENT_ENGINEER.value,
            Role.TRADE_RESEARCH.value,
            HandoffType.ANALYSIS_REQUEST.value,
            {"question": question, **(context or {})},
            priority,
        )

    def report_issue(
        self,
        description: str,
        context: Optional[Dict[str, Any]] = None,
        priority: str = HandoffPriority.MEDIUM.value,
    ) -> Handoff:
        return self.create_handoff(
            Role.TRADE_RESEARCH.value,
            Role.AGENT_ENGINEER.value,
            HandoffType.FIX_ISSUE.value,
            {"description": description, **(context or {})},
            priority,
        )
