# =============================================================================
# POLYMARKET RESEARCH DESK - HANDOFF MODEL
# =============================================================================
#
# A handoff is an asynchronous work request between the two operating roles:
#
#   trade-research  -> agent-engineer   build_capability, fix_issue
#   agent-engineer  -> trade-research   analysis_request
#
# Status only moves forward: pending -> in_progress -> done.
# Only the addressed role (`to_role`) may advance it.
#
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid


@dataclass
class Handoff:
    id: str
    from_role: str
    to_role: str
    type: str
    priority: str
    status: str
    context: Dict[str, Any] = field(default_factory=dict)
    created_at: str = ""
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    result: Optional[Any] = None

    @property
    def description(self) -> str:
        for key in ("description", "capability_needed", "question"):
            value = self.context.get(key)
            if value:
                return str(value)
        return "no description"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.from_role,
            "to": self.to_role,
            "type": self.type,
            "priority": self.priority,
            "status": self.status,
            "context": self.context,
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "result": self.result,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Handoff":
        return cls(
            id=data["id"],
            from_role=data["from"],
            to_role=data["to"],
            type=data["type"],
            priority=data["priority"],
            status=data["status"],
            context=data.get("context") or {},
            created_at=data.get("created_at", ""),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            result=data.get("result"),
        )


@dataclass(frozen=True)
class HandoffResult:
    success: bool
    handoff: Optional[Handoff] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.handoff is not None:
            payload["handoff"] = self.handoff.to_dict()
        if self.error is not None:
            payload["error"] = self.error
            payload["error_type"] = self.error_type
        return payload


def generate_handoff_id() -> str:
    """Format: HANDOFF-{date}-{short_uuid}"""
    date_part = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"HANDOFF-{date_part}-{uuid.uuid4().hex[:8]}"
