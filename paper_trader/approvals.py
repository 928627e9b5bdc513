# =============================================================================
# POLYMARKET RESEARCH DESK - PENDING TRADE APPROVALS
# =============================================================================
#
# Trades above the notify limit are never executed directly.
# They are parked here until a human approves or rejects them.
#
# LIFECYCLE:
#   pending -> approved -> executed
#   pending -> rejected
#
# Backed by state/approvals.json.
#
# =============================================================================

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from paper_trader.models import TradeParams, generate_approval_id
from shared.document_store import JsonDocumentStore, utc_now_iso
from shared.engine_config import get_engine_config
from shared.enums import ApprovalStatus
from shared.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

APPROVALS_FILENAME = "approvals.json"


@dataclass
class PendingApproval:
    id: str
    trade_params: TradeParams
    title: str
    status: str
    proposed_at: str
    decided_at: Optional[str] = None
    executed_at: Optional[str] = None
    trade_id: Optional[str] = None
    decision_note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "trade_params": self.trade_params.to_dict(),
            "title": self.title,
            "status": self.status,
            "proposed_at": self.proposed_at,
            "decided_at": self.decided_at,
            "executed_at": self.executed_at,
            "trade_id": self.trade_id,
            "decision_note": self.decision_note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PendingApproval":
        return cls(
            id=data["id"],
            trade_params=TradeParams.from_dict(data["trade_params"]),
            title=data.get("title", ""),
            status=data["status"],
            proposed_at=data["proposed_at"],
            decided_at=data.get("decided_at"),
            executed_at=data.get("executed_at"),
            trade_id=data.get("trade_id"),
            decision_note=data.get("decision_note"),
        )


class ApprovalStore:
    """CRUD over the approvals document. Keyed by approval id."""

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else (
            get_engine_config().paths.state_dir / APPROVALS_FILENAME
        )
        self._doc = JsonDocumentStore(self.path, "approvals", lambda: {"approvals": {}})

    def create(self, params: TradeParams) -> PendingApproval:
        approval = PendingApproval(
            id=generate_approval_id(),
            trade_params=params,
            title=f"{params.direction} {params.label} ${params.amount:,.2f} @ {params.price:.3f}",
            status=ApprovalStatus.PENDING.value,
            proposed_at=utc_now_iso(),
        )

        def _add(data: Dict[str, Any]) -> None:
            data.setdefault("approvals", {})[approval.id] = approval.to_dict()

        self._doc.update(_add)
        logger.info(f"Approval {approval.id} created: {approval.title}")
        return approval

    def get(self, approval_id: str) -> PendingApproval:
        raw = self._doc.read().data.get("approvals", {}).get(approval_id)
        if raw is None:
            raise NotFoundError("approval", approval_id)
        return PendingApproval.from_dict(raw)

    def list_by_status(self, status: Optional[str] = None) -> List[PendingApproval]:
        approvals = [
            PendingApproval.from_dict(raw)
            for raw in self._doc.read().data.get("approvals", {}).values()
        ]
        if status is not None:
            approvals = [a for a in approvals if a.status == status]
        return sorted(approvals, key=lambda a: a.proposed_at)

    def list_pending(self) -> List[PendingApproval]:
        return self.list_by_status(ApprovalStatus.PENDING.value)

    def _advance(
        self,
        approval_id: str,
        allowed_from: str,
        to_status: str,
        **fields: Any,
    ) -> PendingApproval:
        def _set(data: Dict[str, Any]) -> PendingApproval:
            raw = data.get("approvals", {}).get(approval_id)
            if raw is None:
                raise NotFoundError("approval", approval_id)
            if raw["status"] != allowed_from:
                raise ValidationError(
                    f"approval is {raw['status']}, expected {allowed_from}",
                    approval_id,
                )
            raw["status"] = to_status
            raw.update(fields)
            return PendingApproval.from_dict(raw)

        approval = self._doc.update(_set)
        logger.info(f"Approval {approval_id}: {allowed_from} -> {to_status}")
        return approval

    def approve(self, approval_id: str, note: Optional[str] = None) -> PendingApproval:
        return self._advance(
            approval_id,
            ApprovalStatus.PENDING.value,
            ApprovalStatus.APPROVED.value,
            decided_at=utc_now_iso(),
            decision_note=note,
        )

    def reject(self, approval_id: str, note: Optional[str] = None) -> PendingApproval:
        return self._advance(
            approval_id,
            ApprovalStatus.PENDING.value,
            ApprovalStatus.REJECTED.value,
            decided_at=utc_now_iso(),
            decision_note=note,
        )

    def mark_executed(self, approval_id: str, trade_id: str) -> PendingApproval:
        return self._advance(
            approval_id,
            ApprovalStatus.APPROVED.value,
            ApprovalStatus.EXECUTED.value,
            executed_at=utc_now_iso(),
            trade_id=trade_id,
        )


@dataclass(frozen=True)
class ApprovalResult:
    """Outcome of an approve/reject decision."""
    success: bool
    approval: Optional[PendingApproval] = None
    error: Optional[str] = None
    error_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": self.success}
        if self.approval is not None:
            payload["approval"] = self.approval.to_dict()
        if self.error is not None:
            payload["error"] = self.error
            payload["error_type"] = self.error_type
        return payload
