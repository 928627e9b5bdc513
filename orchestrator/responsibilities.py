# =============================================================================
# POLYMARKET RESEARCH DESK - STANDING RESPONSIBILITIES
# =============================================================================
#
# Recurring duties per role, run when no priority signal is urgent enough
# to take over the tick (state/responsibilities.json):
#
#   {
#     "trade-research": {
#       "check-exit-triggers": {"frequency": "30m", "last_run": null},
#       ...
#     }
#   }
#
# Frequencies: <n>m | <n>h | <n>d. A responsibility that never ran is due.
# The most overdue responsibility is served first.
#
# =============================================================================

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from shared.document_store import JsonDocumentStore, parse_iso
from shared.engine_config import get_engine_config
from shared.enums import Role
from shared.exceptions import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

RESPONSIBILITIES_FILENAME = "responsibilities.json"

FREQUENCY_PATTERN = re.compile(r"^(\d+)(m|h|d)$")
FREQUENCY_UNITS = {"m": "minutes", "h": "hours", "d": "days"}

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DEFAULT_RESPONSIBILITIES: Dict[str, Dict[str, str]] = {
    Role.TRADE_RESEARCH.value: {
        "check-exit-triggers": "30m",
        "review-hypotheses": "4h",
        "process-handoffs": "4h",
        "weekly-review": "7d",
    },
    Role.AGENT_ENGINEER.value: {
        "process-handoffs": "4h",
        "health-check": "24h",
    },
}


def parse_frequency(frequency: str) -> timedelta:
    """
    "30m" -> 30 minutes, "4h" -> 4 hours, "7d" -> 7 days.

    Raises:
        ValidationError: anything else
    """
    match = FREQUENCY_PATTERN.match(frequency or "")
    if not match:
        raise ValidationError(f"invalid frequency {frequency!r}, expected e.g. 30m, 4h, 7d")
    value, unit = int(match.group(1)), match.group(2)
    return timedelta(**{FREQUENCY_UNITS[unit]: value})


@dataclass(frozen=True)
class DueResponsibility:
    role: str
    name: str
    frequency: str
    last_run: Optional[str]
    overdue_by: timedelta

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "name": self.name,
            "frequency": self.frequency,
            "last_run": self.last_run,
            "overdue_minutes": round(self.overdue_by.total_seconds() / 60.0, 1),
        }


def _default_document() -> Dict[str, Any]:
    return {
        role: {name: {"frequency": freq, "last_run": None} for name, freq in duties.items()}
        for role, duties in DEFAULT_RESPONSIBILITIES.items()
    }


class ResponsibilitySchedule:

    def __init__(self, path: Optional[Path] = None):
        self.path = (
            Path(path) if path
            else get_engine_config().paths.state_dir / RESPONSIBILITIES_FILENAME
        )
        self._doc = JsonDocumentStore(self.path, "responsibilities", _default_document)

    def _entries(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        data = self._doc.read().data
        return {
            role: duties for role, duties in data.items()
            if role in {r.value for r in Role} and isinstance(duties, dict)
        }

    @staticmethod
    def _next_due(entry: Dict[str, Any]) -> datetime:
        last_run = entry.get("last_run")
        start = parse_iso(last_run) if last_run else EPOCH
        return start + parse_frequency(entry["frequency"])

    def _due(self, role: str, duties: Dict[str, Dict[str, Any]], now: datetime) -> List[DueResponsibility]:
        due = []
        for name, entry in duties.items():
            next_due = self._next_due(entry)
            if now >= next_due:
                due.append(DueResponsibility(
                    role=role,
                    name=name,
                    frequency=entry["frequency"],
                    last_run=entry.get("last_run"),
                    overdue_by=now - next_due,
                ))
        return due

    def get_due_for(self, role: str, now: Optional[datetime] = None) -> List[DueResponsibility]:
        """Due responsibilities of one role, most overdue first."""
        now = now or datetime.now(timezone.utc)
        duties = self._entries().get(role, {})
        return sorted(self._due(role, duties, now), key=lambda d: d.overdue_by, reverse=True)

    def get_next_due(self, now: Optional[datetime] = None) -> Optional[DueResponsibility]:
        """The single most overdue responsibility across roles, or None."""
        now = now or datetime.now(timezone.utc)
        due = []
        for role, duties in self._entries().items():
            due.extend(self._due(role, duties, now))
        if not due:
            return None
        return max(due, key=lambda d: d.overdue_by)

    def mark_run(self, role: str, name: str, now: Optional[datetime] = None) -> None:
        """
        Raises:
            NotFoundError: no such responsibility for role
        """
        stamp = (now or datetime.now(timezone.utc)).isoformat()

        def _stamp(data: Dict) -> None:
            entry = data.get(role, {}).get(name)
            if entry is None:
                raise NotFoundError("responsibility", f"{role}/{name}")
            entry["last_run"] = stamp

        self._doc.update(_stamp)
        logger.info(f"Responsibility {role}/{name} ran at {stamp}")

    def set_frequency(self, role: str, name: str, frequency: str) -> None:
        """Add or reschedule a responsibility."""
        if role not in {r.value for r in Role}:
            raise ValidationError(f"unknown role {role!r}")
        parse_frequency(frequency)

        def _set(data: Dict) -> None:
            duties = data.setdefault(role, {})
            entry = duties.setdefault(name, {"frequency": frequency, "last_run": None})
            entry["frequency"] = frequency

        self._doc.update(_set)

    def get_status(self, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        now = now or datetime.now(timezone.utc)
        status = []
        for role, duties in self._entries().items():
            for name, entry in duties.items():
                next_due = self._next_due(entry)
                status.append({
                    "role": role,
                    "name": name,
                    "frequency": entry["frequency"],
                    "last_run": entry.get("last_run"),
                    "next_due": next_due.isoformat(),
                    "is_due": now >= next_due,
                })
        return status
