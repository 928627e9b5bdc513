# =============================================================================
# POLYMARKET RESEARCH DESK - JSON DOCUMENT STORE
# =============================================================================
#
# One durable JSON document per concern (portfolio, hypotheses, handoffs, ...).
#
# WRITE RULES:
# - Every write replaces the WHOLE document (read-modify-write)
# - Writes go to a temp file in the same directory, then os.replace()
# - Every write bumps _metadata.version; a writer that read an older
#   version is rejected with ConcurrencyError instead of overwriting
#
# FILE FORMAT:
#   {
#     "_metadata": {"name": ..., "version": 7, "updated_at": "..."},
#     <payload keys>
#   }
#
# =============================================================================

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, TypeVar

from shared.exceptions import ConcurrencyError, PersistenceError, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")

METADATA_KEY = "_metadata"

# One lock per file path so that two store objects on the same file
# still serialise their writes inside this process.
_path_locks: Dict[str, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = str(path.resolve())
    with _path_locks_guard:
        if key not in _path_locks:
            _path_locks[key] = threading.RLock()
        return _path_locks[key]


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 timestamp. Naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def require_iso(value: Any, field_name: str) -> str:
    """
    Reject a timestamp that parse_iso() could not read back later.

    Raises:
        ValidationError: value is not an ISO-8601 string
    """
    if isinstance(value, str):
        try:
            parse_iso(value)
            return value
        except ValueError:
            pass
    raise ValidationError(f"invalid {field_name} {value!r}: expected an ISO-8601 timestamp")


@dataclass(frozen=True)
class StoredDocument:
    """Payload plus the version it was read at."""
    data: Dict[str, Any]
    version: int


class JsonDocumentStore:
    """
    Atomic, versioned JSON document.

    Readers get a private copy of the payload. Writers must hand back the
    version they read; compare_and_swap() refuses stale writes.
    """

    def __init__(
        self,
        path: Path,
        name: str,
        default_factory: Optional[Callable[[], Dict[str, Any]]] = None,
    ):
        self.path = Path(path)
        self.name = name
        self._default_factory = default_factory or dict
        self._lock = _lock_for(self.path)

    # -------------------------------------------------------------------------
    # Low-level file access
    # -------------------------------------------------------------------------

    def _read_raw(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(f"{self.name} document is corrupt: {e}") from e
        except OSError as e:
            raise PersistenceError(f"cannot read {self.name} document: {e}") from e
        if not isinstance(raw, dict):
            raise PersistenceError(f"{self.name} document is not a JSON object")
        return raw

    def _write_raw(self, raw: Dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(
                dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
            )
        except OSError as e:
            raise PersistenceError(f"cannot write {self.name} document: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(raw, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, str(self.path))
        except (OSError, TypeError, ValueError) as e:
            try:
                os.unlink(tmp)
            except OSError:
                pass
            raise PersistenceError(f"cannot write {self.name} document: {e}") from e

    @staticmethod
    def _version_of(raw: Optional[Dict[str, Any]]) -> int:
        if raw is None:
            return 0
        return int(raw.get(METADATA_KEY, {}).get("version", 0))

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> StoredDocument:
        """Read the payload. A missing file yields the default payload at version 0."""
        with self._lock:
            raw = self._read_raw()
        if raw is None:
            return StoredDocument(data=self._default_factory(), version=0)
        data = {k: v for k, v in raw.items() if k != METADATA_KEY}
        return StoredDocument(data=data, version=self._version_of(raw))

    def current_version(self) -> int:
        with self._lock:
            return self._version_of(self._read_raw())

    def compare_and_swap(self, data: Dict[str, Any], expected_version: int) -> int:
        """
        Replace the document if nobody wrote since expected_version.

        Returns:
            The new version number.

        Raises:
            ConcurrencyError: stored version differs from expected_version
            PersistenceError: the file could not be read or written
        """
        with self._lock:
            actual = self._version_of(self._read_raw())
            if actual != expected_version:
                logger.warning(
                    f"Rejected stale write to {self.name}: "
                    f"expected v{expected_version}, found v{actual}"
                )
                raise ConcurrencyError(self.name, expected_version, actual)

            new_version = actual + 1
            raw = {
                METADATA_KEY: {
                    "name": self.name,
                    "version": new_version,
                    "updated_at": utc_now_iso(),
                }
            }
            raw.update({k: v for k, v in data.items() if k != METADATA_KEY})
            self._write_raw(raw)
            logger.debug(f"Wrote {self.name} v{new_version}")
            return new_version

    def update(self, mutator: Callable[[Dict[str, Any]], T]) -> T:
        """
        Read, mutate in place, write back atomically.

        If the mutator raises, nothing is written.
        """
        doc = self.read()
        result = mutator(doc.data)
        self.compare_and_swap(doc.data, doc.version)
        return result

    def initialize(self, data: Dict[str, Any]) -> bool:
        """Write the initial document if none exists. Returns True if created."""
        with self._lock:
            if self.path.exists():
                return False
            self.compare_and_swap(data, 0)
            return True
