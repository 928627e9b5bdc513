# =============================================================================
# POLYMARKET RESEARCH DESK - ENGINE EXCEPTIONS
# =============================================================================
#
# EXCEPTION HIERARCHY:
#
# EngineError (base)
# ├── ValidationError    - risk limit or precondition violated, nothing written
# ├── TransitionError    - illegal hypothesis state change requested
# ├── NotFoundError      - referenced id does not exist
# ├── ConcurrencyError   - stale read detected at write time, re-read and retry
# ├── PersistenceError   - store unavailable, aborts the current operation
# └── ConfigError        - engine.yaml unreadable or malformed
#
# Services raise these internally and convert them into result objects at
# their public boundary. PersistenceError is the only one that propagates.
#
# =============================================================================

from typing import Optional


class EngineError(Exception):
    """Base class for all decision engine errors."""

    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.message = message
        self.entity_id = entity_id
        super().__init__(message)

    @property
    def error_type(self) -> str:
        """Name used in structured result payloads."""
        return type(self).__name__

    def __str__(self) -> str:
        if self.entity_id:
            return f"[{self.entity_id}] {self.message}"
        return self.message


class ValidationError(EngineError):
    """A risk limit or precondition was violated. Always recoverable."""


class TransitionError(EngineError):
    """An illegal state change was requested."""

    def __init__(
        self,
        message: str,
        entity_id: Optional[str] = None,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
    ):
        super().__init__(message, entity_id)
        self.from_status = from_status
        self.to_status = to_status


class NotFoundError(EngineError):
    """A referenced id does not exist."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found", entity_id)
        self.kind = kind


class ConcurrencyError(EngineError):
    """
    The stored document changed between read and write.

    The caller must re-read and retry; nothing was written.
    """

    def __init__(self, document: str, expected_version: int, actual_version: int):
        super().__init__(
            f"stale write to {document}: expected version {expected_version}, "
            f"found {actual_version}"
        )
        self.document = document
        self.expected_version = expected_version
        self.actual_version = actual_version


class PersistenceError(EngineError):
    """The underlying store is unavailable. Fatal for the current operation."""


class ConfigError(EngineError):
    """The engine configuration could not be loaded."""
