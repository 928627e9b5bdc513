# =============================================================================
# POLYMARKET RESEARCH DESK - SHARED MODULE
# =============================================================================
#
# Shared building blocks. No business logic lives here.
#
# CONTENTS:
# - Enums (shared type definitions)
# - Exceptions (engine error taxonomy)
# - Document store (atomic, versioned JSON documents)
# - Engine configuration and logging
#
# =============================================================================

from .engine_config import EngineConfig, get_engine_config, reset_engine_config
from .exceptions import (
    ConcurrencyError,
    ConfigError,
    EngineError,
    NotFoundError,
    PersistenceError,
    TransitionError,
    ValidationError,
)
from .logging_config import AuditLogger, setup_logging

__all__ = [
    "EngineConfig",
    "get_engine_config",
    "reset_engine_config",
    "ConcurrencyError",
    "ConfigError",
    "EngineError",
    "NotFoundError",
    "PersistenceError",
    "TransitionError",
    "ValidationError",
    "AuditLogger",
    "setup_logging",
]
