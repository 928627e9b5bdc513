# =============================================================================
# POLYMARKET RESEARCH DESK - LOGGING CONFIGURATION
# =============================================================================
#
# Operational logs go to logs/<component>/<component>_<timestamp>.log
# Audit records go to logs/audit/audit_<component>_<date>.jsonl
#
# Audit records are JSON lines with a SHA-256 hash of their details so that
# trade and transition history can be traced independently of the state files.
#
# =============================================================================

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _default_logs_dir() -> Path:
    # Imported lazily so that logging can be set up before config errors surface
    from shared.engine_config import get_engine_config
    return get_engine_config().paths.logs_dir


# =============================================================================
# LOGGING SETUP
# =============================================================================

def setup_logging(
    component: str = "engine",
    level: int = logging.INFO,
    console_output: bool = True,
    file_output: bool = True,
    logs_dir: Optional[Path] = None,
) -> Optional[Path]:
    """
    Configure the root logger for one component (engine, cli, scheduler).

    Args:
        component: Name used for the log sub-directory and file name
        level: Logging level
        console_output: Whether to log to console
        file_output: Whether to log to file
        logs_dir: Base directory for log files. Defaults to config paths.logs_dir

    Returns:
        Path of the log file, or None when file output is disabled
    """
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers to avoid duplicates
    root.handlers.clear()

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root.addHandler(console_handler)

    log_file = None
    if file_output:
        log_dir = Path(logs_dir or _default_logs_dir()) / component
        log_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{component}_{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    logging.getLogger(__name__).info(f"Logging initialized for {component}")
    if log_file:
        logging.getLogger(__name__).info(f"Log file: {log_file}")
    return log_file


# =============================================================================
# AUDIT LOGGING
# =============================================================================

class AuditLogger:
    """
    Append-only JSON-lines audit log for one component.

    Audit records:
    - are always written to file
    - carry the full event details
    - include a hash of the details for traceability
    """

    def __init__(self, component: str, logs_dir: Optional[Path] = None):
        self.component = component
        self.audit_dir = Path(logs_dir or _default_logs_dir()) / "audit"
        self.audit_dir.mkdir(parents=True, exist_ok=True)

        date_part = datetime.now().strftime("%Y%m%d")
        self.audit_file = self.audit_dir / f"audit_{component}_{date_part}.jsonl"

        self.logger = logging.getLogger(f"audit.{component}")
        self.logger.setLevel(logging.INFO)
        self.logger.propagate = False
        self.logger.handlers.clear()

        handler = logging.FileHandler(self.audit_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)

    @staticmethod
    def compute_hash(data: Dict[str, Any]) -> str:
        """SHA-256 of the deterministic JSON serialisation of data."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
        return hashlib.sha256(serialized.encode("utf-8")).hexdigest()

    def log_event(self, event_type: str, details: Dict[str, Any]) -> None:
        """
        Log an audit event.

        Args:
            event_type: e.g. TRADE_ENTRY, HYPOTHESIS_TRANSITION
            details: Event details
        """
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": self.component,
            "event": event_type,
            "details": details,
            "details_hash": self.compute_hash(details),
        }
        self.logger.info(json.dumps(record, ensure_ascii=False, default=str))

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
