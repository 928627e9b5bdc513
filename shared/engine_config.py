# =============================================================================
# POLYMARKET RESEARCH DESK - ENGINE CONFIGURATION
# =============================================================================
#
# Central configuration for the decision engine.
# Reads config/engine.yaml and exposes typed, frozen sections.
#
# USAGE:
#   from shared.engine_config import get_engine_config
#
#   config = get_engine_config()
#   config.risk.max_concurrent_positions   # 10
#
# Missing file   -> built-in defaults (logged)
# Malformed file -> ConfigError
#
# =============================================================================

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from shared.exceptions import ConfigError

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).parent.parent
CONFIG_PATH = BASE_DIR / "config" / "engine.yaml"

STATE_DIR_ENV = "ENGINE_STATE_DIR"
LOGS_DIR_ENV = "ENGINE_LOGS_DIR"


@dataclass(frozen=True)
class RiskLimits:
    starting_capital: float = 10000.0
    max_single_market_pct: float = 0.20
    max_concurrent_positions: int = 10
    min_cash_reserve_pct: float = 0.20
    min_trade_size: float = 5.0
    max_trade_size: float = 2000.0


@dataclass(frozen=True)
class ApprovalTiers:
    """Upper bounds are inclusive: amount <= auto_approve_limit is AUTO."""
    auto_approve_limit: float = 50.0
    notify_limit: float = 200.0


@dataclass(frozen=True)
class HypothesisThresholds:
    validation_confidence: float = 0.55
    invalidation_confidence: float = 0.35
    validation_win_rate: float = 0.50
    invalidation_win_rate: float = 0.40
    auto_validate_confidence: float = 0.70
    auto_invalidate_confidence: float = 0.30
    default_min_sample_size: int = 5
    default_confidence: float = 0.50
    max_evidence_impact: float = 0.5
    trade_validation_min_evidence: int = 5
    trade_validation_min_confidence: float = 0.55
    backtest_min_samples: int = 10
    backtest_min_win_rate: float = 0.45
    idle_decision_hours: float = 48.0


@dataclass(frozen=True)
class SelectionWeights:
    confidence: float = 0.35
    evidence: float = 0.25
    time: float = 0.20
    status: float = 0.20
    closing_soon_hours: float = 24.0
    closing_window_hours: float = 72.0
    evidence_recency_days: float = 7.0
    top_n: int = 5


@dataclass(frozen=True)
class OrchestratorThresholds:
    position_loss_pct: float = -0.15
    near_stop_loss_pct: float = 0.10
    market_closing_hours: float = 24.0
    stuck_hypothesis_hours: float = 48.0
    dispatch_urgency: int = 70


@dataclass(frozen=True)
class PathsConfig:
    state_dir: Path = BASE_DIR / "state"
    logs_dir: Path = BASE_DIR / "logs"


@dataclass(frozen=True)
class EngineConfig:
    risk: RiskLimits = field(default_factory=RiskLimits)
    tiers: ApprovalTiers = field(default_factory=ApprovalTiers)
    hypothesis: HypothesisThresholds = field(default_factory=HypothesisThresholds)
    selection: SelectionWeights = field(default_factory=SelectionWeights)
    orchestrator: OrchestratorThresholds = field(default_factory=OrchestratorThresholds)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def with_paths(self, state_dir: Path, logs_dir: Optional[Path] = None) -> "EngineConfig":
        """Copy of this config rooted at another state directory."""
        return replace(
            self,
            paths=PathsConfig(
                state_dir=Path(state_dir),
                logs_dir=Path(logs_dir) if logs_dir else Path(state_dir) / "logs",
            ),
        )


# =============================================================================
# LOADING
# =============================================================================

def _build_section(cls, raw: Any, section: str):
    """Build a frozen section dataclass, ignoring unknown keys with a warning."""
    if raw is None:
        return cls()
    if not isinstance(raw, dict):
        raise ConfigError(f"section '{section}' must be a mapping")

    known = {f.name: f for f in fields(cls)}
    kwargs: Dict[str, Any] = {}
    for key, value in raw.items():
        if key not in known:
            logger.warning(f"Unknown config key {section}.{key} ignored")
            continue
        default = getattr(cls(), key)
        try:
            if isinstance(default, bool):
                kwargs[key] = bool(value)
            elif isinstance(default, int):
                kwargs[key] = int(value)
            elif isinstance(default, float):
                kwargs[key] = float(value)
            else:
                kwargs[key] = value
        except (TypeError, ValueError) as e:
            raise ConfigError(f"invalid value for {section}.{key}: {value!r}") from e
    return cls(**kwargs)


def _resolve_path(value: Optional[str], default: Path) -> Path:
    if not value:
        return default
    path = Path(value)
    return path if path.is_absolute() else BASE_DIR / path


def _build_paths(raw: Any) -> PathsConfig:
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigError("section 'paths' must be a mapping")
    defaults = PathsConfig()
    state_dir = _resolve_path(
        os.getenv(STATE_DIR_ENV) or raw.get("state_dir"), defaults.state_dir
    )
    logs_dir = _resolve_path(
        os.getenv(LOGS_DIR_ENV) or raw.get("logs_dir"), defaults.logs_dir
    )
    return PathsConfig(state_dir=state_dir, logs_dir=logs_dir)


def load_engine_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load the engine configuration from YAML.

    Args:
        config_path: Path to engine.yaml. Defaults to config/engine.yaml

    Raises:
        ConfigError: file exists but cannot be parsed
    """
    path = Path(config_path) if config_path else CONFIG_PATH

    if not path.exists():
        logger.warning(f"Config file not found: {path}, using defaults")
        return EngineConfig(paths=_build_paths(None))

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"cannot parse {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at top level")

    config = EngineConfig(
        risk=_build_section(RiskLimits, raw.get("risk"), "risk"),
        tiers=_build_section(ApprovalTiers, raw.get("approval_tiers"), "approval_tiers"),
        hypothesis=_build_section(HypothesisThresholds, raw.get("hypothesis"), "hypothesis"),
        selection=_build_section(SelectionWeights, raw.get("selection"), "selection"),
        orchestrator=_build_section(
            OrchestratorThresholds, raw.get("orchestrator"), "orchestrator"
        ),
        paths=_build_paths(raw.get("paths")),
    )

    if config.tiers.auto_approve_limit > config.tiers.notify_limit:
        raise ConfigError("approval_tiers.auto_approve_limit must not exceed notify_limit")
    if config.risk.min_trade_size > config.risk.max_trade_size:
        raise ConfigError("risk.min_trade_size must not exceed max_trade_size")

    logger.info(f"Engine config loaded from {path}")
    return config


_engine_config: Optional[EngineConfig] = None


def get_engine_config() -> EngineConfig:
    """Get the global engine configuration."""
    global _engine_config
    if _engine_config is None:
        _engine_config = load_engine_config()
    return _engine_config


def reset_engine_config() -> None:
    """Drop the cached configuration (tests, reloads)."""
    global _engine_config
    _engine_config = None
