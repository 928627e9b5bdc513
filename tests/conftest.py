"""Global test fixtures: every store lives under tmp_path, singletons reset."""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from notifications.gateway import LoggingGateway
from orchestrator.engine import build_engine
from shared.engine_config import EngineConfig, reset_engine_config


@pytest.fixture(autouse=True)
def reset_singletons(tmp_path, monkeypatch):
    """Keep the global config away from the real state directory."""
    monkeypatch.setenv("ENGINE_STATE_DIR", str(tmp_path / "state"))
    monkeypatch.setenv("ENGINE_LOGS_DIR", str(tmp_path / "logs"))
    reset_engine_config()
    yield
    reset_engine_config()


@pytest.fixture
def config(tmp_path):
    return EngineConfig().with_paths(tmp_path / "state", tmp_path / "logs")


@pytest.fixture
def gateway():
    return LoggingGateway()


@pytest.fixture
def engine(config, gateway):
    return build_engine(config, gateway=gateway, audit=False)


@pytest.fixture
def executor(engine):
    return engine.executor


@pytest.fixture
def lifecycle(engine):
    return engine.lifecycle


@pytest.fixture
def handoffs(engine):
    return engine.handoffs


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


# =============================================================================
# BUILDERS
# =============================================================================


@pytest.fixture
def make_hypothesis(lifecycle):
    """
    Create a hypothesis and force it into a given shape.

    Forced fields are written straight to the store, bypassing the state
    machine, so tests can start from any status.
    """
    def _make(statement="Favourites under 10c are overpriced", status=None,
              confidence=None, updated_at=None, **fields):
        result = lifecycle.create_hypothesis(
            statement,
            rationale="test",
            test_method="paper trade",
            entry_rules="buy NO under 10c",
            exit_rules="take profit at 50%",
        )
        assert result.success, result.error

        def _force(h):
            if status is not None:
                h.status = status
            if confidence is not None:
                h.confidence = confidence
            if updated_at is not None:
                h.updated_at = updated_at
            for name, value in fields.items():
                setattr(h, name, value)

        lifecycle.store.mutate(result.hypothesis.id, _force)
        return lifecycle.get(result.hypothesis.id)

    return _make


@pytest.fixture
def validated_hypothesis(lifecycle, make_hypothesis):
    """Testing hypothesis with a passing backtest, so any size may trade."""
    h = make_hypothesis(status="testing", confidence=0.6)
    assert lifecycle.attach_backtest(h.id, sample_size=20, win_rate=0.6).success
    return lifecycle.get(h.id)
