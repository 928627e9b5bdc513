# =============================================================================
# TESTS FOR ENGINE CONFIGURATION
# =============================================================================

import pytest

from shared import engine_config
from shared.engine_config import (
    CONFIG_PATH,
    EngineConfig,
    get_engine_config,
    load_engine_config,
    reset_engine_config,
)
from shared.exceptions import ConfigError


class TestLoadEngineConfig:

    def test_shipped_yaml_matches_defaults(self):
        config = load_engine_config(CONFIG_PATH)
        defaults = EngineConfig()
        assert config.risk == defaults.risk
        assert config.tiers == defaults.tiers
        assert config.hypothesis == defaults.hypothesis
        assert config.orchestrator == defaults.orchestrator

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_engine_config(tmp_path / "nope.yaml")
        assert config.risk.starting_capital == 10000.0
        assert config.tiers.auto_approve_limit == 50.0

    def test_partial_file_overrides_only_given_keys(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk:\n  max_concurrent_positions: 3\n", encoding="utf-8")
        config = load_engine_config(path)
        assert config.risk.max_concurrent_positions == 3
        assert config.risk.min_cash_reserve_pct == 0.20

    def test_unknown_keys_are_ignored(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk:\n  leverage: 5\n", encoding="utf-8")
        assert load_engine_config(path).risk == EngineConfig().risk

    def test_malformed_yaml_raises(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_engine_config(path)

    def test_bad_value_raises(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk:\n  max_concurrent_positions: many\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_engine_config(path)

    def test_inverted_tiers_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text(
            "approval_tiers:\n  auto_approve_limit: 500\n  notify_limit: 200\n",
            encoding="utf-8",
        )
        with pytest.raises(ConfigError):
            load_engine_config(path)

    def test_inverted_trade_sizes_rejected(self, tmp_path):
        path = tmp_path / "engine.yaml"
        path.write_text("risk:\n  min_trade_size: 50\n  max_trade_size: 20\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_engine_config(path)

    def test_state_dir_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("ENGINE_STATE_DIR", str(tmp_path / "elsewhere"))
        assert load_engine_config(CONFIG_PATH).paths.state_dir == tmp_path / "elsewhere"


class TestSingleton:

    def test_cached_until_reset(self):
        first = get_engine_config()
        assert get_engine_config() is first
        reset_engine_config()
        assert engine_config._engine_config is None
        assert get_engine_config() is not first

    def test_with_paths(self, tmp_path):
        config = EngineConfig().with_paths(tmp_path / "s")
        assert config.paths.state_dir == tmp_path / "s"
        assert config.paths.logs_dir == tmp_path / "s" / "logs"
