"""Tests for configuration loading."""

from pathlib import Path

import pytest

from clustersim.engine.simulation import ClusterSimulation
from clustersim.utils.config import Config, SimulationConfig, get_config, reset_config

DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config" / "default.yaml"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SIM_TICK_INTERVAL_MS", "SIM_REBALANCE_SETTLE_MS", "SIM_LAG_CEILING",
                 "SIM_CLUSTER_MODE", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()


class TestConfig:
    """Test Config."""

    def test_defaults_loaded(self):
        """Test the default YAML file is read."""
        config = Config(str(DEFAULT_CONFIG))

        assert config.get("simulation.tick_interval_ms") == 500
        assert config.get("cluster.broker_ids") == [101, 102, 103]

    def test_override_file(self, tmp_path):
        """Test an override file deep-merges."""
        override = tmp_path / "override.yaml"
        override.write_text("simulation:\n  lag_ceiling: 50\ncustom:\n  nested:\n    value: 1\n")

        config = Config(str(override))

        assert config.get("simulation.lag_ceiling") == 50
        assert config.get("custom.nested.value") == 1

    def test_env_overrides(self, monkeypatch):
        """Test environment variables win."""
        monkeypatch.setenv("SIM_TICK_INTERVAL_MS", "250")
        monkeypatch.setenv("SIM_CLUSTER_MODE", "SELF_MANAGED")

        config = Config()

        assert config.get("simulation.tick_interval_ms") == 250
        assert config.get("cluster.mode") == "self_managed"

    def test_get_set(self):
        """Test dot-notation access."""
        config = Config()
        config.set("a.b.c", 1)

        assert config.get("a.b.c") == 1
        assert config.get("a.missing", "x") == "x"

    def test_global_instance(self):
        """Test get_config caches one instance."""
        assert get_config() is get_config()


class TestSimulationConfig:
    """Test SimulationConfig."""

    def test_from_config(self, monkeypatch):
        """Test engine constants come from configuration."""
        monkeypatch.setenv("SIM_LAG_CEILING", "80")

        settings = SimulationConfig.from_config(Config())

        assert settings.lag_ceiling == 80.0
        assert settings.tick_interval == 0.5
        assert settings.rebalance_settle == 1.5
        assert settings.assignment_strategy == "roundrobin"

    def test_reference_defaults(self):
        """Test reference constants."""
        settings = SimulationConfig()

        assert settings.lag_scale == 0.5
        assert settings.throughput_multiplier == 10
        assert settings.lag_ceiling == 100
        assert settings.broker_ids == [101, 102, 103]

    def test_replication_capped_by_pool(self):
        """Test max replication factor never exceeds the broker count."""
        assert SimulationConfig(broker_ids=[1, 2]).max_replication_factor == 2

    def test_invalid_pool(self):
        """Test broker pool validation."""
        with pytest.raises(ValueError):
            SimulationConfig(broker_ids=[])
        with pytest.raises(ValueError):
            SimulationConfig(broker_ids=[1, 1])

    def test_simulation_reads_global_config(self, monkeypatch):
        """Test a simulation built without constants uses the global Config."""
        monkeypatch.setenv("SIM_LAG_CEILING", "60")
        monkeypatch.setenv("SIM_CLUSTER_MODE", "self_managed")

        simulation = ClusterSimulation()

        assert simulation.config.lag_ceiling == 60.0
        assert simulation.mode.value == "self_managed"
        assert simulation.tick_simulator.lag_ceiling == 60.0
