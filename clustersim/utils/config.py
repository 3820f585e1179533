"""
Configuration management for the cluster simulator.

Handles loading and merging configuration from:
- Default configuration file
- An optional override file
- Environment variables
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml


class Config:
    """Configuration manager for the cluster simulator."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to configuration file. If None, uses default.
        """
        self._config: Dict[str, Any] = {}
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        """Load default configuration."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
            self._merge_config(file_config)

    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """
        Deep merge new configuration into existing configuration.

        Args:
            new_config: Configuration dictionary to merge
        """
        self._config = self._deep_merge(self._config, new_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.

        Args:
            base: Base dictionary
            override: Override dictionary

        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if tick_interval := os.getenv("SIM_TICK_INTERVAL_MS"):
            self.set("simulation.tick_interval_ms", int(tick_interval))

        if settle := os.getenv("SIM_REBALANCE_SETTLE_MS"):
            self.set("simulation.rebalance_settle_ms", int(settle))

        if ceiling := os.getenv("SIM_LAG_CEILING"):
            self.set("simulation.lag_ceiling", float(ceiling))

        if mode := os.getenv("SIM_CLUSTER_MODE"):
            self.set("cluster.mode", mode.lower())

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "simulation.lag_scale")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Get entire configuration as dictionary.

        Returns:
            Configuration dictionary
        """
        return self._config.copy()


@dataclass
class SimulationConfig:
    """
    Engine constants.

    Attributes:
        tick_interval_ms: Period of the tick loop
        rebalance_settle_ms: How long a group rebalance pauses the world
        lag_scale: Fraction of a rate applied per tick (k)
        throughput_multiplier: Scale from drained lag to processed messages
        lag_ceiling: Global lag at which the session terminates
        auto_connect: Wire new nodes into the existing pipeline
        broker_ids: Fixed broker pool
        mode: Initial metadata-management mode (primary or self_managed)
        metadata_log_size: Number of metadata operations kept
        default_partitions: Partition count of a new topic
        max_partitions: Upper bound for partition updates
        max_replication_factor: Upper bound for replication factor updates
        producer_rate: Production rate of a new producer
        consumer_rate: Processing rate of a new consumer
        consumer_group: Group assigned to new consumers
        assignment_strategy: Partition assignment strategy name
    """
    tick_interval_ms: int = 500
    rebalance_settle_ms: int = 1500
    lag_scale: float = 0.5
    throughput_multiplier: int = 10
    lag_ceiling: float = 100.0
    auto_connect: bool = True
    broker_ids: List[int] = field(default_factory=lambda: [101, 102, 103])
    mode: str = "primary"
    metadata_log_size: int = 20
    default_partitions: int = 1
    max_partitions: int = 6
    max_replication_factor: int = 3
    producer_rate: float = 8.0
    consumer_rate: float = 5.0
    consumer_group: str = "CG-1"
    assignment_strategy: str = "roundrobin"

    def __post_init__(self):
        if not self.broker_ids:
            raise ValueError("broker_ids must not be empty")
        if len(set(self.broker_ids)) != len(self.broker_ids):
            raise ValueError("broker_ids must be distinct")
        if self.max_replication_factor > len(self.broker_ids):
            self.max_replication_factor = len(self.broker_ids)

    @property
    def tick_interval(self) -> float:
        """Tick period in seconds."""
        return self.tick_interval_ms / 1000

    @property
    def rebalance_settle(self) -> float:
        """Rebalance settle duration in seconds."""
        return self.rebalance_settle_ms / 1000

    @classmethod
    def from_config(cls, config: Config) -> "SimulationConfig":
        """Build engine constants from a Config, falling back to defaults."""
        defaults = cls()
        return cls(
            tick_interval_ms=int(config.get("simulation.tick_interval_ms", defaults.tick_interval_ms)),
            rebalance_settle_ms=int(config.get("simulation.rebalance_settle_ms", defaults.rebalance_settle_ms)),
            lag_scale=float(config.get("simulation.lag_scale", defaults.lag_scale)),
            throughput_multiplier=int(config.get("simulation.throughput_multiplier", defaults.throughput_multiplier)),
            lag_ceiling=float(config.get("simulation.lag_ceiling", defaults.lag_ceiling)),
            auto_connect=bool(config.get("simulation.auto_connect", defaults.auto_connect)),
            broker_ids=list(config.get("cluster.broker_ids", defaults.broker_ids)),
            mode=str(config.get("cluster.mode", defaults.mode)),
            metadata_log_size=int(config.get("cluster.metadata_log_size", defaults.metadata_log_size)),
            default_partitions=int(config.get("topic.default_partitions", defaults.default_partitions)),
            max_partitions=int(config.get("topic.max_partitions", defaults.max_partitions)),
            max_replication_factor=int(
                config.get("topic.max_replication_factor", defaults.max_replication_factor)
            ),
            producer_rate=float(config.get("producer.default_rate", defaults.producer_rate)),
            consumer_rate=float(config.get("consumer.default_rate", defaults.consumer_rate)),
            consumer_group=str(config.get("consumer.default_group", defaults.consumer_group)),
            assignment_strategy=str(
                config.get("consumer.assignment_strategy", defaults.assignment_strategy)
            ),
        )


# Global configuration instance
_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.

    Args:
        config_file: Optional configuration file path

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
