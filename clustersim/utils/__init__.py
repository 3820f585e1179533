"""Logging and configuration helpers."""

from clustersim.utils.config import Config, SimulationConfig, get_config, reset_config
from clustersim.utils.logging import configure_logging, get_logger

__all__ = [
    "Config",
    "SimulationConfig",
    "configure_logging",
    "get_config",
    "get_logger",
    "reset_config",
]
