"""Simulation engine: tick loop, session state and the command surface."""

from clustersim.engine.runtime import CommandResult, SimulationRuntime
from clustersim.engine.session import SessionStateMachine, SessionStatus
from clustersim.engine.simulation import ClusterSimulation
from clustersim.engine.snapshot import (
    AdvisorySnapshot,
    ClusterSnapshot,
    LagTrend,
    SimulationMetrics,
)
from clustersim.engine.tick import TickResult, TickSimulator

__all__ = [
    "AdvisorySnapshot",
    "ClusterSimulation",
    "ClusterSnapshot",
    "CommandResult",
    "LagTrend",
    "SessionStateMachine",
    "SessionStatus",
    "SimulationMetrics",
    "SimulationRuntime",
    "TickResult",
    "TickSimulator",
]
