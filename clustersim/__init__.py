"""
ClusterSim - a tick-based simulation of a publish/subscribe broker cluster.

This package models, in a single logical clock domain:
- Producers, topics and consumers wired into pipelines
- Consumer group rebalancing with stop-the-world pauses
- Replica sets with controller-authorised leader failover
- Controller election under an external metadata service or a
  self-managed broker quorum
- A lag/throughput model that ends the session when backlog explodes
"""

__version__ = "0.1.0"

from clustersim.core import ClusterMode, NodeType
from clustersim.engine import ClusterSimulation, SessionStatus, SimulationRuntime

__all__ = [
    "ClusterMode",
    "ClusterSimulation",
    "NodeType",
    "SessionStatus",
    "SimulationRuntime",
]
