"""
Read-only views of the simulation state.

ClusterSnapshot is what the rendering layer polls after every mutation and
tick. AdvisorySnapshot is the reduced view handed to the advisory service.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from clustersim.broker.metadata_log import MetadataOperation
from clustersim.core.entities import ClusterMode, Connection, Node, NodeType
from clustersim.engine.session import SessionStatus


class LagTrend(str, Enum):
    """Direction of the global lag between two ticks."""

    UP = "up"
    DOWN = "down"
    STABLE = "stable"


@dataclass
class SimulationMetrics:
    """
    Running counters.

    Attributes:
        total_messages_processed: Messages drained since the last retry/reset
        global_lag: Mean lag of online topics
        throughput: Messages processed by the last tick
        lag_trend: Direction of global lag on the last tick
        tick_count: Ticks applied since the last retry/reset
    """
    total_messages_processed: int = 0
    global_lag: float = 0.0
    throughput: int = 0
    lag_trend: LagTrend = LagTrend.STABLE
    tick_count: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "total_messages_processed": self.total_messages_processed,
            "global_lag": self.global_lag,
            "throughput": self.throughput,
            "lag_trend": self.lag_trend.value,
            "tick_count": self.tick_count,
        }


@dataclass(frozen=True)
class ClusterSnapshot:
    """
    Full read surface of the engine.

    Nodes are serialised dicts so holders cannot mutate engine state.
    """
    nodes: List[dict]
    connections: List[dict]
    broker_states: Dict[int, bool]
    controller_id: Optional[int]
    mode: ClusterMode
    primary_available: bool
    metadata_log: List[MetadataOperation]
    metrics: SimulationMetrics
    status: SessionStatus
    is_running: bool

    @classmethod
    def capture(
        cls,
        nodes: List[Node],
        connections: List[Connection],
        broker_states: Dict[int, bool],
        controller_id: Optional[int],
        mode: ClusterMode,
        primary_available: bool,
        metadata_log: List[MetadataOperation],
        metrics: SimulationMetrics,
        status: SessionStatus,
    ) -> "ClusterSnapshot":
        return cls(
            nodes=[n.to_dict() for n in nodes],
            connections=[c.to_dict() for c in connections],
            broker_states=dict(broker_states),
            controller_id=controller_id,
            mode=mode,
            primary_available=primary_available,
            metadata_log=list(metadata_log),
            metrics=SimulationMetrics(**vars(metrics)),
            status=status,
            is_running=status == SessionStatus.RUNNING,
        )

    def node(self, node_id: str) -> Optional[dict]:
        """Look up a node by id."""
        return next((n for n in self.nodes if n["id"] == node_id), None)

    def nodes_of_type(self, node_type: NodeType) -> List[dict]:
        return [n for n in self.nodes if n["type"] == node_type.value]

    @property
    def global_lag(self) -> float:
        return self.metrics.global_lag

    @property
    def total_messages_processed(self) -> int:
        return self.metrics.total_messages_processed

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "nodes": self.nodes,
            "connections": self.connections,
            "broker_states": {str(k): v for k, v in self.broker_states.items()},
            "controller_id": self.controller_id,
            "mode": self.mode.value,
            "primary_available": self.primary_available,
            "metadata_log": [entry.to_dict() for entry in self.metadata_log],
            "metrics": self.metrics.to_dict(),
            "status": self.status.value,
            "is_running": self.is_running,
        }


@dataclass(frozen=True)
class AdvisorySnapshot:
    """
    Reduced state handed to the advisory text service.

    Attributes:
        status: Session status
        global_lag: Mean lag of online topics
        lag_ceiling: Lag at which the session terminates
        total_messages_processed: Messages drained so far
        producers: Producer count
        topics: Topic count
        consumers: Consumer count
        offline_topics: Topics currently offline
        idle_consumers: Consumers without partitions
        mode: Metadata-management mode
        controller_id: Current controller
        throughput: Messages processed by the last tick
    """
    status: SessionStatus
    global_lag: float
    lag_ceiling: float
    total_messages_processed: int
    producers: int
    topics: int
    consumers: int
    offline_topics: int = 0
    idle_consumers: int = 0
    mode: ClusterMode = ClusterMode.PRIMARY
    controller_id: Optional[int] = None
    throughput: int = 0

    @property
    def is_empty(self) -> bool:
        return self.producers == 0 and self.topics == 0 and self.consumers == 0
