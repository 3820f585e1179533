"""
Simulated cluster entities.

Nodes are producers, topics and consumers placed on the board. Connections
are directed edges between them. Brokers are not entities: they only exist
as ids in the liveness map of the entity store.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class NodeType(str, Enum):
    """Node variants."""

    PRODUCER = "producer"
    TOPIC = "topic"
    CONSUMER = "consumer"


class ClusterMode(str, Enum):
    """Metadata-management strategies."""

    PRIMARY = "primary"            # External metadata service
    SELF_MANAGED = "self_managed"  # Controller quorum among brokers


def generate_id() -> str:
    """Generate a short random node/connection id."""
    return uuid.uuid4().hex[:9]


@dataclass
class Node:
    """
    A simulated participant.

    Only the fields of the node's own variant are meaningful:
    producers use production_rate, topics use the partition, replica and
    lag fields, consumers use group_id, processing_rate and assignment.

    Attributes:
        id: Stable identity
        type: Node variant
        name: Display name
        x: Horizontal board position (owned by the renderer)
        y: Vertical board position (owned by the renderer)
        production_rate: Messages emitted per tick unit
        partitions: Partition count (>= 1)
        replication_factor: Number of replicas (1-3)
        replicas: Broker ids hosting the topic
        active_leader_id: Broker currently serving the topic
        lag: Unprocessed backlog (>= 0)
        is_offline: Set each tick when no leader can serve the topic
        group_id: Consumer group name
        processing_rate: Messages drained per tick unit
        assigned_partitions: Partition indices owned by the consumer
        is_rebalancing: Consumer is inside a group rebalance
    """
    type: NodeType
    name: str
    id: str = field(default_factory=generate_id)
    x: float = 0.0
    y: float = 0.0

    # Producer
    production_rate: float = 0.0

    # Topic
    partitions: int = 0
    replication_factor: int = 0
    replicas: List[int] = field(default_factory=list)
    active_leader_id: Optional[int] = None
    lag: float = 0.0
    is_offline: bool = False

    # Consumer
    group_id: Optional[str] = None
    processing_rate: float = 0.0
    assigned_partitions: List[int] = field(default_factory=list)
    is_rebalancing: bool = False

    @property
    def produces(self) -> bool:
        return self.type == NodeType.PRODUCER

    @property
    def stores(self) -> bool:
        return self.type == NodeType.TOPIC

    @property
    def consumes(self) -> bool:
        return self.type == NodeType.CONSUMER

    @property
    def is_idle(self) -> bool:
        """Consumer without any assigned partition."""
        return self.consumes and not self.assigned_partitions

    def to_dict(self) -> dict:
        """Convert to dictionary for the read surface."""
        data = {
            "id": self.id,
            "type": self.type.value,
            "name": self.name,
            "x": self.x,
            "y": self.y,
        }

        if self.produces:
            data["production_rate"] = self.production_rate
        elif self.stores:
            data.update({
                "partitions": self.partitions,
                "replication_factor": self.replication_factor,
                "replicas": list(self.replicas),
                "active_leader_id": self.active_leader_id,
                "lag": self.lag,
                "is_offline": self.is_offline,
            })
        else:
            data.update({
                "group_id": self.group_id,
                "processing_rate": self.processing_rate,
                "assigned_partitions": list(self.assigned_partitions),
                "is_rebalancing": self.is_rebalancing,
                "is_idle": self.is_idle,
            })

        return data


@dataclass(frozen=True)
class Connection:
    """
    Directed edge between two nodes.

    Producer -> Topic means "produces into", Topic -> Consumer means
    "subscribes from".

    Attributes:
        source_id: Upstream node id
        target_id: Downstream node id
        id: Connection identity
    """
    source_id: str
    target_id: str
    id: str = field(default_factory=generate_id, compare=False)

    def touches(self, node_id: str) -> bool:
        """Check if either endpoint is the given node."""
        return self.source_id == node_id or self.target_id == node_id

    def to_dict(self) -> dict:
        """Convert to dictionary for the read surface."""
        return {
            "id": self.id,
            "source_id": self.source_id,
            "target_id": self.target_id,
        }


LEGAL_LINKS = {
    (NodeType.PRODUCER, NodeType.TOPIC),
    (NodeType.TOPIC, NodeType.CONSUMER),
}


def is_legal_link(source: Node, target: Node) -> bool:
    """Check whether source -> target is a meaningful connection."""
    return (source.type, target.type) in LEGAL_LINKS
