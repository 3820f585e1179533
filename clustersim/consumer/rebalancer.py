"""
Consumer group rebalancing.

Recomputes the partition -> consumer assignment of every topic whenever the
topology changes, and tags the consumers involved as rebalancing. While any
consumer carries that tag the tick simulator pauses the whole cluster.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from clustersim.consumer.assignment import AssignmentStrategy, RoundRobinAssignmentStrategy
from clustersim.core.entities import NodeType
from clustersim.core.store import EntityStore
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RebalanceResult:
    """
    Outcome of a rebalance pass.

    Attributes:
        assignments: topic_id -> (consumer_id -> partitions)
        rebalanced: Consumer ids tagged as rebalancing, in store order
    """
    assignments: Dict[str, Dict[str, List[int]]] = field(default_factory=dict)
    rebalanced: List[str] = field(default_factory=list)

    @property
    def triggered(self) -> bool:
        return bool(self.rebalanced)


class PartitionRebalancer:
    """
    Global partition rebalancer.

    A consumer's assignment spans every topic it subscribes to, so each pass
    first clears all consumers and then assigns topic by topic in store
    order. Re-running with an unchanged topology gives the same result.
    """

    def __init__(self, strategy: Optional[AssignmentStrategy] = None):
        """
        Initialize rebalancer.

        Args:
            strategy: Assignment strategy (round-robin by default)
        """
        self.strategy = strategy or RoundRobinAssignmentStrategy()

    def rebalance(self, store: EntityStore, reason: str = "topology") -> RebalanceResult:
        """
        Run a global rebalance pass.

        Args:
            store: Entity store to mutate
            reason: What triggered the pass (for logging)

        Returns:
            Rebalance result
        """
        result = RebalanceResult()

        for consumer in store.nodes_of_type(NodeType.CONSUMER):
            consumer.assigned_partitions = []

        flagged = set()

        for topic in store.nodes_of_type(NodeType.TOPIC):
            consumers = store.consumers_for(topic.id)
            if not consumers:
                continue

            topic_assignment = self.strategy.assign(
                [c.id for c in consumers],
                max(1, topic.partitions),
            )
            result.assignments[topic.id] = topic_assignment

            for consumer in consumers:
                consumer.assigned_partitions.extend(topic_assignment[consumer.id])
                consumer.is_rebalancing = True
                flagged.add(consumer.id)

        result.rebalanced = [
            c.id for c in store.nodes_of_type(NodeType.CONSUMER) if c.id in flagged
        ]

        if result.triggered:
            logger.info(
                "Rebalance complete",
                reason=reason,
                strategy=self.strategy.name,
                consumers=len(result.rebalanced),
                idle=sum(1 for c in store.nodes_of_type(NodeType.CONSUMER) if c.is_idle),
            )

        return result

    @staticmethod
    def is_rebalancing(store: EntityStore) -> bool:
        """Check if any node is inside a rebalance."""
        return any(node.is_rebalancing for node in store)

    @staticmethod
    def clear_flags(store: EntityStore) -> int:
        """
        Clear every rebalance tag.

        Returns:
            Number of nodes that were rebalancing
        """
        cleared = 0
        for node in store:
            if node.is_rebalancing:
                node.is_rebalancing = False
                cleared += 1
        return cleared
