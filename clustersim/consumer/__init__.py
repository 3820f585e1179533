"""Consumer group assignment and rebalancing."""

from clustersim.consumer.assignment import (
    AssignmentStrategy,
    RangeAssignmentStrategy,
    RoundRobinAssignmentStrategy,
    create_assignment_strategy,
)
from clustersim.consumer.rebalancer import PartitionRebalancer, RebalanceResult

__all__ = [
    "AssignmentStrategy",
    "PartitionRebalancer",
    "RangeAssignmentStrategy",
    "RebalanceResult",
    "RoundRobinAssignmentStrategy",
    "create_assignment_strategy",
]
