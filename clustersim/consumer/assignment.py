"""
Partition assignment strategies for consumer groups.

Implements different strategies for assigning one topic's partitions to the
consumers subscribed to it. Member order is the caller's order; strategies
never re-sort it.
"""

from abc import ABC, abstractmethod
from typing import Dict, List


class AssignmentStrategy(ABC):
    """Abstract base class for assignment strategies."""

    name = "abstract"

    @abstractmethod
    def assign(self, members: List[str], num_partitions: int) -> Dict[str, List[int]]:
        """
        Assign partitions to members.

        Args:
            members: Ordered member IDs
            num_partitions: Number of partitions of the topic

        Returns:
            Assignment map (member_id -> assigned partition indices)
        """
        pass


class RoundRobinAssignmentStrategy(AssignmentStrategy):
    """
    Round-robin assignment strategy.

    Alternates partitions across consumers.
    Example: 5 partitions, 3 consumers
      Consumer 1: partitions 0, 3
      Consumer 2: partitions 1, 4
      Consumer 3: partition 2
    With more consumers than partitions the trailing consumers stay idle.
    """

    name = "roundrobin"

    def assign(self, members: List[str], num_partitions: int) -> Dict[str, List[int]]:
        """Assign partitions using round-robin strategy."""
        assignment: Dict[str, List[int]] = {member: [] for member in members}

        if not members:
            return assignment

        for partition in range(num_partitions):
            member = members[partition % len(members)]
            assignment[member].append(partition)

        return assignment


class RangeAssignmentStrategy(AssignmentStrategy):
    """
    Range assignment strategy.

    Divides partitions into contiguous ranges.
    Example: 5 partitions, 3 consumers
      Consumer 1: partitions 0-1
      Consumer 2: partitions 2-3
      Consumer 3: partition 4
    """

    name = "range"

    def assign(self, members: List[str], num_partitions: int) -> Dict[str, List[int]]:
        """Assign partitions using range strategy."""
        assignment: Dict[str, List[int]] = {member: [] for member in members}

        if not members:
            return assignment

        partitions_per_consumer = num_partitions // len(members)
        extra_partitions = num_partitions % len(members)

        partition_idx = 0
        for i, member in enumerate(members):
            num_assigned = partitions_per_consumer
            if i < extra_partitions:
                num_assigned += 1

            for _ in range(num_assigned):
                assignment[member].append(partition_idx)
                partition_idx += 1

        return assignment


def create_assignment_strategy(name: str) -> AssignmentStrategy:
    """
    Create assignment strategy by name.

    Args:
        name: Strategy name (roundrobin, range)

    Returns:
        Assignment strategy instance
    """
    strategies = {
        "roundrobin": RoundRobinAssignmentStrategy,
        "range": RangeAssignmentStrategy,
    }

    strategy_class = strategies.get(name.lower())
    if not strategy_class:
        raise ValueError(f"Unknown assignment strategy: {name}")

    return strategy_class()
