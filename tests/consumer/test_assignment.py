"""Tests for partition assignment strategies."""

import pytest

from clustersim.consumer.assignment import (
    RangeAssignmentStrategy,
    RoundRobinAssignmentStrategy,
    create_assignment_strategy,
)


class TestRoundRobinAssignment:
    """Test RoundRobinAssignmentStrategy."""

    def test_alternating_assignment(self):
        """Test partition i goes to member i mod n."""
        strategy = RoundRobinAssignmentStrategy()

        assignment = strategy.assign(["c1", "c2", "c3"], 5)

        assert assignment == {"c1": [0, 3], "c2": [1, 4], "c3": [2]}

    def test_more_consumers_than_partitions(self):
        """Test trailing consumers stay idle."""
        strategy = RoundRobinAssignmentStrategy()

        assignment = strategy.assign(["c1", "c2", "c3", "c4"], 2)

        assert assignment == {"c1": [0], "c2": [1], "c3": [], "c4": []}

    def test_no_members(self):
        """Test empty member list."""
        assert RoundRobinAssignmentStrategy().assign([], 3) == {}

    def test_member_order_is_respected(self):
        """Test members are not re-sorted."""
        assignment = RoundRobinAssignmentStrategy().assign(["z", "a"], 2)

        assert assignment == {"z": [0], "a": [1]}


class TestRangeAssignment:
    """Test RangeAssignmentStrategy."""

    def test_uneven_distribution(self):
        """Test earlier members take the remainder."""
        assignment = RangeAssignmentStrategy().assign(["c1", "c2", "c3"], 5)

        assert assignment == {"c1": [0, 1], "c2": [2, 3], "c3": [4]}

    def test_more_consumers_than_partitions(self):
        """Test idle members under range assignment."""
        assignment = RangeAssignmentStrategy().assign(["c1", "c2", "c3"], 1)

        assert assignment == {"c1": [0], "c2": [], "c3": []}


class TestCreateStrategy:
    """Test strategy factory."""

    def test_known_names(self):
        """Test lookup by name."""
        assert isinstance(create_assignment_strategy("roundrobin"), RoundRobinAssignmentStrategy)
        assert isinstance(create_assignment_strategy("RANGE"), RangeAssignmentStrategy)

    def test_unknown_name(self):
        """Test unknown strategy name."""
        with pytest.raises(ValueError):
            create_assignment_strategy("sticky")
