"""Tests for the partition rebalancer."""

import pytest

from clustersim.consumer.assignment import RangeAssignmentStrategy
from clustersim.consumer.rebalancer import PartitionRebalancer
from clustersim.core.entities import Connection, Node, NodeType
from clustersim.core.store import EntityStore


def build_store(partitions, consumers, topics=("t1",)):
    store = EntityStore([101, 102, 103])
    for topic_id in topics:
        store.add_node(Node(type=NodeType.TOPIC, name=topic_id, id=topic_id, partitions=partitions))
    for i in range(consumers):
        consumer_id = f"c{i + 1}"
        store.add_node(Node(type=NodeType.CONSUMER, name=consumer_id, id=consumer_id))
        for topic_id in topics:
            store.add_connection(Connection(topic_id, consumer_id))
    return store


def assignments(store):
    return {c.id: list(c.assigned_partitions) for c in store.nodes_of_type(NodeType.CONSUMER)}


class TestPartitionRebalancer:
    """Test PartitionRebalancer."""

    @pytest.fixture
    def rebalancer(self):
        return PartitionRebalancer()

    @pytest.mark.parametrize("partitions,consumers", [(1, 1), (3, 2), (4, 4), (6, 4), (2, 5)])
    def test_assignment_complete(self, rebalancer, partitions, consumers):
        """Test each partition is assigned exactly once."""
        store = build_store(partitions, consumers)

        rebalancer.rebalance(store)

        assigned = sorted(p for parts in assignments(store).values() for p in parts)
        assert assigned == list(range(partitions))

    def test_idle_consumers(self, rebalancer):
        """Test c > p leaves exactly c - p consumers idle."""
        store = build_store(partitions=2, consumers=5)

        rebalancer.rebalance(store)

        idle = [c for c in store.nodes_of_type(NodeType.CONSUMER) if c.is_idle]
        assert len(idle) == 3
        assert [c.id for c in idle] == ["c3", "c4", "c5"]

    def test_multiple_partitions_per_consumer(self, rebalancer):
        """Test p > c gives some consumers several partitions."""
        store = build_store(partitions=5, consumers=2)

        rebalancer.rebalance(store)

        assert assignments(store) == {"c1": [0, 2, 4], "c2": [1, 3]}

    def test_idempotent(self, rebalancer):
        """Test rebalancing twice yields identical assignment."""
        store = build_store(partitions=4, consumers=3, topics=("t1", "t2"))

        rebalancer.rebalance(store)
        first = assignments(store)
        rebalancer.rebalance(store)

        assert assignments(store) == first

    def test_assignment_spans_topics(self, rebalancer):
        """Test a consumer accumulates partitions of every subscribed topic."""
        store = build_store(partitions=2, consumers=1, topics=("t1", "t2"))

        result = rebalancer.rebalance(store)

        assert assignments(store) == {"c1": [0, 1, 0, 1]}
        assert result.assignments == {"t1": {"c1": [0, 1]}, "t2": {"c1": [0, 1]}}

    def test_stale_assignment_cleared(self, rebalancer):
        """Test a consumer that lost its connection has no assignment left."""
        store = build_store(partitions=2, consumers=2)
        rebalancer.rebalance(store)

        store.remove_connection("t1", "c2")
        rebalancer.rebalance(store)

        assert assignments(store) == {"c1": [0, 1], "c2": []}

    def test_flags_connected_consumers(self, rebalancer):
        """Test rebalanced consumers are tagged, unconnected ones are not."""
        store = build_store(partitions=1, consumers=2)
        store.add_node(Node(type=NodeType.CONSUMER, name="lonely", id="lonely"))

        result = rebalancer.rebalance(store)

        assert result.rebalanced == ["c1", "c2"]
        assert store.get_node("c1").is_rebalancing
        assert not store.get_node("lonely").is_rebalancing
        assert PartitionRebalancer.is_rebalancing(store)

    def test_clear_flags(self, rebalancer):
        """Test settle clears every tag."""
        store = build_store(partitions=1, consumers=2)
        rebalancer.rebalance(store)

        assert PartitionRebalancer.clear_flags(store) == 2
        assert not PartitionRebalancer.is_rebalancing(store)
        assert PartitionRebalancer.clear_flags(store) == 0

    def test_no_consumers_no_trigger(self, rebalancer):
        """Test a topic without consumers does not start a rebalance."""
        store = build_store(partitions=3, consumers=0)

        result = rebalancer.rebalance(store)

        assert not result.triggered

    def test_range_strategy(self):
        """Test rebalancer with a range strategy."""
        store = build_store(partitions=5, consumers=2)

        PartitionRebalancer(RangeAssignmentStrategy()).rebalance(store)

        assert assignments(store) == {"c1": [0, 1, 2], "c2": [3, 4]}
