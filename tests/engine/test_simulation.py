"""Tests for the simulation command surface."""

import random

import pytest

from clustersim.broker.metadata_log import MetadataAction
from clustersim.core.entities import ClusterMode, NodeType
from clustersim.engine.session import SessionStatus
from clustersim.engine.simulation import ClusterSimulation
from clustersim.errors import (
    IllegalTransition,
    InvalidUpdate,
    MetadataUnavailable,
    UnknownNode,
)
from clustersim.utils.config import SimulationConfig


@pytest.fixture
def simulation():
    """Create simulation without auto-wiring."""
    return ClusterSimulation(SimulationConfig(auto_connect=False), rng=random.Random(3))


@pytest.fixture
def pipeline(simulation):
    """Producer -> topic -> consumer with settled assignment."""
    simulation.add_node(NodeType.PRODUCER, node_id="p1")
    simulation.add_node(NodeType.TOPIC, node_id="t1")
    simulation.add_node(NodeType.CONSUMER, node_id="c1")
    simulation.add_connection("p1", "t1")
    simulation.add_connection("t1", "c1")
    simulation.clear_rebalancing()
    return simulation


def terminate(simulation):
    simulation.start()
    simulation.store.get_node("t1").lag = 200.0
    simulation.tick()
    assert simulation.status == SessionStatus.TERMINATED


class TestAddNode:
    """Test node creation."""

    def test_defaults(self, simulation):
        """Test default field values per variant."""
        simulation.add_node(NodeType.PRODUCER, node_id="p1")
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        snapshot = simulation.add_node(NodeType.CONSUMER, node_id="c1")

        producer, topic, consumer = snapshot.nodes
        assert producer["production_rate"] == 8
        assert producer["name"] == "Producer 1"
        assert topic["partitions"] == 1
        assert topic["replication_factor"] == 1
        assert topic["active_leader_id"] in topic["replicas"]
        assert topic["lag"] == 0
        assert consumer["processing_rate"] == 5
        assert consumer["group_id"] == "CG-1"
        assert consumer["is_idle"]

    def test_topic_creation_logged(self, simulation):
        """Test topic creation writes a config entry."""
        simulation.add_node(NodeType.TOPIC, name="orders")

        entry = simulation.metadata_log.entries[-1]
        assert entry.action == MetadataAction.UPDATE
        assert entry.key == "/config/topics/orders"

    def test_duplicate_id(self, simulation):
        """Test node ids are unique."""
        simulation.add_node(NodeType.PRODUCER, node_id="p1")

        with pytest.raises(InvalidUpdate):
            simulation.add_node(NodeType.CONSUMER, node_id="p1")

    def test_topic_rejected_when_primary_service_down(self, simulation):
        """Test PRIMARY mode needs its metadata service to create topics."""
        simulation.toggle_primary_service()

        with pytest.raises(MetadataUnavailable):
            simulation.add_node(NodeType.TOPIC)

        assert simulation.store.nodes_of_type(NodeType.TOPIC) == []

    def test_topic_rejected_without_controller(self, simulation):
        """Test SELF_MANAGED mode needs a controller to create topics."""
        simulation.set_mode(ClusterMode.SELF_MANAGED)
        for broker_id in (101, 102, 103):
            simulation.toggle_broker(broker_id)

        with pytest.raises(MetadataUnavailable):
            simulation.add_node(NodeType.TOPIC)

    def test_producer_allowed_when_metadata_down(self, simulation):
        """Test only topics depend on the metadata layer."""
        simulation.toggle_primary_service()

        snapshot = simulation.add_node(NodeType.PRODUCER)

        assert len(snapshot.nodes) == 1

    def test_unknown_node_type(self, simulation):
        """Test an unknown variant is rejected with a reason."""
        with pytest.raises(InvalidUpdate, match="node type"):
            simulation.add_node("broker")

        assert len(simulation.store) == 0


class TestAutoConnect:
    """Test default wiring of new nodes."""

    @pytest.fixture
    def simulation(self):
        return ClusterSimulation(SimulationConfig(), rng=random.Random(3))

    def test_pipeline_wires_itself(self, simulation):
        """Test producer, topic, consumer added in order form a pipeline."""
        simulation.add_node(NodeType.PRODUCER, node_id="p1")
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        snapshot = simulation.add_node(NodeType.CONSUMER, node_id="c1")

        edges = {(c["source_id"], c["target_id"]) for c in snapshot.connections}
        assert edges == {("p1", "t1"), ("t1", "c1")}
        assert snapshot.node("c1")["assigned_partitions"] == [0]

    def test_producer_feeds_oldest_topic(self, simulation):
        """Test a new producer links to the first topic."""
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        simulation.add_node(NodeType.TOPIC, node_id="t2")
        snapshot = simulation.add_node(NodeType.PRODUCER, node_id="p1")

        assert [(c["source_id"], c["target_id"]) for c in snapshot.connections] == [("p1", "t1")]

    def test_consumer_subscribes_to_newest_topic(self, simulation):
        """Test a new consumer links to the last topic."""
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        simulation.add_node(NodeType.TOPIC, node_id="t2")
        snapshot = simulation.add_node(NodeType.CONSUMER, node_id="c1")

        assert [(c["source_id"], c["target_id"]) for c in snapshot.connections] == [("t2", "c1")]

    def test_opt_out(self, simulation):
        """Test auto-connect can be disabled per call."""
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        snapshot = simulation.add_node(NodeType.CONSUMER, node_id="c1", auto_connect=False)

        assert snapshot.connections == []


class TestConnections:
    """Test connection commands."""

    def test_add_triggers_rebalance(self, simulation):
        """Test subscribing assigns partitions and starts a rebalance."""
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        simulation.add_node(NodeType.CONSUMER, node_id="c1")

        snapshot = simulation.add_connection("t1", "c1")

        consumer = snapshot.node("c1")
        assert consumer["assigned_partitions"] == [0]
        assert consumer["is_rebalancing"]

    def test_duplicate_is_noop(self, pipeline):
        """Test adding an existing connection changes nothing."""
        snapshot = pipeline.add_connection("t1", "c1")

        assert len(snapshot.connections) == 2
        assert not snapshot.node("c1")["is_rebalancing"]

    @pytest.mark.parametrize("source,target", [("c1", "c1"), ("p1", "c1"), ("c1", "t1"), ("t1", "p1")])
    def test_incompatible_link(self, pipeline, source, target):
        """Test illegal links are rejected."""
        pipeline.add_node(NodeType.CONSUMER, node_id="c2")
        with pytest.raises(IllegalTransition):
            pipeline.add_connection(source, target)

    def test_consumer_to_consumer(self, pipeline):
        """Test Consumer -> Consumer is rejected."""
        pipeline.add_node(NodeType.CONSUMER, node_id="c2")

        with pytest.raises(IllegalTransition):
            pipeline.add_connection("c1", "c2")

    def test_unknown_endpoint(self, pipeline):
        """Test links to missing nodes."""
        with pytest.raises(UnknownNode):
            pipeline.add_connection("t1", "ghost")

    def test_remove_connection_idles_consumer(self, pipeline):
        """Test unsubscribing clears the consumer's assignment."""
        snapshot = pipeline.remove_connection("t1", "c1")

        assert snapshot.node("c1")["assigned_partitions"] == []
        assert snapshot.node("c1")["is_idle"]


class TestDeleteNode:
    """Test node deletion."""

    def test_cascade_and_rebalance(self, pipeline):
        """Test deleting a consumer hands its partitions to the others."""
        pipeline.add_node(NodeType.CONSUMER, node_id="c2")
        pipeline.add_connection("t1", "c2")
        pipeline.update_node("t1", partitions=2)

        snapshot = pipeline.delete_node("c1")

        assert pipeline.store.get_node("c1") is None
        assert all("c1" not in (c["source_id"], c["target_id"]) for c in snapshot.connections)
        assert snapshot.node("c2")["assigned_partitions"] == [0, 1]

    def test_delete_topic(self, pipeline):
        """Test deleting a topic idles its consumers and is logged."""
        snapshot = pipeline.delete_node("t1")

        assert snapshot.connections == []
        assert snapshot.node("c1")["is_idle"]
        assert pipeline.metadata_log.entries[-1].action == MetadataAction.DELETE

    def test_delete_unknown(self, pipeline):
        """Test deleting a missing node."""
        with pytest.raises(UnknownNode):
            pipeline.delete_node("ghost")


class TestUpdateNode:
    """Test field updates."""

    def test_rates(self, pipeline):
        """Test rate updates."""
        snapshot = pipeline.update_node("p1", production_rate=20)
        assert snapshot.node("p1")["production_rate"] == 20

        snapshot = pipeline.update_node("c1", processing_rate=0)
        assert snapshot.node("c1")["processing_rate"] == 0

    def test_partition_change_rebalances(self, pipeline):
        """Test new partitions are assigned."""
        pipeline.add_node(NodeType.CONSUMER, node_id="c2")
        pipeline.add_connection("t1", "c2")

        snapshot = pipeline.update_node("t1", partitions=3)

        assert snapshot.node("c1")["assigned_partitions"] == [0, 2]
        assert snapshot.node("c2")["assigned_partitions"] == [1]
        assert pipeline.metadata_log.entries[-1].key == "/brokers/topics/Topic 2/partitions"

    @pytest.mark.parametrize("fields", [
        {"partitions": 0},
        {"partitions": 7},
        {"replication_factor": 4},
        {"production_rate": 5},
        {"colour": "red"},
    ])
    def test_invalid_topic_updates(self, pipeline, fields):
        """Test out-of-range or foreign fields are rejected."""
        with pytest.raises(InvalidUpdate):
            pipeline.update_node("t1", **fields)

    def test_negative_rate(self, pipeline):
        """Test rates must be non-negative."""
        with pytest.raises(InvalidUpdate):
            pipeline.update_node("p1", production_rate=-1)

    @pytest.mark.parametrize("node_id,fields", [
        ("p1", {"production_rate": float("nan")}),
        ("p1", {"production_rate": float("inf")}),
        ("c1", {"processing_rate": float("inf")}),
        ("c1", {"processing_rate": True}),
        ("t1", {"partitions": True}),
        ("t1", {"replication_factor": True}),
        ("t1", {"partitions": 2.0}),
    ])
    def test_non_finite_or_bool_values(self, pipeline, node_id, fields):
        """Test NaN, infinite and boolean values are rejected."""
        before = pipeline.store.get_node(node_id).to_dict()

        with pytest.raises(InvalidUpdate):
            pipeline.update_node(node_id, **fields)

        assert pipeline.store.get_node(node_id).to_dict() == before

    def test_ticks_after_rejected_rate(self, pipeline):
        """Test a rejected rate leaves the pipeline ticking."""
        with pytest.raises(InvalidUpdate):
            pipeline.update_node("p1", production_rate=float("nan"))
        pipeline.start()

        snapshot = pipeline.tick()

        assert snapshot.is_running
        assert snapshot.node("t1")["lag"] == pytest.approx(1.5)

    def test_rejected_update_is_atomic(self, pipeline):
        """Test a partially invalid update applies nothing."""
        with pytest.raises(InvalidUpdate):
            pipeline.update_node("t1", name="renamed", partitions=99)

        assert pipeline.store.get_node("t1").name == "Topic 2"

    @pytest.mark.parametrize("factor", [1, 2, 3])
    def test_replication_factor(self, pipeline, factor):
        """Test replica sets follow the replication factor."""
        leader = pipeline.store.get_node("t1").active_leader_id

        snapshot = pipeline.update_node("t1", replication_factor=factor)

        topic = snapshot.node("t1")
        assert len(topic["replicas"]) == factor
        assert len(set(topic["replicas"])) == factor
        assert topic["replicas"][0] == leader
        assert topic["active_leader_id"] == leader

    def test_replication_factor_rejected_when_metadata_down(self, pipeline):
        """Test replica changes need the metadata layer."""
        before = list(pipeline.store.get_node("t1").replicas)
        pipeline.toggle_primary_service()

        with pytest.raises(MetadataUnavailable):
            pipeline.update_node("t1", replication_factor=3)

        topic = pipeline.store.get_node("t1")
        assert topic.replicas == before
        assert topic.replication_factor == 1


class TestInfrastructure:
    """Test broker, service and mode commands."""

    def test_initial_controller(self, simulation):
        """Test the lowest broker is elected at startup."""
        assert simulation.controller_id == 101
        assert simulation.metadata_log.entries[0].action == MetadataAction.ELECT

    def test_toggle_broker_reelects(self, simulation):
        """Test losing the controller broker elects the next one."""
        snapshot = simulation.toggle_broker(101)

        assert snapshot.broker_states[101] is False
        assert snapshot.controller_id == 102
        actions = [e.action for e in snapshot.metadata_log[-2:]]
        assert actions == [MetadataAction.DELETE, MetadataAction.ELECT]

    def test_unknown_mode(self, simulation):
        """Test an unknown mode is rejected and the mode is kept."""
        with pytest.raises(InvalidUpdate, match="cluster mode"):
            simulation.set_mode("bogus")

        assert simulation.mode == ClusterMode.PRIMARY

    def test_controller_always_live(self, simulation):
        """Test the controller is never a dead broker."""
        for broker_id in (102, 101, 103, 101, 102):
            snapshot = simulation.toggle_broker(broker_id)
            if snapshot.controller_id is not None:
                assert snapshot.broker_states[snapshot.controller_id]

    def test_primary_service_toggle(self, simulation):
        """Test service outage drops the controller in PRIMARY mode."""
        assert simulation.toggle_primary_service().controller_id is None
        assert simulation.toggle_primary_service().controller_id == 101

    def test_switch_mode_restores_controller(self, simulation):
        """Test SELF_MANAGED elects even with the service down."""
        simulation.toggle_primary_service()

        snapshot = simulation.set_mode(ClusterMode.SELF_MANAGED)

        assert snapshot.controller_id == 101
        assert snapshot.metadata_log[-1].action == MetadataAction.BROKER_CHANGE

    def test_toggle_mode(self, simulation):
        """Test mode toggling."""
        assert simulation.toggle_mode().mode == ClusterMode.SELF_MANAGED
        assert simulation.toggle_mode().mode == ClusterMode.PRIMARY

    def test_same_mode_noop(self, simulation):
        """Test setting the current mode logs nothing."""
        before = len(simulation.metadata_log)

        simulation.set_mode("primary")

        assert len(simulation.metadata_log) == before


class TestSessionCommands:
    """Test terminated-state gating, retry and reset."""

    def test_mutations_rejected_while_terminated(self, pipeline):
        """Test every topology command is rejected once terminated."""
        terminate(pipeline)
        before = pipeline.snapshot()

        commands = [
            lambda: pipeline.add_node(NodeType.PRODUCER),
            lambda: pipeline.delete_node("p1"),
            lambda: pipeline.add_connection("t1", "c1"),
            lambda: pipeline.remove_connection("t1", "c1"),
            lambda: pipeline.update_node("t1", partitions=2),
            lambda: pipeline.toggle_broker(101),
            lambda: pipeline.toggle_primary_service(),
            lambda: pipeline.set_mode(ClusterMode.SELF_MANAGED),
            lambda: pipeline.start(),
        ]
        for command in commands:
            with pytest.raises(IllegalTransition):
                command()

        assert pipeline.snapshot() == before

    def test_retry_keeps_topology(self, pipeline):
        """Test retry zeroes counters but keeps nodes and links."""
        terminate(pipeline)

        snapshot = pipeline.retry()

        assert snapshot.status == SessionStatus.IDLE
        assert len(snapshot.nodes) == 3
        assert len(snapshot.connections) == 2
        assert snapshot.node("t1")["lag"] == 0
        assert snapshot.global_lag == 0
        assert snapshot.total_messages_processed == 0

    def test_reset_clears_topology(self, pipeline):
        """Test reset wipes the board and restores infrastructure."""
        pipeline.toggle_broker(101)
        pipeline.toggle_primary_service()
        pipeline.set_mode(ClusterMode.SELF_MANAGED)

        snapshot = pipeline.reset()

        assert snapshot.nodes == []
        assert snapshot.connections == []
        assert all(snapshot.broker_states.values())
        assert snapshot.primary_available
        assert snapshot.mode == ClusterMode.SELF_MANAGED
        assert snapshot.controller_id == 101
        assert len(snapshot.metadata_log) == 1

    def test_reset_clears_rebalance(self, simulation):
        """Test reset cancels in-flight rebalance tags."""
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        simulation.add_node(NodeType.CONSUMER, node_id="c1")
        simulation.add_connection("t1", "c1")

        simulation.reset()

        assert simulation.snapshot().nodes == []

    def test_start_pause(self, simulation):
        """Test toggling the running flag."""
        assert simulation.toggle_running().is_running
        assert not simulation.pause().is_running


class TestReadSurface:
    """Test snapshots and listeners."""

    def test_listener_called_after_mutation_and_tick(self, pipeline):
        """Test subscribers observe every change."""
        seen = []
        unsubscribe = pipeline.subscribe(seen.append)

        pipeline.update_node("p1", production_rate=9)
        pipeline.start()
        pipeline.tick()
        unsubscribe()
        pipeline.pause()

        assert len(seen) == 3
        assert seen[-1].metrics.tick_count == 1

    def test_rebalance_hook(self, simulation):
        """Test rebalance hooks receive the result."""
        results = []
        simulation.add_rebalance_hook(results.append)
        simulation.add_node(NodeType.TOPIC, node_id="t1")
        simulation.add_node(NodeType.CONSUMER, node_id="c1")

        simulation.add_connection("t1", "c1")

        assert len(results) == 1
        assert results[0].rebalanced == ["c1"]

    def test_snapshot_is_detached(self, pipeline):
        """Test snapshot dicts do not alias engine state."""
        snapshot = pipeline.snapshot()
        snapshot.node("c1")["assigned_partitions"].append(9)

        assert pipeline.store.get_node("c1").assigned_partitions == [0]

    def test_to_dict(self, pipeline):
        """Test snapshot serialisation."""
        data = pipeline.snapshot().to_dict()

        assert data["status"] == "idle"
        assert data["mode"] == "primary"
        assert data["broker_states"] == {"101": True, "102": True, "103": True}
        assert data["metrics"]["global_lag"] == 0

    def test_advisory_snapshot(self, pipeline):
        """Test the reduced advisory view."""
        pipeline.add_node(NodeType.CONSUMER, node_id="c2")
        pipeline.add_connection("t1", "c2")

        advisory = pipeline.advisory_snapshot()

        assert (advisory.producers, advisory.topics, advisory.consumers) == (1, 1, 2)
        assert advisory.idle_consumers == 1
        assert advisory.lag_ceiling == 100
        assert not advisory.is_empty
