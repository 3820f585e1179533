"""
Cluster simulation engine.

Synchronous command and read surface over the entity store, rebalancer,
failover resolver, controller election and tick simulator. Every command
either applies completely and returns a fresh snapshot, or raises a
SimulationRejection and leaves the state untouched.
"""

import math
import random
from typing import Any, Callable, Dict, List, Optional, Tuple

from clustersim.broker.controller import ControllerElection
from clustersim.broker.metadata_log import MetadataLog
from clustersim.broker.replication import FailoverResolver, ReplicaSelector
from clustersim.consumer.assignment import create_assignment_strategy
from clustersim.consumer.rebalancer import PartitionRebalancer, RebalanceResult
from clustersim.core.entities import (
    ClusterMode,
    Connection,
    Node,
    NodeType,
    is_legal_link,
)
from clustersim.core.store import EntityStore
from clustersim.engine.session import SessionStateMachine, SessionStatus
from clustersim.engine.snapshot import AdvisorySnapshot, ClusterSnapshot, SimulationMetrics
from clustersim.engine.tick import TickResult, TickSimulator
from clustersim.errors import (
    DuplicateConnection,
    IllegalTransition,
    InvalidUpdate,
    MetadataUnavailable,
)
from clustersim.utils.config import SimulationConfig, get_config
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)

SnapshotListener = Callable[[ClusterSnapshot], None]
RebalanceHook = Callable[[RebalanceResult], None]

DEFAULT_X = {
    NodeType.PRODUCER: 100.0,
    NodeType.TOPIC: 400.0,
    NodeType.CONSUMER: 700.0,
}

# field -> node type it belongs to (None = every type)
UPDATABLE_FIELDS: Dict[str, Optional[NodeType]] = {
    "name": None,
    "x": None,
    "y": None,
    "production_rate": NodeType.PRODUCER,
    "partitions": NodeType.TOPIC,
    "replication_factor": NodeType.TOPIC,
    "processing_rate": NodeType.CONSUMER,
    "group_id": NodeType.CONSUMER,
}


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ClusterSimulation:
    """
    One simulation instance.

    Mutations are applied synchronously. The asyncio runtime serialises
    them with the periodic tick and the rebalance settle timer.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize simulation.

        Args:
            config: Engine constants (read from the global Config when omitted)
            rng: Randomness for replica placement
            clock: Time source in seconds for metadata log timestamps
        """
        self.config = config or SimulationConfig.from_config(get_config())

        self.store = EntityStore(self.config.broker_ids)
        self.metadata_log = MetadataLog(self.config.metadata_log_size, clock)
        self.election = ControllerElection(self.config.broker_ids, self.metadata_log)
        self.selector = ReplicaSelector(self.config.broker_ids, rng)
        self.rebalancer = PartitionRebalancer(
            create_assignment_strategy(self.config.assignment_strategy)
        )
        self.tick_simulator = TickSimulator(
            lag_scale=self.config.lag_scale,
            throughput_multiplier=self.config.throughput_multiplier,
            lag_ceiling=self.config.lag_ceiling,
            resolver=FailoverResolver(),
        )
        self.session = SessionStateMachine()
        self.metrics = SimulationMetrics()

        self.mode = ClusterMode(self.config.mode)
        self.primary_available = True
        self.last_tick: Optional[TickResult] = None

        self._listeners: List[SnapshotListener] = []
        self._rebalance_hooks: List[RebalanceHook] = []

        self._elect_controller()

        logger.info(
            "ClusterSimulation initialized",
            brokers=self.config.broker_ids,
            mode=self.mode.value,
            controller_id=self.controller_id,
        )

    # State

    @property
    def controller_id(self) -> Optional[int]:
        return self.election.controller_id

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def is_running(self) -> bool:
        return self.session.is_running

    @property
    def metadata_available(self) -> bool:
        """Whether the active metadata layer can accept topic changes."""
        if self.mode == ClusterMode.PRIMARY:
            return self.primary_available
        return self.controller_id is not None

    def snapshot(self) -> ClusterSnapshot:
        """Capture the full read surface."""
        return ClusterSnapshot.capture(
            nodes=self.store.nodes,
            connections=self.store.connections,
            broker_states=self.store.broker_states,
            controller_id=self.controller_id,
            mode=self.mode,
            primary_available=self.primary_available,
            metadata_log=self.metadata_log.entries,
            metrics=self.metrics,
            status=self.status,
        )

    def advisory_snapshot(self) -> AdvisorySnapshot:
        """Capture the reduced view for the advisory service."""
        topics = self.store.nodes_of_type(NodeType.TOPIC)
        consumers = self.store.nodes_of_type(NodeType.CONSUMER)

        return AdvisorySnapshot(
            status=self.status,
            global_lag=self.metrics.global_lag,
            lag_ceiling=self.config.lag_ceiling,
            total_messages_processed=self.metrics.total_messages_processed,
            producers=len(self.store.nodes_of_type(NodeType.PRODUCER)),
            topics=len(topics),
            consumers=len(consumers),
            offline_topics=sum(1 for t in topics if t.is_offline),
            idle_consumers=sum(1 for c in consumers if c.is_idle),
            mode=self.mode,
            controller_id=self.controller_id,
            throughput=self.metrics.throughput,
        )

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        """
        Register a listener called with a snapshot after every mutation and tick.

        Returns:
            Function that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_rebalance_hook(self, hook: RebalanceHook) -> None:
        """Register a hook called after every rebalance pass that tagged consumers."""
        self._rebalance_hooks.append(hook)

    # Topology commands

    def add_node(
        self,
        node_type: NodeType,
        name: Optional[str] = None,
        node_id: Optional[str] = None,
        x: Optional[float] = None,
        y: Optional[float] = None,
        auto_connect: Optional[bool] = None,
    ) -> ClusterSnapshot:
        """
        Add a node with default field values.

        Args:
            node_type: Node variant
            name: Display name (generated when omitted)
            node_id: Node id (generated when omitted)
            x: Board position
            y: Board position
            auto_connect: Wire the node into the pipeline (config default)

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("add node")
        node_type = self._parse_enum(NodeType, node_type, "node type")

        if node_id is not None and self.store.get_node(node_id) is not None:
            raise InvalidUpdate(f"Node {node_id} already exists")

        if node_type == NodeType.TOPIC and not self.metadata_available:
            self._reject_metadata("create topic")

        count = len(self.store)
        node = Node(
            type=node_type,
            name=name or f"{node_type.value.capitalize()} {count + 1}",
            x=x if x is not None else DEFAULT_X[node_type],
            y=y if y is not None else 100.0 + (count * 50) % 400,
        )
        if node_id is not None:
            node.id = node_id

        if node_type == NodeType.PRODUCER:
            node.production_rate = self.config.producer_rate
        elif node_type == NodeType.TOPIC:
            node.partitions = self.config.default_partitions
            node.replication_factor = 1
            node.replicas = self.selector.select(1, self.selector.pick_preferred())
            node.active_leader_id = node.replicas[0]
        else:
            node.processing_rate = self.config.consumer_rate
            node.group_id = self.config.consumer_group

        links = self._auto_links(node) if self._auto_connect(auto_connect) else []

        self.store.add_node(node)
        for source_id, target_id in links:
            self.store.add_connection(Connection(source_id, target_id))

        if node.stores:
            self.metadata_log.record_topic_config(self.mode, node.name, self._topic_config(node))

        logger.info(
            "Node added",
            node_id=node.id,
            node_type=node_type.value,
            name=node.name,
            links=len(links),
        )

        self._rebalance("node added")
        return self._notify()

    def delete_node(self, node_id: str) -> ClusterSnapshot:
        """
        Delete a node and its connections.

        Args:
            node_id: Node id

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("delete node")
        node = self.store.require_node(node_id)

        removed = self.store.remove_node(node_id)

        if node.stores:
            self.metadata_log.record_topic_deleted(self.mode, node.name)

        logger.info(
            "Node deleted",
            node_id=node_id,
            node_type=node.type.value,
            removed_connections=len(removed),
        )

        self._rebalance("node deleted")
        return self._notify()

    def add_connection(self, source_id: str, target_id: str) -> ClusterSnapshot:
        """
        Connect two nodes.

        Only Producer -> Topic and Topic -> Consumer are legal. Adding an
        existing connection is a no-op.

        Args:
            source_id: Upstream node id
            target_id: Downstream node id

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("add connection")
        source = self.store.require_node(source_id)
        target = self.store.require_node(target_id)

        if source is target or not is_legal_link(source, target):
            raise IllegalTransition(
                f"Cannot link {source.type.value} to {target.type.value}"
            )

        try:
            self.store.add_connection(Connection(source_id, target_id))
        except DuplicateConnection:
            logger.debug("Connection already exists", source_id=source_id, target_id=target_id)
            return self.snapshot()

        logger.info("Connection added", source_id=source_id, target_id=target_id)

        self._rebalance("connection added")
        return self._notify()

    def remove_connection(self, source_id: str, target_id: str) -> ClusterSnapshot:
        """
        Disconnect two nodes. Removing a missing connection is a no-op.

        Args:
            source_id: Upstream node id
            target_id: Downstream node id

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("remove connection")

        if self.store.remove_connection(source_id, target_id) is None:
            return self.snapshot()

        logger.info("Connection removed", source_id=source_id, target_id=target_id)

        self._rebalance("connection removed")
        return self._notify()

    def update_node(self, node_id: str, **fields: Any) -> ClusterSnapshot:
        """
        Update node fields.

        Supported: name, x, y, production_rate (producer), processing_rate
        and group_id (consumer), partitions and replication_factor (topic).
        All fields are validated before any is applied.

        Args:
            node_id: Node id
            **fields: Field values

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("update node")
        node = self.store.require_node(node_id)

        for key, value in fields.items():
            self._validate_field(node, key, value)

        new_replicas = None
        rf = fields.get("replication_factor")
        if rf is not None and rf != node.replication_factor:
            if not self.metadata_available:
                self._reject_metadata("change replication factor")
            new_replicas = self.selector.select(rf, node.active_leader_id)

        partitions_changed = "partitions" in fields and fields["partitions"] != node.partitions

        for key, value in fields.items():
            if key != "replication_factor":
                setattr(node, key, value)

        if new_replicas is not None:
            node.replication_factor = rf
            node.replicas = new_replicas
            if node.active_leader_id not in new_replicas:
                node.active_leader_id = new_replicas[0]

            self.metadata_log.record_topic_config(self.mode, node.name, self._topic_config(node))

            logger.info(
                "Replication factor changed",
                topic=node.name,
                replication_factor=rf,
                replicas=new_replicas,
                leader=node.active_leader_id,
            )

        if partitions_changed:
            self.metadata_log.record_partition_change(
                self.mode,
                node.name,
                {"partitions": node.partitions},
            )
            logger.info("Partition count changed", topic=node.name, partitions=node.partitions)
            self._rebalance("partitions changed")

        return self._notify()

    # Infrastructure commands

    def toggle_broker(self, broker_id: int) -> ClusterSnapshot:
        """
        Flip a broker's liveness and re-run controller election.

        Args:
            broker_id: Broker id from the fixed pool

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("toggle broker")

        online = self.store.toggle_broker(broker_id)
        self.metadata_log.record_broker_change(self.mode, broker_id, online)

        logger.info("Broker toggled", broker_id=broker_id, online=online)

        self._elect_controller()
        return self._notify()

    def toggle_primary_service(self) -> ClusterSnapshot:
        """Flip the liveness of the external metadata service."""
        self.session.require_mutable("toggle metadata service")

        self.primary_available = not self.primary_available

        logger.info(
            "Metadata service toggled",
            available=self.primary_available,
            mode=self.mode.value,
        )

        self._elect_controller()
        return self._notify()

    def set_mode(self, mode: ClusterMode) -> ClusterSnapshot:
        """
        Switch the metadata-management mode.

        Args:
            mode: PRIMARY or SELF_MANAGED

        Returns:
            Updated snapshot
        """
        self.session.require_mutable("change mode")
        mode = self._parse_enum(ClusterMode, mode, "cluster mode")

        if mode == self.mode:
            return self.snapshot()

        logger.info("Cluster mode changed", previous=self.mode.value, mode=mode.value)

        self.mode = mode
        self._elect_controller()
        return self._notify()

    def toggle_mode(self) -> ClusterSnapshot:
        if self.mode == ClusterMode.PRIMARY:
            return self.set_mode(ClusterMode.SELF_MANAGED)
        return self.set_mode(ClusterMode.PRIMARY)

    # Session commands

    def start(self) -> ClusterSnapshot:
        self.session.start()
        return self._notify()

    def pause(self) -> ClusterSnapshot:
        self.session.pause()
        return self._notify()

    def toggle_running(self) -> ClusterSnapshot:
        self.session.toggle()
        return self._notify()

    def retry(self) -> ClusterSnapshot:
        """
        Leave TERMINATED keeping the topology.

        Lag, counters, offline flags and rebalance tags are cleared.
        """
        self.session.retry()

        for topic in self.store.nodes_of_type(NodeType.TOPIC):
            topic.lag = 0.0
            topic.is_offline = False
        PartitionRebalancer.clear_flags(self.store)
        self.metrics = SimulationMetrics()
        self.last_tick = None

        logger.info("Session retried", nodes=len(self.store))

        return self._notify()

    def reset(self) -> ClusterSnapshot:
        """
        Clear the topology and counters.

        Brokers and the metadata service come back online; the mode is kept.
        """
        self.session.reset()

        self.store.clear()
        self.store.restore_brokers()
        self.primary_available = True
        self.metrics = SimulationMetrics()
        self.last_tick = None
        self.metadata_log.clear()
        self.election.reset()
        self._elect_controller()

        logger.info("Session reset", mode=self.mode.value)

        return self._notify()

    # Timers

    def tick(self) -> ClusterSnapshot:
        """
        Advance one tick. Does nothing unless the session is running.

        Returns:
            Updated snapshot
        """
        if not self.session.is_running:
            return self.snapshot()

        self.last_tick = self.tick_simulator.step(
            self.store,
            self.controller_id,
            self.metrics,
            self.session,
            on_failover=self._record_failover,
        )
        return self._notify()

    def clear_rebalancing(self) -> ClusterSnapshot:
        """End every in-flight rebalance (settle timer expiry)."""
        cleared = PartitionRebalancer.clear_flags(self.store)
        if not cleared:
            return self.snapshot()

        logger.info("Rebalance settled", consumers=cleared)
        return self._notify()

    # Internals

    def _auto_connect(self, requested: Optional[bool]) -> bool:
        if requested is None:
            return self.config.auto_connect
        return requested

    def _auto_links(self, node: Node) -> List[Tuple[str, str]]:
        """
        Default wiring for a new node.

        A topic takes the first producer without an outgoing link, a
        consumer subscribes to the newest topic, a producer feeds the
        oldest topic.
        """
        if node.stores:
            free = [
                p for p in self.store.nodes_of_type(NodeType.PRODUCER)
                if not self.store.has_outgoing(p.id)
            ]
            return [(free[0].id, node.id)] if free else []

        topics = self.store.nodes_of_type(NodeType.TOPIC)
        if not topics:
            return []

        if node.consumes:
            return [(topics[-1].id, node.id)]
        return [(node.id, topics[0].id)]

    def _validate_field(self, node: Node, key: str, value: Any) -> None:
        if key not in UPDATABLE_FIELDS:
            raise InvalidUpdate(f"Field {key} cannot be updated")

        owner = UPDATABLE_FIELDS[key]
        if owner is not None and owner != node.type:
            raise InvalidUpdate(f"Field {key} does not apply to {node.type.value}")

        if key in ("production_rate", "processing_rate"):
            if (
                not isinstance(value, (int, float))
                or isinstance(value, bool)
                or not math.isfinite(value)
                or value < 0
            ):
                raise InvalidUpdate(f"{key} must be a finite non-negative number")
        elif key == "partitions":
            if not _is_int(value) or not 1 <= value <= self.config.max_partitions:
                raise InvalidUpdate(
                    f"partitions must be between 1 and {self.config.max_partitions}"
                )
        elif key == "replication_factor":
            if not _is_int(value) or not 1 <= value <= self.config.max_replication_factor:
                raise InvalidUpdate(
                    f"replication_factor must be between 1 and {self.config.max_replication_factor}"
                )
        elif key in ("name", "group_id"):
            if not isinstance(value, str) or not value:
                raise InvalidUpdate(f"{key} must be a non-empty string")

    @staticmethod
    def _parse_enum(enum_cls, value: Any, label: str):
        try:
            return enum_cls(value)
        except ValueError:
            raise InvalidUpdate(f"Unknown {label}: {value!r}") from None

    def _reject_metadata(self, command: str) -> None:
        layer = "metadata service" if self.mode == ClusterMode.PRIMARY else "controller quorum"
        logger.warning("Metadata layer unavailable", command=command, mode=self.mode.value)
        raise MetadataUnavailable(f"Cannot {command}: {layer} unavailable")

    def _elect_controller(self) -> None:
        self.election.elect(self.mode, self.primary_available, self.store.broker_states)

    def _rebalance(self, reason: str) -> None:
        result = self.rebalancer.rebalance(self.store, reason)
        if result.triggered:
            for hook in self._rebalance_hooks:
                hook(result)

    def _record_failover(self, topic: Node) -> None:
        self.metadata_log.record_partition_change(
            self.mode,
            topic.name,
            {"leader": topic.active_leader_id, "replicas": topic.replicas},
        )

    @staticmethod
    def _topic_config(topic: Node) -> dict:
        return {
            "partitions": topic.partitions,
            "replication_factor": topic.replication_factor,
            "replicas": topic.replicas,
        }

    def _notify(self) -> ClusterSnapshot:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
        return snapshot
