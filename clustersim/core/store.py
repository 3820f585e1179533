"""
Entity store for the simulated cluster.

Holds nodes, connections and the broker liveness map. It performs no
business logic; it only keeps connection endpoints consistent with the
node set.
"""

from typing import Dict, Iterator, List, Optional

from clustersim.core.entities import Connection, Node, NodeType
from clustersim.errors import DuplicateConnection, UnknownNode
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


class EntityStore:
    """
    Authoritative collection of nodes, connections and broker liveness.

    Iteration order of nodes is insertion order and is stable, which the
    rebalancer relies on for deterministic assignment.
    """

    def __init__(self, broker_ids: List[int]):
        """
        Initialize entity store.

        Args:
            broker_ids: Fixed broker pool, all initially online
        """
        self._nodes: Dict[str, Node] = {}
        self._connections: List[Connection] = []
        self._broker_ids = list(broker_ids)
        self._broker_states: Dict[int, bool] = {broker_id: True for broker_id in broker_ids}

    # Nodes

    def add_node(self, node: Node) -> Node:
        """
        Insert a node.

        Args:
            node: Node to insert

        Returns:
            The inserted node
        """
        if node.id in self._nodes:
            raise ValueError(f"Node {node.id} already exists")

        self._nodes[node.id] = node

        logger.debug("Node added", node_id=node.id, node_type=node.type.value)

        return node

    def get_node(self, node_id: str) -> Optional[Node]:
        return self._nodes.get(node_id)

    def require_node(self, node_id: str) -> Node:
        """
        Get a node or raise.

        Args:
            node_id: Node id

        Returns:
            The node

        Raises:
            UnknownNode: If no node has this id
        """
        node = self._nodes.get(node_id)
        if node is None:
            raise UnknownNode(f"Node {node_id} does not exist")
        return node

    def remove_node(self, node_id: str) -> List[Connection]:
        """
        Remove a node and every connection touching it.

        Args:
            node_id: Node id

        Returns:
            Removed connections
        """
        self.require_node(node_id)

        removed = [c for c in self._connections if c.touches(node_id)]
        self._connections = [c for c in self._connections if not c.touches(node_id)]
        del self._nodes[node_id]

        logger.debug(
            "Node removed",
            node_id=node_id,
            removed_connections=len(removed),
        )

        return removed

    @property
    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def __iter__(self) -> Iterator[Node]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def nodes_of_type(self, node_type: NodeType) -> List[Node]:
        """Nodes of one variant in store order."""
        return [n for n in self._nodes.values() if n.type == node_type]

    # Connections

    def add_connection(self, connection: Connection) -> Connection:
        """
        Insert a connection.

        Args:
            connection: Connection to insert

        Returns:
            The inserted connection

        Raises:
            UnknownNode: If an endpoint does not exist
            DuplicateConnection: If the same edge already exists
        """
        self.require_node(connection.source_id)
        self.require_node(connection.target_id)

        if connection in self._connections:
            raise DuplicateConnection(
                f"Connection {connection.source_id} -> {connection.target_id} already exists"
            )

        self._connections.append(connection)
        return connection

    def remove_connection(self, source_id: str, target_id: str) -> Optional[Connection]:
        """
        Remove the connection between two nodes.

        Args:
            source_id: Upstream node id
            target_id: Downstream node id

        Returns:
            Removed connection, or None if there was none
        """
        for connection in self._connections:
            if connection.source_id == source_id and connection.target_id == target_id:
                self._connections.remove(connection)
                return connection
        return None

    def has_connection(self, source_id: str, target_id: str) -> bool:
        return Connection(source_id, target_id) in self._connections

    def has_outgoing(self, node_id: str) -> bool:
        return any(c.source_id == node_id for c in self._connections)

    @property
    def connections(self) -> List[Connection]:
        return list(self._connections)

    def producers_for(self, topic_id: str) -> List[Node]:
        """Producers connected into a topic, in store order."""
        return [
            n for n in self._nodes.values()
            if n.type == NodeType.PRODUCER and self.has_connection(n.id, topic_id)
        ]

    def consumers_for(self, topic_id: str) -> List[Node]:
        """Consumers subscribed to a topic, in store order."""
        return [
            n for n in self._nodes.values()
            if n.type == NodeType.CONSUMER and self.has_connection(topic_id, n.id)
        ]

    def topics_for(self, consumer_id: str) -> List[Node]:
        """Topics a consumer subscribes to, in store order."""
        return [
            n for n in self._nodes.values()
            if n.type == NodeType.TOPIC and self.has_connection(n.id, consumer_id)
        ]

    # Brokers

    @property
    def broker_ids(self) -> List[int]:
        return list(self._broker_ids)

    @property
    def broker_states(self) -> Dict[int, bool]:
        """Live view of the broker liveness map."""
        return self._broker_states

    def is_broker_live(self, broker_id: Optional[int]) -> bool:
        if broker_id is None:
            return False
        return self._broker_states.get(broker_id, False)

    def live_brokers(self) -> List[int]:
        """Live broker ids in pool order."""
        return [b for b in self._broker_ids if self._broker_states[b]]

    def set_broker_state(self, broker_id: int, online: bool) -> None:
        """
        Set broker liveness.

        Args:
            broker_id: Broker id from the fixed pool
            online: New liveness
        """
        if broker_id not in self._broker_states:
            raise UnknownNode(f"Broker {broker_id} is not part of the cluster")

        self._broker_states[broker_id] = online

    def toggle_broker(self, broker_id: int) -> bool:
        """
        Flip broker liveness.

        Returns:
            New liveness
        """
        if broker_id not in self._broker_states:
            raise UnknownNode(f"Broker {broker_id} is not part of the cluster")

        self._broker_states[broker_id] = not self._broker_states[broker_id]
        return self._broker_states[broker_id]

    def restore_brokers(self) -> None:
        """Bring every broker back online."""
        for broker_id in self._broker_ids:
            self._broker_states[broker_id] = True

    def clear(self) -> None:
        """Remove all nodes and connections."""
        self._nodes.clear()
        self._connections.clear()
