"""
Replica placement and leader failover for simulated topics.

Each topic has a replica set of brokers and one active leader. When the
leader goes down the controller promotes the first live replica. Without a
controller nobody can authorise the change and the topic goes offline.
"""

import random
from enum import Enum
from typing import Dict, List, Optional

from clustersim.core.entities import Node
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


class FailoverOutcome(str, Enum):
    """Result of resolving a topic's leader for one tick."""

    ONLINE = "online"                    # Leader live, nothing changed
    FAILED_OVER = "failed_over"          # New leader elected from replicas
    NO_CONTROLLER = "no_controller"      # Leader down, nobody to authorise failover
    NO_LIVE_REPLICA = "no_live_replica"  # Leader down, every replica down

    @property
    def online(self) -> bool:
        return self in (FailoverOutcome.ONLINE, FailoverOutcome.FAILED_OVER)


class ReplicaSelector:
    """
    Chooses replica sets from the fixed broker pool.

    Randomness comes from an injectable random.Random so tests can seed it.
    """

    def __init__(self, broker_ids: List[int], rng: Optional[random.Random] = None):
        """
        Initialize replica selector.

        Args:
            broker_ids: Fixed broker pool
            rng: Source of randomness
        """
        self.broker_ids = list(broker_ids)
        self.rng = rng or random.Random()

    def pick_preferred(self) -> int:
        """Pick a random broker to lead a new topic."""
        return self.rng.choice(self.broker_ids)

    def select(
        self,
        replication_factor: int,
        preferred_leader: Optional[int] = None,
    ) -> List[int]:
        """
        Select a replica set.

        The preferred leader, when part of the pool, goes first; the
        remaining slots are filled with a random sample of the other brokers.

        Args:
            replication_factor: Number of replicas
            preferred_leader: Broker to keep as first replica

        Returns:
            Distinct broker ids, len == replication_factor
        """
        if not 1 <= replication_factor <= len(self.broker_ids):
            raise ValueError(
                f"replication_factor must be between 1 and {len(self.broker_ids)}"
            )

        replicas: List[int] = []
        if preferred_leader in self.broker_ids:
            replicas.append(preferred_leader)

        others = [b for b in self.broker_ids if b not in replicas]
        replicas.extend(self.rng.sample(others, replication_factor - len(replicas)))

        return replicas


class FailoverResolver:
    """
    Per-tick leader resolution for topics.
    """

    def resolve(
        self,
        topic: Node,
        broker_states: Dict[int, bool],
        controller_id: Optional[int],
    ) -> FailoverOutcome:
        """
        Resolve the active leader of a topic.

        Mutates topic.active_leader_id and topic.is_offline. When the topic
        goes offline the previous leader is left in place.

        Args:
            topic: Topic node
            broker_states: Broker liveness map
            controller_id: Current controller, or None

        Returns:
            Failover outcome
        """
        if topic.active_leader_id is not None and broker_states.get(topic.active_leader_id, False):
            topic.is_offline = False
            return FailoverOutcome.ONLINE

        if controller_id is None:
            if not topic.is_offline:
                logger.warning(
                    "Leader unavailable and no controller, topic offline",
                    topic=topic.name,
                    leader=topic.active_leader_id,
                )
            topic.is_offline = True
            return FailoverOutcome.NO_CONTROLLER

        for broker_id in topic.replicas:
            if broker_states.get(broker_id, False):
                previous = topic.active_leader_id
                topic.active_leader_id = broker_id
                topic.is_offline = False

                logger.info(
                    "Leader failover",
                    topic=topic.name,
                    previous_leader=previous,
                    new_leader=broker_id,
                    controller_id=controller_id,
                )
                return FailoverOutcome.FAILED_OVER

        if not topic.is_offline:
            logger.warning(
                "No live replica, topic offline",
                topic=topic.name,
                replicas=topic.replicas,
            )
        topic.is_offline = True
        return FailoverOutcome.NO_LIVE_REPLICA
