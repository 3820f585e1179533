"""
Bounded log of metadata operations.

Under PRIMARY mode entries look like writes to an external coordination
service (znode paths such as /controller or /brokers/ids/101). Under
SELF_MANAGED mode they look like records appended to an internal cluster
metadata topic (BROKER_CHANGE, TOPIC_CONFIG, PARTITION_CHANGE).
"""

import json
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, List, Optional

from clustersim.core.entities import ClusterMode
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


class MetadataAction(str, Enum):
    """Operation kinds."""

    # PRIMARY (coordination service)
    REGISTER = "REGISTER"
    ELECT = "ELECT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"

    # SELF_MANAGED (metadata topic records)
    BROKER_CHANGE = "BROKER_CHANGE"
    TOPIC_CONFIG = "TOPIC_CONFIG"
    PARTITION_CHANGE = "PARTITION_CHANGE"


@dataclass(frozen=True)
class MetadataOperation:
    """
    One entry of the metadata log.

    Attributes:
        offset: Monotonic position, never reused after eviction
        timestamp: Milliseconds since epoch
        mode: Mode active when the entry was written
        action: Operation kind
        key: Znode path (PRIMARY) or record key (SELF_MANAGED)
        value: Optional payload
    """
    offset: int
    timestamp: int
    mode: ClusterMode
    action: MetadataAction
    key: str
    value: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "offset": self.offset,
            "timestamp": self.timestamp,
            "mode": self.mode.value,
            "action": self.action.value,
            "key": self.key,
            "value": self.value,
        }


class MetadataLog:
    """
    Append-only metadata log keeping only a recent window.
    """

    def __init__(
        self,
        max_entries: int = 20,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize metadata log.

        Args:
            max_entries: Window size; older entries are evicted
            clock: Time source in seconds (defaults to time.time)
        """
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._entries: Deque[MetadataOperation] = deque(maxlen=max_entries)
        self._next_offset = 0
        self._clock = clock or time.time

    def append(
        self,
        mode: ClusterMode,
        action: MetadataAction,
        key: str,
        value: Optional[str] = None,
    ) -> MetadataOperation:
        """
        Append an entry.

        Args:
            mode: Active mode
            action: Operation kind
            key: Path or record key
            value: Optional payload

        Returns:
            The appended entry
        """
        entry = MetadataOperation(
            offset=self._next_offset,
            timestamp=int(self._clock() * 1000),
            mode=mode,
            action=action,
            key=key,
            value=value,
        )
        self._entries.append(entry)
        self._next_offset += 1

        logger.debug(
            "Metadata operation",
            offset=entry.offset,
            action=action.value,
            key=key,
        )

        return entry

    # Domain events

    def record_controller_change(
        self,
        mode: ClusterMode,
        controller_id: Optional[int],
    ) -> MetadataOperation:
        """Record a controller change."""
        if mode == ClusterMode.PRIMARY:
            value = json.dumps({"brokerid": controller_id}) if controller_id is not None else None
            return self.append(mode, MetadataAction.ELECT, "/controller", value)

        return self.append(
            mode,
            MetadataAction.BROKER_CHANGE,
            "controller",
            str(controller_id) if controller_id is not None else "none",
        )

    def record_broker_change(
        self,
        mode: ClusterMode,
        broker_id: int,
        online: bool,
    ) -> MetadataOperation:
        """Record a broker joining or leaving."""
        if mode == ClusterMode.PRIMARY:
            action = MetadataAction.REGISTER if online else MetadataAction.DELETE
            return self.append(mode, action, f"/brokers/ids/{broker_id}")

        return self.append(
            mode,
            MetadataAction.BROKER_CHANGE,
            f"broker-{broker_id}",
            "online" if online else "fenced",
        )

    def record_topic_config(
        self,
        mode: ClusterMode,
        topic_name: str,
        config: dict,
    ) -> MetadataOperation:
        """Record topic creation or a topic configuration change."""
        value = json.dumps(config, sort_keys=True)
        if mode == ClusterMode.PRIMARY:
            return self.append(mode, MetadataAction.UPDATE, f"/config/topics/{topic_name}", value)
        return self.append(mode, MetadataAction.TOPIC_CONFIG, topic_name, value)

    def record_topic_deleted(self, mode: ClusterMode, topic_name: str) -> MetadataOperation:
        """Record topic deletion."""
        if mode == ClusterMode.PRIMARY:
            return self.append(mode, MetadataAction.DELETE, f"/config/topics/{topic_name}")
        return self.append(mode, MetadataAction.TOPIC_CONFIG, topic_name, "deleted")

    def record_partition_change(
        self,
        mode: ClusterMode,
        topic_name: str,
        state: dict,
    ) -> MetadataOperation:
        """Record a leader or partition-count change."""
        value = json.dumps(state, sort_keys=True)
        if mode == ClusterMode.PRIMARY:
            return self.append(
                mode,
                MetadataAction.UPDATE,
                f"/brokers/topics/{topic_name}/partitions",
                value,
            )
        return self.append(mode, MetadataAction.PARTITION_CHANGE, topic_name, value)

    @property
    def entries(self) -> List[MetadataOperation]:
        return list(self._entries)

    @property
    def next_offset(self) -> int:
        return self._next_offset

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        """Drop all entries; offsets keep increasing."""
        self._entries.clear()
