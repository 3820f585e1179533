"""Simulated entities and the entity store."""

from clustersim.core.entities import (
    ClusterMode,
    Connection,
    Node,
    NodeType,
    is_legal_link,
)
from clustersim.core.store import EntityStore

__all__ = [
    "ClusterMode",
    "Connection",
    "EntityStore",
    "Node",
    "NodeType",
    "is_legal_link",
]
