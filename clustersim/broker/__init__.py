"""Broker-side simulation: replication, failover and controller election."""

from clustersim.broker.controller import ControllerElection, ControllerState
from clustersim.broker.metadata_log import MetadataAction, MetadataLog, MetadataOperation
from clustersim.broker.replication import FailoverOutcome, FailoverResolver, ReplicaSelector

__all__ = [
    "ControllerElection",
    "ControllerState",
    "FailoverOutcome",
    "FailoverResolver",
    "MetadataAction",
    "MetadataLog",
    "MetadataOperation",
    "ReplicaSelector",
]
