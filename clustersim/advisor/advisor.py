"""
Advisory collaborator interface.

An advisor reads an AdvisorySnapshot and returns free text for display.
The engine never consumes the reply. build_board_prompt renders the
snapshot for an external text service; RuleBasedAdvisor answers offline.
"""

from abc import ABC, abstractmethod
from typing import Dict

from clustersim.engine.snapshot import AdvisorySnapshot
from clustersim.engine.session import SessionStatus
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)

HIGH_LAG_THRESHOLD = 50.0
LOW_THROUGHPUT_THRESHOLD = 10

SYSTEM_INSTRUCTION = """\
You are the senior architect in a broker-cluster simulation.
The user is learning publish/subscribe streaming by building pipelines.
Give brief, technically accurate advice based on the current board state.
Keep responses under 3 sentences unless asked for a detailed explanation.

Rules:
1. If lag is high (>50), suggest adding consumers or partitions.
2. If throughput is low, suggest adding producers.
3. If the user asks "What is X?", explain the concept X simply.
"""

CONCEPTS: Dict[str, str] = {
    "topic": "A topic is a named log that producers write to and consumers read from. "
             "Its backlog of unread messages is the lag.",
    "partition": "A partition is a slice of a topic. Each partition is read by at most one "
                 "consumer of a group, so the partition count caps parallelism.",
    "consumer group": "Consumers in a group share a topic's partitions. Adding or removing "
                      "one triggers a rebalance that briefly pauses processing.",
    "rebalance": "A rebalance reassigns partitions to the consumers of a group. "
                 "While it runs, nobody consumes.",
    "replica": "A replica is a broker holding a copy of a topic. One replica is the leader "
               "and serves reads and writes.",
    "replication factor": "The replication factor is how many brokers hold a copy of a topic. "
                          "More replicas let the topic survive broker failures.",
    "leader": "The leader is the replica currently serving a topic. If it fails, the "
              "controller promotes another live replica.",
    "controller": "The controller is the broker allowed to approve leader changes. "
                  "Without one, a failed leader cannot be replaced.",
    "lag": "Lag is the backlog of messages produced but not yet consumed. If it keeps "
           "growing the pipeline cannot keep up.",
    "primary mode": "In primary mode an external metadata service stores cluster state and "
                    "chooses the controller. If that service is down, nothing can change.",
    "self-managed mode": "In self-managed mode the brokers elect a controller among themselves "
                         "and keep metadata in an internal log.",
}


def build_board_prompt(snapshot: AdvisorySnapshot) -> str:
    """
    Render the board state as a prompt for an external text service.

    Args:
        snapshot: Advisory snapshot

    Returns:
        Prompt text
    """
    return (
        "Current board state:\n"
        f"- Status: {snapshot.status.value}\n"
        f"- Global lag: {snapshot.global_lag:.1f} (max is {snapshot.lag_ceiling:.0f} before crash)\n"
        f"- Messages processed: {snapshot.total_messages_processed}\n"
        f"- Topology: {snapshot.producers} producers, {snapshot.topics} topics, "
        f"{snapshot.consumers} consumers\n"
        f"- Offline topics: {snapshot.offline_topics}, idle consumers: {snapshot.idle_consumers}\n"
        f"- Metadata mode: {snapshot.mode.value}, controller: {snapshot.controller_id}\n"
        "\n"
        "Analyze this situation. If the lag is high, warn them. "
        "If they just started, give them a mission. Return only the advice text."
    )


def build_concept_prompt(concept: str) -> str:
    """Render a concept question for an external text service."""
    return f'Explain the concept "{concept}" in the context of this simulation. Keep it short.'


class Advisor(ABC):
    """Abstract advisory service."""

    @abstractmethod
    def analyze_board(self, snapshot: AdvisorySnapshot) -> str:
        """
        Produce advice for the current board.

        Args:
            snapshot: Advisory snapshot

        Returns:
            Advice text
        """
        pass

    @abstractmethod
    def explain_concept(self, concept: str) -> str:
        """
        Explain a concept.

        Args:
            concept: Free-text concept query

        Returns:
            Explanation text
        """
        pass


class RuleBasedAdvisor(Advisor):
    """
    Offline advisor applying the advisory rules directly.
    """

    def analyze_board(self, snapshot: AdvisorySnapshot) -> str:
        """Pick the most urgent piece of advice."""
        if snapshot.status == SessionStatus.TERMINATED:
            advice = (
                "The cluster crashed under its backlog. Retry and add consumers "
                "or partitions before producers outpace them."
            )
        elif snapshot.is_empty:
            advice = (
                "Start by adding a producer, a topic and a consumer, "
                "then press start to watch messages flow."
            )
        elif snapshot.controller_id is None:
            advice = (
                "There is no active controller, so failed leaders cannot be replaced. "
                "Restore the metadata service or bring a broker back online."
            )
        elif snapshot.offline_topics:
            advice = (
                f"{snapshot.offline_topics} topic(s) are offline because no replica can lead. "
                "Bring brokers back or raise the replication factor."
            )
        elif snapshot.global_lag > HIGH_LAG_THRESHOLD:
            advice = (
                f"Lag is at {snapshot.global_lag:.0f} and climbing toward "
                f"{snapshot.lag_ceiling:.0f}. Add consumers, and add partitions "
                "so the new consumers get work."
            )
        elif snapshot.idle_consumers:
            advice = (
                f"{snapshot.idle_consumers} consumer(s) are idle: a partition feeds at most "
                "one consumer per group. Add partitions to use them."
            )
        elif snapshot.status == SessionStatus.RUNNING and snapshot.throughput < LOW_THROUGHPUT_THRESHOLD:
            advice = "Throughput is low. Add producers or raise their rate to push more data."
        else:
            advice = "The pipeline is healthy. Try failing a broker to see leader failover."

        logger.debug("Advice generated", status=snapshot.status.value, lag=snapshot.global_lag)

        return advice

    def explain_concept(self, concept: str) -> str:
        """Look the concept up in the glossary."""
        key = concept.strip().lower().rstrip("?")
        for prefix in ("what is a ", "what is an ", "what is "):
            if key.startswith(prefix):
                key = key[len(prefix):]
                break

        if key in CONCEPTS:
            return CONCEPTS[key]
        if key.endswith("s") and key[:-1] in CONCEPTS:
            return CONCEPTS[key[:-1]]

        return "Information unavailable."
