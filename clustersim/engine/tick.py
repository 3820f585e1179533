"""
Tick simulator.

One tick moves messages from producers into topics and drains them through
the consumers that currently own partitions. A rebalance anywhere pauses the
whole cluster for the tick.
"""

import math
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from clustersim.broker.replication import FailoverOutcome, FailoverResolver
from clustersim.consumer.rebalancer import PartitionRebalancer
from clustersim.core.entities import Node, NodeType
from clustersim.core.store import EntityStore
from clustersim.engine.session import SessionStateMachine
from clustersim.engine.snapshot import LagTrend, SimulationMetrics
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)

LAG_TREND_EPSILON = 1e-9


@dataclass
class TickResult:
    """
    Outcome of one tick.

    Attributes:
        skipped: Tick paused by an in-flight rebalance
        processed: Messages processed during the tick
        global_lag: Mean lag of online topics after the tick
        terminated: Lag ceiling reached on this tick
        outcomes: topic_id -> failover outcome
    """
    skipped: bool = False
    processed: int = 0
    global_lag: float = 0.0
    terminated: bool = False
    outcomes: Dict[str, FailoverOutcome] = field(default_factory=dict)


class TickSimulator:
    """
    Periodic step function of the simulation.

    lag' = max(0, lag + inflow*k - min(lag + inflow*k, capacity*k))
    """

    def __init__(
        self,
        lag_scale: float = 0.5,
        throughput_multiplier: int = 10,
        lag_ceiling: float = 100.0,
        resolver: Optional[FailoverResolver] = None,
    ):
        """
        Initialize tick simulator.

        Args:
            lag_scale: Fraction of rates applied per tick (k)
            throughput_multiplier: Processed messages per unit of drained lag
            lag_ceiling: Global lag that terminates the session
            resolver: Leader failover resolver
        """
        self.lag_scale = lag_scale
        self.throughput_multiplier = throughput_multiplier
        self.lag_ceiling = lag_ceiling
        self.resolver = resolver or FailoverResolver()

    def step(
        self,
        store: EntityStore,
        controller_id: Optional[int],
        metrics: SimulationMetrics,
        session: SessionStateMachine,
        on_failover: Optional[Callable[[Node], None]] = None,
    ) -> TickResult:
        """
        Advance the simulation by one tick.

        Args:
            store: Entity store
            controller_id: Current controller
            metrics: Counters updated in place
            session: Session moved to TERMINATED on ceiling breach
            on_failover: Called for each topic whose leader changed

        Returns:
            Tick result
        """
        if PartitionRebalancer.is_rebalancing(store):
            logger.debug("Tick skipped, rebalance in progress")
            return TickResult(skipped=True, global_lag=metrics.global_lag)

        result = TickResult()
        processed = 0

        topics = store.nodes_of_type(NodeType.TOPIC)
        for topic in topics:
            outcome = self.resolver.resolve(topic, store.broker_states, controller_id)
            result.outcomes[topic.id] = outcome

            if outcome == FailoverOutcome.FAILED_OVER and on_failover:
                on_failover(topic)

            if not outcome.online:
                continue

            drained = self._flow(store, topic)
            processed += math.floor(drained * self.throughput_multiplier)

        result.processed = processed

        online = [t for t in topics if not t.is_offline]
        global_lag = sum(t.lag for t in online) / len(online) if online else 0.0
        result.global_lag = global_lag

        metrics.lag_trend = self._trend(metrics.global_lag, global_lag)
        metrics.global_lag = global_lag
        metrics.throughput = result.processed
        metrics.total_messages_processed += result.processed
        metrics.tick_count += 1

        if global_lag >= self.lag_ceiling and session.is_running:
            logger.warning(
                "Lag ceiling reached, session terminated",
                global_lag=global_lag,
                ceiling=self.lag_ceiling,
            )
            session.terminate()
            result.terminated = True

        logger.debug(
            "Tick complete",
            tick=metrics.tick_count,
            processed=result.processed,
            global_lag=global_lag,
        )

        return result

    def _flow(self, store: EntityStore, topic: Node) -> float:
        """
        Apply inflow and drain for one online topic.

        Returns:
            Amount of lag drained
        """
        inflow = sum(p.production_rate for p in store.producers_for(topic.id))
        capacity = sum(
            c.processing_rate
            for c in store.consumers_for(topic.id)
            if c.assigned_partitions
        )

        pending = topic.lag + inflow * self.lag_scale
        drained = min(pending, capacity * self.lag_scale)
        topic.lag = max(0.0, pending - drained)

        return drained

    @staticmethod
    def _trend(previous: float, current: float) -> LagTrend:
        if current > previous + LAG_TREND_EPSILON:
            return LagTrend.UP
        if current < previous - LAG_TREND_EPSILON:
            return LagTrend.DOWN
        return LagTrend.STABLE
