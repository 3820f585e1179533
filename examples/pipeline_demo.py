#!/usr/bin/env python3
"""
Pipeline demo for the cluster simulator.

Builds a producer -> topic -> consumer pipeline, runs it on the asyncio
runtime, fails a broker to trigger leader failover, then lets the backlog
grow until the session terminates.
"""

import asyncio

from clustersim import ClusterMode, NodeType, SimulationRuntime
from clustersim.advisor import RuleBasedAdvisor
from clustersim.engine import ClusterSimulation
from clustersim.utils import SimulationConfig, configure_logging


def show(title, snapshot):
    topics = snapshot.nodes_of_type(NodeType.TOPIC)
    lags = ", ".join(
        f"{t['name']}={t['lag']:.1f}{' (offline)' if t['is_offline'] else ''}"
        for t in topics
    )
    print(
        f"  {title}: status={snapshot.status.value} lag={snapshot.global_lag:.1f} "
        f"processed={snapshot.total_messages_processed} controller={snapshot.controller_id} [{lags}]"
    )


async def main():
    print("=" * 60)
    print("ClusterSim - Pipeline Demo")
    print("=" * 60)

    config = SimulationConfig(tick_interval_ms=100, rebalance_settle_ms=300)
    simulation = ClusterSimulation(config)
    advisor = RuleBasedAdvisor()

    async with SimulationRuntime(simulation) as runtime:
        print("\n[1] Building pipeline...")
        await runtime.execute("add_node", NodeType.PRODUCER, node_id="p1")
        await runtime.execute("add_node", NodeType.TOPIC, node_id="t1")
        await runtime.execute("add_node", NodeType.CONSUMER, node_id="c1")
        result = await runtime.execute("update_node", "t1", replication_factor=3, partitions=2)
        show("built", result.snapshot)

        print("\n[2] Running...")
        await runtime.execute("start")
        await asyncio.sleep(1.0)
        show("running", await runtime.snapshot())

        print("\n[3] Failing the topic leader...")
        leader = (await runtime.snapshot()).node("t1")["active_leader_id"]
        await runtime.execute("toggle_broker", leader)
        await asyncio.sleep(0.5)
        snapshot = await runtime.snapshot()
        print(f"  leader {leader} -> {snapshot.node('t1')['active_leader_id']}")

        print("\n[4] Switching to self-managed metadata...")
        result = await runtime.execute("set_mode", ClusterMode.SELF_MANAGED)
        for entry in result.snapshot.metadata_log[-3:]:
            print(f"  @{entry.offset} {entry.action.value} {entry.key} {entry.value or ''}")

        print("\n[5] Flooding the topic...")
        await runtime.execute("update_node", "p1", production_rate=50)
        while (await runtime.snapshot()).is_running:
            await asyncio.sleep(0.2)
        show("final", await runtime.snapshot())

        print(f"\n  advisor: {advisor.analyze_board(simulation.advisory_snapshot())}")

    print("\n" + "=" * 60)
    print("Demo completed")
    print("=" * 60)


if __name__ == "__main__":
    configure_logging(log_level="WARNING")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\nDemo interrupted by user")
