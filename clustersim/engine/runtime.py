"""
Asyncio runtime for a simulation instance.

Drives the two independent timers (periodic tick, rebalance settle) and
serialises them with user commands through a single lock.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

from clustersim.consumer.rebalancer import RebalanceResult
from clustersim.engine.simulation import ClusterSimulation
from clustersim.engine.snapshot import ClusterSnapshot
from clustersim.errors import SimulationRejection
from clustersim.core.entities import generate_id
from clustersim.utils.logging import bind_session, get_logger, unbind_session

logger = get_logger(__name__)

COMMANDS = frozenset({
    "add_node",
    "delete_node",
    "add_connection",
    "remove_connection",
    "update_node",
    "toggle_broker",
    "toggle_primary_service",
    "set_mode",
    "toggle_mode",
    "start",
    "pause",
    "toggle_running",
    "reset",
    "retry",
})


@dataclass
class CommandResult:
    """
    Result of a command issued through the runtime.

    Attributes:
        accepted: Whether the command was applied
        snapshot: State after the command (unchanged when rejected)
        reason: Rejection reason
        error: Rejection class name
    """
    accepted: bool
    snapshot: ClusterSnapshot
    reason: Optional[str] = None
    error: Optional[str] = None


class SimulationRuntime:
    """
    Runs a ClusterSimulation on the event loop.

    The tick loop fires every tick interval and applies a tick only while
    the session is running. The settle timer is rescheduled on every
    rebalance and clears all rebalance tags when it fires.
    """

    def __init__(self, simulation: Optional[ClusterSimulation] = None):
        """
        Initialize runtime.

        Args:
            simulation: Simulation to drive (a default one if omitted)
        """
        self.simulation = simulation or ClusterSimulation()
        self._lock = asyncio.Lock()
        self._tick_task: Optional[asyncio.Task] = None
        self._settle_task: Optional[asyncio.Task] = None
        self._running = False
        self.session_id = generate_id()

        self.simulation.add_rebalance_hook(self._on_rebalance)

    @property
    def tick_interval(self) -> float:
        return self.simulation.config.tick_interval

    @property
    def settle_delay(self) -> float:
        return self.simulation.config.rebalance_settle

    async def start(self) -> None:
        """Start the tick loop and bind the session id to log entries."""
        if self._running:
            return

        self._running = True
        bind_session(self.session_id)
        self._tick_task = asyncio.create_task(self._tick_loop())

        logger.info(
            "SimulationRuntime started",
            tick_interval=self.tick_interval,
            settle_delay=self.settle_delay,
        )

    async def stop(self) -> None:
        """Stop the tick loop and cancel a pending settle timer."""
        self._running = False

        for task in (self._tick_task, self._settle_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

        self._tick_task = None
        self._settle_task = None

        logger.info("SimulationRuntime stopped")
        unbind_session()

    async def __aenter__(self) -> "SimulationRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def execute(self, command: str, *args: Any, **kwargs: Any) -> CommandResult:
        """
        Apply a command under the runtime lock.

        Args:
            command: Command name (e.g. "add_node", "toggle_broker")
            *args: Positional command arguments
            **kwargs: Keyword command arguments

        Returns:
            Command result; rejections are returned, never raised
        """
        if command not in COMMANDS:
            raise ValueError(f"Unknown command: {command}")

        async with self._lock:
            try:
                snapshot = getattr(self.simulation, command)(*args, **kwargs)
            except SimulationRejection as e:
                logger.warning(
                    "Command rejected",
                    command=command,
                    error=type(e).__name__,
                    reason=e.reason,
                )
                return CommandResult(
                    accepted=False,
                    snapshot=self.simulation.snapshot(),
                    reason=e.reason,
                    error=type(e).__name__,
                )

            if command in ("reset", "retry"):
                self._cancel_settle()

            return CommandResult(accepted=True, snapshot=snapshot)

    async def snapshot(self) -> ClusterSnapshot:
        async with self._lock:
            return self.simulation.snapshot()

    async def _tick_loop(self) -> None:
        """Apply a tick every interval while the session is running."""
        while self._running:
            try:
                await asyncio.sleep(self.tick_interval)

                async with self._lock:
                    if self.simulation.is_running:
                        self.simulation.tick()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(
                    "Error in tick loop",
                    error=str(e),
                    exc_info=True,
                )

    def _on_rebalance(self, result: RebalanceResult) -> None:
        """Reschedule the settle timer; called under the lock."""
        self._cancel_settle()
        self._settle_task = asyncio.create_task(self._settle(self.settle_delay))

    def _cancel_settle(self) -> None:
        if self._settle_task and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    async def _settle(self, delay: float) -> None:
        try:
            await asyncio.sleep(delay)
        except asyncio.CancelledError:
            return

        async with self._lock:
            self.simulation.clear_rebalancing()
