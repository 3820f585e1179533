"""
Coarse session state machine.

IDLE <-> RUNNING via start/pause, RUNNING -> TERMINATED when the global lag
ceiling is hit, TERMINATED -> IDLE only through retry or reset.
"""

from enum import Enum

from clustersim.errors import IllegalTransition
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


class SessionStatus(str, Enum):
    """Session states."""

    IDLE = "idle"
    RUNNING = "running"
    TERMINATED = "terminated"


class SessionStateMachine:
    """Tracks the session status and gates mutating commands."""

    def __init__(self):
        self.status = SessionStatus.IDLE

    @property
    def is_running(self) -> bool:
        return self.status == SessionStatus.RUNNING

    @property
    def is_terminated(self) -> bool:
        return self.status == SessionStatus.TERMINATED

    def require_mutable(self, command: str) -> None:
        """
        Reject a mutating command while terminated.

        Args:
            command: Command name (for the rejection reason)

        Raises:
            IllegalTransition: If the session is terminated
        """
        if self.is_terminated:
            raise IllegalTransition(f"Cannot {command}: session is terminated, retry or reset first")

    def start(self) -> None:
        self.require_mutable("start")
        if self.status != SessionStatus.RUNNING:
            self._transition(SessionStatus.RUNNING)

    def pause(self) -> None:
        self.require_mutable("pause")
        if self.status != SessionStatus.IDLE:
            self._transition(SessionStatus.IDLE)

    def toggle(self) -> None:
        if self.is_running:
            self.pause()
        else:
            self.start()

    def terminate(self) -> None:
        if self.status != SessionStatus.RUNNING:
            raise IllegalTransition(f"Cannot terminate from {self.status.value}")
        self._transition(SessionStatus.TERMINATED)

    def retry(self) -> None:
        if not self.is_terminated:
            raise IllegalTransition(f"Cannot retry from {self.status.value}")
        self._transition(SessionStatus.IDLE)

    def reset(self) -> None:
        if self.status != SessionStatus.IDLE:
            self._transition(SessionStatus.IDLE)

    def _transition(self, new_status: SessionStatus) -> None:
        logger.info(
            "Session status changed",
            previous=self.status.value,
            status=new_status.value,
        )
        self.status = new_status
