"""
Controller election for the simulated cluster.

PRIMARY mode delegates to an external metadata service: if it is down there
is no controller at all. SELF_MANAGED mode elects among the brokers. Both
keep a live controller and otherwise pick the lowest live broker id.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from clustersim.broker.metadata_log import MetadataLog
from clustersim.core.entities import ClusterMode
from clustersim.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class ControllerState:
    """
    Controller state.

    Attributes:
        controller_id: Current controller broker ID
        controller_epoch: Incremented on every change
    """
    controller_id: Optional[int] = None
    controller_epoch: int = 0


class ControllerElection:
    """
    Controller election engine.

    The broker pool is small and static, so one evaluation always reaches
    the fixed point.
    """

    def __init__(self, broker_ids: List[int], metadata_log: MetadataLog):
        """
        Initialize controller election.

        Args:
            broker_ids: Fixed broker pool
            metadata_log: Log receiving one entry per controller change
        """
        self.broker_ids = sorted(broker_ids)
        self.metadata_log = metadata_log
        self.state = ControllerState()

    @property
    def controller_id(self) -> Optional[int]:
        return self.state.controller_id

    def elect(
        self,
        mode: ClusterMode,
        primary_available: bool,
        broker_states: Dict[int, bool],
    ) -> Optional[int]:
        """
        Compute the controller for the current cluster state.

        Args:
            mode: Metadata-management mode
            primary_available: Liveness of the external metadata service
            broker_states: Broker liveness map

        Returns:
            Controller broker ID, or None
        """
        if mode == ClusterMode.PRIMARY and not primary_available:
            new_controller = None
        elif self.state.controller_id is not None and broker_states.get(self.state.controller_id, False):
            new_controller = self.state.controller_id
        else:
            new_controller = next(
                (b for b in self.broker_ids if broker_states.get(b, False)),
                None,
            )

        if new_controller != self.state.controller_id:
            self._change_controller(mode, new_controller)

        return self.state.controller_id

    def _change_controller(self, mode: ClusterMode, new_controller: Optional[int]) -> None:
        previous = self.state.controller_id
        self.state.controller_id = new_controller
        self.state.controller_epoch += 1

        self.metadata_log.record_controller_change(mode, new_controller)

        if new_controller is None:
            logger.warning(
                "Controller lost",
                previous_controller=previous,
                mode=mode.value,
                epoch=self.state.controller_epoch,
            )
        else:
            logger.info(
                "Controller elected",
                controller_id=new_controller,
                previous_controller=previous,
                mode=mode.value,
                epoch=self.state.controller_epoch,
            )

    def reset(self) -> None:
        """Forget the current controller without logging."""
        self.state = ControllerState()
