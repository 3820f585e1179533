"""
Rejections raised by the simulation engine.

A rejected command never changes engine state. The asyncio runtime turns
these into a negative CommandResult instead of propagating them.
"""


class SimulationRejection(Exception):
    """Base class for every rejected command."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class IllegalTransition(SimulationRejection):
    """Command not allowed in the current session state, or an invalid link."""
    pass


class MetadataUnavailable(SimulationRejection):
    """The active metadata layer cannot accept topic changes right now."""
    pass


class DuplicateConnection(SimulationRejection):
    """Connection between the two nodes already exists."""
    pass


class InvalidUpdate(SimulationRejection):
    """Field value out of range or not applicable to the node type."""
    pass


class UnknownNode(SimulationRejection):
    """Referenced node id does not exist."""
    pass
