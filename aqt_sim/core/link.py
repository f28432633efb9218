"""Link class for AQT simulation.

This module defines the Link class, which represents a directed edge
between two buffers of the simulated network.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class Link:
    """Represents a network link between buffers.

    A link carries at most one packet per round and has no state beyond its
    endpoints.

    Attributes:
        index: Position of the link in the network's link ordering.
        source: Index of the buffer packets leave from.
        target: Index of the buffer packets arrive in.
    """

    index: int
    source: int
    target: int

    @property
    def parity(self) -> int:
        """0 for even-indexed links, 1 for odd-indexed links."""
        return self.index % 2

    def is_active(self, rd: int) -> bool:
        """Whether the link may forward in round ``rd`` under odd-even scheduling.

        Args:
            rd: Current round.

        Returns:
            True if the link's parity matches the round's parity.
        """
        return self.parity == rd % 2

    def __repr__(self) -> str:
        return f"Link({self.source}->{self.target})"
