"""Packet class for AQT simulation.

This module defines the Packet class, which represents a packet travelling
along its route through the simulated network, and the PacketFactory that
hands out unique packet ids for a single run.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple


@dataclass(eq=False)
class Packet:
    """Represents a packet in the AQT model.

    The id, route and injection round never change after creation. Only the
    position along the route moves as the packet is forwarded.

    Attributes:
        id: Unique identifier, assigned in injection order by a PacketFactory.
        route: Buffer indices along the packet's path to its destination.
        injection_rd: Round in which the packet was injected.
        route_idx: Index into ``route`` of the buffer currently holding the packet.
        tag: Optional adversary-chosen label carried for bookkeeping.
    """

    id: int
    route: Tuple[int, ...]
    injection_rd: int
    route_idx: int = 0
    tag: Optional[int] = None

    def __post_init__(self):
        """Validate the route after initialization."""
        self.route = tuple(self.route)
        if len(self.route) < 2:
            raise ValueError("A packet route needs at least a source and a destination.")
        if not 0 <= self.route_idx < len(self.route) - 1:
            raise ValueError(f"Route index {self.route_idx} does not point at a waiting buffer.")

    @property
    def destination(self) -> int:
        """Buffer index at which this packet is absorbed."""
        return self.route[-1]

    @property
    def current_buffer(self) -> Optional[int]:
        """Buffer currently holding the packet, or None once absorbed."""
        if self.is_absorbed():
            return None
        return self.route[self.route_idx]

    @property
    def next_buffer(self) -> Optional[int]:
        """Buffer the packet moves into when forwarded, or None once absorbed."""
        if self.route_idx + 1 >= len(self.route):
            return None
        return self.route[self.route_idx + 1]

    @property
    def previous_buffer(self) -> Optional[int]:
        """Buffer the packet came from, or None at the start of its route."""
        if self.route_idx == 0:
            return None
        return self.route[self.route_idx - 1]

    def is_absorbed(self) -> bool:
        """Check whether this packet has reached its destination."""
        return self.route_idx == len(self.route) - 1

    def should_be_absorbed(self) -> bool:
        """Check whether the next forward absorbs this packet."""
        return self.route_idx == len(self.route) - 2

    def dist_to_go(self) -> int:
        """Number of link crossings left before absorption."""
        return len(self.route) - 1 - self.route_idx

    def age(self, rd: int) -> int:
        """Rounds the packet has spent in the system as of round ``rd``."""
        return rd - self.injection_rd

    def advance(self) -> None:
        """Move one step forward along the route."""
        if self.is_absorbed():
            raise ValueError(f"Packet {self.id} has already been absorbed.")
        self.route_idx += 1

    def retreat(self) -> None:
        """Move one step back along the route."""
        if self.route_idx == 0:
            raise ValueError(f"Packet {self.id} is already at the beginning of its route.")
        self.route_idx -= 1

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Packet):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    def __repr__(self) -> str:
        return f"Packet(id={self.id}, at={self.current_buffer}, injection_rd={self.injection_rd})"


class PacketFactory:
    """Creates packets with unique, monotonically increasing ids.

    Each simulation run owns one factory so ids never leak between runs.
    """

    def __init__(self) -> None:
        self.next_id = 0

    def create_packet(
        self,
        route: Sequence[int],
        injection_rd: int,
        route_idx: int = 0,
        tag: Optional[int] = None,
    ) -> Packet:
        """Create a new packet.

        Args:
            route: Buffer indices along the packet's path to its destination.
            injection_rd: Current round.
            route_idx: Starting position along the route.
            tag: Optional adversary label.

        Returns:
            The created Packet object.
        """
        packet = Packet(self.next_id, tuple(route), injection_rd, route_idx, tag)
        self.next_id += 1
        return packet

    @property
    def created(self) -> int:
        """Number of packets created so far."""
        return self.next_id
