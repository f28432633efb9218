"""Buffer class for AQT simulation.

This module defines the Buffer class, the queue of packets waiting at one
position of the network to cross an outgoing link.
"""

from collections import deque
from typing import Callable, Deque, Iterator, List, Optional

from aqt_sim.core.packet import Packet


def injection_order(packet: Packet):
    """Sort key: earliest injection round first, ties by id."""
    return (packet.injection_rd, packet.id)


class Buffer:
    """Represents the packet queue held at one network position.

    Buffers are unbounded; boundedness is what the simulation measures, not a
    constraint it enforces. Packets are kept in arrival order.

    Attributes:
        index: Position of the buffer in the network.
        queue: Packets waiting in arrival order.
    """

    def __init__(self, index: int) -> None:
        """Initialize an empty buffer.

        Args:
            index: Position of the buffer in the network.
        """
        self.index = index
        self.queue: Deque[Packet] = deque()

    @property
    def load(self) -> int:
        """Current number of packets waiting in the buffer."""
        return len(self.queue)

    def add_packet(self, packet: Packet) -> None:
        """Append a packet to the back of the queue.

        Args:
            packet: The packet to add.
        """
        self.queue.append(packet)

    def find(self, packet_id: int) -> Optional[Packet]:
        """Return the packet with the given id, or None if it is not here."""
        for packet in self.queue:
            if packet.id == packet_id:
                return packet
        return None

    def remove_packet(self, packet_id: int) -> Packet:
        """Remove and return the packet with the given id.

        Args:
            packet_id: Id of the packet to take out.

        Returns:
            The removed packet.

        Raises:
            KeyError: If the packet is not in this buffer.
        """
        packet = self.find(packet_id)
        if packet is None:
            raise KeyError(packet_id)
        self.queue.remove(packet)
        return packet

    def packets_for(self, next_hop: int) -> List[Packet]:
        """Packets in this buffer whose next hop is ``next_hop``."""
        return [p for p in self.queue if p.next_buffer == next_hop]

    def select(self, key: Callable[[Packet], object], next_hop: Optional[int] = None) -> Optional[Packet]:
        """Return the packet with the smallest key, optionally restricted to one link.

        Args:
            key: Sort key; the minimum is selected.
            next_hop: If given, only packets heading to this buffer are eligible.

        Returns:
            The selected packet or None if no packet is eligible.
        """
        candidates = self.queue if next_hop is None else self.packets_for(next_hop)
        return min(candidates, key=key, default=None)

    def oldest(self) -> Optional[Packet]:
        """The packet injected earliest (ties by smallest id)."""
        return self.select(injection_order)

    def youngest(self) -> Optional[Packet]:
        """The packet injected latest (ties by largest id)."""
        return max(self.queue, key=injection_order, default=None)

    def __iter__(self) -> Iterator[Packet]:
        return iter(self.queue)

    def __len__(self) -> int:
        return len(self.queue)

    def __repr__(self) -> str:
        return f"Buffer({self.index}, load={self.load})"
