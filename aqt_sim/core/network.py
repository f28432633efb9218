"""Network class for AQT simulation.

This module defines the Network class, which wraps a NetworkX directed graph
whose nodes are buffer indices and whose edges are links. Packets are owned by
exactly one Buffer while they wait and move only through ``forward``.
"""

import logging
import numbers
from typing import Iterator, List, Optional, Sequence, Set, Tuple

import networkx as nx

from aqt_sim.core.buffer import Buffer
from aqt_sim.core.errors import ConfigMismatch, ForwardingConflict, InvalidIndex
from aqt_sim.core.link import Link
from aqt_sim.core.packet import Packet

logger = logging.getLogger(__name__)


class Network:
    """A fixed topology of buffers connected by unit-capacity links.

    Attributes:
        graph: NetworkX directed graph; node ``i`` carries the Buffer for index ``i``.
        buffers: Buffers in index order.
    """

    def __init__(self) -> None:
        """Initialize an empty network."""
        self.graph = nx.DiGraph()
        self.buffers: List[Buffer] = []
        self._links: Optional[List[Link]] = None
        self._moved: Set[int] = set()

    @classmethod
    def from_adjacency(cls, adjacency: Sequence[Sequence[int]]) -> "Network":
        """Build a network from an adjacency list.

        Args:
            adjacency: ``adjacency[i]`` lists the buffers reachable from buffer ``i``.

        Returns:
            The constructed Network.
        """
        network = cls()
        for _ in adjacency:
            network.add_buffer()
        for source, targets in enumerate(adjacency):
            for target in targets:
                network.add_link(source, int(target))
        return network

    def add_buffer(self) -> int:
        """Add a new empty buffer and return its index."""
        index = len(self.buffers)
        buffer = Buffer(index)
        self.buffers.append(buffer)
        self.graph.add_node(index, buffer=buffer)
        self._links = None
        return index

    def add_link(self, source: int, target: int) -> None:
        """Add a directed link between two existing buffers.

        Args:
            source: Index of the sending buffer.
            target: Index of the receiving buffer.
        """
        self.check_index(source)
        self.check_index(target)
        if source == target:
            raise ConfigMismatch(f"Self-loop on buffer {source} is not supported.")
        if self.graph.has_edge(source, target):
            raise ConfigMismatch(f"There is already a link between buffers {source} and {target}.")
        self.graph.add_edge(source, target)
        self._links = None

    @property
    def num_buffers(self) -> int:
        return len(self.buffers)

    def check_index(self, index: int) -> None:
        """Raise InvalidIndex unless ``index`` names a buffer of this network."""
        if not isinstance(index, numbers.Integral) or not 0 <= index < len(self.buffers):
            raise InvalidIndex(f"No buffer with index {index} in this network.")

    def links(self) -> List[Link]:
        """All links, ordered by (source, target); a path's link ``i`` joins ``i`` and ``i+1``."""
        if self._links is None:
            edges = sorted(self.graph.edges())
            self._links = [Link(i, s, t) for i, (s, t) in enumerate(edges)]
        return self._links

    def get_link(self, source: int, target: int) -> Link:
        for link in self.links():
            if link.source == source and link.target == target:
                return link
        raise InvalidIndex(f"No link between buffers {source} and {target}.")

    def neighbors(self, index: int) -> List[int]:
        """Indices of the buffers reachable in one hop from ``index``."""
        self.check_index(index)
        return sorted(self.graph.successors(index))

    def sources(self) -> List[int]:
        """Buffers with no incoming link."""
        return sorted(n for n, d in self.graph.in_degree() if d == 0)

    def sinks(self) -> List[int]:
        """Buffers with no outgoing link (absorbing terminals)."""
        return sorted(n for n, d in self.graph.out_degree() if d == 0)

    def is_path(self) -> bool:
        """Whether the links are exactly ``i -> i+1`` for every consecutive pair."""
        n = len(self.buffers)
        if n < 2:
            return False
        return sorted(self.graph.edges()) == [(i, i + 1) for i in range(n - 1)]

    def is_terminal(self, index: int) -> bool:
        self.check_index(index)
        return self.graph.out_degree(index) == 0

    def route(self, source: int, destination: int) -> List[int]:
        """Shortest route of buffer indices from ``source`` to ``destination``.

        Raises:
            InvalidIndex: If either index is invalid or no route exists.
        """
        self.check_index(source)
        self.check_index(destination)
        if source == destination:
            raise InvalidIndex(f"Cannot route a packet from buffer {source} to itself.")
        try:
            return nx.shortest_path(self.graph, source, destination)
        except nx.NetworkXNoPath:
            raise InvalidIndex(f"No route from buffer {source} to buffer {destination}.") from None

    def injection_route(self, source: int, destination: int) -> Tuple[List[int], int]:
        """Route and starting route index for a packet injected at ``source``.

        On a path the route covers the whole path up to ``destination`` and the
        packet starts at position ``source``, so a swap can push it upstream of
        the buffer it entered at. Elsewhere the route is the shortest path.

        Raises:
            InvalidIndex: If either index is invalid or no route exists.
        """
        route = self.route(source, destination)
        if self.is_path():
            return list(range(destination + 1)), source
        return route, 0

    def inject(self, buffer_index: int, packet: Packet) -> None:
        """Add a freshly created packet to the waiting set of a buffer.

        Args:
            buffer_index: Buffer receiving the packet.
            packet: Packet whose current position is ``buffer_index``.
        """
        self.check_index(buffer_index)
        if packet.current_buffer != buffer_index:
            raise InvalidIndex(
                f"Packet {packet.id} starts at buffer {packet.current_buffer}, not {buffer_index}."
            )
        self.buffers[buffer_index].add_packet(packet)

    def begin_round(self) -> None:
        """Forget which packets moved in the previous round."""
        self._moved.clear()

    def forward(self, from_index: int, to_index: int, packet_id: int) -> Optional[Packet]:
        """Move one packet across the link between two adjacent buffers.

        A packet moves forward along its route, or one step back when a swap
        sends it upstream. A packet that reaches its destination is absorbed
        instead of being added to the destination buffer.

        Args:
            from_index: Buffer currently holding the packet.
            to_index: Buffer the packet moves into.
            packet_id: Id of the packet to move.

        Returns:
            The packet if it was absorbed, otherwise None.

        Raises:
            InvalidIndex: If an index is out of range or the buffers are not
                adjacent along the packet's route.
            ForwardingConflict: If the packet is not in the source buffer or
                has already moved this round.
        """
        self.check_index(from_index)
        self.check_index(to_index)
        source = self.buffers[from_index]
        packet = source.find(packet_id)
        if packet is None:
            raise ForwardingConflict(f"Packet {packet_id} is not waiting in buffer {from_index}.")
        if packet_id in self._moved:
            raise ForwardingConflict(f"Packet {packet_id} has already been forwarded this round.")

        if to_index == packet.next_buffer and self.graph.has_edge(from_index, to_index):
            source.remove_packet(packet_id)
            packet.advance()
        elif to_index == packet.previous_buffer and self.graph.has_edge(to_index, from_index):
            source.remove_packet(packet_id)
            packet.retreat()
        else:
            raise InvalidIndex(
                f"Buffers {from_index} and {to_index} are not adjacent on the route of packet {packet_id}."
            )

        self._moved.add(packet_id)
        if packet.is_absorbed():
            return packet
        self.buffers[to_index].add_packet(packet)
        return None

    def loads(self) -> List[int]:
        """Current load of every buffer, in index order."""
        return [buffer.load for buffer in self.buffers]

    def total_load(self) -> int:
        return sum(buffer.load for buffer in self.buffers)

    def packets(self) -> Iterator[Packet]:
        """Iterate over every queued packet, buffer by buffer."""
        for buffer in self.buffers:
            yield from buffer

    def to_config(self) -> List[List[int]]:
        """Adjacency list describing this topology."""
        return [self.neighbors(i) for i in range(len(self.buffers))]

    def __str__(self) -> str:
        lines = []
        for buffer in self.buffers:
            targets = ",".join(str(t) for t in self.neighbors(buffer.index)) or "-"
            lines.append(f"{buffer.index} -> {targets}: {list(buffer.queue)}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Network({len(self.buffers)} buffers, {self.graph.number_of_edges()} links)"


def path_adjacency(num_buffers: int) -> List[List[int]]:
    """Adjacency list of a path with ``num_buffers`` buffers."""
    return [[i + 1] for i in range(num_buffers - 1)] + [[]]


def construct_path(num_buffers: int) -> Network:
    """Construct a path network ``0 -> 1 -> ... -> num_buffers-1``.

    Args:
        num_buffers: Number of buffers, including the absorbing terminal.

    Returns:
        The path Network.
    """
    if num_buffers < 2:
        raise ConfigMismatch("A path network needs at least two buffers.")
    network = Network.from_adjacency(path_adjacency(num_buffers))
    logger.debug("Constructed path network with %d buffers", num_buffers)
    return network


def network_from_config(config) -> Network:
    """Build a network from a ``graph_adjacency`` config value.

    Accepts either an adjacency list or ``{"path": num_buffers}``.
    """
    if isinstance(config, dict):
        if "path" not in config:
            raise ConfigMismatch(f"Unsupported network descriptor: {sorted(config)}")
        return construct_path(int(config["path"]))
    if isinstance(config, (list, tuple)):
        return Network.from_adjacency(config)
    raise ConfigMismatch("graph_adjacency must be an adjacency list or a path descriptor.")

