from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from aqt_sim.core.buffer import injection_order
from aqt_sim.core.errors import ConfigMismatch
from aqt_sim.core.network import Network
from aqt_sim.core.packet import Packet


class ForwardDecision(NamedTuple):
    """All movement across one link in one round.

    ``packet_id`` moves from ``from_index`` to ``to_index``. For a swap,
    ``swap_packet_id`` moves back from ``to_index`` to ``from_index``.
    """

    from_index: int
    to_index: int
    packet_id: int
    swap_packet_id: Optional[int] = None

    @property
    def link(self) -> Tuple[int, int]:
        return (self.from_index, self.to_index)

    def is_swap(self) -> bool:
        return self.swap_packet_id is not None


def fifo_key(packet: Packet, rd: int):
    """Earliest injection round first, ties by id."""
    return (packet.injection_rd, packet.id)


def lis_key(packet: Packet, rd: int):
    """Longest time in system first, ties by id."""
    return (-packet.age(rd), packet.id)


class Protocol(ABC):
    """Abstract base class for forwarding protocols"""

    config_name = "protocol"

    def __init__(self):
        self.name = "Base Protocol"

    @abstractmethod
    def schedule(self, network: Network, rd: int) -> List[ForwardDecision]:
        """
        Decide which packets cross which links this round

        Args:
            network: Network state after this round's injections
            rd: Current round

        Returns:
            At most one decision per link
        """
        pass

    def check_network(self, network: Network) -> None:
        """Raise ConfigMismatch if this protocol cannot run on ``network``."""
        pass

    def forward_packets(self, network: Network, rd: int) -> Tuple[List[ForwardDecision], List[Packet]]:
        """
        Schedule the round and apply every decision to the network

        Decisions are all computed from the same state before any packet moves.

        Args:
            network: Network to forward packets in
            rd: Current round

        Returns:
            The applied decisions and the packets absorbed this round
        """
        decisions = self.schedule(network, rd)
        absorbed = []
        for decision in decisions:
            packet = network.forward(decision.from_index, decision.to_index, decision.packet_id)
            if packet is not None:
                absorbed.append(packet)
            if decision.swap_packet_id is not None:
                network.forward(decision.to_index, decision.from_index, decision.swap_packet_id)
        return decisions, absorbed

    def to_config(self) -> Dict[str, Any]:
        return {"protocol_name": self.config_name}

    def __repr__(self) -> str:
        return self.name


class GreedyProtocol(Protocol):
    """Every non-empty buffer forwards its highest-priority packet each round"""

    @abstractmethod
    def priority_key(self, packet: Packet, rd: int):
        """Sort key; the packet with the smallest key is forwarded"""
        pass

    def schedule(self, network, rd):
        decisions = []
        for buffer in network.buffers:
            packet = buffer.select(lambda p: self.priority_key(p, rd))
            if packet is not None:
                decisions.append(ForwardDecision(buffer.index, packet.next_buffer, packet.id))
        return decisions


class GreedyFIFO(GreedyProtocol):
    """Greedy protocol forwarding the earliest-injected packet"""

    config_name = "greedy_fifo"

    def __init__(self):
        super().__init__()
        self.name = "Greedy FIFO"

    def priority_key(self, packet, rd):
        return fifo_key(packet, rd)


class GreedyLIS(GreedyProtocol):
    """Greedy longest-in-system protocol"""

    config_name = "greedy_lis"

    def __init__(self):
        super().__init__()
        self.name = "Greedy LIS"

    def priority_key(self, packet, rd):
        return lis_key(packet, rd)


class OEDWithSwap(Protocol):
    """Odd-even downhill with swap, on a path.

    In round ``rd`` only links whose index has the parity of ``rd`` are active,
    serviced from the destination end backwards. For an active link from
    buffer X to buffer Y:

    - if Y is the terminal, the oldest packet of X is forwarded (absorbed);
    - if the downhill criterion holds (``L(X) > L(Y)``, or equal loads and
      ``L(X)`` odd), the oldest packet of X is forwarded;
    - otherwise, if the oldest packet of X is older than the youngest packet
      of Y, the two are swapped across the link;
    - otherwise the link stays idle.
    """

    config_name = "oed_swap"

    def __init__(self):
        super().__init__()
        self.name = "OED With Swap"

    def check_network(self, network):
        if not network.is_path():
            raise ConfigMismatch("OED with swap requires a path network.")

    @staticmethod
    def is_downhill(this_load: int, next_load: int) -> bool:
        return this_load > next_load or (this_load == next_load and this_load % 2 == 1)

    def schedule(self, network, rd):
        loads = network.loads()
        decisions = []
        for link in sorted(network.links(), key=lambda l: l.index, reverse=True):
            if not link.is_active(rd):
                continue
            x, y = link.source, link.target
            oldest = network.buffers[x].oldest()
            if oldest is None:
                continue

            if network.is_terminal(y) or self.is_downhill(loads[x], loads[y]):
                decisions.append(ForwardDecision(x, y, oldest.id))
                continue

            youngest = network.buffers[y].youngest()
            if youngest is not None and injection_order(oldest) < injection_order(youngest):
                decisions.append(ForwardDecision(x, y, oldest.id, youngest.id))
        return decisions


PROTOCOLS = {
    GreedyFIFO.config_name: GreedyFIFO,
    GreedyLIS.config_name: GreedyLIS,
    OEDWithSwap.config_name: OEDWithSwap,
}


def protocol_factory(config: Dict[str, Any]) -> Protocol:
    """
    Factory function to create the configured protocol

    Args:
        config: Mapping with a ``protocol_name`` key

    Returns:
        An instance of the selected protocol
    """
    if not isinstance(config, dict) or "protocol_name" not in config:
        raise ConfigMismatch("No protocol name found.")
    name = config["protocol_name"]
    if name not in PROTOCOLS:
        raise ConfigMismatch(f"Unknown protocol: {name}")
    return PROTOCOLS[name]()
