"""Adversaries for AQT simulation.

This module provides the adversaries that decide, each round, how many packets
enter the network, where they enter and where they are headed. Adversaries
only describe injections; the simulation turns them into packets so that ids
and injection rounds come from a single place.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

from aqt_sim.core.errors import ConfigMismatch, InvalidParameter
from aqt_sim.core.network import Network
from aqt_sim.utils.rng import SimRng

logger = logging.getLogger(__name__)


class Injection(NamedTuple):
    """One packet to inject: where it enters, where it is absorbed, optional tag."""

    buffer_index: int
    destination: int
    tag: Optional[int] = None


class Adversary(ABC):
    """Abstract base class for adversaries."""

    name = "adversary"

    @abstractmethod
    def get_injections(self, rd: int, network: Network) -> List[Injection]:
        """
        Decide the packets injected in this round

        Args:
            rd: Current round
            network: Network after the previous round finished

        Returns:
            Injections for this round, in injection order
        """
        pass

    def check_network(self, network: Network) -> None:
        """Raise ConfigMismatch if this adversary cannot drive ``network``."""
        pass

    def to_config(self) -> Dict[str, Any]:
        return {"adversary_name": self.name}

    def __repr__(self) -> str:
        return self.name


class PathAdversary(Adversary):
    """Base for single-destination adversaries on a path network."""

    def check_network(self, network: Network) -> None:
        if not network.is_path():
            raise ConfigMismatch(f"The {self.name} adversary requires a path network.")

    @staticmethod
    def far_end(network: Network) -> int:
        return network.num_buffers - 1


class SDPathRandomAdversary(PathAdversary):
    """Injects one packet per round at the source end, destined for the far end.

    Each packet carries a tag drawn from the adversary's own generator. With
    ``random_source`` the injection buffer is drawn uniformly from the
    non-terminal buffers instead.
    """

    name = "sd_path_random"

    def __init__(self, seed: Optional[int] = None, random_source: bool = False):
        self.seed = seed
        self.random_source = random_source
        self.rng = SimRng(seed)

    def get_injections(self, rd: int, network: Network) -> List[Injection]:
        dest = self.far_end(network)
        src = self.rng.rand_int(dest) if self.random_source else 0
        return [Injection(src, dest, self.rng.tag())]

    def to_config(self) -> Dict[str, Any]:
        return {
            "adversary_name": self.name,
            "seed": self.seed,
            "random_source": self.random_source,
        }


class SDPathRandomBurstyAdversary(PathAdversary):
    """A randomized (1, sigma)-adversary on a path.

    ``xi`` is the burst debt of a rate-1 leaky bucket of depth ``sigma``. Each
    round draws ``k`` uniformly from ``{0, ..., sigma - xi + 1}``, injects ``k``
    packets at uniformly chosen non-terminal buffers, all destined for the far
    end, and sets ``xi = max(0, xi + k - 1)``. Over any window of ``T`` rounds
    at most ``T + sigma`` packets are injected, and ``0 <= xi <= sigma`` holds
    after every round.

    Attributes:
        sigma: Burstiness parameter.
        xi: Current burst debt.
        injection_counts: Number of packets injected in each round so far.
    """

    name = "sd_path_random_bursty"

    def __init__(self, sigma: int, seed: Optional[int] = None):
        if isinstance(sigma, bool) or not isinstance(sigma, int):
            raise InvalidParameter(f"sigma must be an integer, got {sigma!r}")
        if sigma < 0:
            raise InvalidParameter(f"sigma must be non-negative, got {sigma}")
        self.sigma = sigma
        self.seed = seed
        self.xi = 0
        self.rng = SimRng(seed)
        self.injection_counts: List[int] = []

    def max_injections(self) -> int:
        """Largest number of packets this round may inject."""
        return max(0, self.sigma - self.xi + 1)

    def get_injections(self, rd: int, network: Network) -> List[Injection]:
        dest = self.far_end(network)
        k = self.rng.rand_int(self.max_injections() + 1)
        injections = [Injection(self.rng.rand_int(dest), dest) for _ in range(k)]
        self.xi = max(0, self.xi + k - 1)
        self.injection_counts.append(k)
        logger.debug("Round %d: bursty adversary injects %d (xi=%d)", rd, k, self.xi)
        return injections

    def to_config(self) -> Dict[str, Any]:
        return {"adversary_name": self.name, "sigma": self.sigma, "seed": self.seed}


class PresetAdversary(Adversary):
    """Injects a predetermined list of packets per round.

    ``injections[r - 1]`` holds the ``(buffer_index, destination)`` pairs for
    round ``r``. Rounds past the end of the list inject nothing.
    """

    name = "preset"

    def __init__(self, injections: Sequence[Sequence[Tuple[int, int]]]):
        self.injections: List[List[Tuple[int, int]]] = []
        for rd_injections in injections:
            pairs = []
            for pair in rd_injections:
                if len(pair) != 2:
                    raise InvalidParameter(f"Preset injection must be (buffer, destination), got {pair!r}")
                pairs.append((int(pair[0]), int(pair[1])))
            self.injections.append(pairs)

    @property
    def rds(self) -> int:
        """Number of rounds with a predefined injection list."""
        return len(self.injections)

    def get_injections(self, rd: int, network: Network) -> List[Injection]:
        if not 1 <= rd <= len(self.injections):
            return []
        return [Injection(src, dest) for src, dest in self.injections[rd - 1]]

    def to_config(self) -> Dict[str, Any]:
        return {
            "adversary_name": self.name,
            "injections": [[list(pair) for pair in rd] for rd in self.injections],
        }


def adversary_factory(config: Dict[str, Any]) -> Adversary:
    """
    Factory function to create the configured adversary

    Args:
        config: Mapping with an ``adversary_name`` key and the variant's parameters

    Returns:
        An instance of the selected adversary

    Raises:
        ConfigMismatch: If the name is unknown or a required key is missing
        InvalidParameter: If a parameter is out of range
    """
    if not isinstance(config, dict) or "adversary_name" not in config:
        raise ConfigMismatch("No adversary name found.")
    name = config["adversary_name"]
    seed = config.get("seed")
    if name == SDPathRandomAdversary.name:
        return SDPathRandomAdversary(seed, bool(config.get("random_source", False)))
    elif name == SDPathRandomBurstyAdversary.name:
        if "sigma" not in config:
            raise ConfigMismatch("The bursty adversary needs a sigma value.")
        return SDPathRandomBurstyAdversary(config["sigma"], seed)
    elif name == PresetAdversary.name:
        return PresetAdversary(config.get("injections", []))
    raise ConfigMismatch(f"Unknown adversary: {name}")
