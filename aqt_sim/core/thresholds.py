"""Thresholds that decide when a simulation stops.

The driver asks ``should_stop(rd, network)`` before every round with the
number of rounds completed so far, starting at 0.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from aqt_sim.core.errors import ConfigMismatch, InvalidParameter
from aqt_sim.core.network import Network


def _non_negative_int(value, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidParameter(f"{name} must be a non-negative integer, got {value!r}")
    return value


class Threshold(ABC):
    """Abstract base class for stopping conditions."""

    name = "threshold"

    @abstractmethod
    def should_stop(self, rd: int, network: Network) -> bool:
        """Check whether to stop after ``rd`` completed rounds.

        Args:
            rd: Number of rounds completed so far.
            network: Network state at the end of round ``rd``.

        Returns:
            True once the simulation should stop.
        """
        pass

    @abstractmethod
    def to_config(self) -> Dict[str, Any]:
        pass

    def __repr__(self) -> str:
        return self.name


class TimedThreshold(Threshold):
    """Stops once ``max_rds`` rounds have been completed."""

    name = "timed"

    def __init__(self, max_rds: int):
        self.max_rds = _non_negative_int(max_rds, "max_rds")

    def should_stop(self, rd, network):
        return rd >= self.max_rds

    def to_config(self):
        return {"threshold_name": self.name, "max_rds": self.max_rds}


class TotalLoadThreshold(Threshold):
    """Stops once the number of queued packets reaches ``max_load``.

    ``max_rds`` optionally caps the run length for stable configurations that
    never reach the load limit.
    """

    name = "total_load"

    def __init__(self, max_load: int, max_rds: Optional[int] = None):
        self.max_load = _non_negative_int(max_load, "max_load")
        self.max_rds = None if max_rds is None else _non_negative_int(max_rds, "max_rds")

    def should_stop(self, rd, network):
        if self.max_rds is not None and rd >= self.max_rds:
            return True
        return network.total_load() >= self.max_load

    def to_config(self):
        config = {"threshold_name": self.name, "max_load": self.max_load}
        if self.max_rds is not None:
            config["max_rds"] = self.max_rds
        return config


def threshold_factory(config: Dict[str, Any]) -> Threshold:
    """Create the configured threshold.

    Args:
        config: Mapping with a ``threshold_name`` key and its parameters.

    Returns:
        The selected threshold.
    """
    if not isinstance(config, dict) or "threshold_name" not in config:
        raise ConfigMismatch("No threshold name found.")
    name = config["threshold_name"]
    if name == TimedThreshold.name:
        if "max_rds" not in config:
            raise ConfigMismatch("No max rounds found.")
        return TimedThreshold(config["max_rds"])
    if name == TotalLoadThreshold.name:
        if "max_load" not in config:
            raise ConfigMismatch("No max load found.")
        return TotalLoadThreshold(config["max_load"], config.get("max_rds"))
    raise ConfigMismatch(f"Unknown threshold: {name}")
