"""Recorders that observe the network every round.

A recorder is created with the simulation, observes every round, and is
closed exactly once when the simulation stops. File recorders stream rows to
``<output_path>/<name>.csv`` in chunks of ``line_limit`` rows. Without an
output path they keep every row in memory in ``rows``.
"""

import csv
import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, TextIO, Tuple, Union

import numpy as np

from aqt_sim.core.errors import ConfigMismatch, InvalidParameter, RecorderIOFailure
from aqt_sim.core.network import Network
from aqt_sim.core.packet import Packet
from aqt_sim.core.protocols import ForwardDecision

DEFAULT_LINE_LIMIT = 5000


@dataclass
class RoundEvents:
    """What happened in one round.

    Attributes:
        injected: Packets injected this round.
        decisions: Forwarding decisions applied this round.
        absorbed: Packets absorbed this round.
    """

    injected: List[Packet] = field(default_factory=list)
    decisions: List[ForwardDecision] = field(default_factory=list)
    absorbed: List[Packet] = field(default_factory=list)


class Recorder(ABC):
    """Abstract base class for recorders."""

    name = "recorder"
    persists = False
    output_path: Optional[str] = None

    def set_output_path(self, output_path: Optional[str]) -> None:
        """Set the directory this recorder writes into."""
        self.output_path = output_path

    def observe_injection(self, rd: int, network: Network, injected: List[Packet]) -> None:
        """Observe the network after injection, before forwarding."""

    @abstractmethod
    def observe(self, rd: int, network: Network, events: RoundEvents) -> None:
        """Observe the network at the end of round ``rd``.

        Args:
            rd: Current round.
            network: Network after forwarding.
            events: Injections, decisions and absorptions of this round.
        """
        pass

    def close(self) -> None:
        """Finalize output."""

    def to_config(self) -> Dict[str, Any]:
        return {"recorder_name": self.name}

    def __repr__(self) -> str:
        return self.name


class DebugPrintRecorder(Recorder):
    """Prints the whole network before (``rd:``) and after (``rd':``) forwarding."""

    name = "debug_print"

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream

    def _print(self, text: str) -> None:
        print(text, file=self.stream if self.stream is not None else sys.stdout)

    def observe_injection(self, rd, network, injected):
        self._print(f"{rd}:")
        self._print(f"{network}\n")

    def observe(self, rd, network, events):
        self._print(f"{rd}':")
        self._print(f"{network}\n")

    def close(self):
        self._print("Simulation finished.")


class FileRecorder(Recorder):
    """Base class for recorders that produce a CSV table.

    Attributes:
        header: Column names, fixed per recorder.
        rows: Rows not yet written to disk.
        rows_written: Number of rows flushed to disk so far.
        line_limit: Rows held in memory before a flush.
    """

    persists = True
    header: Tuple[str, ...] = ()

    def __init__(self, line_limit: int = DEFAULT_LINE_LIMIT):
        if isinstance(line_limit, bool) or not isinstance(line_limit, int) or line_limit < 1:
            raise InvalidParameter(f"line_limit must be a positive integer, got {line_limit!r}")
        self.line_limit = line_limit
        self.output_path: Optional[str] = None
        self.rows: List[Tuple] = []
        self.rows_written = 0
        self.closed = False
        self._header_written = False

    @property
    def filename(self) -> str:
        return f"{self.name}.csv"

    @property
    def filepath(self) -> Optional[str]:
        if self.output_path is None:
            return None
        return os.path.join(self.output_path, self.filename)

    def write(self, row: Tuple) -> None:
        self.rows.append(row)
        if self.output_path is not None and len(self.rows) >= self.line_limit:
            self.flush()

    def flush(self) -> None:
        """Append pending rows to the CSV file, writing the header first.

        Raises:
            RecorderIOFailure: If the file cannot be written.
        """
        if self.output_path is None:
            return
        mode = "a" if self._header_written else "w"
        try:
            with open(self.filepath, mode, newline="") as f:
                writer = csv.writer(f)
                if not self._header_written:
                    writer.writerow(self.header)
                writer.writerows(self.rows)
        except OSError as e:
            raise RecorderIOFailure(f"Couldn't write {self.filepath}: {e}") from e
        self._header_written = True
        self.rows_written += len(self.rows)
        self.rows = []

    def close(self):
        if self.closed:
            return
        self.closed = True
        self.flush()

    def to_config(self):
        return {"recorder_name": self.name, "line_limit": self.line_limit}


class BufferLoadRecorder(FileRecorder):
    """One row per buffer per round: ``rd,buffer,load``."""

    name = "buffer_load"
    header = ("rd", "buffer", "load")

    def observe(self, rd, network, events):
        for buffer in network.buffers:
            self.write((rd, buffer.index, buffer.load))


class AbsorptionRecorder(FileRecorder):
    """One row per absorbed packet: ``absorption_rd,packet_id,injection_rd``."""

    name = "absorption"
    header = ("absorption_rd", "packet_id", "injection_rd")

    def observe(self, rd, network, events):
        for packet in events.absorbed:
            self.write((rd, packet.id, packet.injection_rd))


def linear_weight(ages: np.ndarray, horizon: float) -> np.ndarray:
    """Weight rising linearly from 0 at injection to 1 after ``horizon`` rounds."""
    return np.minimum(1.0, ages / horizon)


def exponential_weight(ages: np.ndarray, horizon: float) -> np.ndarray:
    """Weight approaching 1 with time constant ``horizon``."""
    return 1.0 - np.exp(-ages / horizon)


WEIGHTINGS: Dict[str, Callable[[np.ndarray, float], np.ndarray]] = {
    "linear": linear_weight,
    "exponential": exponential_weight,
}


class SmoothedConfigLISRecorder(FileRecorder):
    """Smoothed configuration statistic for studying LIS stability.

    Every packet contributes ``w(age)`` to the buffer holding it, where
    ``age = rd - injection_rd`` and ``w`` is the weighting function, so freshly
    injected packets count for little. ``cumulative_smoothed_load`` of buffer
    ``i`` sums the smoothed load of buffers ``0..i``.

    Row: ``rd,buffer,load,smoothed_load,cumulative_smoothed_load``.
    """

    name = "smoothed_config_lis"
    header = ("rd", "buffer", "load", "smoothed_load", "cumulative_smoothed_load")

    def __init__(
        self,
        weighting: Union[str, Callable[[np.ndarray, float], np.ndarray]] = "linear",
        horizon: float = 1.0,
        line_limit: int = DEFAULT_LINE_LIMIT,
    ):
        super().__init__(line_limit)
        if isinstance(weighting, str):
            if weighting not in WEIGHTINGS:
                raise InvalidParameter(f"Unknown weighting: {weighting}")
            self.weighting_name = weighting
            self.weighting = WEIGHTINGS[weighting]
        else:
            self.weighting_name = getattr(weighting, "__name__", "custom")
            self.weighting = weighting
        if isinstance(horizon, bool) or not isinstance(horizon, (int, float)) or horizon <= 0:
            raise InvalidParameter(f"horizon must be positive, got {horizon!r}")
        self.horizon = float(horizon)

    def smoothed_loads(self, rd: int, network: Network) -> np.ndarray:
        """Smoothed load of every buffer at round ``rd``."""
        smoothed = np.zeros(network.num_buffers)
        for buffer in network.buffers:
            if not buffer.load:
                continue
            ages = np.fromiter((p.age(rd) for p in buffer), dtype=float, count=buffer.load)
            smoothed[buffer.index] = float(np.sum(self.weighting(ages, self.horizon)))
        return smoothed

    def observe(self, rd, network, events):
        smoothed = self.smoothed_loads(rd, network)
        cumulative = np.cumsum(smoothed)
        for buffer in network.buffers:
            i = buffer.index
            self.write((rd, i, buffer.load, round(float(smoothed[i]), 6), round(float(cumulative[i]), 6)))

    def to_config(self):
        config = super().to_config()
        config.update({"weighting": self.weighting_name, "horizon": self.horizon})
        return config


RECORDERS = {
    DebugPrintRecorder.name: DebugPrintRecorder,
    BufferLoadRecorder.name: BufferLoadRecorder,
    AbsorptionRecorder.name: AbsorptionRecorder,
    SmoothedConfigLISRecorder.name: SmoothedConfigLISRecorder,
}


def recorder_factory(config: Dict[str, Any]) -> Recorder:
    """Create the configured recorder.

    Args:
        config: Mapping with a ``recorder_name`` key and optional parameters.

    Returns:
        The selected recorder.
    """
    if not isinstance(config, dict) or "recorder_name" not in config:
        raise ConfigMismatch("No recorder name found.")
    name = config["recorder_name"]
    if name not in RECORDERS:
        raise ConfigMismatch(f"Unknown recorder: {name}")
    if name == DebugPrintRecorder.name:
        return DebugPrintRecorder()
    line_limit = config.get("line_limit", DEFAULT_LINE_LIMIT)
    if name == SmoothedConfigLISRecorder.name:
        return SmoothedConfigLISRecorder(
            config.get("weighting", "linear"), config.get("horizon", 1.0), line_limit
        )
    return RECORDERS[name](line_limit)


def recorders_from_config(configs: Sequence[Dict[str, Any]]) -> List[Recorder]:
    """Build the recorders of one run.

    Two recorders writing the same table would overwrite each other's file, so
    a persisting recorder may appear at most once.
    """
    if not isinstance(configs, (list, tuple)):
        raise ConfigMismatch("recorders must be a list.")
    recorders = [recorder_factory(c) for c in configs]
    names = [r.name for r in recorders if r.persists]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConfigMismatch(f"Recorders listed more than once: {', '.join(duplicates)}")
    return recorders
