"""Program configuration for AQT simulation.

Configuration files are JSON with full-line ``//`` or ``#`` comments allowed.
The top level selects the execution mode and lists the simulations::

    {
        "parallel": true,
        "simulations": [
            {
                "graph_adjacency": {"path": 10},
                "protocol": {"protocol_name": "oed_swap"},
                "adversary": {"adversary_name": "sd_path_random", "seed": 32},
                "threshold": {"threshold_name": "timed", "max_rds": 10},
                "recorders": [{"recorder_name": "buffer_load"}],
                "output_path": "results/oed"
            }
        ]
    }
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from aqt_sim.core.errors import ConfigMismatch
from aqt_sim.core.network import network_from_config
from aqt_sim.core.protocols import protocol_factory
from aqt_sim.core.recorders import recorders_from_config
from aqt_sim.core.simulator import Simulation
from aqt_sim.core.thresholds import threshold_factory
from aqt_sim.traffic.adversaries import adversary_factory

logger = logging.getLogger(__name__)

COMMENT_PREFIXES = ("//", "#")


def strip_comments(text: str) -> str:
    """Drop every line whose first non-blank characters start a comment."""
    lines = [
        line for line in text.splitlines()
        if not line.lstrip().startswith(COMMENT_PREFIXES)
    ]
    return "\n".join(lines)


def _require_mapping(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ConfigMismatch(f"{what} must be a JSON object.")
    return data


@dataclass
class SimConfig:
    """Configuration of one simulation run."""

    graph_adjacency: Any
    protocol: Dict[str, Any]
    adversary: Dict[str, Any]
    threshold: Dict[str, Any]
    recorders: List[Dict[str, Any]] = field(default_factory=list)
    output_path: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "SimConfig":
        """Construct a :class:`SimConfig` from a parsed JSON object.

        Raises:
            ConfigMismatch: If a required key is missing or has the wrong shape.
        """
        data = _require_mapping(data, "A simulation")
        required = {"graph_adjacency", "protocol", "adversary", "threshold"}
        missing = required - data.keys()
        if missing:
            raise ConfigMismatch(
                f"Simulation configuration missing keys: {', '.join(sorted(missing))}"
            )
        recorders = data.get("recorders", [])
        if not isinstance(recorders, list):
            raise ConfigMismatch("recorders must be a list.")
        output_path = data.get("output_path")
        if output_path is not None and not isinstance(output_path, str):
            raise ConfigMismatch("output_path must be a string.")
        return cls(
            graph_adjacency=data["graph_adjacency"],
            protocol=_require_mapping(data["protocol"], "protocol"),
            adversary=_require_mapping(data["adversary"], "adversary"),
            threshold=_require_mapping(data["threshold"], "threshold"),
            recorders=[_require_mapping(r, "A recorder") for r in recorders],
            output_path=output_path,
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "graph_adjacency": self.graph_adjacency,
            "protocol": dict(self.protocol),
            "adversary": dict(self.adversary),
            "threshold": dict(self.threshold),
            "recorders": [dict(r) for r in self.recorders],
            "output_path": self.output_path,
        }


@dataclass
class Config:
    """Top-level program configuration.

    Attributes:
        simulations: The runs to execute, in order.
        parallel: Run the simulations concurrently.
        workers: Maximum number of concurrent runs, or None for the executor default.
        use_processes: Use worker processes rather than threads in parallel mode.
    """

    simulations: List[SimConfig]
    parallel: bool = False
    workers: Optional[int] = None
    use_processes: bool = True

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Config":
        data = _require_mapping(data, "The configuration")
        if "simulations" not in data:
            raise ConfigMismatch("No simulations found.")
        simulations = data["simulations"]
        if not isinstance(simulations, list):
            raise ConfigMismatch("simulations must be a list.")
        workers = data.get("workers")
        if workers is not None and (isinstance(workers, bool) or not isinstance(workers, int) or workers < 1):
            raise ConfigMismatch(f"workers must be a positive integer, got {workers!r}")
        return cls(
            simulations=[SimConfig.from_mapping(s) for s in simulations],
            parallel=bool(data.get("parallel", False)),
            workers=workers,
            use_processes=bool(data.get("use_processes", True)),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {
            "parallel": self.parallel,
            "workers": self.workers,
            "use_processes": self.use_processes,
            "simulations": [s.to_mapping() for s in self.simulations],
        }


def parse_config(text: str) -> Config:
    """Parse configuration text.

    Args:
        text: JSON text, optionally with full-line comments.

    Returns:
        The parsed configuration.

    Raises:
        ConfigMismatch: If the text is not valid JSON or misses required keys.
    """
    try:
        data = json.loads(strip_comments(text))
    except json.JSONDecodeError as e:
        raise ConfigMismatch(f"Invalid configuration JSON: {e}") from e
    return Config.from_mapping(data)


def load_config(path: str) -> Config:
    """Read and parse the configuration file at ``path``."""
    with open(path) as f:
        text = f.read()
    config = parse_config(text)
    logger.info("Loaded %d simulation(s) from %s", len(config.simulations), path)
    return config


def build_simulation(
    sim_config: Union[SimConfig, Dict[str, Any]],
    output_path: Optional[str] = None,
) -> Simulation:
    """Build a ready-to-run simulation.

    Args:
        sim_config: Simulation configuration, as a dataclass or a parsed mapping.
        output_path: Overrides the configured output path when given.

    Returns:
        A simulation in the initialized state.

    Raises:
        ConfigMismatch: If a selector is unknown or a key is missing.
        InvalidParameter: If a parameter is out of range.
    """
    if not isinstance(sim_config, SimConfig):
        sim_config = SimConfig.from_mapping(sim_config)
    network = network_from_config(sim_config.graph_adjacency)
    return Simulation(
        network,
        protocol_factory(sim_config.protocol),
        adversary_factory(sim_config.adversary),
        threshold_factory(sim_config.threshold),
        recorders_from_config(sim_config.recorders),
        output_path if output_path is not None else sim_config.output_path,
    )
