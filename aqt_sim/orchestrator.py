"""Runs many independent simulations, sequentially or in parallel.

Each run builds its own network, adversary, protocol and recorders from its
configuration, so runs share no mutable state. Output directories are handed
out before any run starts; a failing run is reported without stopping the
others.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Union

from aqt_sim.config import SimConfig, build_simulation
from aqt_sim.core.enums import RunStatus
from aqt_sim.core.errors import SimulationError
from aqt_sim.utils.metrics import save_metrics_to_json

logger = logging.getLogger(__name__)

METRICS_FILENAME = "metrics.json"


@dataclass
class RunResult:
    """Outcome of one simulation run.

    Attributes:
        index: Position of the run in the configuration.
        output_path: Directory the run wrote into, or None.
        status: How the run ended.
        metrics: Run summary, empty if the run failed.
        error: Failure message, if any.
    """

    index: int
    output_path: Optional[str]
    status: RunStatus
    metrics: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status is RunStatus.SUCCEEDED


def allocate_output_dirs(sim_configs: Sequence[SimConfig]) -> List[Optional[str]]:
    """Give every run a distinct output directory.

    Paths are compared after normalisation, so ``out/a``, ``out/a/`` and
    ``./out/a`` name the same directory. Repeated paths get ``_1``, ``_2``, ...
    suffixes in configuration order. Runs without an output path stay in memory.
    """
    taken = set()
    paths: List[Optional[str]] = []
    for sim_config in sim_configs:
        if sim_config.output_path is None:
            paths.append(None)
            continue
        base = os.path.normpath(sim_config.output_path)
        path, n = base, 1
        while os.path.abspath(path) in taken:
            path = f"{base}_{n}"
            n += 1
        taken.add(os.path.abspath(path))
        paths.append(path)
    return paths


def run_simulation_config(
    index: int,
    sim_config: SimConfig,
    output_path: Optional[str] = None,
) -> RunResult:
    """Build and run one simulation, turning failures into a failed result.

    Module-level so it can be shipped to worker processes. A run with an output
    path also leaves its metrics in ``metrics.json`` there.
    """
    try:
        simulation = build_simulation(sim_config, output_path)
        metrics = simulation.run()
    except (SimulationError, OSError) as e:
        logger.error("Simulation %d failed: %s", index, e)
        return RunResult(index, output_path, RunStatus.FAILED, error=f"{type(e).__name__}: {e}")
    except Exception as e:
        logger.exception("Simulation %d failed unexpectedly", index)
        return RunResult(index, output_path, RunStatus.FAILED, error=f"{type(e).__name__}: {e}")

    if output_path is not None:
        try:
            save_metrics_to_json(metrics, os.path.join(output_path, METRICS_FILENAME))
        except OSError as e:
            logger.warning("Simulation %d could not save its metrics: %s", index, e)
            metrics["recorder_failures"]["metrics"] = str(e)

    if metrics["recorder_failures"]:
        failed = ", ".join(sorted(metrics["recorder_failures"]))
        return RunResult(
            index, output_path, RunStatus.RECORDER_FAILED, metrics,
            error=f"Recorder output lost: {failed}",
        )
    return RunResult(index, output_path, RunStatus.SUCCEEDED, metrics)


def run_simulations(
    sim_configs: Sequence[Union[SimConfig, Dict[str, Any]]],
    parallel: bool = False,
    workers: Optional[int] = None,
    use_processes: bool = True,
) -> List[RunResult]:
    """Run every configured simulation.

    Args:
        sim_configs: Simulation configurations.
        parallel: Run the simulations concurrently.
        workers: Maximum number of concurrent runs.
        use_processes: Use a process pool rather than a thread pool in parallel mode.

    Returns:
        One result per configuration, in configuration order.
    """
    configs = [c if isinstance(c, SimConfig) else SimConfig.from_mapping(c) for c in sim_configs]
    output_paths = allocate_output_dirs(configs)
    logger.info(
        "Running %d simulation(s) %s",
        len(configs), "in parallel" if parallel else "sequentially",
    )

    if parallel and len(configs) > 1:
        executor_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
        with executor_cls(max_workers=workers) as ex:
            futs = [
                ex.submit(run_simulation_config, i, c, p)
                for i, (c, p) in enumerate(zip(configs, output_paths))
            ]
            results = []
            for i, fut in enumerate(futs):
                try:
                    results.append(fut.result())
                except Exception as e:
                    logger.exception("Simulation %d did not return a result", i)
                    results.append(
                        RunResult(i, output_paths[i], RunStatus.FAILED, error=f"{type(e).__name__}: {e}")
                    )
    else:
        results = [
            run_simulation_config(i, c, p)
            for i, (c, p) in enumerate(zip(configs, output_paths))
        ]

    failed = [r for r in results if not r.succeeded]
    if failed:
        logger.warning("%d of %d simulation(s) did not succeed", len(failed), len(results))
    return results
