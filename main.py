import argparse
import logging
import os
import sys

from aqt_sim.config import load_config
from aqt_sim.core.enums import RunStatus
from aqt_sim.core.errors import SimulationError
from aqt_sim.core.recorders import BufferLoadRecorder
from aqt_sim.orchestrator import run_simulations
from aqt_sim.utils.metrics import load_csv_rows, save_results_to_csv
from aqt_sim.utils.visualization import plot_buffer_loads, plot_total_load

logger = logging.getLogger(__name__)


def plot_run(output_path):
    """
    Plot the buffer load table of a finished run next to it

    Args:
        output_path: Output directory of the run
    """
    table = os.path.join(output_path, BufferLoadRecorder.name + ".csv")
    if not os.path.exists(table):
        logger.info("No buffer load table in %s, skipping plots", output_path)
        return
    rows = load_csv_rows(table)
    plot_buffer_loads(rows, filename=os.path.join(output_path, "buffer_load.png"), show=False)
    plot_total_load(rows, filename=os.path.join(output_path, "total_load.png"), show=False)


def print_results(results):
    """Print one line per run"""
    print("\n=== Simulation Results ===")
    for result in results:
        line = f"[{result.index}] {result.status.value}"
        if result.output_path:
            line += f" -> {result.output_path}"
        if result.metrics:
            m = result.metrics
            line += (
                f" | rounds: {m['rounds']}, injected: {m['injected']},"
                f" absorbed: {m['absorbed']}, queued: {m['queued']},"
                f" max total load: {m['max_total_load']}"
            )
        if result.error:
            line += f" | {result.error}"
        print(line)


def main(argv=None):
    """Main function to run the configured simulations"""
    parser = argparse.ArgumentParser(description="Adversarial Queueing Simulation")
    parser.add_argument("config", help="Path to the JSON configuration file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--parallel", dest="parallel", action="store_true", help="Run simulations in parallel"
    )
    mode.add_argument(
        "--sequential", dest="parallel", action="store_false", help="Run simulations one by one"
    )
    parser.set_defaults(parallel=None)
    parser.add_argument("--workers", type=int, help="Maximum number of concurrent runs")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    parser.add_argument(
        "--plot", action="store_true", help="Plot buffer loads of every run with an output path"
    )
    parser.add_argument("--summary", help="Write a CSV summary of all runs to this file")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.config)
    except (OSError, SimulationError) as e:
        logger.error("Could not load %s: %s", args.config, e)
        return 2

    parallel = config.parallel if args.parallel is None else args.parallel
    workers = args.workers if args.workers is not None else config.workers

    results = run_simulations(config.simulations, parallel, workers, config.use_processes)
    print_results(results)

    if args.summary:
        save_results_to_csv(results, args.summary)

    if args.plot:
        for result in results:
            if result.output_path and result.status is not RunStatus.FAILED:
                plot_run(result.output_path)

    return 0 if all(r.succeeded for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
