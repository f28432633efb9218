"""Metrics utilities for AQT simulation.

This module provides functions for saving run summaries and for analysing the
tables written by the recorders, such as buffer loads over time and the burst
excess of an injection sequence.
"""

import csv
import json
import os
from typing import Any, Dict, List, Mapping, Sequence, Union

import numpy as np

Row = Union[Sequence[float], Mapping[str, float]]


def save_metrics_to_json(metrics: Dict[str, Any], filename: str) -> None:
    """Save metrics to a JSON file.

    Args:
        metrics: Dictionary of metrics to save.
        filename: Output filename.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(filename, "w") as f:
        json.dump(metrics, f, indent=2)


def save_results_to_csv(results: Sequence[Any], filename: str) -> None:
    """Save one summary line per run to a CSV file.

    Args:
        results: Run results from the orchestrator.
        filename: Output filename.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(
            ["Run", "Status", "Output", "Rounds", "Injected", "Absorbed", "Queued", "Max Total Load"]
        )
        for result in results:
            m = result.metrics
            writer.writerow(
                [
                    result.index,
                    result.status.value,
                    result.output_path or "",
                    m.get("rounds", ""),
                    m.get("injected", ""),
                    m.get("absorbed", ""),
                    m.get("queued", ""),
                    m.get("max_total_load", ""),
                ]
            )


def _number(text: str) -> Union[int, float]:
    try:
        return int(text)
    except ValueError:
        return float(text)


def load_csv_rows(filepath: str) -> List[Dict[str, Union[int, float]]]:
    """Read a recorder table back as a list of numeric rows keyed by column."""
    with open(filepath, newline="") as f:
        return [{k: _number(v) for k, v in row.items()} for row in csv.DictReader(f)]


def buffer_load_matrix(rows: Sequence[Row]) -> np.ndarray:
    """Arrange ``rd,buffer,load`` rows as an array of shape (rounds, buffers).

    Rows may be tuples, as kept in memory by the buffer load recorder, or
    mappings, as returned by :func:`load_csv_rows`. Round ``r`` ends up in row
    ``r - 1``.
    """
    triples = [
        (row["rd"], row["buffer"], row["load"]) if isinstance(row, Mapping) else tuple(row[:3])
        for row in rows
    ]
    if not triples:
        return np.zeros((0, 0), dtype=int)
    data = np.array(triples, dtype=int)
    matrix = np.zeros((data[:, 0].max(), data[:, 1].max() + 1), dtype=int)
    matrix[data[:, 0] - 1, data[:, 1]] = data[:, 2]
    return matrix


def summarize_buffer_loads(rows: Sequence[Row]) -> Dict[str, Any]:
    """Summary statistics of a buffer load table.

    Args:
        rows: ``rd,buffer,load`` rows.

    Returns:
        Dictionary with the number of rounds, the largest single buffer load,
        the largest and mean total load, and each buffer's largest load.
    """
    matrix = buffer_load_matrix(rows)
    if matrix.size == 0:
        return {
            "rounds": 0,
            "max_load": 0,
            "max_total_load": 0,
            "mean_total_load": 0.0,
            "per_buffer_max": [],
        }
    totals = matrix.sum(axis=1)
    return {
        "rounds": int(matrix.shape[0]),
        "max_load": int(matrix.max()),
        "max_total_load": int(totals.max()),
        "mean_total_load": float(totals.mean()),
        "per_buffer_max": [int(x) for x in matrix.max(axis=0)],
    }


def max_window_excess(counts: Sequence[int], rate: float = 1.0) -> float:
    """Largest burst of an injection sequence.

    Returns the maximum over all contiguous windows of ``sum(window) - rate * len(window)``,
    or 0 for an empty sequence. A (rate, sigma)-bounded sequence has an excess
    of at most sigma.

    Args:
        counts: Packets injected in each round.
        rate: Long-run injection rate.
    """
    if len(counts) == 0:
        return 0.0
    prefix = np.concatenate(([0.0], np.cumsum(np.asarray(counts, dtype=float))))
    drift = prefix - rate * np.arange(len(prefix))
    # Best window ending at j starts after the lowest drift seen before j.
    lowest_before = np.minimum.accumulate(drift[:-1])
    return float(np.max(drift[1:] - lowest_before))
