"""Visualization utilities for AQT simulation.

This module provides functions for plotting recorder output after a run,
such as buffer loads over time and the total number of queued packets.
"""

import os
from typing import Optional, Sequence, Tuple

import matplotlib.pyplot as plt

from aqt_sim.utils.metrics import Row, buffer_load_matrix


def _finish(fig, filename: Optional[str], show: bool) -> None:
    plt.tight_layout()
    if filename:
        directory = os.path.dirname(filename)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(filename)
        plt.close(fig)
    elif show:
        plt.show()
    else:
        plt.close(fig)


def plot_buffer_loads(
    rows: Sequence[Row],
    filename: Optional[str] = None,
    title: str = "Buffer Loads",
    figsize: Tuple[int, int] = (10, 6),
    show: bool = True,
) -> None:
    """Plot buffer loads as a heat map of round against buffer.

    Args:
        rows: ``rd,buffer,load`` rows from the buffer load recorder.
        filename: Output filename, or None to show the plot.
        title: Plot title.
        figsize: Figure size as (width, height) in inches.
        show: Whether to show the plot when no filename is given.
    """
    matrix = buffer_load_matrix(rows)
    fig, ax = plt.subplots(figsize=figsize)

    if matrix.size:
        image = ax.imshow(
            matrix.T,
            aspect="auto",
            origin="lower",
            interpolation="nearest",
            cmap="viridis",
            extent=(0.5, matrix.shape[0] + 0.5, -0.5, matrix.shape[1] - 0.5),
        )
        fig.colorbar(image, ax=ax, label="Packets queued")

    ax.set_xlabel("Round")
    ax.set_ylabel("Buffer")
    ax.set_title(title)

    _finish(fig, filename, show)


def plot_total_load(
    rows: Sequence[Row],
    filename: Optional[str] = None,
    title: str = "Total Load",
    figsize: Tuple[int, int] = (10, 5),
    show: bool = True,
) -> None:
    """Plot the total number of queued packets at the end of every round.

    Args:
        rows: ``rd,buffer,load`` rows from the buffer load recorder.
        filename: Output filename, or None to show the plot.
        title: Plot title.
        figsize: Figure size as (width, height) in inches.
        show: Whether to show the plot when no filename is given.
    """
    matrix = buffer_load_matrix(rows)
    totals = matrix.sum(axis=1) if matrix.size else []

    fig, ax = plt.subplots(figsize=figsize)
    ax.plot(range(1, len(totals) + 1), totals, marker=".", linewidth=1)
    ax.set_xlabel("Round")
    ax.set_ylabel("Packets queued")
    ax.set_title(title)
    ax.grid(True, alpha=0.3)

    _finish(fig, filename, show)
