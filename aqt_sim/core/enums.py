"""Enumerations for AQT simulation.

This module defines enumerations used throughout the simulator.
"""

from enum import Enum


class SimulationState(Enum):
    """Lifecycle of a single simulation run.

    Attributes:
        INITIALIZED: Network built, round counter at 0, components attached.
        RUNNING: The round loop is executing.
        STOPPED: The threshold fired and recorders have been finalized.
    """

    INITIALIZED = 1
    RUNNING = 2
    STOPPED = 3


class RunStatus(Enum):
    """Outcome of one run as reported by the orchestrator.

    Attributes:
        SUCCEEDED: The run stopped and every recorder finalized its output.
        RECORDER_FAILED: The run stopped but at least one recorder lost output.
        FAILED: The run raised before reaching the stopped state.
    """

    SUCCEEDED = "succeeded"
    RECORDER_FAILED = "recorder_failed"
    FAILED = "failed"
