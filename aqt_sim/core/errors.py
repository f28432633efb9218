"""Exception types raised by the simulation core.

Construction-time errors (``InvalidParameter``, ``ConfigMismatch``) abort a run
before it starts. In-round errors (``InvalidIndex``, ``ForwardingConflict``) are
contract violations between a protocol and the network and fail the run.
``RecorderIOFailure`` is reported but does not touch simulation state.
"""


class SimulationError(Exception):
    """Base class for all errors raised by aqt_sim."""


class InvalidParameter(SimulationError, ValueError):
    """A component was constructed with an out-of-domain value."""


class InvalidIndex(SimulationError, IndexError):
    """A buffer or link index is out of range for the network."""


class ConfigMismatch(SimulationError, ValueError):
    """The configuration requests a variant or topology that is not supported."""


class ForwardingConflict(SimulationError, RuntimeError):
    """A forwarding decision selected a packet that cannot move this round."""


class RecorderIOFailure(SimulationError, OSError):
    """A persisting recorder could not write its output."""
