"""Round-based adversarial queueing simulation on path networks."""

__version__ = "0.1.0"
