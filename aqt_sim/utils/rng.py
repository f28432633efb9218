from typing import Optional

import numpy as np


class SimRng:
    """
    A per-run random number generator wrapping a NumPy ``Generator``.

    Every adversary owns its own instance, so runs never share a random stream.
    A seeded instance reproduces the same sequence on every run; an unseeded
    one draws fresh entropy from the operating system.
    """

    def __init__(self, seed: Optional[int] = None):
        """
        Initialize the generator.

        Args:
            seed (Optional[int]): Seed for a reproducible stream, or None.
        """
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def rand_int(self, high: int) -> int:
        """
        Draw an integer uniformly from ``0`` (inclusive) to ``high`` (exclusive).

        Args:
            high (int): Exclusive upper bound, must be positive.

        Returns:
            int: The drawn value.
        """
        if high <= 0:
            raise ValueError("Upper bound must be positive")
        return int(self._rng.integers(0, high))

    def tag(self) -> int:
        """Draw a 32-bit label."""
        return int(self._rng.integers(0, 2**32))
