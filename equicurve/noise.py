"""Seeded Gaussian and log-normal noise for the demand model."""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .errors import InvalidParameter
from .utils import derive_trial_seed


class RandomNumberSource:
    """Box-Muller normal draws over a private ``numpy.random.Generator`` stream.

    Every simulation owns its own source, so trials never share generator
    state and a seed fully determines a run.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._generator = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._generator.random())

    def _nonzero_uniform(self) -> float:
        value = self.uniform()
        while value == 0.0:
            value = self.uniform()
        return value

    def normal(self, mean: float = 0.0, std_dev: float = 1.0) -> float:
        if std_dev < 0 or not math.isfinite(std_dev):
            raise InvalidParameter(f"std_dev must be a finite value >= 0, got {std_dev}")
        u = self._nonzero_uniform()
        v = self._nonzero_uniform()
        z = math.sqrt(-2.0 * math.log(u)) * math.cos(2.0 * math.pi * v)
        return mean + z * std_dev

    def log_normal(self, sigma: float) -> float:
        """Multiplicative noise factor with median 1 and mean ``exp(sigma**2 / 2)``."""
        return math.exp(self.normal(0.0, sigma))

    def spawn(self, key: str) -> "RandomNumberSource":
        """Derive an independent child stream, reproducible when this source is seeded."""
        if self.seed is None:
            return RandomNumberSource(int(self._generator.integers(0, 2**32 - 1)))
        return RandomNumberSource(derive_trial_seed(self.seed, key))


__all__ = ["RandomNumberSource"]
