"""
Seeded random float32 arrays for benchmarks and tests
"""

import math
from typing import List, Optional

import numpy as np

from .errors import InvalidArgumentError


class RandomArrayGenerator:
    """
    Uniform random float32 arrays from a generator owned by this instance.

    Two generators built with the same seed produce the same arrays. A seed
    of None draws fresh entropy from the OS.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._rng = np.random.default_rng(seed)

    def generate(self, count: int, n: int, minv: float = -10.0, maxv: float = 10.0) -> List[np.ndarray]:
        """
        Generate `count` arrays of `n` values uniform in [minv, maxv].

        Raises:
            InvalidArgumentError: If count or n is zero, a bound is not
                finite, or maxv < minv
        """
        if not count or count < 0 or not n or n < 0:
            raise InvalidArgumentError(f"count and n must be positive, got count={count}, n={n}")
        if not (math.isfinite(minv) and math.isfinite(maxv)) or maxv < minv:
            raise InvalidArgumentError(f"Invalid value range [{minv}, {maxv}]")

        return [self._rng.uniform(minv, maxv, size=n).astype(np.float32) for _ in range(count)]

    def generate_one(self, n: int, minv: float = -10.0, maxv: float = 10.0) -> np.ndarray:
        return self.generate(1, n, minv, maxv)[0]
