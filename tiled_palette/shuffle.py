# tiled_palette/shuffle.py
from __future__ import annotations

"""
Full-period random index stream.

RandomShuffle(n).next() walks a Fisher-Yates permutation of 0..n-1 and
reshuffles in place once all n values have been handed out, so every aligned
window of n calls is a permutation.
"""

from typing import Optional

import numpy as np


class RandomShuffle:
    """Sampling without replacement over 0..n-1, repeated forever."""

    def __init__(self, n: int, rng: Optional[np.random.Generator] = None):
        if int(n) < 1:
            raise ValueError("RandomShuffle needs at least one element")
        self._rng = rng if rng is not None else np.random.default_rng()
        self._values = np.arange(int(n), dtype=np.int64)
        self._current = int(n) - 1

    def __len__(self) -> int:
        return int(self._values.size)

    def _shuffle(self) -> None:
        # Generator.shuffle is an in-place Fisher-Yates.
        self._rng.shuffle(self._values)

    def next(self) -> int:
        self._current += 1
        if self._current >= self._values.size:
            self._shuffle()
            self._current = 0
        return int(self._values[self._current])

    def __iter__(self) -> "RandomShuffle":
        return self

    def __next__(self) -> int:
        return self.next()


__all__ = ["RandomShuffle"]
