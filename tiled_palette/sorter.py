# tiled_palette/sorter.py
from __future__ import annotations

"""
Palette and colour-slot ordering.

Reorders finished palettes so that neighbouring palettes look alike and a
given slot holds a similar colour from one palette to the next. Four
randomised 2-opt style passes:

  1. pairwise slot correspondence for every palette pair (swap trials)
  2. palette visiting order as an open path (segment reversals)
  3. colour order inside the first palette (segment reversals)
  4. chained slot order for each following palette: the slot above weighs 2,
     left and right neighbours weigh 1 (swap trials, 4+ colours only)

Slots below `start_index` never move.
"""

from typing import List, Sequence

import numpy as np

from .colour_space import DISTANCE_WEIGHTS
from .core_types import PaletteSet

PAIR_ITERATIONS = 2_000
PALETTE_ITERATIONS = 100_000
CHAIN_ITERATIONS = 10_000
UP_WEIGHT = 2.0

# Uniform draws are pulled from the generator in blocks of this size.
_DRAW_BLOCK = 4_096


def _distance_matrix(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    """Weighted distance between every row of a [N,3] and every row of b [M,3] -> [N,M]."""
    diff = a[:, None, :] - b[None, :, :]
    return (diff * diff) @ DISTANCE_WEIGHTS


def _reverse(values: List[int], left: int, right: int) -> None:
    """Reverse values[left..right] in place (inclusive)."""
    values[left : right + 1] = values[left : right + 1][::-1]


class _Uniforms:
    """Block-buffered uniform [0,1) stream from one Generator."""

    def __init__(self, rng: np.random.Generator):
        self._rng = rng
        self._buf: List[float] = []
        self._pos = 0

    def next(self) -> float:
        if self._pos >= len(self._buf):
            self._buf = self._rng.random(_DRAW_BLOCK).tolist()
            self._pos = 0
        value = self._buf[self._pos]
        self._pos += 1
        return value

    def below(self, n: int) -> int:
        """Uniform integer in [0, n)."""
        return min(int(self.next() * n), n - 1)


class PaletteSorter:
    def __init__(self, rng: np.random.Generator):
        self.uniform = _Uniforms(rng)

    # Pass 1

    def pair_correspondence(self, palettes: PaletteSet, start_index: int):
        """
        Slot mapping between every palette pair and the resulting pair distance.

        Returns (mapping, distance): mapping[a, b, k] is the slot in palette b
        matched to slot k of palette a; distance is a symmetric [P,P] matrix.
        """
        num_palettes, num_colours = palettes.shape[:2]
        mapping = np.tile(np.arange(num_colours, dtype=np.int64), (num_palettes, num_palettes, 1))
        distance = np.zeros((num_palettes, num_palettes), dtype=np.float64)
        span = num_colours - start_index - 1
        u = self.uniform

        for p1 in range(num_palettes - 1):
            for p2 in range(p1 + 1, num_palettes):
                cross = _distance_matrix(palettes[p1], palettes[p2]).tolist()
                index = mapping[p1, p2].tolist()
                if span >= 1:
                    for _ in range(PAIR_ITERATIONS):
                        i1 = start_index + u.below(span)
                        i2 = i1 + 1 + u.below(num_colours - i1 - 1)
                        if u.next() < 0.5:
                            i1, i2 = i2, i1
                        a, b = index[i1], index[i2]
                        straight = cross[i1][a] + cross[i2][b]
                        swapped = cross[i1][b] + cross[i2][a]
                        if swapped < straight:
                            index[i1], index[i2] = b, a
                mapping[p1, p2] = index
                total = sum(cross[k][index[k]] for k in range(num_colours))
                distance[p1, p2] = distance[p2, p1] = total

        for p1 in range(1, num_palettes):
            for p2 in range(p1):
                mapping[p1, p2] = np.argsort(mapping[p2, p1])
        return mapping, distance

    # Pass 2 / 3

    def _open_path_order(
        self, dist: np.ndarray, length: int, first: int, iterations: int
    ) -> List[int]:
        """
        2-opt over positions 1..length of a sentinel-padded path. Sentinels at
        0 and length+1 sit at distance 0 from everything, so both ends are free.
        Positions below `first` are never reversed.
        """
        padded = np.zeros((length + 2, length + 2), dtype=np.float64)
        padded[1 : length + 1, 1 : length + 1] = dist
        d = padded.tolist()
        order = list(range(length + 2))
        u = self.uniform

        for _ in range(iterations):
            index1 = max(first, u.below(length))
            if index1 >= length:
                continue
            index2 = min(length, index1 + 1 + u.below(length - index1))
            i1b, i1, i2, i2b = order[index1 - 1], order[index1], order[index2], order[index2 + 1]
            if d[i1b][i2] + d[i1][i2b] < d[i1b][i1] + d[i2][i2b]:
                _reverse(order, index1, index2)
        return [v - 1 for v in order[1 : length + 1]]

    def palette_order(self, distance: np.ndarray) -> List[int]:
        num_palettes = distance.shape[0]
        if num_palettes <= 2:
            return list(range(num_palettes))
        return self._open_path_order(distance, num_palettes, 1, PALETTE_ITERATIONS)

    def first_palette_order(self, palette: np.ndarray, start_index: int) -> List[int]:
        num_colours = palette.shape[0]
        if num_colours <= 2:
            return list(range(num_colours))
        dist = _distance_matrix(palette, palette)
        return self._open_path_order(dist, num_colours, 1 + start_index, PALETTE_ITERATIONS)

    # Pass 4

    def chain_slots(
        self,
        above: np.ndarray,
        palette: np.ndarray,
        above_slots: Sequence[int],
        slots: List[int],
        start_index: int,
    ) -> List[int]:
        """Swap trials on `slots` (indices into `palette`) against the palette above."""
        num_colours = len(slots)
        up = _distance_matrix(palette, above).tolist()
        side = _distance_matrix(palette, palette).tolist()
        u = self.uniform

        def cost(slot: int, colour: int) -> float:
            total = UP_WEIGHT * up[colour][above_slots[slot]]
            if slot > 0:
                total += side[colour][slots[slot - 1]]
            if slot < num_colours - 1:
                total += side[colour][slots[slot + 1]]
            return total

        done = 0
        while done < CHAIN_ITERATIONS:
            index1 = max(start_index, u.below(num_colours))
            index2 = max(start_index, u.below(num_colours))
            if index1 == index2:
                continue
            c1, c2 = slots[index1], slots[index2]
            straight = cost(index1, c1) + cost(index2, c2)
            swapped = cost(index1, c2) + cost(index2, c1)
            if swapped < straight:
                slots[index1], slots[index2] = c2, c1
            done += 1
        return slots

    # Driver

    def sort(self, palettes: PaletteSet, start_index: int = 0) -> PaletteSet:
        """Reordered copy of `palettes`; the colours themselves are unchanged."""
        num_palettes, num_colours = palettes.shape[:2]
        if num_colours < 2 or (num_colours == 2 and start_index == 1):
            return palettes.copy()

        mapping, distance = self.pair_correspondence(palettes, start_index)
        order = self.palette_order(distance)

        slots = np.zeros((num_palettes, num_colours), dtype=np.int64)
        slots[0] = self.first_palette_order(palettes[order[0]], start_index)
        for i in range(1, num_palettes):
            slots[i] = mapping[order[i - 1], order[i]][slots[i - 1]]

        if num_colours >= 4:
            for i in range(1, num_palettes):
                slots[i] = self.chain_slots(
                    palettes[order[i - 1]],
                    palettes[order[i]],
                    slots[i - 1].tolist(),
                    slots[i].tolist(),
                    start_index,
                )

        return palettes[np.array(order)[:, None], slots].copy()


def sort_palettes(
    palettes: PaletteSet, start_index: int, rng: np.random.Generator
) -> PaletteSet:
    return PaletteSorter(rng).sort(palettes, start_index)


__all__ = [
    "PAIR_ITERATIONS",
    "PALETTE_ITERATIONS",
    "CHAIN_ITERATIONS",
    "UP_WEIGHT",
    "PaletteSorter",
    "sort_palettes",
]
