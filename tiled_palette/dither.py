# tiled_palette/dither.py
from __future__ import annotations

"""
Ordered dithering with lookahead error diffusion.

For each pixel a short walk builds N candidates (N = 2 or 4): each step adds
the weighted running error to the pixel in linear space, picks the nearest
palette colour, then grows the error by the gap between the pixel and the
bit-reduced pick. Candidates are ranked by brightness and the 2x2 pattern
entry for (x & 1, y & 1) picks one.
"""

from typing import Dict, List, Tuple

import numpy as np

from .colour_space import (
    LINEAR_MAX,
    brightness,
    nearest_colour,
    to_linear,
    to_nbit,
    to_srgb,
)
from .core_types import Colour, DitherCandidate, Palette
from .options import QuantizationOptions

# Pattern tables indexed [x & 1][y & 1]; values are ranks into the
# brightness-sorted candidates.
DITHER_PATTERNS: Dict[str, Tuple[Tuple[int, int], Tuple[int, int]]] = {
    "diagonal4": ((0, 2), (3, 1)),
    "horizontal4": ((0, 3), (1, 2)),
    "vertical4": ((0, 1), (3, 2)),
    "diagonal2": ((0, 1), (1, 0)),
    "horizontal2": ((0, 1), (0, 1)),
    "vertical2": ((0, 0), (1, 1)),
}


def pattern_levels(name: str) -> int:
    """Number of candidates a pattern ranks (2 or 4)."""
    table = DITHER_PATTERNS[name]
    return 1 + max(v for row in table for v in row)


class DitherEngine:
    """Per-pixel candidate search for one run's dither settings."""

    def __init__(self, options: QuantizationOptions):
        self.pattern = DITHER_PATTERNS[options.dither_pattern]
        self.levels = options.dither_pixels
        self.weight = float(options.dither_weight)
        self.bits = int(options.bits_per_channel)

    def candidates(self, palette: Palette, colour: np.ndarray) -> List[DitherCandidate]:
        """All candidates for one pixel, sorted by brightness (stable)."""
        linear_pixel = to_linear(np.asarray(colour, dtype=np.float64))
        error = np.zeros(3, dtype=np.float64)
        found: List[DitherCandidate] = []

        for _ in range(self.levels):
            c = np.clip(linear_pixel + self.weight * error, 0.0, LINEAR_MAX)
            c = to_srgb(c)
            index, dist = nearest_colour(palette, c)
            chosen = palette[index]
            found.append(DitherCandidate(index, dist, c.copy(), brightness(chosen)))
            error += linear_pixel - to_linear(to_nbit(chosen, self.bits))

        return sorted(found, key=lambda cand: cand.brightness)

    def select(self, palette: Palette, colour: np.ndarray, x: int, y: int) -> DitherCandidate:
        ranked = self.candidates(palette, colour)
        return ranked[self.pattern[x & 1][y & 1]]

    def closest_colour(
        self, palette: Palette, colour: Colour, x: int, y: int
    ) -> Tuple[int, float, Colour]:
        """(colour index, distance, compared colour) for the pixel at (x, y)."""
        pick = self.select(palette, colour, x, y)
        return pick.colour_index, pick.distance, pick.compared_colour


__all__ = ["DITHER_PATTERNS", "pattern_levels", "DitherEngine"]
