# tiled_palette/finders.py
from __future__ import annotations

"""
Nearest-colour and nearest-palette lookups.

Two interchangeable finders:
  NearestColourFinder       : plain weighted-distance search over tile histograms
  DitherNearestColourFinder : the same queries answered through DitherEngine,
                              pixel by pixel

The engine picks one per run so the learning loops never branch on the
dither mode themselves. Ties resolve to the lowest index.
"""

from typing import Tuple

import numpy as np

from .colour_space import DISTANCE_WEIGHTS, colour_distances, histogram_distances
from .core_types import Colour, Palette, PaletteSet, Pixel, Tile
from .dither import DitherEngine
from .options import QuantizationOptions

# Above this many (sample, palette, colour) triples, score palettes one at a time.
_BROADCAST_LIMIT = 1 << 20


class NearestColourFinder:
    """Histogram-based lookups; counts weight every distance."""

    def closest_colour(self, palette: Palette, pixel: Pixel) -> Tuple[int, float, Colour]:
        """(index, distance, target colour) for one pixel."""
        dist = colour_distances(palette, pixel.colour)
        j = int(np.argmin(dist))
        return j, float(dist[j]), pixel.colour

    def palette_distances(self, palettes: PaletteSet, tile: Tile) -> np.ndarray:
        """Count-weighted nearest-colour error of the tile against every palette -> [P]."""
        if tile.colours.shape[0] * palettes.shape[0] * palettes.shape[1] > _BROADCAST_LIMIT:
            return np.array([self.tile_distance(pal, tile) for pal in palettes], dtype=np.float64)
        diff = tile.colours[:, None, None, :] - palettes[None, :, :, :]
        dist = (diff * diff) @ DISTANCE_WEIGHTS  # [U,P,K]
        return tile.counts.astype(np.float64) @ dist.min(axis=2)

    def tile_distance(self, palette: Palette, tile: Tile) -> float:
        dist = histogram_distances(palette, tile.colours)
        return float(tile.counts @ dist.min(axis=1))

    def closest_palette_distance(self, palettes: PaletteSet, tile: Tile) -> Tuple[int, float]:
        dists = self.palette_distances(palettes, tile)
        j = int(np.argmin(dists))
        return j, float(dists[j])

    def closest_palette(self, palettes: PaletteSet, tile: Tile) -> int:
        if palettes.shape[0] == 1:
            return 0
        return self.closest_palette_distance(palettes, tile)[0]

    def nearest_usage(self, palette: Palette, tile: Tile) -> Tuple[np.ndarray, np.ndarray]:
        """(nearest colour index, count-weighted distance) per histogram entry."""
        dist = histogram_distances(palette, tile.colours)
        nearest = np.argmin(dist, axis=1)
        return nearest, tile.counts * dist[np.arange(nearest.size), nearest]

    def colour_usage(
        self, palette: Palette, tile: Tile
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Per sample: (nearest colour index, weighted nearest distance,
        weighted distance to the nearest of the remaining colours).
        Needs at least two colours in the palette.
        """
        dist = histogram_distances(palette, tile.colours)  # [U,K]
        nearest = np.argmin(dist, axis=1)
        ordered = np.partition(dist, 1, axis=1)
        weights = tile.counts.astype(np.float64)
        return nearest, weights * ordered[:, 0], weights * ordered[:, 1]

    def assignments(
        self, palette: Palette, tile: Tile
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """(nearest colour index, sample colours, sample weights) for centroid updates."""
        dist = histogram_distances(palette, tile.colours)
        return np.argmin(dist, axis=1), tile.colours, tile.counts.astype(np.float64)


class DitherNearestColourFinder(NearestColourFinder):
    """Every query goes through the dither walk at each pixel's position."""

    def __init__(self, options: QuantizationOptions):
        self.engine = DitherEngine(options)

    def closest_colour(self, palette: Palette, pixel: Pixel) -> Tuple[int, float, Colour]:
        return self.engine.closest_colour(palette, pixel.colour, pixel.x, pixel.y)

    def tile_distance(self, palette: Palette, tile: Tile) -> float:
        total = 0.0
        for p in tile.pixels:
            total += self.engine.closest_colour(palette, p.colour, p.x, p.y)[1]
        return total

    def palette_distances(self, palettes: PaletteSet, tile: Tile) -> np.ndarray:
        return np.array([self.tile_distance(pal, tile) for pal in palettes], dtype=np.float64)

    def colour_usage(
        self, palette: Palette, tile: Tile
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        n = tile.pixel_count
        nearest = np.zeros(n, dtype=np.int64)
        best = np.zeros(n, dtype=np.float64)
        second = np.zeros(n, dtype=np.float64)
        for i, p in enumerate(tile.pixels):
            idx, dist, _ = self.engine.closest_colour(palette, p.colour, p.x, p.y)
            remaining = np.delete(palette, idx, axis=0)
            nearest[i] = idx
            best[i] = dist
            second[i] = self.engine.closest_colour(remaining, p.colour, p.x, p.y)[1]
        return nearest, best, second

    def assignments(
        self, palette: Palette, tile: Tile
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        nearest = np.array(
            [self.engine.closest_colour(palette, p.colour, p.x, p.y)[0] for p in tile.pixels],
            dtype=np.int64,
        )
        colours = np.array([p.colour for p in tile.pixels], dtype=np.float64).reshape(-1, 3)
        return nearest, colours, np.ones(tile.pixel_count, dtype=np.float64)


def make_finder(options: QuantizationOptions, *, dither: bool) -> NearestColourFinder:
    """Dither-aware finder when `dither` is set, else the plain one."""
    return DitherNearestColourFinder(options) if dither else NearestColourFinder()


__all__ = ["NearestColourFinder", "DitherNearestColourFinder", "make_finder"]
