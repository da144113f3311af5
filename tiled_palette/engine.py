# tiled_palette/engine.py
from __future__ import annotations

"""
Palette learning.

PaletteEngine owns one PaletteSet for the length of a run and moves it
through five phases:

  A  seed         mean colour of every eligible pixel (plus the pinned zero
                  colour under the shared policy)
  B  split/grow   clone the worst palette until there are `palette_count`,
                  then duplicate each palette's worst colour until every
                  palette holds the learned colour count
  C  replace      10 rounds of weak-colour / weak-palette replacement, keeping
                  the lowest-MSE set seen
  D  refine       long low-alpha nudge run (bit-reduced first when not dithering)
  E  k-means      3 centroid rounds (not dithering only)

Every nudge samples one pixel from a full-period shuffle, picks the nearest
palette for that pixel's tile (recomputed each time), the nearest colour in
that palette, and moves it toward the pixel.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

import numpy as np

from .colour_space import move_closer, to_nbit_colour
from .core_types import CancelCheck, PaletteSet, Pixel, Tile, as_colour
from .finders import DitherNearestColourFinder, NearestColourFinder, make_finder
from .options import QuantizationOptions
from .shuffle import RandomShuffle
from .tiles import flatten_pixels
from .utils import debug_log, format_duration, max_index, min_index

# Learning rates
ALPHA = 0.3
SLOW_DITHER_ALPHA = 0.1
FINAL_ALPHA = 0.05
SLOW_DITHER_FINAL_ALPHA = 0.02

# Slow dither runs far fewer nudges; each one costs a full dither walk.
SLOW_DITHER_ITERATION_DIVISOR = 5

# Weak replacement: a colour / palette is replaced when keeping it buys less
# than this fraction of the worst colour's / palette's error.
MIN_COLOUR_FACTOR = 0.5
MIN_PALETTE_FACTOR = 0.5
REPLACE_ROUNDS = 10

FINAL_ITERATION_FACTOR = 10
KMEANS_ROUNDS = 3

# Progress milestones: end of growth, end of replacement, end of refinement, end of k-means.
PROGRESS_MILESTONES = (25, 65, 90, 100)
DITHER_PROGRESS_MILESTONES = (25, 65, 90, 94)


class QuantizationCancelled(RuntimeError):
    """The caller's cancel check returned True between iterations."""


@dataclass
class EngineStats:
    """MSE checkpoints recorded while learning (count-weighted, plain distance)."""

    seed_mse: float = 0.0
    grown_mse: float = 0.0
    replaced_mse: float = 0.0
    final_mse: float = 0.0
    colour_replacements: int = 0
    palette_replacements: int = 0


class PaletteEngine:
    def __init__(
        self,
        tiles: Sequence[Tile],
        options: QuantizationOptions,
        rng: np.random.Generator,
        *,
        debug: bool = False,
        cancel: Optional[CancelCheck] = None,
    ):
        self.tiles: List[Tile] = list(tiles)
        self.pixels = flatten_pixels(self.tiles)
        if not self.pixels:
            raise ValueError("PaletteEngine needs at least one eligible pixel")

        self.options = options
        self.rng = rng
        self.debug = debug
        self.cancel = cancel
        self.stats = EngineStats()

        self.shuffle = RandomShuffle(len(self.pixels), rng)
        self.plain = NearestColourFinder()
        self.finder = make_finder(options, dither=options.slow_dither)
        self.shared_index = options.shared_colour_index

        iterations = options.fraction_of_pixels * len(self.pixels)
        if options.slow_dither:
            iterations /= SLOW_DITHER_ITERATION_DIVISOR
            self.alpha, self.final_alpha = SLOW_DITHER_ALPHA, SLOW_DITHER_FINAL_ALPHA
        else:
            self.alpha, self.final_alpha = ALPHA, FINAL_ALPHA
        self.iterations = int(math.ceil(iterations))
        self.milestones = (
            DITHER_PROGRESS_MILESTONES if options.use_dither else PROGRESS_MILESTONES
        )

    # Plumbing

    def _check_cancel(self) -> None:
        if self.cancel is not None and self.cancel():
            raise QuantizationCancelled("quantization cancelled")

    def _debug(self, message: str) -> None:
        if self.debug:
            debug_log(message)

    # Nudging

    def nudge(self, palettes: PaletteSet, pixel: Pixel, alpha: float) -> None:
        """Move the colour nearest to `pixel` (in its tile's nearest palette) toward it."""
        tile = self.tiles[pixel.tile]
        p = self.finder.closest_palette(palettes, tile)
        j, _dist, target = self.finder.closest_colour(palettes[p], pixel)
        if j != self.shared_index:
            move_closer(palettes[p, j], target, alpha)

    def run_nudges(self, palettes: PaletteSet, count: int, alpha: float) -> None:
        for _ in range(count):
            self.nudge(palettes, self.pixels[self.shuffle.next()], alpha)

    # Measures

    def mean_square_error(self, palettes: PaletteSet) -> float:
        """Count-weighted mean distance of every histogram entry to its tile's nearest palette."""
        total = 0.0
        count = 0
        for tile in self.tiles:
            p = self.plain.closest_palette(palettes, tile)
            total += self.plain.tile_distance(palettes[p], tile)
            count += int(tile.counts.sum())
        return total / count if count else 0.0

    def mean_square_error_dither(self, palettes: PaletteSet) -> float:
        """Per-pixel mean distance when every lookup goes through the dither walk."""
        finder = DitherNearestColourFinder(self.options)
        total = 0.0
        count = 0
        for tile in self.tiles:
            p = finder.closest_palette(palettes, tile)
            total += finder.tile_distance(palettes[p], tile)
            count += tile.pixel_count
        return total / count if count else 0.0

    # Phase A

    def seed_palettes(self) -> PaletteSet:
        mean = np.mean(np.array([p.colour for p in self.pixels], dtype=np.float64), axis=0)
        if self.options.colour_zero == "shared":
            first = np.stack([as_colour(self.options.zero_colour), mean])
        else:
            first = mean[None, :]
        return first[None, :, :].copy()

    # Phase B

    def split_palettes(self, palettes: PaletteSet) -> PaletteSet:
        """Clone the worst palette (initially the seed) until palette_count exist."""
        split_index = 0
        for num_palettes in range(2, self.options.palette_count + 1):
            self._check_cancel()
            palettes = np.concatenate([palettes, palettes[split_index][None].copy()], axis=0)
            self.run_nudges(palettes, self.iterations, self.alpha)

            palette_distance = np.zeros(num_palettes, dtype=np.float64)
            for tile in self.tiles:
                idx, dist = self.plain.closest_palette_distance(palettes, tile)
                palette_distance[idx] += dist
            split_index = max_index(palette_distance)
        return palettes

    def expand_colours(self, palettes: PaletteSet) -> PaletteSet:
        """Grow every palette by one colour: a copy of the colour carrying the most error."""
        num_palettes, num_colours = palettes.shape[:2]
        split = np.zeros(num_palettes, dtype=np.int64)

        if num_colours > 1:
            totals = np.zeros((num_palettes, num_colours), dtype=np.float64)
            for tile in self.tiles:
                p = self.plain.closest_palette(palettes, tile)
                nearest, weighted = self.plain.nearest_usage(palettes[p], tile)
                np.add.at(totals[p], nearest, weighted)
            split = np.array([max_index(row) for row in totals], dtype=np.int64)

        added = palettes[np.arange(num_palettes), split][:, None, :].copy()
        palettes = np.concatenate([palettes, added], axis=1)
        self.run_nudges(palettes, self.iterations, self.alpha)
        return palettes

    # Phase C

    def replace_weakest(self, palettes: PaletteSet) -> PaletteSet:
        """One weak-colour / weak-palette replacement pass. Returns a new set."""
        num_palettes, num_colours = palettes.shape[:2]
        closest = np.zeros(len(self.tiles), dtype=np.int64)
        total_palette = np.zeros(num_palettes, dtype=np.float64)
        removed_palette = np.zeros(num_palettes, dtype=np.float64)
        max_palette = min_palette = 0

        if num_palettes > 1:
            for j, tile in enumerate(self.tiles):
                dists = self.finder.palette_distances(palettes, tile)
                idx = int(np.argmin(dists))
                closest[j] = idx
                total_palette[idx] += dists[idx]
                removed_palette[idx] += float(np.min(np.delete(dists, idx)))
            max_palette = max_index(total_palette)
            min_palette = min_index(removed_palette)

        result = palettes.copy()

        if num_colours > 1:
            total_colour = np.zeros((num_palettes, num_colours), dtype=np.float64)
            second_colour = np.zeros((num_palettes, num_colours), dtype=np.float64)
            for j, tile in enumerate(self.tiles):
                p = int(closest[j])
                nearest, best, second = self.finder.colour_usage(palettes[p], tile)
                np.add.at(total_colour[p], nearest, best)
                np.add.at(second_colour[p], nearest, second)

            for p in range(num_palettes):
                max_colour = max_index(total_colour[p])
                min_colour = min_index(second_colour[p])
                threshold = MIN_COLOUR_FACTOR * total_colour[p, max_colour]
                if (
                    min_colour != max_colour
                    and min_colour != self.shared_index
                    and second_colour[p, min_colour] < threshold
                ):
                    result[p, min_colour] = palettes[p, max_colour]
                    self.stats.colour_replacements += 1
                    self._debug(f"replaced colour {min_colour} in palette {p}")

        if (
            min_palette != max_palette
            and removed_palette[min_palette] < MIN_PALETTE_FACTOR * total_palette[max_palette]
        ):
            result[min_palette] = result[max_palette].copy()
            self.stats.palette_replacements += 1
            self._debug(f"replaced palette {min_palette}")

        return result

    # Phase E

    def kmeans(self, palettes: PaletteSet) -> PaletteSet:
        """One round of centroid recomputation. Empty and pinned colours stay put."""
        num_palettes, num_colours = palettes.shape[:2]
        counts = np.zeros((num_palettes, num_colours), dtype=np.float64)
        sums = np.zeros((num_palettes, num_colours, 3), dtype=np.float64)

        for tile in self.tiles:
            p = self.finder.closest_palette(palettes, tile)
            nearest, colours, weights = self.finder.assignments(palettes[p], tile)
            np.add.at(counts[p], nearest, weights)
            np.add.at(sums[p], nearest, colours * weights[:, None])

        update = counts > 0
        if self.shared_index >= 0:
            update[:, self.shared_index] = False

        result = palettes.copy()
        result[update] = sums[update] / counts[update][:, None]
        return result

    def reduce(self, palettes: PaletteSet) -> PaletteSet:
        return to_nbit_colour(palettes, self.options.bits_per_channel)

    # Driver

    def run(self, report: Optional[Callable[[int], None]] = None) -> PaletteSet:
        """Phases A to E. Returns bit-reduced float palettes, shape (P, learned_colours, 3)."""
        opts = self.options
        prog = self.milestones
        emit = report if report is not None else (lambda _value: None)

        t0 = time.perf_counter()
        palettes = self.seed_palettes()
        self.stats.seed_mse = self.mean_square_error(palettes)

        palettes = self.split_palettes(palettes)
        emit(prog[0] // opts.palette_count)

        start = 3 if opts.colour_zero == "shared" else 2
        for num_colours in range(start, opts.learned_colours + 1):
            self._check_cancel()
            palettes = self.expand_colours(palettes)
            emit((prog[0] * num_colours) // opts.colours_per_palette)

        self.stats.grown_mse = self.mean_square_error(palettes)
        t1 = time.perf_counter()
        self._debug(
            f"grow: palettes={palettes.shape[0]} colours={palettes.shape[1]} "
            f"mse={self.stats.grown_mse:.0f} ({format_duration(t1 - t0)})"
        )

        min_mse = self.stats.grown_mse
        min_palettes = palettes.copy()
        for i in range(REPLACE_ROUNDS):
            self._check_cancel()
            palettes = self.replace_weakest(palettes)
            self.run_nudges(palettes, self.iterations, self.alpha)
            mse = self.mean_square_error(palettes)
            if mse < min_mse:
                min_mse = mse
                min_palettes = palettes.copy()
            emit(prog[0] + ((prog[1] - prog[0]) * (i + 1)) // REPLACE_ROUNDS)
            self._debug(f"replace round {i + 1}/{REPLACE_ROUNDS}: mse={mse:.0f}")

        palettes = min_palettes
        self.stats.replaced_mse = min_mse
        t2 = time.perf_counter()
        self._debug(f"replace: best mse={min_mse:.0f} ({format_duration(t2 - t1)})")

        if not opts.use_dither:
            palettes = self.reduce(palettes)

        final_iterations = self.iterations * FINAL_ITERATION_FACTOR
        step = max(1, self.iterations)
        for done in range(0, final_iterations, step):
            self._check_cancel()
            emit(prog[1] + ((prog[2] - prog[1]) * done) // final_iterations)
            self.run_nudges(palettes, min(step, final_iterations - done), self.final_alpha)

        t3 = time.perf_counter()
        if self.debug:
            debug_log(
                f"refine: mse={self.mean_square_error(palettes):.0f} "
                f"dither mse={self.mean_square_error_dither(palettes):.0f} "
                f"({format_duration(t3 - t2)})"
            )
        emit(prog[2])

        if not opts.use_dither:
            palettes = self.reduce(palettes)
            for i in range(KMEANS_ROUNDS):
                self._check_cancel()
                palettes = self.kmeans(palettes)
                emit(prog[2] + ((prog[3] - prog[2]) * (i + 1)) // KMEANS_ROUNDS)

        palettes = self.reduce(palettes)
        self.stats.final_mse = self.mean_square_error(palettes)
        self._debug(
            f"k-means: mse={self.stats.final_mse:.0f} "
            f"({format_duration(time.perf_counter() - t3)})"
        )
        return palettes


__all__ = [
    "ALPHA",
    "FINAL_ALPHA",
    "MIN_COLOUR_FACTOR",
    "MIN_PALETTE_FACTOR",
    "REPLACE_ROUNDS",
    "KMEANS_ROUNDS",
    "QuantizationCancelled",
    "EngineStats",
    "PaletteEngine",
]
