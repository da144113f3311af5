# tiled_palette/quantizer.py
from __future__ import annotations

"""
Quantization pipeline.

Exports:
- quantize(rgba, width, height, options=None, *, progress=None, seed=None, debug=False, cancel=None)
- TiledPaletteQuantizer : the same pipeline bound to fixed options / seed
- QuantizationResult

Pipeline:
  validate options -> extract tiles -> learn palettes -> sort -> final pass.
  The final pass re-extracts every tile, picks its nearest finished palette
  (through the dither walk when dithering) and maps each eligible pixel;
  excluded pixels pass through unchanged.
"""

import time
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .colour_space import histogram_distances, to_nbit_colour
from .core_types import CancelCheck, PaletteSet, ProgressCallback, U8Image, as_colour
from .engine import PaletteEngine
from .finders import DitherNearestColourFinder, make_finder
from .indexed import block_palettes, bmp_index_rows, palette_table
from .options import QuantizationOptions
from .sorter import sort_palettes
from .tiles import (
    BufferLike,
    average_pixels_per_tile,
    coerce_rgba,
    extract_tile,
    extract_tiles,
    reduce_image,
    tile_windows,
    transparent_mask,
)
from .utils import debug_log, format_duration, print_config_line


@dataclass
class QuantizationResult:
    palettes: np.ndarray  # (P, learned colours, 3) uint8
    image: U8Image  # (H, W, 4) reconstructed RGBA
    palette_indices: np.ndarray  # (H, W) palette of each pixel's tile
    colour_indices: np.ndarray  # (H, W) slot within that palette, 0 when excluded
    flat_indices: np.ndarray  # (H, W) palette * colours_per_palette + slot + adjustment
    palette_table: Optional[bytes]
    bmp_indices: Optional[bytes]
    mse: float
    width: int
    height: int
    options: QuantizationOptions

    @property
    def palette_count(self) -> int:
        return int(self.palettes.shape[0])

    @property
    def blocks(self) -> np.ndarray:
        """Palettes as full indexed blocks, zero colour in slot 0 where reserved."""
        return block_palettes(self.palettes, self.options)

    def rgba_bytes(self) -> bytes:
        return self.image.tobytes()


class _MonotonicProgress:
    """Forwards non-decreasing integer progress; holds at 99 until finish()."""

    def __init__(self, callback: Optional[ProgressCallback]):
        self.callback = callback
        self.last = -1

    def _emit(self, value: int) -> None:
        if value > self.last:
            self.last = value
            if self.callback is not None:
                self.callback(value)

    def __call__(self, value: int) -> None:
        self._emit(max(0, min(99, int(value))))

    def finish(self) -> None:
        self._emit(100)


def _empty_palettes(options: QuantizationOptions) -> PaletteSet:
    zero = to_nbit_colour(as_colour(options.zero_colour), options.bits_per_channel)
    return np.tile(zero, (options.palette_count, options.learned_colours, 1))


def _final_pass(
    image: U8Image,
    palettes: PaletteSet,
    options: QuantizationOptions,
    report: _MonotonicProgress,
    progress_from: int,
) -> Tuple[U8Image, np.ndarray, np.ndarray, np.ndarray]:
    """Map every pixel to its tile's nearest palette. Returns (rgba, palette, colour, flat) maps."""
    height, width = image.shape[:2]
    colours = reduce_image(image, options)
    mask = transparent_mask(image, options, colours)
    finder = make_finder(options, dither=options.use_dither)
    block = options.colours_per_palette
    adj = options.colour_zero_adjustment

    out = image.copy()
    palette_map = np.zeros((height, width), dtype=np.int32)
    colour_map = np.zeros((height, width), dtype=np.int32)
    rows = max(1, (height + options.tile_height - 1) // options.tile_height)

    for x0, y0, x1, y1 in tile_windows(width, height, options):
        tile = extract_tile(colours, mask, (x0, y0, x1, y1), 0)
        if tile is not None:
            p = finder.closest_palette(palettes, tile)
            palette_map[y0:y1, x0:x1] = p
            if isinstance(finder, DitherNearestColourFinder):
                for px in tile.pixels:
                    colour_map[px.y, px.x] = finder.closest_colour(palettes[p], px)[0]
            else:
                keep = ~mask[y0:y1, x0:x1]
                dist = histogram_distances(palettes[p], colours[y0:y1, x0:x1][keep])
                window = colour_map[y0:y1, x0:x1]
                window[keep] = np.argmin(dist, axis=1)

        if x1 == width:
            done_rows = y0 // options.tile_height + 1
            report(progress_from + ((100 - progress_from) * done_rows) // rows)

    rgb = np.round(palettes[palette_map, colour_map]).astype(np.uint8)
    eligible = ~mask
    out[eligible, :3] = rgb[eligible]
    out[eligible, 3] = 255
    colour_map[mask] = 0
    flat = palette_map * block + np.where(mask, 0, colour_map + adj)
    return out, palette_map, colour_map, flat.astype(np.int32)


def quantize(
    rgba: BufferLike,
    width: int,
    height: int,
    options: Optional[QuantizationOptions] = None,
    *,
    progress: Optional[ProgressCallback] = None,
    seed: Optional[int] = None,
    debug: bool = False,
    cancel: Optional[CancelCheck] = None,
) -> QuantizationResult:
    """
    Quantize an RGBA image to tiled palettes.

    `rgba` is a flat row-major RGBA buffer or an (H,W,4) uint8 array. Options
    are validated before any pixel work; a seed makes the run reproducible.
    """
    opts = (options if options is not None else QuantizationOptions()).validate()
    image = coerce_rgba(rgba, width, height)
    report = _MonotonicProgress(progress)
    report(0)

    t0 = time.perf_counter()
    if debug:
        print_config_line("tiles", opts.summary(), debug=True)

    rng = np.random.default_rng(seed)
    tiles = extract_tiles(image, opts)
    if debug:
        debug_log(
            f"tiles: {len(tiles)}  avg pixels per tile: {average_pixels_per_tile(tiles):.2f}"
        )

    if tiles:
        engine = PaletteEngine(tiles, opts, rng, debug=debug, cancel=cancel)
        learned = engine.run(report)
        palettes = sort_palettes(learned, opts.sort_start_index, rng)
        mse = engine.stats.final_mse
        progress_from = engine.milestones[3]
    else:
        palettes = _empty_palettes(opts)
        mse = 0.0
        progress_from = 0

    palettes = to_nbit_colour(palettes, opts.bits_per_channel)
    out, palette_map, colour_map, flat = _final_pass(image, palettes, opts, report, progress_from)
    palettes_u8 = palettes.astype(np.uint8)

    table = index_rows = None
    if opts.fits_indexed:
        table = palette_table(palettes_u8, opts)
        index_rows = bmp_index_rows(flat)

    report.finish()
    if debug:
        debug_log(f"mse: {mse:.2f}  time: {format_duration(time.perf_counter() - t0)}")

    return QuantizationResult(
        palettes=palettes_u8,
        image=out,
        palette_indices=palette_map,
        colour_indices=colour_map,
        flat_indices=flat,
        palette_table=table,
        bmp_indices=index_rows,
        mse=float(mse),
        width=width,
        height=height,
        options=opts,
    )


class TiledPaletteQuantizer:
    """Reusable front for quantize() with fixed options, seed and debug flag."""

    def __init__(
        self,
        options: Optional[QuantizationOptions] = None,
        *,
        seed: Optional[int] = None,
        debug: bool = False,
    ):
        self.options = (options if options is not None else QuantizationOptions()).validate()
        self.seed = seed
        self.debug = debug

    def quantize(
        self,
        rgba: BufferLike,
        width: int,
        height: int,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelCheck] = None,
    ) -> QuantizationResult:
        return quantize(
            rgba,
            width,
            height,
            self.options,
            progress=progress,
            seed=self.seed,
            debug=self.debug,
            cancel=cancel,
        )

    def quantize_image(
        self, image: U8Image, progress: Optional[ProgressCallback] = None
    ) -> QuantizationResult:
        """(H,W,4) uint8 array in, result out."""
        height, width = image.shape[:2]
        return self.quantize(image, width, height, progress=progress)


__all__ = ["QuantizationResult", "quantize", "TiledPaletteQuantizer"]
