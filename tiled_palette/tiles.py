# tiled_palette/tiles.py
from __future__ import annotations

"""
Tile extraction.

Exports:
- coerce_rgba(data, width, height) -> U8Image
- reduce_image(rgba, options) -> float64 (H,W,3)
- transparent_mask(rgba, options) -> bool (H,W)
- tile_windows(width, height, options) -> iterator of (x0, y0, x1, y1)
- extract_tile(colours, mask, window, tile_id) -> Tile | None
- extract_tiles(rgba, options) -> list[Tile]
- flatten_pixels(tiles) -> tuple[Pixel, ...]

Notes:
- Histograms dedupe by exact RGB equality, no tolerance.
- Tiles with no eligible pixels are dropped; tile ids are dense indices
  into the returned list.
"""

from typing import Iterator, List, Optional, Tuple, Union

import numpy as np

from .colour_space import to_nbit
from .core_types import Pixel, Tile, U8Image, U8Mask, as_colour
from .options import QuantizationOptions

Window = Tuple[int, int, int, int]
BufferLike = Union[bytes, bytearray, memoryview, np.ndarray]


def coerce_rgba(data: BufferLike, width: int, height: int) -> U8Image:
    """
    Accept a flat row-major RGBA buffer or an (H,W,4) uint8 array and
    return an (H,W,4) uint8 view. Raises on any size mismatch.
    """
    if width < 1 or height < 1:
        raise ValueError(f"image size must be positive, got {width}x{height}")
    if isinstance(data, np.ndarray):
        if data.dtype != np.uint8:
            raise TypeError(f"expected uint8 pixel data, got {data.dtype}")
        if data.ndim == 3:
            if data.shape != (height, width, 4):
                raise ValueError(
                    f"array shape {data.shape} does not match {height}x{width}x4"
                )
            return data
        flat = data.reshape(-1)
    else:
        flat = np.frombuffer(bytes(data), dtype=np.uint8)
    expected = width * height * 4
    if flat.size != expected:
        raise ValueError(
            f"buffer holds {flat.size} bytes, expected {expected} for {width}x{height} RGBA"
        )
    return flat.reshape(height, width, 4)


def reduce_image(rgba: U8Image, options: QuantizationOptions) -> np.ndarray:
    """
    RGB channels as float64. Snapped to the bit grid when dithering is off;
    dithering works on the full-precision input.
    """
    rgb = rgba[..., :3].astype(np.float64)
    if not options.use_dither:
        rgb = to_nbit(rgb, options.bits_per_channel)
    return rgb


def zero_colour_for_matching(options: QuantizationOptions) -> np.ndarray:
    """Zero colour reduced the same way reduce_image() reduces pixels."""
    zero = as_colour(options.zero_colour)
    if not options.use_dither:
        zero = to_nbit(zero, options.bits_per_channel)
    return zero


def transparent_mask(
    rgba: U8Image, options: QuantizationOptions, colours: Optional[np.ndarray] = None
) -> U8Mask:
    """Pixels excluded by the colour-zero policy."""
    h, w = rgba.shape[:2]
    if options.colour_zero == "transparent-from-alpha":
        return rgba[..., 3] < 255
    if options.colour_zero == "transparent-from-colour":
        if colours is None:
            colours = reduce_image(rgba, options)
        zero = zero_colour_for_matching(options)
        return np.all(colours == zero, axis=-1)
    return np.zeros((h, w), dtype=np.bool_)


def tile_windows(width: int, height: int, options: QuantizationOptions) -> Iterator[Window]:
    """Row-major tile rectangles, clipped at the right and bottom edges."""
    for y0 in range(0, height, options.tile_height):
        y1 = min(y0 + options.tile_height, height)
        for x0 in range(0, width, options.tile_width):
            yield x0, y0, min(x0 + options.tile_width, width), y1


def extract_tile(
    colours: np.ndarray, mask: U8Mask, window: Window, tile_id: int
) -> Optional[Tile]:
    """Histogram and pixel list for one window, or None when nothing is eligible."""
    x0, y0, x1, y1 = window
    keep = ~mask[y0:y1, x0:x1]
    if not np.any(keep):
        return None

    ys, xs = np.nonzero(keep)
    samples = colours[y0:y1, x0:x1][keep]
    uniques, counts = np.unique(samples, axis=0, return_counts=True)

    pixels = tuple(
        Pixel(colour=samples[i].copy(), x=int(x0 + xs[i]), y=int(y0 + ys[i]), tile=tile_id)
        for i in range(samples.shape[0])
    )
    return Tile(
        x=x0,
        y=y0,
        width=x1 - x0,
        height=y1 - y0,
        colours=uniques.astype(np.float64, copy=False),
        counts=counts.astype(np.int64, copy=False),
        pixels=pixels,
    )


def extract_tiles(rgba: U8Image, options: QuantizationOptions) -> List[Tile]:
    h, w = rgba.shape[:2]
    colours = reduce_image(rgba, options)
    mask = transparent_mask(rgba, options, colours)

    tiles: List[Tile] = []
    for window in tile_windows(w, h, options):
        tile = extract_tile(colours, mask, window, len(tiles))
        if tile is not None:
            tiles.append(tile)
    return tiles


def flatten_pixels(tiles: List[Tile]) -> Tuple[Pixel, ...]:
    """Every eligible pixel, tile by tile."""
    return tuple(p for tile in tiles for p in tile.pixels)


def average_pixels_per_tile(tiles: List[Tile]) -> float:
    if not tiles:
        return 0.0
    return sum(t.pixel_count for t in tiles) / float(len(tiles))


__all__ = [
    "coerce_rgba",
    "reduce_image",
    "zero_colour_for_matching",
    "transparent_mask",
    "tile_windows",
    "extract_tile",
    "extract_tiles",
    "flatten_pixels",
    "average_pixels_per_tile",
]
