# tiled_palette/core_types.py
from __future__ import annotations

"""
Core type aliases, small value objects, and lightweight helpers.
"""

from dataclasses import dataclass
from typing import Callable, NamedTuple, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 4) RGBA
U8Mask = NDArray[np.bool_]  # (H, W)
Colour = NDArray[np.float64]  # (3,)
ColourRows = NDArray[np.float64]  # (N, 3)
Palette = NDArray[np.float64]  # (K, 3)
PaletteSet = NDArray[np.float64]  # (P, K, 3)

# Value objects


@dataclass(frozen=True)
class Pixel:
    """One eligible image sample. `tile` is an index into the tile list."""

    colour: Colour
    x: int
    y: int
    tile: int


@dataclass(frozen=True)
class Tile:
    """
    Rectangular image region with its colour histogram and pixel list.

    `colours[i]` occurs `counts[i]` times in the tile.
    """

    x: int
    y: int
    width: int
    height: int
    colours: ColourRows  # (U, 3) unique colours
    counts: NDArray[np.int64]  # (U,)
    pixels: Tuple[Pixel, ...]

    @property
    def pixel_count(self) -> int:
        return len(self.pixels)


class DitherCandidate(NamedTuple):
    """One step of the dither lookahead walk."""

    colour_index: int
    distance: float
    compared_colour: Colour
    brightness: float


# Small helpers


def rgb_to_hex(rgb: RGBTuple) -> HexStr:
    """RGB tuple to lowercase hex string '#rrggbb'."""
    return f"#{rgb[0]:02x}{rgb[1]:02x}{rgb[2]:02x}"


def hex_to_rgb(hex_str: str) -> RGBTuple:
    """Parse '#rgb', '#rrggbb', 'rgb' or 'rrggbb' (case-insensitive) into an RGB tuple."""
    s = hex_str.strip().lower()
    if not s.startswith("#"):
        s = f"#{s}"
    if len(s) == 4:
        r, g, b = s[1], s[2], s[3]
        s = f"#{r}{r}{g}{g}{b}{b}"
    if len(s) != 7:
        raise ValueError("hex must be '#rrggbb' or '#rgb'")
    try:
        return (int(s[1:3], 16), int(s[3:5], 16), int(s[5:7], 16))
    except ValueError as exc:
        raise ValueError(f"invalid hex colour: {hex_str!r}") from exc


def as_colour(value: Union[Sequence[float], NDArray[np.generic]]) -> Colour:
    """Copy any 3-length sequence into a fresh float64 colour."""
    out = np.array(value, dtype=np.float64).reshape(-1)
    if out.shape != (3,):
        raise ValueError(f"expected 3 colour components, got {out.shape}")
    return out


def assert_u8_image_rgba(image: np.ndarray) -> U8Image:
    """Validate a uint8 (H,W,4) image and return it typed as U8Image."""
    if image.dtype != np.uint8 or image.ndim != 3 or image.shape[-1] != 4:
        raise TypeError("expected uint8 (H,W,4) image")
    return image  # type: ignore[return-value]


# Callable signatures

ProgressCallback = Callable[[int], None]
CancelCheck = Callable[[], bool]

__all__ = [
    # aliases / types
    "RGBTuple",
    "HexStr",
    "U8Image",
    "U8Mask",
    "Colour",
    "ColourRows",
    "Palette",
    "PaletteSet",
    # value objects
    "Pixel",
    "Tile",
    "DitherCandidate",
    # helpers
    "rgb_to_hex",
    "hex_to_rgb",
    "as_colour",
    "assert_u8_image_rgba",
    # callable signatures
    "ProgressCallback",
    "CancelCheck",
]
