# tiled_palette/colour_space.py
from __future__ import annotations

"""
Colour maths on 3-component RGB vectors.

Exports:
  colour_distance(a, b)
  colour_distances(palette, colour)
  histogram_distances(palette, colours)
  nearest_colour(palette, colour)
  to_nbit(value, bits) / to_nbit_colour(colour, bits)
  to_linear(x) / to_srgb(x)
  brightness(colour)
  move_closer(colour, target, alpha)

Notes:
  Distances are squared and weighted (R=2, G=4, B=1); no square root is taken,
  so comparisons keep their ordering.
  to_linear / to_srgb are the cheap x^2 / sqrt(x) approximation used for
  dither error diffusion, not the real sRGB transfer curve.
"""

from typing import Tuple, Union

import numpy as np

from .core_types import Colour, ColourRows, Palette

DISTANCE_WEIGHTS = np.array([2.0, 4.0, 1.0], dtype=np.float64)
BRIGHTNESS_WEIGHTS = np.array([0.299, 0.587, 0.114], dtype=np.float64)

# Linear-space channel ceiling (255^2).
LINEAR_MAX = 255.0 * 255.0

Scalar = Union[float, np.ndarray]


# Distance


def colour_distance(a: np.ndarray, b: np.ndarray) -> float:
    """Weighted squared distance 2*dr^2 + 4*dg^2 + db^2."""
    dr = float(a[0]) - float(b[0])
    dg = float(a[1]) - float(b[1])
    db = float(a[2]) - float(b[2])
    return 2.0 * dr * dr + 4.0 * dg * dg + db * db


def colour_distances(palette: Palette, colour: np.ndarray) -> np.ndarray:
    """Distance from one colour to every palette row. Returns float64 [K]."""
    diff = palette - colour
    return (diff * diff) @ DISTANCE_WEIGHTS


def histogram_distances(palette: Palette, colours: ColourRows) -> np.ndarray:
    """Distance matrix between histogram colours [U,3] and palette rows [K,3] -> [U,K]."""
    diff = colours[:, None, :] - palette[None, :, :]
    return (diff * diff) @ DISTANCE_WEIGHTS


def nearest_colour(palette: Palette, colour: np.ndarray) -> Tuple[int, float]:
    """(index, distance) of the nearest palette row. Ties go to the lowest index."""
    dist = colour_distances(palette, colour)
    j = int(np.argmin(dist))
    return j, float(dist[j])


# Bit depth


def _nbit_step(bits: int) -> float:
    if not 1 <= int(bits) <= 8:
        raise ValueError(f"bits must be in 1..8, got {bits}")
    return 255.0 / float((1 << int(bits)) - 1)


def to_nbit(value: Scalar, bits: int) -> Scalar:
    """
    Snap a channel value (or array of values) to the nearest level of an n-bit channel.

    round(round(v / step) * step) with step = 255 / (2^bits - 1). Half-way cases
    round to even, matching Python's round().
    """
    step = _nbit_step(bits)
    if isinstance(value, np.ndarray):
        return np.round(np.round(value / step) * step)
    return float(round(round(float(value) / step) * step))


def to_nbit_colour(colour: np.ndarray, bits: int) -> np.ndarray:
    """Bit-reduced copy of a colour, palette or palette set (any shape)."""
    return to_nbit(np.asarray(colour, dtype=np.float64), bits)


# Gamma approximation


def to_linear(x: Scalar) -> Scalar:
    return x * x


def to_srgb(x: Scalar) -> Scalar:
    return np.sqrt(x) if isinstance(x, np.ndarray) else float(x) ** 0.5


def brightness(colour: np.ndarray) -> float:
    """Luma on linear channels: 0.299 R^2 + 0.587 G^2 + 0.114 B^2."""
    c = np.asarray(colour, dtype=np.float64)
    return float((c * c) @ BRIGHTNESS_WEIGHTS)


# Learning-rate update


def move_closer(colour: Colour, target: np.ndarray, alpha: float) -> None:
    """In-place colour = (1 - alpha) * colour + alpha * target."""
    colour *= 1.0 - alpha
    colour += alpha * np.asarray(target, dtype=np.float64)


__all__ = [
    "DISTANCE_WEIGHTS",
    "BRIGHTNESS_WEIGHTS",
    "LINEAR_MAX",
    "colour_distance",
    "colour_distances",
    "histogram_distances",
    "nearest_colour",
    "to_nbit",
    "to_nbit_colour",
    "to_linear",
    "to_srgb",
    "brightness",
    "move_closer",
]
