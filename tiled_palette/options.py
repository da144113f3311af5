# tiled_palette/options.py
from __future__ import annotations

"""
Quantization options.

Exports:
- DitherMode, DitherPatternName, ColourZeroBehaviour : accepted option values
- QuantizationOptions : frozen, validated configuration for one run
- OptionsError : raised for any out-of-range or unknown option value

Notes:
- Options are checked once by validate() before any pixel work starts.
- Derived properties centralise the colour-zero bookkeeping so the engine,
  the final pass and the indexed writer agree on slot layout.
"""

import numbers
from dataclasses import dataclass, field, fields, replace as dc_replace
from typing import List, Literal, Tuple, get_args

from .core_types import RGBTuple, rgb_to_hex

DitherMode = Literal["off", "fast", "slow"]
DitherPatternName = Literal[
    "diagonal4", "horizontal4", "vertical4", "diagonal2", "horizontal2", "vertical2"
]
ColourZeroBehaviour = Literal[
    "unique", "shared", "transparent-from-alpha", "transparent-from-colour"
]

DITHER_MODES: Tuple[str, ...] = get_args(DitherMode)
DITHER_PATTERNS: Tuple[str, ...] = get_args(DitherPatternName)
COLOUR_ZERO_BEHAVIOURS: Tuple[str, ...] = get_args(ColourZeroBehaviour)

TRANSPARENT_BEHAVIOURS: Tuple[str, ...] = (
    "transparent-from-alpha",
    "transparent-from-colour",
)


class OptionsError(ValueError):
    """An option value is outside its documented range."""


def _check_int(name: str, value: object, lo: int, hi: int) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise OptionsError(f"{name} must be an integer, got {value!r}")
    if not lo <= value <= hi:
        raise OptionsError(f"{name} must be in {lo}..{hi}, got {value}")


def _check_fraction(name: str, value: object) -> None:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise OptionsError(f"{name} must be a number, got {value!r}")
    if not 0.0 <= float(value) <= 1.0:
        raise OptionsError(f"{name} must be in 0.0..1.0, got {value}")


def _check_choice(name: str, value: object, choices: Tuple[str, ...]) -> None:
    if value not in choices:
        raise OptionsError(f"{name} must be one of {', '.join(choices)}; got {value!r}")


@dataclass(frozen=True)
class QuantizationOptions:
    tile_width: int = 8
    tile_height: int = 8
    palette_count: int = 8
    colours_per_palette: int = 4
    bits_per_channel: int = 5
    fraction_of_pixels: float = 0.1
    dither: DitherMode = "off"
    dither_pattern: DitherPatternName = "diagonal4"
    dither_weight: float = 0.5
    colour_zero: ColourZeroBehaviour = "unique"
    zero_colour: RGBTuple = field(default=(0, 0, 0))

    def validate(self) -> "QuantizationOptions":
        """Raise OptionsError on the first invalid field; return self when valid."""
        _check_int("tile_width", self.tile_width, 1, 256)
        _check_int("tile_height", self.tile_height, 1, 256)
        _check_int("palette_count", self.palette_count, 1, 256)
        _check_int("colours_per_palette", self.colours_per_palette, 2, 256)
        _check_int("bits_per_channel", self.bits_per_channel, 2, 8)
        _check_fraction("fraction_of_pixels", self.fraction_of_pixels)
        _check_choice("dither", self.dither, DITHER_MODES)
        _check_choice("dither_pattern", self.dither_pattern, DITHER_PATTERNS)
        _check_fraction("dither_weight", self.dither_weight)
        _check_choice("colour_zero", self.colour_zero, COLOUR_ZERO_BEHAVIOURS)

        zero = tuple(self.zero_colour)
        if len(zero) != 3:
            raise OptionsError(f"zero_colour must have 3 components, got {zero!r}")
        for channel in zero:
            _check_int("zero_colour component", channel, 0, 255)
        return self

    def replace(self, **changes) -> "QuantizationOptions":
        """Validated copy with some fields changed."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(changes) - known)
        if unknown:
            raise OptionsError(f"unknown option(s): {', '.join(unknown)}")
        return dc_replace(self, **changes).validate()

    # Derived values

    @property
    def use_dither(self) -> bool:
        return self.dither != "off"

    @property
    def slow_dither(self) -> bool:
        return self.dither == "slow"

    @property
    def dither_pixels(self) -> int:
        """Candidates per dither lookup: 2 for the 2-level patterns, else 4."""
        return 2 if self.dither_pattern.endswith("2") else 4

    @property
    def reserves_transparent_slot(self) -> bool:
        return self.colour_zero in TRANSPARENT_BEHAVIOURS

    @property
    def shared_colour_index(self) -> int:
        """Palette slot pinned to the zero colour, or -1 when none is."""
        return 0 if self.colour_zero == "shared" else -1

    @property
    def colour_zero_adjustment(self) -> int:
        """Offset from a learned colour slot to its slot in an indexed palette block."""
        return 1 if self.reserves_transparent_slot else 0

    @property
    def learned_colours(self) -> int:
        """Colours per palette the engine learns (one fewer when a slot is reserved)."""
        return self.colours_per_palette - self.colour_zero_adjustment

    @property
    def sort_start_index(self) -> int:
        """First colour slot the sorter may move."""
        return 1 if self.colour_zero == "shared" else 0

    @property
    def fits_indexed(self) -> bool:
        return self.palette_count * self.colours_per_palette <= 256

    def summary(self) -> List[Tuple[str, object]]:
        """(name, value) pairs for the run banner."""
        dither = f"{self.dither}/{self.dither_pattern}" if self.use_dither else self.dither
        pairs: List[Tuple[str, object]] = [
            ("Size", f"{self.tile_width}x{self.tile_height}"),
            ("Palettes", self.palette_count),
            ("Colours", self.colours_per_palette),
            ("Bits", self.bits_per_channel),
            ("Dither", dither),
            ("Colour zero", self.colour_zero),
        ]
        if self.colour_zero != "unique":
            pairs.append(("Zero", rgb_to_hex(self.zero_colour)))
        return pairs


__all__ = [
    "DitherMode",
    "DitherPatternName",
    "ColourZeroBehaviour",
    "DITHER_MODES",
    "DITHER_PATTERNS",
    "COLOUR_ZERO_BEHAVIOURS",
    "OptionsError",
    "QuantizationOptions",
]
