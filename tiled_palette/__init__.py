# tiled_palette/__init__.py
"""
tiled_palette package.

Purpose:
  Quantize RGBA images to a small set of per-tile palettes (one palette per
  tile, a fixed number of colours per palette), optionally with ordered
  dithering. See tiled_palette.cli for the command line.

Public API:
  quantize              : run the full pipeline on an RGBA buffer or array.
  TiledPaletteQuantizer : the same pipeline bound to fixed options and seed.
  QuantizationOptions   : validated run configuration.
  QuantizationResult    : palettes, reconstructed image, index maps, BMP data.
  OptionsError          : invalid option value.
  QuantizationCancelled : raised when the cancel check fires.
  colour_space          : distance, bit-depth and gamma helpers.
  image_io              : Pillow loading / PNG / indexed BMP writers.
  utils                 : shared helpers (formatting, logging).

Quick start:
  from tiled_palette import quantize, QuantizationOptions
  result = quantize(rgba, width, height, QuantizationOptions(palette_count=4), seed=1)
"""

__version__ = "0.1.0"

# Re-export namespaces for convenience.
from . import colour_space
from . import core_types
from . import utils

from .engine import PaletteEngine, QuantizationCancelled  # noqa: E402,F401
from .options import OptionsError, QuantizationOptions  # noqa: E402,F401
from .quantizer import QuantizationResult, TiledPaletteQuantizer, quantize  # noqa: E402,F401
from . import image_io  # noqa: E402

__all__ = [
    "__version__",
    "colour_space",
    "core_types",
    "utils",
    "image_io",
    "PaletteEngine",
    "QuantizationCancelled",
    "OptionsError",
    "QuantizationOptions",
    "QuantizationResult",
    "TiledPaletteQuantizer",
    "quantize",
]
