# tiled_palette/image_io.py
from __future__ import annotations

import io
from pathlib import Path

import numpy as np
from PIL import Image, ImageCms, ImageOps, UnidentifiedImageError

from .core_types import U8Image, assert_u8_image_rgba
from .indexed import block_palettes, table_rgb
from .quantizer import QuantizationResult

"""
Image I/O helpers: RGBA loading in sRGB, PNG output, 8-bit indexed BMP output
and a palette swatch image.
"""


def _convert_to_srgb_rgba(im: Image.Image) -> Image.Image:
    im = ImageOps.exif_transpose(im)
    icc_bytes = im.info.get("icc_profile")

    if icc_bytes:
        try:
            src_prof = ImageCms.ImageCmsProfile(io.BytesIO(icc_bytes))
            dst_prof = ImageCms.createProfile("sRGB")
            im2 = ImageCms.profileToProfile(
                im.convert("RGBA"),
                src_prof,
                dst_prof,
                renderingIntent=ImageCms.Intent.PERCEPTUAL,
                outputMode="RGBA",
            )
            if im2 is not None:
                return im2
        except (ImageCms.PyCMSError, OSError, ValueError):
            # unreadable or mismatched profile; keep the pixels as stored
            pass

    return im.convert("RGBA")


def load_image_rgba(path: Path) -> U8Image:
    """(H,W,4) uint8 RGBA in sRGB. Alpha is kept as stored."""
    with Image.open(path) as im0:
        im = _convert_to_srgb_rgba(im0)
    return np.array(im, dtype=np.uint8)


def save_png_rgba(path: Path, rgba: U8Image) -> Path:
    if path.suffix.lower() != ".png":
        path = path.with_suffix(".png")
    Image.fromarray(assert_u8_image_rgba(np.ascontiguousarray(rgba))).save(path)
    return path


def indexed_image(result: QuantizationResult) -> Image.Image:
    """'P' mode image carrying the flat indices and the 256-entry palette."""
    if result.palette_table is None:
        raise ValueError(
            "palettes x colours exceeds 256 entries; no indexed form available"
        )
    im = Image.fromarray(result.flat_indices.astype(np.uint8))
    im.putpalette(table_rgb(result.palette_table))
    return im


def save_indexed_bmp(path: Path, result: QuantizationResult) -> Path:
    """8-bit BMP: BGR0 table, bottom-up rows padded to 4 bytes."""
    if path.suffix.lower() != ".bmp":
        path = path.with_suffix(".bmp")
    indexed_image(result).save(path, format="BMP")
    return path


def save_palette_png(path: Path, result: QuantizationResult, scale: int = 1) -> Path:
    """One row per palette, one pixel per colour slot (nearest-neighbour upscaled by `scale`)."""
    blocks = block_palettes(result.palettes, result.options)
    rgba = np.full(blocks.shape[:2] + (4,), 255, dtype=np.uint8)
    rgba[..., :3] = blocks
    im = Image.fromarray(rgba)
    if scale > 1:
        im = im.resize((im.width * scale, im.height * scale), Image.Resampling.NEAREST)
    im.save(path)
    return path


def is_image_file(path: Path) -> bool:
    try:
        with Image.open(path) as im:
            im.seek(0)
            im.load()
        return True
    except (UnidentifiedImageError, OSError):
        return False


__all__ = [
    "load_image_rgba",
    "save_png_rgba",
    "indexed_image",
    "save_indexed_bmp",
    "save_palette_png",
    "is_image_file",
]
