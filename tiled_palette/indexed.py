# tiled_palette/indexed.py
from __future__ import annotations

"""
8-bit indexed encoding.

- block_palettes: learned palettes widened to full `colours_per_palette` blocks,
  with the zero colour in slot 0 when a transparent policy reserves it
- palette_table: 256 entries x (B, G, R, 0) = 1024 bytes
- bmp_index_rows: per-pixel indices bottom-to-top, rows padded to 4 bytes
"""

import numpy as np

from .colour_space import to_nbit_colour
from .core_types import as_colour
from .options import QuantizationOptions

TABLE_ENTRIES = 256
TABLE_BYTES = TABLE_ENTRIES * 4


def block_palettes(palettes_u8: np.ndarray, options: QuantizationOptions) -> np.ndarray:
    """(P, colours_per_palette, 3) uint8 blocks in indexed order."""
    num_palettes, learned = palettes_u8.shape[:2]
    adj = options.colour_zero_adjustment
    blocks = np.zeros((num_palettes, learned + adj, 3), dtype=np.uint8)
    if adj:
        zero = to_nbit_colour(as_colour(options.zero_colour), options.bits_per_channel)
        blocks[:, 0, :] = zero.astype(np.uint8)
    blocks[:, adj:, :] = palettes_u8
    return blocks


def palette_table(palettes_u8: np.ndarray, options: QuantizationOptions) -> bytes:
    """1024-byte BGR0 table; unused trailing entries are zero."""
    blocks = block_palettes(palettes_u8, options).reshape(-1, 3)
    if blocks.shape[0] > TABLE_ENTRIES:
        raise ValueError(
            f"{blocks.shape[0]} palette entries do not fit an 8-bit table"
        )
    table = np.zeros((TABLE_ENTRIES, 4), dtype=np.uint8)
    table[: blocks.shape[0], :3] = blocks[:, ::-1]
    return table.tobytes()


def row_stride(width: int) -> int:
    """Bytes per stored row: width rounded up to a multiple of 4."""
    return (width + 3) // 4 * 4


def bmp_index_rows(flat_indices: np.ndarray) -> bytes:
    """Row-flipped, 4-byte padded index buffer for an 8-bit bitmap."""
    if flat_indices.size and int(flat_indices.max()) >= TABLE_ENTRIES:
        raise ValueError("flat index out of 8-bit range")
    height, width = flat_indices.shape
    rows = np.zeros((height, row_stride(width)), dtype=np.uint8)
    rows[:, :width] = flat_indices[::-1].astype(np.uint8)
    return rows.tobytes()


def table_rgb(table: bytes) -> bytes:
    """BGR0 table -> 768-byte RGB palette for Pillow's putpalette()."""
    arr = np.frombuffer(table, dtype=np.uint8).reshape(-1, 4)
    return arr[:, 2::-1].tobytes()


__all__ = [
    "TABLE_ENTRIES",
    "TABLE_BYTES",
    "block_palettes",
    "palette_table",
    "row_stride",
    "bmp_index_rows",
    "table_rgb",
]
