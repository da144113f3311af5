# tiled_palette/utils.py
from __future__ import annotations

"""
Shared utilities for tiled_palette.

Exports:
- format_duration(seconds, total=False)
- max_index / min_index : argmax / argmin with the engine's tie rule
- format_progress_bar, progress_printer, enable_line_buffered_stdout
- format_fields, print_config_line
- print_banner, log, debug_log, warn, error
- captured_output : per-thread capture of the lines above

Notes:
- Everything prints; there is no logging module setup to configure. Lines
  flush immediately so captured per-file output keeps its order.
- captured_output() redirects only the calling thread, so parallel jobs each
  keep their own buffer. sys.stdout itself is never swapped.
"""

import io
import sys
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterable, Iterator, List, TextIO, Tuple

import numpy as np

Field = Tuple[str, Any]

_local = threading.local()


# Durations


def format_duration(seconds: float, total: bool = False) -> str:
    """
    '12.3ms' below a second, then seconds, then 'Mm Ss'.
    `total` trims the precision for end-of-run summaries.
    """
    if seconds < 1.0:
        return f"{seconds * 1000.0:.1f}ms"
    if seconds < 60.0:
        return f"{seconds:.1f}s" if total else f"{seconds:.3f}s"
    minutes, rest = divmod(seconds, 60.0)
    rest_text = f"{int(round(rest))}s" if total else f"{rest:.1f}s"
    return f"{int(minutes)}m {rest_text}"


# Index helpers


def max_index(values: np.ndarray) -> int:
    """Index of the first maximum (0 for an empty array)."""
    arr = np.asarray(values)
    return int(np.argmax(arr)) if arr.size else 0


def min_index(values: np.ndarray) -> int:
    """Index of the first minimum (0 for an empty array)."""
    arr = np.asarray(values)
    return int(np.argmin(arr)) if arr.size else 0


# Progress


def format_progress_bar(percent: int, width: int = 24) -> str:
    """'[#####-----]  42%' style bar for a 0..100 value."""
    pct = max(0, min(100, int(percent)))
    filled = int(round(width * pct / 100.0))
    return f"[{'#' * filled}{'-' * (width - filled)}] {pct:3d}%"


def progress_printer(label: str) -> Callable[[int], None]:
    """
    Progress callback that redraws one terminal line as '<label> [###---] 42%'
    and ends the line once 100 arrives.
    """

    def _print(percent: int) -> None:
        out = _out()
        out.write(f"\r\033[K{label} {format_progress_bar(percent)}")
        if percent >= 100:
            out.write("\n")
        out.flush()

    return _print


def enable_line_buffered_stdout() -> None:
    """Line-buffer stdout where the stream supports reconfigure()."""
    reconfig = getattr(sys.stdout, "reconfigure", None)
    if callable(reconfig):
        try:
            reconfig(line_buffering=True, write_through=True)
        except (ValueError, OSError):
            # detached or non-text stream
            pass


# Config lines


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "on" if value else "off"
    if isinstance(value, int):
        return f"{value:,}"
    if isinstance(value, float):
        return f"{value:.3f}".rstrip("0").rstrip(".")
    return str(value)


def format_fields(fields: Iterable[Field], sep: str = "  ") -> str:
    """'Name: value' blocks; bools read on/off, ints get thousands separators."""
    parts: List[str] = [f"{name}: {_format_value(value)}" for name, value in fields]
    return sep.join(parts)


def print_config_line(section: str, fields: Iterable[Field], debug: bool = False) -> None:
    """
    One config line, e.g.:
      [tiles] Size: 8x8  Palettes: 8  Colours: 4  Bits: 5  Dither: off
    """
    line = f"[{section}] {format_fields(fields)}"
    (debug_log if debug else log)(line)


# Output


def _out() -> TextIO:
    stream = getattr(_local, "stream", None)
    return stream if stream is not None else sys.stdout


@contextmanager
def captured_output() -> Iterator[io.StringIO]:
    """Collect this thread's log lines in a StringIO; other threads are unaffected."""
    previous = getattr(_local, "stream", None)
    buf = io.StringIO()
    _local.stream = buf
    try:
        yield buf
    finally:
        _local.stream = previous


def print_banner(title: str) -> None:
    print(f"\n=== {title} ===", file=_out(), flush=True)


def log(message: str) -> None:
    print(message, file=_out(), flush=True)


def debug_log(message: str) -> None:
    print(f"[debug] {message}", file=_out(), flush=True)


def warn(message: str) -> None:
    print(f"[warn] {message}", file=_out(), flush=True)


def error(message: str) -> None:
    """Error line on stderr."""
    print(f"[error] {message}", file=sys.stderr, flush=True)


__all__ = [
    "format_duration",
    "max_index",
    "min_index",
    "format_progress_bar",
    "progress_printer",
    "enable_line_buffered_stdout",
    "format_fields",
    "print_config_line",
    "print_banner",
    "log",
    "debug_log",
    "warn",
    "error",
    "captured_output",
]
