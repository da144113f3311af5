#!/usr/bin/env python3
"""
tiled_palette.cli
Quantize images to a set of per-tile palettes, the way retro tile hardware
stores them.

Usage:
  tiled-palette SRC [--outdir DIR] [--tile-width N] [--tile-height N]
                [--palettes N] [--colours N] [--bits N] [--fraction F]
                [--dither off|fast|slow] [--dither-pattern P] [--dither-weight W]
                [--colour-zero MODE] [--zero-colour HEX] [--seed N]
                [--bmp] [--palette-png] [--jobs N] [--debug]

Input:
  Any Pillow-readable image, or a folder of them. Alpha is read as stored;
  only the transparent-from-alpha policy looks at it.

Output:
  <stem>_tiled.png next to SRC (or in --outdir). --bmp adds an 8-bit indexed
  <stem>_tiled.bmp when palettes x colours <= 256; --palette-png adds
  <stem>_palettes.png with one row per palette.

Notes:
  CPU bound and single-threaded per image. --jobs runs several files at once
  with ThreadPoolExecutor; each worker thread logs into its own buffer and
  the buffers are printed in order.
"""

from __future__ import annotations

import argparse
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

import numpy as np

from .core_types import hex_to_rgb
from .dither import DITHER_PATTERNS
from .image_io import (
    is_image_file,
    load_image_rgba,
    save_indexed_bmp,
    save_palette_png,
    save_png_rgba,
)
from .options import (
    COLOUR_ZERO_BEHAVIOURS,
    DITHER_MODES,
    OptionsError,
    QuantizationOptions,
)
from .quantizer import quantize
from .utils import (
    captured_output,
    debug_log,
    enable_line_buffered_stdout,
    error,
    format_duration,
    format_fields,
    log,
    print_banner,
    print_config_line,
    progress_printer,
    warn,
)

OUTPUT_SUFFIX = "_tiled"
PALETTE_SUFFIX = "_palettes"
IMAGE_EXTS = {".png", ".jpg", ".jpeg", ".webp", ".bmp", ".gif"}

# CLI args & small helpers


def _hex_colour(text: str):
    try:
        return hex_to_rgb(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments for tiled palette quantization.

    Returns:
      argparse.Namespace with:
        src: Path to image or folder
        outdir: optional Path for outputs
        tile_width / tile_height / palettes / colours / bits / fraction
        dither / dither_pattern / dither_weight
        colour_zero / zero_colour
        seed: optional int for reproducible runs
        bmp / palette_png: extra outputs
        jobs: parallel file workers
        debug: bool for verbose learning details
    """
    defaults = QuantizationOptions()
    parser = argparse.ArgumentParser(
        prog="tiled-palette",
        description="Quantize image(s) to per-tile palettes with tidy, readable output.",
    )
    parser.add_argument("src", type=Path, help="Input image or folder")
    parser.add_argument(
        "--outdir", type=Path, default=None, help="Output directory (optional)"
    )
    parser.add_argument("--tile-width", type=int, default=defaults.tile_width)
    parser.add_argument("--tile-height", type=int, default=defaults.tile_height)
    parser.add_argument(
        "--palettes", type=int, default=defaults.palette_count, help="Palette count"
    )
    parser.add_argument(
        "--colours",
        "--colors",
        dest="colours",
        type=int,
        default=defaults.colours_per_palette,
        help="Colours per palette",
    )
    parser.add_argument(
        "--bits", type=int, default=defaults.bits_per_channel, help="Bits per channel"
    )
    parser.add_argument(
        "--fraction",
        type=float,
        default=defaults.fraction_of_pixels,
        help="Fraction of pixels sampled per learning pass",
    )
    parser.add_argument("--dither", choices=DITHER_MODES, default=defaults.dither)
    parser.add_argument(
        "--dither-pattern", choices=tuple(DITHER_PATTERNS), default=defaults.dither_pattern
    )
    parser.add_argument(
        "--dither-weight", type=float, default=defaults.dither_weight
    )
    parser.add_argument(
        "--colour-zero",
        choices=COLOUR_ZERO_BEHAVIOURS,
        default=defaults.colour_zero,
        help="How slot 0 of each palette is used.",
    )
    parser.add_argument(
        "--zero-colour",
        type=_hex_colour,
        default=defaults.zero_colour,
        help="Zero colour as #rrggbb (shared / transparent-from-colour).",
    )
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument("--bmp", action="store_true", help="Also write an 8-bit BMP")
    parser.add_argument(
        "--palette-png", action="store_true", help="Also write a palette swatch PNG"
    )
    parser.add_argument(
        "--jobs", type=int, default=1, help="Files processed in parallel"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose learning details")
    return parser.parse_args(argv)


def options_from_args(args: argparse.Namespace) -> QuantizationOptions:
    """Build validated options; raises OptionsError on any out-of-range value."""
    return QuantizationOptions(
        tile_width=args.tile_width,
        tile_height=args.tile_height,
        palette_count=args.palettes,
        colours_per_palette=args.colours,
        bits_per_channel=args.bits,
        fraction_of_pixels=args.fraction,
        dither=args.dither,
        dither_pattern=args.dither_pattern,
        dither_weight=args.dither_weight,
        colour_zero=args.colour_zero,
        zero_colour=tuple(args.zero_colour),
    ).validate()


def output_paths(src_path: Path, outdir: Optional[Path]):
    """(png, bmp, palette png) destinations for one input."""
    base = outdir if outdir is not None else src_path.parent
    stem = src_path.stem
    return (
        base / f"{stem}{OUTPUT_SUFFIX}.png",
        base / f"{stem}{OUTPUT_SUFFIX}.bmp",
        base / f"{stem}{PALETTE_SUFFIX}.png",
    )


def _is_output_artifact(path: Path) -> bool:
    return path.stem.endswith(OUTPUT_SUFFIX) or path.stem.endswith(PALETTE_SUFFIX)


# Per-file processing


def _process_single_image(
    src_path: Path,
    outdir: Optional[Path],
    options: QuantizationOptions,
    seed: Optional[int],
    write_bmp: bool,
    write_palette_png: bool,
    debug: bool,
    show_progress: bool,
) -> None:
    """
    Process a single image path end-to-end:
      load -> quantize -> save -> report.
    """
    t_start = time.perf_counter()
    png_path, bmp_path, pal_path = output_paths(src_path, outdir)
    if outdir is not None:
        outdir.mkdir(parents=True, exist_ok=True)

    print_banner(src_path.name)

    rgba = load_image_rgba(src_path)
    height, width = rgba.shape[:2]
    t_loaded = time.perf_counter()

    if debug:
        debug_log(
            format_fields(
                [
                    ("Loaded", f"{width}x{height}"),
                    ("Alpha=255", int(np.count_nonzero(rgba[..., 3] == 255))),
                    ("Alpha<255", int(np.count_nonzero(rgba[..., 3] < 255))),
                ]
            )
        )

    result = quantize(
        rgba,
        width,
        height,
        options,
        progress=progress_printer(src_path.name) if show_progress else None,
        seed=seed,
        debug=debug,
    )
    t_quantized = time.perf_counter()

    save_png_rgba(png_path, result.image)
    written = [png_path.name]
    if write_bmp:
        if result.palette_table is None:
            warn(
                f"{options.palette_count} palettes x {options.colours_per_palette} colours "
                "exceeds 256 entries; skipping BMP"
            )
        else:
            save_indexed_bmp(bmp_path, result)
            written.append(bmp_path.name)
    if write_palette_png:
        save_palette_png(pal_path, result)
        written.append(pal_path.name)
    t_saved = time.perf_counter()

    # Report
    log(f"Wrote {', '.join(written)} | size={width}x{height} | mse={result.mse:.2f}")
    palettes_used = len(np.unique(result.palette_indices))
    colours_used = np.unique(result.image[..., :3].reshape(-1, 3), axis=0).shape[0]
    log(
        format_fields(
            [
                ("Palettes used", f"{palettes_used}/{options.palette_count}"),
                ("Colours used", int(colours_used)),
            ]
        )
    )

    if debug:
        debug_log(
            f"Total {format_duration(t_saved - t_start, total=True)}  "
            f"(load={format_duration(t_loaded - t_start)}, "
            f"quantize={format_duration(t_quantized - t_loaded)}, "
            f"save={format_duration(t_saved - t_quantized)})"
        )
    else:
        log(f"Total time {format_duration(t_saved - t_start, total=True)}")


def _process_one_captured(
    path: Path,
    outdir: Optional[Path],
    options: QuantizationOptions,
    seed: Optional[int],
    write_bmp: bool,
    write_palette_png: bool,
    debug: bool,
) -> str:
    """
    Process a single file with its log lines captured.

    Useful for concurrent execution where output should be printed in order.
    """
    with captured_output() as buf:
        _process_single_image(
            path, outdir, options, seed, write_bmp, write_palette_png, debug, False
        )
    return buf.getvalue()


def _process_one_live(
    path: Path,
    outdir: Optional[Path],
    options: QuantizationOptions,
    seed: Optional[int],
    write_bmp: bool,
    write_palette_png: bool,
    debug: bool,
) -> None:
    """Process a single file and stream logs to stdout."""
    _process_single_image(
        path, outdir, options, seed, write_bmp, write_palette_png, debug, True
    )


def collect_images(folder: Path) -> List[Path]:
    """Image files directly inside `folder`, skipping our own outputs, sorted by name."""
    files = [
        p
        for p in folder.iterdir()
        if p.is_file() and p.suffix.lower() in IMAGE_EXTS and not _is_output_artifact(p)
    ]
    files.sort(key=lambda p: p.name.lower())
    return files


# Entry point


def main(argv: Optional[List[str]] = None) -> None:
    """
    CLI entry point.

    Handles single file or folder. In folder mode supports --jobs parallelism
    while preserving readable output ordering.
    """
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)

    try:
        options = options_from_args(args)
    except OptionsError as exc:
        error(str(exc))
        sys.exit(2)

    print_config_line(
        "run",
        [
            ("CPU cores", os.cpu_count() or 1),
            ("Jobs", args.jobs),
            ("Seed", "-" if args.seed is None else args.seed),
        ],
        debug=False,
    )
    print_config_line("tiles", options.summary(), debug=args.debug)

    src = args.src
    if not src.exists():
        error(f"not found: {src}")
        sys.exit(2)

    run_args = (args.outdir, options, args.seed, args.bmp, args.palette_png, args.debug)

    try:
        if src.is_dir():
            files = collect_images(src)
            if args.debug:
                debug_log(format_fields([("Images", len(files)), ("Jobs", args.jobs)]))
            if args.jobs <= 1:
                for p in files:
                    _process_one_live(p, *run_args)
            else:
                with ThreadPoolExecutor(max_workers=args.jobs) as ex:
                    futures = [ex.submit(_process_one_captured, p, *run_args) for p in files]
                    blocks = [f.result() for f in futures]
                print("".join(blocks), end="", flush=True)
        else:
            if not is_image_file(src):
                error(f"not an image: {src}")
                sys.exit(2)
            _process_one_live(src, *run_args)
    except (OSError, ValueError) as exc:
        error(str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
