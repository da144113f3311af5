import numpy as np

from tiled_palette.finders import (
    DitherNearestColourFinder,
    NearestColourFinder,
    make_finder,
)
from tiled_palette.options import QuantizationOptions
from tiled_palette.tiles import extract_tiles

from conftest import solid_rgba


def _red_tile():
    image = solid_rgba(4, 4, (255, 0, 0))
    image[0, 0, :3] = (0, 0, 255)
    return extract_tiles(image, QuantizationOptions(bits_per_channel=8))[0]


def test_make_finder_picks_implementation():
    opts = QuantizationOptions(dither="slow")
    assert isinstance(make_finder(opts, dither=True), DitherNearestColourFinder)
    assert type(make_finder(opts, dither=False)) is NearestColourFinder


def test_closest_palette_uses_weighted_histogram():
    tile = _red_tile()
    palettes = np.array(
        [
            [[0.0, 0.0, 255.0], [0.0, 255.0, 0.0]],
            [[255.0, 0.0, 0.0], [0.0, 255.0, 0.0]],
        ]
    )
    finder = NearestColourFinder()
    dists = finder.palette_distances(palettes, tile)
    assert dists.shape == (2,)
    assert finder.closest_palette(palettes, tile) == 1
    assert dists[1] == finder.tile_distance(palettes[1], tile)


def test_single_palette_short_circuits():
    tile = _red_tile()
    assert NearestColourFinder().closest_palette(np.zeros((1, 2, 3)), tile) == 0


def test_ties_go_to_lowest_palette():
    tile = _red_tile()
    palettes = np.zeros((3, 2, 3))
    assert NearestColourFinder().closest_palette(palettes, tile) == 0


def test_colour_usage_reports_second_best():
    tile = _red_tile()
    palette = np.array([[255.0, 0.0, 0.0], [0.0, 0.0, 255.0], [0.0, 0.0, 0.0]])
    nearest, best, second = NearestColourFinder().colour_usage(palette, tile)
    red = int(np.argmax(tile.counts))
    assert nearest[red] == 0
    assert best[red] == 0.0
    # next nearest to red is black: 2 * 255^2, weighted by 15 pixels
    assert second[red] == 15 * 2 * 255.0 ** 2


def test_dither_finder_agrees_on_exact_colours():
    tile = _red_tile()
    palette = np.array([[255.0, 0.0, 0.0], [0.0, 0.0, 255.0]])
    finder = DitherNearestColourFinder(QuantizationOptions(dither="slow", bits_per_channel=8))
    nearest, colours, weights = finder.assignments(palette, tile)
    assert nearest.shape == (16,)
    assert colours.shape == (16, 3)
    assert weights.sum() == 16
    assert finder.tile_distance(palette, tile) == 0.0
