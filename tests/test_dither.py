import numpy as np
import pytest

from tiled_palette.dither import DITHER_PATTERNS, DitherEngine, pattern_levels
from tiled_palette.options import DITHER_PATTERNS as PATTERN_NAMES
from tiled_palette.options import QuantizationOptions

BLACK_WHITE = np.array([[0.0, 0.0, 0.0], [255.0, 255.0, 255.0]])


def test_every_option_name_has_a_table():
    assert set(DITHER_PATTERNS) == set(PATTERN_NAMES)
    for name in PATTERN_NAMES:
        assert pattern_levels(name) == QuantizationOptions(dither_pattern=name).dither_pixels


@pytest.mark.parametrize("name", sorted(DITHER_PATTERNS))
def test_candidate_count_matches_pattern(name):
    engine = DitherEngine(QuantizationOptions(dither="fast", dither_pattern=name))
    palette = np.array(
        [[0.0, 0.0, 0.0], [90.0, 60.0, 30.0], [180.0, 200.0, 160.0], [255.0, 255.0, 255.0]]
    )
    found = engine.candidates(palette, np.array([120.0, 110.0, 90.0]))
    assert len(found) == engine.levels == pattern_levels(name)
    assert [c.brightness for c in found] == sorted(c.brightness for c in found)
    for y in range(2):
        for x in range(2):
            index, dist, _ = engine.closest_colour(palette, np.array([120.0, 110.0, 90.0]), x, y)
            assert 0 <= index < palette.shape[0]
            assert dist >= 0.0


def test_mid_grey_dithers_between_black_and_white():
    engine = DitherEngine(QuantizationOptions(dither="fast", dither_pattern="diagonal4"))
    grey = np.array([128.0, 128.0, 128.0])
    picks = {
        (x, y): engine.closest_colour(BLACK_WHITE, grey, x, y)[0]
        for x in range(2)
        for y in range(2)
    }
    assert set(picks.values()) == {0, 1}
    # the pattern repeats every two pixels
    assert engine.closest_colour(BLACK_WHITE, grey, 3, 2)[0] == picks[(1, 0)]


def test_first_candidate_compares_the_pixel_itself():
    engine = DitherEngine(QuantizationOptions(dither="fast"))
    grey = np.array([128.0, 128.0, 128.0])
    found = engine.candidates(BLACK_WHITE, grey)
    assert any(np.allclose(c.compared_colour, grey) for c in found)


def test_exact_palette_colour_never_dithers():
    engine = DitherEngine(QuantizationOptions(dither="fast", bits_per_channel=8))
    for x in range(2):
        for y in range(2):
            assert engine.closest_colour(BLACK_WHITE, BLACK_WHITE[1], x, y)[0] == 1
