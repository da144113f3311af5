import numpy as np
import pytest

from tiled_palette.colour_space import to_nbit
from tiled_palette.engine import PaletteEngine, QuantizationCancelled
from tiled_palette.options import QuantizationOptions
from tiled_palette.tiles import extract_tiles

from conftest import colourful_rgba, gradient_rgba, solid_rgba


def _engine(image, opts, seed=7, **kwargs):
    return PaletteEngine(extract_tiles(image, opts), opts, np.random.default_rng(seed), **kwargs)


def test_needs_pixels():
    with pytest.raises(ValueError):
        PaletteEngine([], QuantizationOptions(), np.random.default_rng(0))


def test_iteration_count_scales_with_pixels():
    opts = QuantizationOptions(fraction_of_pixels=0.1)
    engine = _engine(gradient_rgba(64, 16), opts)
    assert engine.iterations == 103
    slow = _engine(gradient_rgba(64, 16), opts.replace(dither="slow"))
    assert slow.iterations == 21
    assert slow.alpha == 0.1 and slow.final_alpha == 0.02


def test_seed_is_mean_colour():
    image = solid_rgba(8, 8, (100, 0, 0))
    image[:4, :, :3] = (200, 0, 0)
    opts = QuantizationOptions(bits_per_channel=8)
    seed = _engine(image, opts).seed_palettes()
    assert seed.shape == (1, 1, 3)
    assert seed[0, 0].tolist() == [150.0, 0.0, 0.0]

    shared = _engine(image, opts.replace(colour_zero="shared", zero_colour=(1, 2, 3)))
    pal = shared.seed_palettes()
    assert pal.shape == (1, 2, 3)
    assert pal[0, 0].tolist() == [1.0, 2.0, 3.0]


def test_nudge_never_moves_the_shared_colour():
    image = solid_rgba(8, 8, (0, 0, 0))
    opts = QuantizationOptions(colour_zero="shared", bits_per_channel=8)
    engine = _engine(image, opts)
    palettes = np.array([[[10.0, 10.0, 10.0], [200.0, 200.0, 200.0]]])
    engine.run_nudges(palettes, 50, 0.3)
    assert palettes[0, 0].tolist() == [10.0, 10.0, 10.0]


def test_kmeans_keeps_empty_and_pinned_colours():
    image = solid_rgba(8, 8, (40, 40, 40))
    image[4:, :, :3] = (80, 80, 80)
    opts = QuantizationOptions(bits_per_channel=8)
    engine = _engine(image, opts)
    palettes = np.array([[[30.0, 30.0, 30.0], [90.0, 90.0, 90.0], [250.0, 0.0, 0.0]]])
    out = engine.kmeans(palettes)
    assert out[0, 0].tolist() == [40.0, 40.0, 40.0]
    assert out[0, 1].tolist() == [80.0, 80.0, 80.0]
    assert out[0, 2].tolist() == [250.0, 0.0, 0.0]
    # input set untouched
    assert palettes[0, 0].tolist() == [30.0, 30.0, 30.0]

    shared = _engine(image, opts.replace(colour_zero="shared"))
    out = shared.kmeans(palettes)
    assert out[0, 0].tolist() == [30.0, 30.0, 30.0]


def test_replacement_moves_a_useless_colour():
    image = solid_rgba(8, 8, (0, 0, 0))
    image[:, 4:, :3] = (255, 255, 255)
    opts = QuantizationOptions(palette_count=1, colours_per_palette=3, bits_per_channel=8)
    engine = _engine(image, opts)
    # two copies of black, nothing near white
    palettes = np.array([[[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [120.0, 120.0, 120.0]]])
    out = engine.replace_weakest(palettes)
    assert engine.stats.colour_replacements == 1
    # both blacks cost nothing to remove; the first one goes
    assert out[0, 0].tolist() == [120.0, 120.0, 120.0]
    assert out[0, 1].tolist() == [0.0, 0.0, 0.0]
    assert palettes[0, 0].tolist() == [0.0, 0.0, 0.0]


def test_replacement_overwrites_an_unused_palette():
    image = solid_rgba(16, 8, (0, 0, 0))
    image[:, 8:12, :3] = 238
    image[:, 12:, :3] = 252
    opts = QuantizationOptions(palette_count=3, colours_per_palette=2, bits_per_channel=8)
    engine = _engine(image, opts)
    palettes = np.array(
        [
            [[0.0, 0.0, 0.0], [10.0, 10.0, 10.0]],
            [[0.0, 0.0, 0.0], [12.0, 12.0, 12.0]],
            [[240.0, 240.0, 240.0], [250.0, 250.0, 250.0]],
        ]
    )
    out = engine.replace_weakest(palettes)
    assert engine.stats.palette_replacements == 1
    assert engine.stats.colour_replacements == 0
    # palette 0 wins the black tile but palette 1 covers it for free
    assert out[0].tolist() == [[240.0, 240.0, 240.0], [250.0, 250.0, 250.0]]
    assert np.array_equal(out[1], palettes[1])
    assert np.array_equal(out[2], palettes[2])
    assert palettes[0, 1].tolist() == [10.0, 10.0, 10.0]


def test_run_shapes_and_bit_grid():
    opts = QuantizationOptions(palette_count=3, colours_per_palette=4, fraction_of_pixels=0.05)
    engine = _engine(colourful_rgba(24, 16), opts)
    reported = []
    palettes = engine.run(reported.append)
    assert palettes.shape == (3, 4, 3)
    assert np.array_equal(to_nbit(palettes, 5), palettes)
    assert reported == sorted(reported)
    assert max(reported) <= 100


def test_learning_beats_the_seed():
    opts = QuantizationOptions(palette_count=2, colours_per_palette=4, fraction_of_pixels=0.05)
    engine = _engine(colourful_rgba(24, 16), opts)
    engine.run()
    stats = engine.stats
    assert stats.replaced_mse <= stats.seed_mse
    assert stats.replaced_mse <= stats.grown_mse
    assert stats.final_mse < stats.seed_mse


def test_transparent_policy_learns_one_colour_fewer():
    opts = QuantizationOptions(
        palette_count=2,
        colours_per_palette=4,
        colour_zero="transparent-from-alpha",
        fraction_of_pixels=0.05,
    )
    palettes = _engine(colourful_rgba(16, 16), opts).run()
    assert palettes.shape == (2, 3, 3)


def test_cancel_raises():
    opts = QuantizationOptions(palette_count=2, fraction_of_pixels=0.05)
    engine = _engine(gradient_rgba(16, 16), opts, cancel=lambda: True)
    with pytest.raises(QuantizationCancelled):
        engine.run()
