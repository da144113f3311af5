import numpy as np
import pytest

from tiled_palette import (
    OptionsError,
    QuantizationCancelled,
    QuantizationOptions,
    TiledPaletteQuantizer,
    quantize,
)
from tiled_palette.colour_space import to_nbit

from conftest import checkerboard_rgba, colourful_rgba, gradient_rgba, solid_rgba


def test_solid_red_converges():
    image = solid_rgba(16, 16, (255, 0, 0))
    opts = QuantizationOptions(palette_count=1, colours_per_palette=2)
    result = quantize(image, 16, 16, opts, seed=1)
    assert result.palettes.shape == (1, 2, 3)
    assert result.palettes.reshape(-1, 3).tolist() == [[255, 0, 0], [255, 0, 0]]
    assert np.array_equal(result.image, image)
    assert result.mse == 0.0


def test_dithered_gradient_uses_assigned_palettes():
    image = gradient_rgba(64, 16)
    opts = QuantizationOptions(
        palette_count=2, colours_per_palette=4, dither="fast", fraction_of_pixels=0.05
    )
    result = quantize(image, 64, 16, opts, seed=2)
    assert result.palettes.shape == (2, 4, 3)

    rgb = result.image[..., :3]
    for y in range(16):
        for x in range(64):
            palette = result.palettes[result.palette_indices[y, x]]
            assert any((palette == rgb[y, x]).all(axis=1))
    assert len(np.unique(rgb.reshape(-1, 3), axis=0)) <= 8


def test_checkerboard_groups_by_polarity():
    image = checkerboard_rgba(32, 32)
    opts = QuantizationOptions(palette_count=4, colours_per_palette=4, fraction_of_pixels=0.05)
    result = quantize(image, 32, 32, opts, seed=3)
    assert result.palettes.shape == (4, 4, 3)
    assert np.array_equal(result.image, image)

    blocks = result.palette_indices[::8, ::8]
    shared = total = 0
    for by in range(3):
        for bx in range(3):
            # diagonal neighbours share a colour on a checkerboard
            for dx in (-1, 1):
                if 0 <= bx + dx < 4:
                    total += 1
                    shared += int(blocks[by, bx] == blocks[by + 1, bx + dx])
    assert shared / total >= 0.75


def test_straddling_checkerboard_palettes_hold_both_colours():
    image = checkerboard_rgba(32, 32, offset=4)
    opts = QuantizationOptions(palette_count=4, colours_per_palette=4, fraction_of_pixels=0.05)
    result = quantize(image, 32, 32, opts, seed=4)
    for p in np.unique(result.palette_indices):
        palette = result.palettes[p]
        assert len(np.unique(palette, axis=0)) > 1
        assert [0, 0, 0] in palette.tolist()
        assert [255, 255, 255] in palette.tolist()


def test_indexed_output():
    image = colourful_rgba(21, 10)
    opts = QuantizationOptions(palette_count=3, colours_per_palette=4, fraction_of_pixels=0.05)
    result = quantize(image, 21, 10, opts, seed=5)
    assert len(result.palette_table) == 1024
    assert result.flat_indices.max() < 3 * 4
    assert np.array_equal(
        result.flat_indices, result.palette_indices * 4 + result.colour_indices
    )
    stride = 24
    assert len(result.bmp_indices) == stride * 10
    rows = np.frombuffer(result.bmp_indices, dtype=np.uint8).reshape(10, stride)
    assert np.array_equal(rows[0, :21], result.flat_indices[-1])


def test_indexed_output_skipped_when_too_large():
    opts = QuantizationOptions(palette_count=2, colours_per_palette=129, fraction_of_pixels=0.02)
    result = quantize(colourful_rgba(16, 16), 16, 16, opts, seed=6)
    assert result.palette_table is None
    assert result.bmp_indices is None


@pytest.mark.parametrize("dither", ["off", "fast"])
def test_shared_zero_colour_leads_every_palette(dither):
    zero = (100, 50, 200)
    opts = QuantizationOptions(
        palette_count=3,
        colours_per_palette=4,
        fraction_of_pixels=0.05,
        dither=dither,
        colour_zero="shared",
        zero_colour=zero,
    )
    result = quantize(colourful_rgba(24, 16), 24, 16, opts, seed=8)
    expected = [int(to_nbit(c, opts.bits_per_channel)) for c in zero]
    assert result.palettes.shape == (3, 4, 3)
    for p in range(3):
        assert result.palettes[p, 0].tolist() == expected
        entry = result.palette_table[p * 16 : p * 16 + 4]
        assert list(entry) == [expected[2], expected[1], expected[0], 0]


def test_transparent_pixels_pass_through():
    image = colourful_rgba(16, 16)
    image[:4, :, 3] = 0
    image[:4, :, :3] = (9, 8, 7)
    opts = QuantizationOptions(
        palette_count=2,
        colours_per_palette=4,
        colour_zero="transparent-from-alpha",
        zero_colour=(255, 0, 255),
        fraction_of_pixels=0.05,
    )
    result = quantize(image, 16, 16, opts, seed=7)
    assert result.palettes.shape == (2, 3, 3)
    assert np.array_equal(result.image[:4], image[:4])
    assert np.array_equal(result.flat_indices[:4], result.palette_indices[:4] * 4)
    visible = result.flat_indices[4:] % 4
    assert visible.min() >= 1
    assert result.blocks[:, 0].tolist() == [[255, 0, 255], [255, 0, 255]]


def test_all_transparent_image():
    image = solid_rgba(8, 8, (1, 2, 3), alpha=0)
    opts = QuantizationOptions(colour_zero="transparent-from-alpha")
    result = quantize(image.tobytes(), 8, 8, opts, seed=8)
    assert np.array_equal(result.image, image)
    assert not result.flat_indices.any()
    assert result.mse == 0.0


def test_progress_is_monotonic_and_finishes():
    seen = []
    opts = QuantizationOptions(palette_count=1, colours_per_palette=2, fraction_of_pixels=0.05)
    quantize(gradient_rgba(16, 16), 16, 16, opts, progress=seen.append, seed=9)
    assert seen[0] == 0
    assert seen[-1] == 100
    assert seen == sorted(seen)
    assert len(set(seen)) == len(seen)


def test_dither_progress_finishes():
    seen = []
    opts = QuantizationOptions(
        palette_count=2, colours_per_palette=2, dither="slow", fraction_of_pixels=0.05
    )
    quantize(gradient_rgba(16, 8), 16, 8, opts, progress=seen.append, seed=10)
    assert seen == sorted(seen)
    assert seen[-1] == 100


def test_seed_makes_runs_reproducible():
    opts = QuantizationOptions(palette_count=2, fraction_of_pixels=0.05)
    image = colourful_rgba(16, 16)
    a = quantize(image, 16, 16, opts, seed=11)
    b = TiledPaletteQuantizer(opts, seed=11).quantize_image(image)
    assert np.array_equal(a.palettes, b.palettes)
    assert np.array_equal(a.flat_indices, b.flat_indices)


def test_invalid_options_fail_before_work():
    with pytest.raises(OptionsError):
        quantize(b"", 1, 1, QuantizationOptions(palette_count=0))


def test_bad_buffer_size():
    with pytest.raises(ValueError):
        quantize(b"\x00" * 10, 2, 2)


def test_cancel():
    with pytest.raises(QuantizationCancelled):
        quantize(colourful_rgba(16, 16), 16, 16, cancel=lambda: True, seed=12)
