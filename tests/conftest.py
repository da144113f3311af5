import numpy as np
import pytest

from tiled_palette.options import QuantizationOptions


def solid_rgba(width, height, rgb, alpha=255):
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[..., :3] = rgb
    image[..., 3] = alpha
    return image


def gradient_rgba(width, height):
    """Horizontal grey ramp, 0 at the left edge, 255 at the right."""
    ramp = (np.arange(width) * 255 // max(1, width - 1)).astype(np.uint8)
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[..., 0] = ramp[None, :]
    image[..., 1] = ramp[None, :]
    image[..., 2] = ramp[None, :]
    image[..., 3] = 255
    return image


def checkerboard_rgba(width, height, block=8, offset=0):
    ys, xs = np.mgrid[0:height, 0:width]
    white = (((xs + offset) // block + (ys + offset) // block) % 2).astype(bool)
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[white, :3] = 255
    image[..., 3] = 255
    return image


def colourful_rgba(width, height):
    ys, xs = np.mgrid[0:height, 0:width]
    image = np.zeros((height, width, 4), dtype=np.uint8)
    image[..., 0] = (xs * 255 // max(1, width - 1)).astype(np.uint8)
    image[..., 1] = (ys * 255 // max(1, height - 1)).astype(np.uint8)
    image[..., 2] = ((xs + ys) * 7 % 256).astype(np.uint8)
    image[..., 3] = 255
    return image


@pytest.fixture
def gradient_image():
    return gradient_rgba(64, 16)


@pytest.fixture
def colourful_image():
    return colourful_rgba(24, 16)


@pytest.fixture
def fast_options():
    """Small, quick run settings."""
    return QuantizationOptions(palette_count=2, colours_per_palette=4, fraction_of_pixels=0.05)


@pytest.fixture
def rng():
    return np.random.default_rng(1234)
