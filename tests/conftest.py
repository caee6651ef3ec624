"""
Shared fixtures for halftone lab tests.

Provides synthetic source buffers, layers and a synchronous processor.
"""
import os
import sys

import numpy as np
import pytest
from PIL import Image

# Ensure the project root is on the path when running without install
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from halftone_lab.models import RasterBuffer  # noqa: E402


def make_uniform(width, height, value):
    """Opaque gray buffer of a single value"""
    return RasterBuffer.blank(width, height, (value, value, value))


def make_gradient(width, height):
    """Opaque horizontal black-to-white gradient"""
    ramp = np.linspace(0, 255, width).round().astype(np.uint8)
    values = np.tile(ramp, (height, 1))
    return RasterBuffer.from_gray(values)


def make_photo(width, height, seed=7):
    """Deterministic colorful test image with gradients and noise"""
    rng = np.random.default_rng(seed)
    ys, xs = np.mgrid[0:height, 0:width]
    pixels = np.empty((height, width, 4), dtype=np.uint8)
    pixels[..., 0] = (xs * 255 // max(1, width - 1)).astype(np.uint8)
    pixels[..., 1] = (ys * 255 // max(1, height - 1)).astype(np.uint8)
    pixels[..., 2] = rng.integers(0, 256, (height, width), dtype=np.uint8)
    pixels[..., 3] = 255
    return RasterBuffer.from_array(pixels)


@pytest.fixture
def white_buffer():
    """Uniform white 4x4 buffer"""
    return make_uniform(4, 4, 255)


@pytest.fixture
def black_buffer():
    """Uniform black 32x32 buffer"""
    return make_uniform(32, 32, 0)


@pytest.fixture
def gradient_buffer():
    """64x32 horizontal gradient"""
    return make_gradient(64, 32)


@pytest.fixture
def photo_buffer():
    """48x40 colorful synthetic photo"""
    return make_photo(48, 40)


@pytest.fixture
def photo_image():
    """Synthetic photo as a PIL RGBA image"""
    return make_photo(48, 40).to_image()


@pytest.fixture
def processor():
    """Processor that dithers synchronously in-process"""
    from halftone_lab.image_processing import HalftoneProcessor
    from halftone_lab.models import RenderConfig

    proc = HalftoneProcessor(RenderConfig(use_worker=False))
    yield proc
    proc.close()


@pytest.fixture
def tmp_image_path(tmp_path):
    """A small PNG written to disk"""
    path = tmp_path / "source.png"
    Image.fromarray(make_photo(20, 16).pixels()).save(path)
    return path
