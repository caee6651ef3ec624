"""Tests for the layer compositor."""

from dataclasses import replace

import numpy as np

from halftone_lab.image_processing.compositor import (
    composite,
    layer_darkness,
    upscale_nearest,
)
from halftone_lab.models import BlendMode, Layer, Palette, RasterBuffer

from conftest import make_uniform

WHITE = (255, 255, 255)
PALETTE = Palette.default()


def ink(width, height, value=0):
    """Dithered layer buffer of a single gray value"""
    return make_uniform(width, height, value)


def rgb_at(frame, x, y):
    return tuple(int(v) for v in frame.pixels()[y, x, :3])


def test_empty_stack_is_background():
    frame = composite([], {}, (3, 2), (10, 20, 30), PALETTE)
    assert (frame.width, frame.height) == (3, 2)
    assert (frame.pixels()[..., :3] == (10, 20, 30)).all()
    assert (frame.pixels()[..., 3] == 255).all()


def test_multiply_full_ink_is_layer_color():
    layer = Layer(id=1, color_key="red")
    frame = composite([layer], {1: ink(4, 4)}, (4, 4), WHITE, PALETTE)
    assert rgb_at(frame, 2, 2) == PALETTE.get("red").rgb


def test_paper_pixels_left_alone():
    layer = Layer(id=1, color_key="blue")
    frame = composite([layer], {1: ink(4, 4, 255)}, (4, 4), (200, 190, 180), PALETTE)
    assert rgb_at(frame, 0, 0) == (200, 190, 180)


def test_near_white_below_minimum_darkness_is_ignored():
    layer = Layer(id=1, color_key="black", blend_mode=BlendMode.NORMAL)
    frame = composite([layer], {1: ink(2, 2, 252)}, (2, 2), WHITE, PALETTE)
    assert rgb_at(frame, 0, 0) == WHITE


def test_opacity_scales_coverage():
    layer = Layer(id=1, color_key="black", blend_mode=BlendMode.NORMAL, opacity=0.5)
    frame = composite([layer], {1: ink(2, 2)}, (2, 2), WHITE, PALETTE)
    assert rgb_at(frame, 0, 0) == (128, 128, 128)


def test_hidden_and_missing_layers_skipped():
    hidden = Layer(id=1, color_key="black", visible=False)
    missing = Layer(id=2, color_key="black")
    frame = composite([hidden, missing], {1: ink(2, 2)}, (2, 2), WHITE, PALETTE)
    assert rgb_at(frame, 1, 1) == WHITE


def test_stack_order_matters():
    red = Layer(id=1, color_key="red", blend_mode=BlendMode.NORMAL)
    blue = Layer(id=2, color_key="blue", blend_mode=BlendMode.NORMAL)
    buffers = {1: ink(2, 2), 2: ink(2, 2)}
    assert rgb_at(composite([red, blue], buffers, (2, 2), WHITE, PALETTE), 0, 0) == PALETTE.get("blue").rgb
    assert rgb_at(composite([blue, red], buffers, (2, 2), WHITE, PALETTE), 0, 0) == PALETTE.get("red").rgb


def test_knockout_restores_background_exactly():
    background = (250, 240, 230)
    base = Layer(id=1, color_key="green")
    values = np.full((4, 4), 255, dtype=np.uint8)
    values[:, :2] = 0
    knockout = Layer(id=2, knockout=True)
    buffers = {1: ink(4, 4), 2: RasterBuffer.from_gray(values)}

    frame = composite([base, knockout], buffers, (4, 4), background, PALETTE)
    assert rgb_at(frame, 0, 0) == background
    assert rgb_at(frame, 1, 3) == background
    assert rgb_at(frame, 3, 0) != background


def test_layers_above_knockout_still_draw():
    knockout = Layer(id=1, knockout=True)
    top = Layer(id=2, color_key="red")
    buffers = {1: ink(2, 2), 2: ink(2, 2)}
    frame = composite([knockout, top], buffers, (2, 2), WHITE, PALETTE)
    assert rgb_at(frame, 0, 0) == PALETTE.get("red").rgb


def test_offset_shifts_and_drops_outside():
    values = np.full((4, 4), 255, dtype=np.uint8)
    values[0, 0] = 0
    layer = Layer(id=1, color_key="black", offset_x=2, offset_y=1)
    frame = composite([layer], {1: RasterBuffer.from_gray(values)}, (4, 4), WHITE, PALETTE)
    assert rgb_at(frame, 2, 1) == (0, 0, 0)
    assert rgb_at(frame, 0, 0) == WHITE


def test_offset_reveals_nothing_past_edge():
    layer = Layer(id=1, color_key="black", offset_x=-3)
    frame = composite([layer], {1: ink(4, 4)}, (4, 4), WHITE, PALETTE)
    assert rgb_at(frame, 0, 0) == (0, 0, 0)
    assert rgb_at(frame, 3, 0) == WHITE


def test_scaled_layer_buffer_is_remapped():
    values = np.full((8, 8), 255, dtype=np.uint8)
    values[:, :4] = 0
    darkness = layer_darkness(Layer(id=1), RasterBuffer.from_gray(values), (4, 4))
    assert darkness.shape == (4, 4)
    assert (darkness[:, :2] == 1.0).all()
    assert (darkness[:, 2:] == 0.0).all()


def test_deleted_color_key_uses_fallback():
    layer = Layer(id=1, color_key="deleted", blend_mode=BlendMode.NORMAL)
    far = replace(layer, id=2)
    stack = [Layer(id=i + 10, visible=False) for i in range(20)] + [far]
    frame = composite(stack, {2: ink(2, 2)}, (2, 2), WHITE, PALETTE)
    assert rgb_at(frame, 0, 0) == (128, 128, 128)


def test_upscale_nearest():
    buffer = make_uniform(3, 2, 40)
    big = upscale_nearest(buffer, 2)
    assert (big.width, big.height) == (6, 4)
    assert (big.pixels() == 40).sum() == 6 * 4 * 3
    assert upscale_nearest(buffer, 1).equals(buffer)
