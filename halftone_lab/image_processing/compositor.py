"""Layer compositor.

AIDEV-NOTE: Layers are blended strictly in stack order regardless of the
order their dither results arrived in. Knockout layers reset pixels to the
background colour, erasing whatever earlier layers put there.
"""

import logging

import numpy as np

from halftone_lab.models import MIN_DARKNESS, Layer, Palette, RasterBuffer

from .pixel_ops import blend_array, round_half_up, to_uint8

logger = logging.getLogger(__name__)


def layer_sample_map(
    layer: Layer,
    buffer: RasterBuffer,
    output_size: "tuple[int, int]",
) -> "tuple[np.ndarray, np.ndarray, np.ndarray]":
    """Map each output pixel to a pixel of the layer buffer.

    Offsets are in output pixels. A layer buffer of a different size
    (image scale) is remapped nearest-neighbour.

    Returns:
        (valid mask, source rows, source cols), each (out_h, out_w)
    """
    out_w, out_h = output_size
    scale_x = buffer.width / out_w
    scale_y = buffer.height / out_h
    src_y = round_half_up((np.arange(out_h) - layer.offset_y) * scale_y)
    src_x = round_half_up((np.arange(out_w) - layer.offset_x) * scale_x)
    valid_y = (src_y >= 0) & (src_y < buffer.height)
    valid_x = (src_x >= 0) & (src_x < buffer.width)
    valid = valid_y[:, None] & valid_x[None, :]
    rows = np.clip(src_y, 0, buffer.height - 1)[:, None] + np.zeros((1, out_w), dtype=np.int64)
    cols = np.clip(src_x, 0, buffer.width - 1)[None, :] + np.zeros((out_h, 1), dtype=np.int64)
    return valid, rows, cols


def layer_darkness(
    layer: Layer, buffer: RasterBuffer, output_size: "tuple[int, int]"
) -> np.ndarray:
    """Darkness of a layer resampled into output space (0 outside it)."""
    valid, rows, cols = layer_sample_map(layer, buffer, output_size)
    values = buffer.pixels()[rows, cols, 0].astype(np.float64)
    darkness = 1.0 - values / 255
    return np.where(valid, darkness, 0.0)


def composite(
    layers: "list[Layer]",
    buffers: "dict[int, RasterBuffer]",
    output_size: "tuple[int, int]",
    background: "tuple[int, int, int]",
    palette: Palette,
) -> RasterBuffer:
    """Blend dithered layers over the background.

    Args:
        layers: Full layer stack, bottom first
        buffers: Dithered buffer per layer id; layers without one are skipped
        output_size: (width, height) of the frame
        background: Background RGB
        palette: Ink colors for the layers' color keys

    Returns:
        New opaque frame buffer
    """
    out_w, out_h = output_size
    rgb = np.empty((out_w * out_h, 3), dtype=np.uint8)
    rgb[:] = background
    bg = np.asarray(background, dtype=np.uint8)

    for index, layer in enumerate(layers):
        if not layer.visible:
            continue
        buffer = buffers.get(layer.id)
        if buffer is None:
            continue

        darkness = layer_darkness(layer, buffer, output_size).reshape(-1)
        inked = darkness > MIN_DARKNESS
        if not inked.any():
            continue

        if layer.knockout:
            rgb[inked] = bg
            continue

        color = palette.resolve(layer.color_key, index).rgb
        alpha = layer.opacity * darkness[inked]
        rgb[inked] = to_uint8(blend_array(rgb[inked], color, alpha, layer.blend_mode))

    pixels = np.empty((out_h, out_w, 4), dtype=np.uint8)
    pixels[..., :3] = rgb.reshape(out_h, out_w, 3)
    pixels[..., 3] = 255
    return RasterBuffer.from_array(pixels)


def upscale_nearest(buffer: RasterBuffer, factor: int) -> RasterBuffer:
    """Integer nearest-neighbour enlargement for raster export."""
    if factor == 1:
        return buffer.copy()
    pixels = buffer.pixels().repeat(factor, axis=0).repeat(factor, axis=1)
    return RasterBuffer.from_array(pixels)
