"""Source preprocessing and print-simulation post effects.

AIDEV-NOTE: Everything here is deterministic. Random effects draw from a
seeded numpy Generator so cached results stay reproducible.
"""

import logging

import numpy as np
from PIL import Image, ImageFilter

from halftone_lab.models import MATTE_COLOR, Channel, GlobalAdjustments, RasterBuffer

from .pixel_ops import channel_array, round_half_up, to_uint8

logger = logging.getLogger(__name__)

PAPER_LIGHT = (255, 253, 245)  # #fffdf5
PAPER_DARK = (240, 240, 224)  # #f0f0e0
PAPER_OPACITY = 0.3
INK_LUMA_THRESHOLD = 128  # luma below this counts as ink


def flatten_alpha(buffer: RasterBuffer) -> RasterBuffer:
    """Composite transparent pixels over the matte gray."""
    pixels = buffer.pixels()
    alpha = pixels[..., 3:4].astype(np.float64) / 255
    if np.all(alpha == 1.0):
        return buffer.copy()
    matte = np.asarray(MATTE_COLOR, dtype=np.float64)
    rgb = pixels[..., :3].astype(np.float64) * alpha + matte * (1 - alpha)
    out = np.empty_like(pixels)
    out[..., :3] = to_uint8(rgb)
    out[..., 3] = 255
    return RasterBuffer.from_array(out)


def resize_nearest(buffer: RasterBuffer, scale: float) -> RasterBuffer:
    """Resample by scale with nearest-neighbour (no smoothing)."""
    if scale == 1.0:
        return buffer.copy()
    width = max(1, int(round_half_up(buffer.width * scale)))
    height = max(1, int(round_half_up(buffer.height * scale)))
    image = buffer.to_image().resize((width, height), Image.Resampling.NEAREST)
    return RasterBuffer.from_image(image)


def apply_blur(buffer: RasterBuffer, radius: float) -> RasterBuffer:
    """Gaussian blur of the RGB channels."""
    if radius <= 0:
        return buffer.copy()
    rgb = Image.fromarray(buffer.pixels()[..., :3].copy())
    blurred = np.asarray(rgb.filter(ImageFilter.GaussianBlur(radius)), dtype=np.uint8)
    out = buffer.pixels().copy()
    out[..., :3] = blurred
    return RasterBuffer.from_array(out)


def adjust_brightness_contrast(
    buffer: RasterBuffer, brightness: float, contrast: float
) -> RasterBuffer:
    """Apply brightness and contrast, both in [-1, 1].

    AIDEV-NOTE: Standard 259-based contrast curve. Brightness shifts the
    input before the curve is applied.
    """
    if brightness == 0 and contrast == 0:
        return buffer.copy()
    c = contrast * 255
    factor = (259 * (c + 255)) / (255 * (259 - c))
    out = buffer.pixels().copy()
    rgb = out[..., :3].astype(np.float64)
    out[..., :3] = to_uint8(factor * (rgb + brightness * 255 - 128) + 128)
    return RasterBuffer.from_array(out)


def invert_colors(buffer: RasterBuffer) -> RasterBuffer:
    out = buffer.pixels().copy()
    out[..., :3] = 255 - out[..., :3]
    return RasterBuffer.from_array(out)


def preprocess(buffer: RasterBuffer, adjustments: GlobalAdjustments) -> RasterBuffer:
    """Run the global adjustment chain.

    Order is fixed: matte, resize, blur, brightness/contrast, invert.

    Args:
        buffer: Source pixels (any alpha)
        adjustments: Global adjustments

    Returns:
        New opaque buffer, scaled by adjustments.image_scale
    """
    result = flatten_alpha(buffer)
    result = resize_nearest(result, adjustments.image_scale)
    result = apply_blur(result, adjustments.blur)
    result = adjust_brightness_contrast(
        result, adjustments.brightness, adjustments.contrast
    )
    if adjustments.invert:
        result = invert_colors(result)
    logger.debug(
        "Preprocessed %dx%d -> %dx%d",
        buffer.width,
        buffer.height,
        result.width,
        result.height,
    )
    return result


def _neighbor(values: np.ndarray, dy: int, dx: int, fill) -> np.ndarray:
    # out[y, x] = values[y + dy, x + dx], fill outside the image
    out = np.full_like(values, fill)
    h, w = values.shape[:2]
    out[max(0, -dy) : h - max(0, dy), max(0, -dx) : w - max(0, dx)] = values[
        max(0, dy) : h - max(0, -dy), max(0, dx) : w - max(0, -dx)
    ]
    return out


def apply_ink_bleed(
    buffer: RasterBuffer, amount: float, roughness: float, seed: int = 0
) -> RasterBuffer:
    """Simulate ink spreading into neighbouring paper pixels.

    Args:
        buffer: Dithered layer buffer
        amount: Spread strength, 0-1 (also sets the number of passes)
        roughness: Irregularity of the spread, 0-1
        seed: Random seed

    Returns:
        New buffer with ink grown outward
    """
    rng = np.random.default_rng(seed)
    pixels = buffer.pixels().copy()
    passes = max(1, int(round_half_up(amount * 3)))
    spread = 0.3 + amount * 0.5

    for _ in range(passes):
        rgb = pixels[..., :3].astype(np.float64)
        ink = channel_array(pixels, Channel.GRAY) < INK_LUMA_THRESHOLD

        has_ink_neighbor = np.zeros(ink.shape, dtype=bool)
        source = np.zeros(rgb.shape, dtype=np.float64)
        # Up, down, left, right; the first inked neighbour wins
        for dy, dx in reversed(((-1, 0), (1, 0), (0, -1), (0, 1))):
            neighbor_ink = _neighbor(ink, dy, dx, False)
            neighbor_rgb = _neighbor(rgb, dy, dx, 0.0)
            source = np.where(neighbor_ink[..., None], neighbor_rgb, source)
            has_ink_neighbor |= neighbor_ink

        jitter = rng.random(ink.shape)
        draw = rng.random(ink.shape)
        probability = spread * ((1 - roughness * 0.5) + jitter * roughness)
        grow = ~ink & has_ink_neighbor & (draw < probability)

        bled = to_uint8(source * 0.9 + 255 * 0.1)
        pixels[..., :3][grow] = bled[grow]

    return RasterBuffer.from_array(pixels)


def apply_paper_texture(buffer: RasterBuffer, seed: int = 0) -> RasterBuffer:
    """Multiply a warm paper gradient with fine grain over the frame."""
    h, w = buffer.height, buffer.width
    ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
    t = (xs / max(1, w - 1) + ys / max(1, h - 1)) / 2

    light = np.asarray(PAPER_LIGHT, dtype=np.float64)
    dark = np.asarray(PAPER_DARK, dtype=np.float64)
    paper = light + (dark - light) * t[..., None]
    grain = (np.random.default_rng(seed).random((h, w)) - 0.5) * 16
    paper = np.clip(paper + grain[..., None], 0, 255)

    pixels = buffer.pixels().copy()
    base = pixels[..., :3].astype(np.float64)
    textured = base * paper / 255
    pixels[..., :3] = to_uint8(base * (1 - PAPER_OPACITY) + textured * PAPER_OPACITY)
    return RasterBuffer.from_array(pixels)
