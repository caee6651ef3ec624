"""Pixel-level color math shared by every rendering stage.

AIDEV-NOTE: Scalar helpers and their vectorized numpy twins must agree
exactly. The compositor uses the array versions, tests cross-check them
against the scalar ones.
"""

import numpy as np

from halftone_lab.models import BlendMode, Channel

# ITU-R BT.601 luma weights
LUMA_R = 0.299
LUMA_G = 0.587
LUMA_B = 0.114


def parse_hex_color(hex_color: str) -> "tuple[int, int, int]":
    """Parse '#rrggbb' or '#rgb' into an RGB tuple.

    Raises:
        ValueError: If the string is not a hex color
    """
    value = hex_color.strip().lstrip("#")
    if len(value) == 3:
        value = "".join(c * 2 for c in value)
    if len(value) != 6:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    try:
        return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16))
    except ValueError as e:
        raise ValueError(f"Invalid hex color: {hex_color!r}") from e


def rgb_to_hex(rgb: "tuple[int, int, int]") -> str:
    r, g, b = rgb
    return f"#{int(r):02x}{int(g):02x}{int(b):02x}"


def grayscale(r: float, g: float, b: float) -> float:
    """Normalized luminance in [0, 1]."""
    return (LUMA_R * r + LUMA_G * g + LUMA_B * b) / 255


def grayscale_array(pixels: np.ndarray) -> np.ndarray:
    """Normalized luminance of an (..., 3+) pixel array as float64."""
    rgb = pixels[..., :3].astype(np.float64)
    return (LUMA_R * rgb[..., 0] + LUMA_G * rgb[..., 1] + LUMA_B * rgb[..., 2]) / 255


def channel_value(pixel: "tuple[int, ...]", channel: Channel) -> float:
    """Value of one channel of an RGB(A) pixel on the 0-255 scale."""
    r, g, b = pixel[0], pixel[1], pixel[2]
    if channel == Channel.GRAY:
        return LUMA_R * r + LUMA_G * g + LUMA_B * b
    if channel == Channel.RED:
        return float(r)
    if channel == Channel.GREEN:
        return float(g)
    if channel == Channel.BLUE:
        return float(b)
    if channel == Channel.CYAN:
        return 255.0 - r
    if channel == Channel.MAGENTA:
        return 255.0 - g
    if channel == Channel.YELLOW:
        return 255.0 - b
    if channel == Channel.BLACK:
        return 255.0 - max(r, g, b)
    raise ValueError(f"Unknown channel: {channel}")


def channel_array(pixels: np.ndarray, channel: Channel) -> np.ndarray:
    """Vectorized channel_value over an (..., 3+) pixel array."""
    rgb = pixels[..., :3].astype(np.float64)
    if channel == Channel.GRAY:
        return LUMA_R * rgb[..., 0] + LUMA_G * rgb[..., 1] + LUMA_B * rgb[..., 2]
    if channel == Channel.RED:
        return rgb[..., 0]
    if channel == Channel.GREEN:
        return rgb[..., 1]
    if channel == Channel.BLUE:
        return rgb[..., 2]
    if channel == Channel.CYAN:
        return 255.0 - rgb[..., 0]
    if channel == Channel.MAGENTA:
        return 255.0 - rgb[..., 1]
    if channel == Channel.YELLOW:
        return 255.0 - rgb[..., 2]
    if channel == Channel.BLACK:
        return 255.0 - rgb.max(axis=-1)
    raise ValueError(f"Unknown channel: {channel}")


def _blend_channel(base, color, mode: BlendMode):
    # Works on floats or float arrays alike
    if mode == BlendMode.NORMAL:
        return color
    if mode == BlendMode.MULTIPLY:
        return base * color / 255
    if mode == BlendMode.SCREEN:
        return 255 - (255 - base) * (255 - color) / 255
    if mode == BlendMode.OVERLAY:
        low = 2 * base * color / 255
        high = 255 - 2 * (255 - base) * (255 - color) / 255
        return np.where(base < 128, low, high)
    if mode == BlendMode.DARKEN:
        return np.minimum(base, color)
    if mode == BlendMode.LIGHTEN:
        return np.maximum(base, color)
    raise ValueError(f"Unknown blend mode: {mode}")


def blend(
    base: "tuple[float, float, float]",
    color: "tuple[float, float, float]",
    alpha: float,
    mode: BlendMode,
) -> "tuple[float, float, float]":
    """Blend an ink color onto a base pixel.

    Args:
        base: Existing RGB value (0-255)
        color: Layer ink RGB value (0-255)
        alpha: Coverage of the ink, 0-1
        mode: Blend mode applied before alpha mixing

    Returns:
        Mixed RGB, each channel clamped to [0, 255]
    """
    out = []
    for b, c in zip(base, color):
        mixed = float(_blend_channel(float(b), float(c), mode))
        value = mixed * alpha + float(b) * (1 - alpha)
        out.append(min(255.0, max(0.0, value)))
    return (out[0], out[1], out[2])


def blend_array(
    base: np.ndarray,
    color: "tuple[int, int, int]",
    alpha: np.ndarray,
    mode: BlendMode,
) -> np.ndarray:
    """Vectorized blend of one ink color over an (n, 3) base array.

    Args:
        base: (n, 3) base pixels
        color: Ink RGB
        alpha: (n,) per-pixel coverage, 0-1

    Returns:
        (n, 3) float64 array clamped to [0, 255]
    """
    base = base.astype(np.float64)
    ink = np.asarray(color, dtype=np.float64)[None, :]
    mixed = _blend_channel(base, ink, mode)
    a = np.asarray(alpha, dtype=np.float64)[:, None]
    return np.clip(mixed * a + base * (1 - a), 0.0, 255.0)


def to_uint8(values: np.ndarray) -> np.ndarray:
    """Round half-to-even and clamp into 8 bits, as canvas pixel stores do."""
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def round_half_up(values):
    """Round .5 upward, scalar or array."""
    return np.floor(np.asarray(values, dtype=np.float64) + 0.5).astype(np.int64)


def seeded_random(seed):
    """Deterministic pseudo-random value in [0, 1) for a scalar or array seed."""
    x = np.sin(np.asarray(seed, dtype=np.float64)) * 10000
    return x - np.floor(x)
