"""Palette suggestion from the source image or from color harmonies.

AIDEV-NOTE: K-means gives the best swatches for photographs. Pillow's
median cut and octree are faster alternatives for flat artwork.
harmony_palette builds four-ink palettes from color theory instead of
the image.
"""

import colorsys
import logging

import numpy as np
from PIL import Image
from sklearn.cluster import KMeans

from halftone_lab.models import Palette, PaletteColor

from .pixel_ops import grayscale, rgb_to_hex

logger = logging.getLogger(__name__)

MAX_SAMPLES = 20000  # pixels fed to K-means

# (hue offset in degrees, saturation delta, lightness delta) per ink
HARMONIES = {
    "tetradic": ((0, 0, 0), (90, 0, -5), (180, 0, 0), (270, 0, -5)),
    "analogous": ((-60, 0, -10), (-30, 0, -5), (0, 0, 0), (30, 0, 5)),
    "triadic": ((0, 0, 0), (120, 0, 0), (240, 0, 0), (180, -10, 10)),
    "splitComplementary": ((0, 0, 0), (150, 0, 0), (210, 0, 0), (60, -15, 10)),
    "monochromatic": None,  # one hue, lightness spread 30-75%
}
MONOCHROME_LIGHTNESS = (30.0, 45.0, 60.0, 75.0)
COLOR_NAMES = (
    "Coral", "Teal", "Gold", "Navy", "Plum", "Sage", "Rose", "Azure",
    "Amber", "Jade", "Ruby", "Slate", "Ochre", "Mint", "Berry", "Storm",
)


def extract_colors(
    image: Image.Image,
    num_colors: int,
    method: str = "kmeans",
) -> "list[tuple[int, int, int]]":
    """Dominant colors of an image.

    Args:
        image: Input image (RGBA or RGB)
        num_colors: Number of colors to extract (2-16)
        method: 'kmeans', 'median_cut' or 'octree'

    Returns:
        Colors ordered from darkest to lightest
    """
    rgb_image = image.convert("RGB")

    if method == "median_cut":
        colors = _extract_pillow(rgb_image, num_colors, Image.Quantize.MEDIANCUT)
    elif method == "octree":
        colors = _extract_pillow(rgb_image, num_colors, Image.Quantize.FASTOCTREE)
    else:
        colors = _extract_kmeans(rgb_image, num_colors)

    return sorted(colors, key=lambda c: grayscale(*c))


def _extract_kmeans(
    image: Image.Image, num_colors: int
) -> "list[tuple[int, int, int]]":
    pixels = np.asarray(image, dtype=np.float64).reshape(-1, 3)
    if len(pixels) > MAX_SAMPLES:
        # Even stride keeps the sample deterministic
        pixels = pixels[:: len(pixels) // MAX_SAMPLES]
    clusters = min(num_colors, len(np.unique(pixels, axis=0)))

    kmeans = KMeans(n_clusters=clusters, random_state=42, n_init=10)
    kmeans.fit(pixels)
    centers = np.clip(np.rint(kmeans.cluster_centers_), 0, 255).astype(np.uint8)
    return [tuple(int(c) for c in color) for color in centers]


def _extract_pillow(
    image: Image.Image, num_colors: int, method: Image.Quantize
) -> "list[tuple[int, int, int]]":
    quantized = image.quantize(colors=num_colors, method=method)
    palette_data = quantized.getpalette()
    if palette_data is None:
        return [(128, 128, 128)]  # Fallback gray
    used = sorted(index for _, index in quantized.getcolors(maxcolors=256))
    return [
        (palette_data[i * 3], palette_data[i * 3 + 1], palette_data[i * 3 + 2])
        for i in used
    ]


def suggest_palette(
    image: Image.Image,
    num_colors: int = 5,
    method: str = "kmeans",
) -> Palette:
    """Build a palette of swatches taken from the image.

    Keys are swatch1..swatchN (darkest first); the reserved black and
    white neutrals are always included.
    """
    colors = extract_colors(image, num_colors, method)
    logger.debug("Extracted %d colors with %s", len(colors), method)
    return Palette(
        {
            f"swatch{i}": PaletteColor(f"Swatch {i}", rgb_to_hex(color), color)
            for i, color in enumerate(colors, start=1)
        }
    )


def hsl_to_rgb(hue: float, saturation: float, lightness: float) -> "tuple[int, int, int]":
    """HSL (degrees, percent, percent) to 8-bit RGB."""
    saturation = min(max(saturation, 0.0), 100.0) / 100
    lightness = min(max(lightness, 0.0), 100.0) / 100
    r, g, b = colorsys.hls_to_rgb((hue % 360) / 360, lightness, saturation)
    return (round(r * 255), round(g * 255), round(b * 255))


def harmony_palette(
    harmony: str = "tetradic",
    base_hue: "float | None" = None,
    base_saturation: "float | None" = None,
    base_lightness: "float | None" = None,
    seed: "int | None" = None,
) -> Palette:
    """Four inks related by a color-wheel harmony.

    Args:
        harmony: One of HARMONIES; unknown names fall back to tetradic
        base_hue: Base hue in degrees, random if omitted
        base_saturation: Base saturation percent, random 50-90 if omitted
        base_lightness: Base lightness percent, random 35-70 if omitted
        seed: Seed for the random choices, for repeatable palettes

    Returns:
        Palette keyed by lowercase color name (e.g. 'coral'), plus the
        reserved neutrals
    """
    if harmony not in HARMONIES:
        logger.warning("Unknown harmony %r, using tetradic", harmony)
        harmony = "tetradic"
    rng = np.random.default_rng(seed)
    hue = float(rng.integers(0, 360)) if base_hue is None else base_hue
    saturation = 50 + rng.random() * 40 if base_saturation is None else base_saturation
    lightness = 35 + rng.random() * 35 if base_lightness is None else base_lightness

    if HARMONIES[harmony] is None:
        swatches = []
        for light in MONOCHROME_LIGHTNESS:
            jittered = saturation + (rng.random() - 0.5) * 10
            swatches.append(hsl_to_rgb(hue, min(90.0, max(30.0, jittered)), light))
    else:
        swatches = [
            hsl_to_rgb(hue + dh, saturation + ds, lightness + dl)
            for dh, ds, dl in HARMONIES[harmony]
        ]

    picks = rng.choice(len(COLOR_NAMES), size=len(swatches), replace=False)
    names = [COLOR_NAMES[i] for i in picks]
    logger.debug("Generated %s palette from hue %.0f", harmony, hue)
    return Palette(
        {
            name.lower(): PaletteColor(name, rgb_to_hex(rgb), rgb)
            for name, rgb in zip(names, swatches)
        }
    )
