"""Image processing pipeline for halftone artwork.

AIDEV-NOTE: Organized into modular components:
- processor: HalftoneProcessor render session (cache + dispatcher owner)
- pixel_ops: Luminance, channel extraction and blend math
- preprocessing: Global source adjustments and print post effects
- dithering: Ordered, error-diffusion, halftone and stipple algorithms
- dispatcher: Worker-process execution with synchronous fallback
- cache: Preprocess and per-layer render caches
- compositor: Stack-order blending and knockout
- svg_export: Vector rendering and layer archives
- quantization: Palette suggestion from the source image
"""

from .processor import HalftoneProcessor, ImageSurface
from .svg_export import generate_layers_archive, generate_svg

__all__ = [
    "HalftoneProcessor",
    "ImageSurface",
    "generate_layers_archive",
    "generate_svg",
]
