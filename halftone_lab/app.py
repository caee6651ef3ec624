"""Halftone Lab - command line entry point.

Renders a source image through a layer document and writes the raster
and/or vector results.

Usage:
    halftone-lab <image> --layers LAYERS.json [--png OUT] [--svg OUT] [--archive OUT]

Examples:
    halftone-lab photo.jpg --layers poster.json --png poster.png
    halftone-lab photo.jpg --layers poster.json --svg poster.svg --resolution 2x
    halftone-lab photo.jpg --layers poster.json --archive plates.zip --no-worker
    halftone-lab photo.jpg --layers poster.json --suggest-palette 4 --png poster.png
    halftone-lab photo.jpg --layers poster.json --harmony triadic --seed 7 --svg poster.svg

A layer document is either a JSON list of layers or an object with
"layers" plus optional "palette", "background", "adjustments" and
"postEffects" entries.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from halftone_lab.config_manager import ConfigManager
from halftone_lab.image_processing import HalftoneProcessor
from halftone_lab.image_processing.quantization import HARMONIES, harmony_palette, suggest_palette
from halftone_lab.models import EXPORT_RESOLUTIONS, GlobalAdjustments, Palette, PostEffects

logger = logging.getLogger(__name__)


def _load_document(path: Path) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        return {"layers": data}
    return data


def _post_effects(data: dict) -> PostEffects:
    return PostEffects(
        ink_bleed=bool(data.get("inkBleed", data.get("ink_bleed", False))),
        ink_bleed_amount=float(data.get("inkBleedAmount", data.get("ink_bleed_amount", 0.5))),
        ink_bleed_roughness=float(
            data.get("inkBleedRoughness", data.get("ink_bleed_roughness", 0.5))
        ),
        paper_texture=bool(data.get("paperTexture", data.get("paper_texture", False))),
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render multi-layer halftone artwork from an image.",
    )
    parser.add_argument("image", type=Path, help="Source image (PNG, JPG, ...).")
    parser.add_argument(
        "--layers", type=Path, required=True, help="JSON layer document."
    )
    parser.add_argument("--palette", type=Path, help="JSON palette overriding the document's.")
    generated = parser.add_mutually_exclusive_group()
    generated.add_argument(
        "--suggest-palette",
        type=int,
        metavar="N",
        help="Replace the palette with N colors quantized from the image (2-16).",
    )
    generated.add_argument(
        "--harmony",
        choices=list(HARMONIES),
        help="Replace the palette with four inks from a color harmony.",
    )
    parser.add_argument("--seed", type=int, help="Seed for --harmony, for repeatable palettes.")
    parser.add_argument("--png", type=Path, help="Write the raster artwork here.")
    parser.add_argument("--svg", type=Path, help="Write the combined SVG here.")
    parser.add_argument("--archive", type=Path, help="Write a zip of per-layer SVGs here.")
    parser.add_argument(
        "--resolution",
        choices=sorted(EXPORT_RESOLUTIONS),
        help="Export multiplier (default from config).",
    )
    parser.add_argument("--scale", type=float, help="Image scale, 0.5-2.0.")
    parser.add_argument("--brightness", type=float, help="Brightness, -1 to 1.")
    parser.add_argument("--contrast", type=float, help="Contrast, -1 to 1.")
    parser.add_argument("--blur", type=float, help="Pre-blur radius in px, 0-20.")
    parser.add_argument("--invert", action="store_true", help="Invert the source.")
    parser.add_argument("--background", help="Background color as #rrggbb.")
    parser.add_argument(
        "--no-worker", action="store_true", help="Dither synchronously in this process."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging.")
    return parser


def main(argv: "list[str] | None" = None) -> int:
    args = build_parser().parse_args(argv)

    # Logging
    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    if not (args.png or args.svg or args.archive):
        print("Error: nothing to do, pass --png, --svg or --archive")
        return 2

    config = ConfigManager().load()
    if args.no_worker:
        config.use_worker = False
    resolution = args.resolution or config.export_resolution

    try:
        document = _load_document(args.layers)
        palette_data = document.get("palette")
        if args.palette:
            palette_data = _load_document(args.palette)
    except (OSError, ValueError) as e:
        print(f"Error: could not read layer document: {e}")
        return 1

    with HalftoneProcessor(config) as processor:
        try:
            image = processor.fit_preview(processor.load_image(args.image))
        except ValueError as e:
            print(f"Error: {e}")
            return 1

        processor.set_layers(document.get("layers", []))
        if palette_data:
            processor.palette = Palette.from_dict(palette_data)
        if args.suggest_palette:
            processor.palette = suggest_palette(image, max(2, min(16, args.suggest_palette)))
        if args.harmony:
            processor.palette = harmony_palette(args.harmony, seed=args.seed)
        processor.background_color = (
            args.background or document.get("background") or config.background_color
        )

        adjustments = document.get("adjustments", {})
        processor.adjustments = GlobalAdjustments(
            image_scale=args.scale if args.scale is not None else adjustments.get("imageScale", 1.0),
            brightness=args.brightness if args.brightness is not None else adjustments.get("brightness", 0.0),
            contrast=args.contrast if args.contrast is not None else adjustments.get("contrast", 0.0),
            invert=args.invert or bool(adjustments.get("invert", False)),
            blur=args.blur if args.blur is not None else adjustments.get("blur", 0.0),
        )
        processor.post_effects = _post_effects(document.get("postEffects", {}))

        failed = False
        if args.png:
            ok, error = processor.save_png(args.png, image, resolution)
            failed |= not ok
            print(f"✓ Wrote {args.png}" if ok else f"✗ PNG export failed: {error}")
        if args.svg:
            ok, error = processor.export_svg(args.svg, image, resolution)
            failed |= not ok
            print(f"✓ Wrote {args.svg}" if ok else f"✗ SVG export failed: {error}")
        if args.archive:
            ok, error = processor.export_layers_archive(args.archive, image, resolution)
            failed |= not ok
            print(f"✓ Wrote {args.archive}" if ok else f"✗ Archive export failed: {error}")

    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
