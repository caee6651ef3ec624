"""Render session orchestrating the complete pipeline.

AIDEV-NOTE: This module drives image -> preprocess -> per-layer dither ->
composite -> display, plus the raster and vector exports. It owns the
render cache and the dispatcher; callers only hand in state and a target
surface. A failed render never clears the surface.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Tuple

from PIL import Image

from halftone_lab.models import (
    EXPORT_RESOLUTIONS,
    GlobalAdjustments,
    Layer,
    Palette,
    PostEffects,
    RasterBuffer,
    RenderConfig,
    SvgOptions,
    UnknownAlgorithmError,
    next_layer_id,
)

from .cache import RenderCache
from .compositor import composite, upscale_nearest
from .dispatcher import DitherDispatcher, DitherRequest, PassCancelledError
from .pixel_ops import parse_hex_color
from .preprocessing import apply_paper_texture, preprocess
from .svg_export import generate_layers_archive, generate_svg, write_export

logger = logging.getLogger(__name__)


class TargetSurface(Protocol):
    """Anything a finished frame can be drawn onto."""

    def blit(self, frame: RasterBuffer) -> None: ...


class FrameScheduler(Protocol):
    def call_soon(self, callback: Callable[[], None]) -> None: ...


class ImageSurface:
    """Pillow-backed surface keeping the last frame drawn to it."""

    def __init__(self):
        self.frame: RasterBuffer | None = None
        self.blit_count = 0

    def blit(self, frame: RasterBuffer) -> None:
        self.frame = frame
        self.blit_count += 1

    @property
    def image(self) -> Image.Image | None:
        return self.frame.to_image() if self.frame is not None else None


class ImmediateScheduler:
    """Runs scheduled renders right away (headless use and tests)."""

    def call_soon(self, callback: Callable[[], None]) -> None:
        callback()


class HalftoneProcessor:
    """Turns a source image and a layer stack into halftone artwork."""

    def __init__(
        self,
        config: RenderConfig | None = None,
        dispatcher: DitherDispatcher | None = None,
        scheduler: FrameScheduler | None = None,
    ):
        self.config = config or RenderConfig()
        self.cache = RenderCache()
        self.dispatcher = dispatcher or DitherDispatcher(
            use_worker=self.config.use_worker, max_workers=self.config.worker_count
        )
        self.scheduler = scheduler or ImmediateScheduler()

        self.layers: list[Layer] = []
        self.palette = Palette.default()
        self.background_color = self.config.background_color
        self.adjustments = GlobalAdjustments()
        self.post_effects = PostEffects()
        self.last_frame: RasterBuffer | None = None

        self._source_image: Image.Image | None = None
        self._source_buffer: RasterBuffer | None = None
        self._image_serial = 0

        # Staleness guard
        self._requested = 0
        self._rendering = False
        self._scheduled = False
        self._pending: "tuple[Image.Image, TargetSurface] | None" = None

    # ------------------------------------------------------------------
    # Source image
    # ------------------------------------------------------------------

    def load_image(self, file_path: str | Path) -> Image.Image:
        """Load and validate an image file.

        Args:
            file_path: Path to image file (PNG, JPG, etc.)

        Returns:
            PIL Image in RGBA mode

        Raises:
            ValueError: If file cannot be loaded or is invalid
        """
        try:
            image = Image.open(file_path)
            # AIDEV-NOTE: Always convert to RGBA for consistent processing
            if image.mode != "RGBA":
                image = image.convert("RGBA")
            return image
        except Exception as e:
            raise ValueError(f"Failed to load image: {e}") from e

    def fit_preview(self, image: Image.Image) -> Image.Image:
        """Downscale an image to the preview width, keeping aspect ratio."""
        max_width = self.config.preview_max_width
        if image.width <= max_width:
            return image
        height = max(1, round(image.height * max_width / image.width))
        return image.resize((max_width, height), Image.Resampling.LANCZOS)

    def _source_for(self, image: Image.Image) -> RasterBuffer:
        if image is not self._source_image or self._source_buffer is None:
            self._source_image = image
            self._source_buffer = RasterBuffer.from_image(image)
            self._image_serial += 1
            self.cache.set_image(self._image_serial)
        return self._source_buffer

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def set_layers(self, layers: "list[Layer | dict[str, Any]]"):
        """Replace the layer stack.

        Dict entries are parsed with Layer.from_dict; entries naming an
        unknown algorithm are skipped.
        """
        parsed = []
        for entry in layers:
            if isinstance(entry, Layer):
                parsed.append(entry)
                continue
            try:
                parsed.append(Layer.from_dict(entry))
            except UnknownAlgorithmError as e:
                logger.warning("Skipping layer %s: %s", entry.get("id"), e)
        self.layers = parsed

    def add_layer(self, **fields) -> Layer:
        layer = Layer(id=next_layer_id(self.layers), **fields)
        self.layers = self.layers + [layer]
        return layer

    def duplicate_layer(self, layer_id: int) -> Layer:
        index = self._index_of(layer_id)
        copy = self.layers[index].duplicate(next_layer_id(self.layers))
        self.layers = self.layers[: index + 1] + [copy] + self.layers[index + 1 :]
        return copy

    def update_layer(self, layer_id: int, **changes) -> Layer:
        index = self._index_of(layer_id)
        layer = replace(self.layers[index], **changes)
        self.layers = self.layers[:index] + [layer] + self.layers[index + 1 :]
        return layer

    def remove_layer(self, layer_id: int):
        index = self._index_of(layer_id)
        self.layers = self.layers[:index] + self.layers[index + 1 :]

    def _index_of(self, layer_id: int) -> int:
        for index, layer in enumerate(self.layers):
            if layer.id == layer_id:
                return index
        raise KeyError(f"No layer with id {layer_id}")

    @property
    def background_rgb(self) -> "tuple[int, int, int]":
        return parse_hex_color(self.background_color)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def preprocessed_source(self, source_image: Image.Image) -> RasterBuffer:
        """Preprocessed source, reused while image and adjustments match."""
        source = self._source_for(source_image)
        adjustments = self.adjustments
        return self.cache.preprocess.get_or_compute(
            self.cache.preprocess_signature(adjustments),
            lambda: preprocess(source, adjustments),
        )

    def dither_layers(self, source: RasterBuffer) -> "dict[int, RasterBuffer]":
        """Dithered buffer for every visible layer, from cache where valid."""
        self.cache.update_globals(self.adjustments, self.post_effects)
        self.cache.layers.prune(layer.id for layer in self.layers)

        buffers: dict[int, RasterBuffer] = {}
        stale: list[tuple[Layer, tuple]] = []
        for layer in self.layers:
            if not layer.visible:
                continue
            signature = self.cache.layer_signature(layer)
            cached = self.cache.layers.lookup(layer.id, signature)
            if cached is not None:
                buffers[layer.id] = cached
            else:
                stale.append((layer, signature))

        if stale:
            logger.debug("Dithering %d of %d layers", len(stale), len(self.layers))
            requests = [
                DitherRequest.for_layer(layer, source, self.post_effects)
                for layer, _ in stale
            ]
            results = self.dispatcher.run_pass(requests)
            for (layer, signature), buffer in zip(stale, results):
                self.cache.layers.store(layer.id, signature, buffer)
                buffers[layer.id] = buffer
        return buffers

    def render_frame(
        self, source_image: Image.Image, paper_texture: bool | None = None
    ) -> RasterBuffer:
        """Composite the current state into a frame the size of the source.

        Raises:
            PassCancelledError: If a newer pass superseded this one
        """
        source = self.preprocessed_source(source_image)
        buffers = self.dither_layers(source)
        frame = composite(
            self.layers,
            buffers,
            (source_image.width, source_image.height),
            self.background_rgb,
            self.palette,
        )
        if paper_texture is None:
            paper_texture = self.post_effects.paper_texture
        if paper_texture:
            frame = apply_paper_texture(frame)
        return frame

    def render(self, source_image: Image.Image, target_surface: TargetSurface) -> bool:
        """Render and draw one frame.

        Returns:
            True if a new frame was drawn. On failure the surface keeps
            the previous frame.
        """
        try:
            frame = self.render_frame(source_image)
        except PassCancelledError:
            logger.debug("Render pass superseded")
            return False
        except Exception:
            logger.exception("Render failed, keeping previous frame")
            return False
        self.last_frame = frame
        target_surface.blit(frame)
        return True

    def request_render(self, source_image: Image.Image, target_surface: TargetSurface):
        """Schedule a render of the latest state.

        Requests arriving while a render runs are coalesced into a
        single follow-up render.
        """
        self._requested += 1
        self._pending = (source_image, target_surface)
        if self._rendering or self._scheduled:
            return
        self._schedule()

    def _schedule(self):
        self._scheduled = True
        self.scheduler.call_soon(self._run_scheduled)

    def _run_scheduled(self):
        self._scheduled = False
        if self._pending is None:
            return
        token = self._requested
        source_image, target_surface = self._pending
        self._rendering = True
        try:
            self.render(source_image, target_surface)
        finally:
            self._rendering = False
        if token != self._requested:
            logger.debug("State changed during render, scheduling follow-up")
            self._schedule()

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def export_raster(self, source_image: Image.Image, resolution: str = "1x") -> Image.Image:
        """Final artwork at an integer multiple of the preview size.

        Raises:
            ValueError: If resolution is not one of EXPORT_RESOLUTIONS
        """
        if resolution not in EXPORT_RESOLUTIONS:
            raise ValueError(f"Unknown export resolution: {resolution}")
        frame = self.render_frame(source_image, paper_texture=False)
        return upscale_nearest(frame, EXPORT_RESOLUTIONS[resolution]).to_image()

    def save_png(
        self, file_path: str | Path, source_image: Image.Image, resolution: str = "1x"
    ) -> Tuple[bool, Optional[str]]:
        """Save the raster export as PNG.

        Returns:
            Tuple of (success: bool, error_message: Optional[str])
        """
        try:
            self.export_raster(source_image, resolution).save(file_path, "PNG")
            logger.info("Saved PNG to %s", file_path)
            return True, None
        except (OSError, ValueError, PassCancelledError) as e:
            logger.error("PNG export failed: %s", e)
            return False, str(e)

    def _vector_args(self, source_image: Image.Image, resolution: str):
        factor = EXPORT_RESOLUTIONS.get(resolution, 1)
        source = self.preprocessed_source(source_image)
        dimensions = (source_image.width * factor, source_image.height * factor)
        options = SvgOptions(
            scale_factor=factor, min_element_size=self.config.svg_min_element_size
        )
        return source, dimensions, options

    def generate_svg(self, source_image: Image.Image, resolution: str = "1x") -> str:
        source, dimensions, options = self._vector_args(source_image, resolution)
        return generate_svg(
            self.layers, source, dimensions, self.background_color, options, self.palette
        )

    def generate_layers_archive(
        self, source_image: Image.Image, resolution: str = "1x"
    ) -> bytes:
        source, dimensions, options = self._vector_args(source_image, resolution)
        return generate_layers_archive(
            self.layers, source, dimensions, self.background_color, options, self.palette
        )

    def export_svg(
        self, file_path: str | Path, source_image: Image.Image, resolution: str = "1x"
    ) -> Tuple[bool, Optional[str]]:
        """Write the combined SVG; failures are reported, never raised."""
        try:
            content = self.generate_svg(source_image, resolution)
        except Exception as e:
            logger.exception("SVG generation failed")
            return False, str(e)
        return write_export(file_path, content)

    def export_layers_archive(
        self, file_path: str | Path, source_image: Image.Image, resolution: str = "1x"
    ) -> Tuple[bool, Optional[str]]:
        try:
            content = self.generate_layers_archive(source_image, resolution)
        except Exception as e:
            logger.exception("Layer archive generation failed")
            return False, str(e)
        return write_export(file_path, content)

    def close(self):
        self.dispatcher.shutdown()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
