"""Two-tier render cache.

AIDEV-NOTE: Invalidate broadly, cache narrowly. Any global input change
bumps the revision, which is part of every layer signature, so all layer
entries go stale at once. A single layer edit only changes that layer's
signature. The cache belongs to one render session; nothing is global.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from halftone_lab.models import (
    CACHE_FORMAT_VERSION,
    GlobalAdjustments,
    Layer,
    PostEffects,
    RasterBuffer,
)

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Cached raster plus the signature it was computed under."""

    signature: tuple
    buffer: RasterBuffer
    timestamp: float = field(default_factory=time.monotonic)


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0


class PreprocessCache:
    """Single-slot cache of the preprocessed source shared by all layers."""

    def __init__(self):
        self._entry: CacheEntry | None = None
        self.stats = CacheStats()

    def get_or_compute(
        self, signature: tuple, compute: Callable[[], RasterBuffer]
    ) -> RasterBuffer:
        if self._entry is not None and self._entry.signature == signature:
            self.stats.hits += 1
            return self._entry.buffer
        self.stats.misses += 1
        buffer = compute()
        self._entry = CacheEntry(signature, buffer)
        return buffer

    def peek(self) -> CacheEntry | None:
        return self._entry

    def clear(self):
        self._entry = None


class LayerCache:
    """Per-layer dithered rasters keyed by layer id."""

    def __init__(self):
        self._entries: dict[int, CacheEntry] = {}
        self.stats = CacheStats()

    def lookup(self, layer_id: int, signature: tuple) -> RasterBuffer | None:
        """Cached buffer if its signature matches exactly, else None."""
        entry = self._entries.get(layer_id)
        if entry is not None and entry.signature == signature:
            self.stats.hits += 1
            return entry.buffer
        self.stats.misses += 1
        return None

    def store(self, layer_id: int, signature: tuple, buffer: RasterBuffer):
        self._entries[layer_id] = CacheEntry(signature, buffer)

    def entry(self, layer_id: int) -> CacheEntry | None:
        return self._entries.get(layer_id)

    def invalidate(self, layer_id: int):
        self._entries.pop(layer_id, None)

    def prune(self, active_ids) -> int:
        """Drop entries of layers that no longer exist.

        Returns:
            Number of entries removed
        """
        active = set(active_ids)
        stale = [layer_id for layer_id in self._entries if layer_id not in active]
        for layer_id in stale:
            del self._entries[layer_id]
        return len(stale)

    def clear(self):
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, layer_id: int) -> bool:
        return layer_id in self._entries


class RenderCache:
    """Preprocess and layer tiers plus the global revision counter."""

    def __init__(self):
        self.preprocess = PreprocessCache()
        self.layers = LayerCache()
        self.revision = 0
        self.image_id: object = None
        self._global_signature: tuple | None = None

    def set_image(self, image_id: object) -> bool:
        """Track the source identity, clearing both tiers when it changes.

        Returns:
            True if the image changed
        """
        if image_id == self.image_id:
            return False
        logger.debug("Source image changed, clearing render cache")
        self.image_id = image_id
        self.preprocess.clear()
        self.layers.clear()
        self.revision += 1
        return True

    def update_globals(
        self, adjustments: GlobalAdjustments, post_effects: PostEffects
    ) -> bool:
        """Bump the revision if any global input changed.

        Returns:
            True if the revision was bumped
        """
        signature = adjustments.signature() + post_effects.signature()
        if signature == self._global_signature:
            return False
        self._global_signature = signature
        self.revision += 1
        logger.debug("Global inputs changed, revision now %d", self.revision)
        return True

    def preprocess_signature(self, adjustments: GlobalAdjustments) -> tuple:
        return (CACHE_FORMAT_VERSION, self.image_id) + adjustments.signature()

    def layer_signature(self, layer: Layer) -> tuple:
        return (CACHE_FORMAT_VERSION, self.revision) + layer.dither_signature()

    def clear(self):
        self.preprocess.clear()
        self.layers.clear()
