"""Data models and constants for the halftone lab renderer."""

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any

import numpy as np
from PIL import Image

# AIDEV-NOTE: Bump whenever an algorithm's output changes so stale
# cache entries never survive an upgrade.
CACHE_FORMAT_VERSION = 3

MIN_DARKNESS = 0.02  # below this a layer pixel contributes nothing
PREVIEW_MAX_WIDTH = 1200  # px
EXPORT_RESOLUTIONS = {"1x": 1, "2x": 2, "4x": 4}
MATTE_COLOR = (136, 136, 136)  # transparent source pixels sit on this gray
MID_GRAY = (128, 128, 128)

# Configuration file path
CONFIG_FILE = Path.home() / ".halftone_lab_config.json"


class UnknownAlgorithmError(ValueError):
    """Raised when a layer names a dither algorithm that does not exist."""


class AlgorithmCategory(Enum):
    """Families of dither algorithms sharing a rendering strategy."""

    ORDERED = "ordered"
    DIFFUSION = "diffusion"
    HALFTONE = "halftone"
    STIPPLE = "stipple"


class DitherType(Enum):
    """Closed set of dither algorithms.

    AIDEV-NOTE: Values match the keys stored in saved layer documents.
    Adding a member requires a branch in both dithering.dither and
    svg_export.layer_elements.
    """

    BAYER_2X2 = "bayer2x2"
    BAYER_4X4 = "bayer4x4"
    BAYER_8X8 = "bayer8x8"
    BLUE_NOISE = "blueNoise"
    FLOYD_STEINBERG = "floydSteinberg"
    ATKINSON = "atkinson"
    STUCKI = "stucki"
    SIERRA = "sierra"
    SIERRA_TWO_ROW = "sierraTwoRow"
    SIERRA_LITE = "sierraLite"
    RIEMERSMA = "riemersma"
    HALFTONE_CIRCLE = "halftoneCircle"
    HALFTONE_SQUARE = "halftoneSquare"
    HALFTONE_LINES = "halftoneLines"
    NOISE = "noise"

    @property
    def category(self) -> AlgorithmCategory:
        return _CATEGORIES[self]

    @property
    def label(self) -> str:
        return _LABELS[self]


_CATEGORIES = {
    DitherType.BAYER_2X2: AlgorithmCategory.ORDERED,
    DitherType.BAYER_4X4: AlgorithmCategory.ORDERED,
    DitherType.BAYER_8X8: AlgorithmCategory.ORDERED,
    DitherType.BLUE_NOISE: AlgorithmCategory.ORDERED,
    DitherType.FLOYD_STEINBERG: AlgorithmCategory.DIFFUSION,
    DitherType.ATKINSON: AlgorithmCategory.DIFFUSION,
    DitherType.STUCKI: AlgorithmCategory.DIFFUSION,
    DitherType.SIERRA: AlgorithmCategory.DIFFUSION,
    DitherType.SIERRA_TWO_ROW: AlgorithmCategory.DIFFUSION,
    DitherType.SIERRA_LITE: AlgorithmCategory.DIFFUSION,
    DitherType.RIEMERSMA: AlgorithmCategory.DIFFUSION,
    DitherType.HALFTONE_CIRCLE: AlgorithmCategory.HALFTONE,
    DitherType.HALFTONE_SQUARE: AlgorithmCategory.HALFTONE,
    DitherType.HALFTONE_LINES: AlgorithmCategory.HALFTONE,
    DitherType.NOISE: AlgorithmCategory.STIPPLE,
}

_LABELS = {
    DitherType.BAYER_2X2: "Bayer 2x2",
    DitherType.BAYER_4X4: "Bayer 4x4",
    DitherType.BAYER_8X8: "Bayer 8x8",
    DitherType.BLUE_NOISE: "Blue Noise",
    DitherType.FLOYD_STEINBERG: "Floyd-Steinberg",
    DitherType.ATKINSON: "Atkinson",
    DitherType.STUCKI: "Stucki",
    DitherType.SIERRA: "Sierra",
    DitherType.SIERRA_TWO_ROW: "Sierra Two-Row",
    DitherType.SIERRA_LITE: "Sierra Lite",
    DitherType.RIEMERSMA: "Riemersma",
    DitherType.HALFTONE_CIRCLE: "Halftone Circle",
    DitherType.HALFTONE_SQUARE: "Halftone Square",
    DitherType.HALFTONE_LINES: "Halftone Lines",
    DitherType.NOISE: "Noise Stipple",
}


class GridType(Enum):
    """Halftone site arrangements."""

    SQUARE = "square"
    HEX = "hex"  # odd rows shifted half a step
    RADIAL = "radial"  # concentric rings around the canvas centre


class BlendMode(Enum):
    """Per-layer compositing modes."""

    NORMAL = "normal"
    MULTIPLY = "multiply"
    SCREEN = "screen"
    OVERLAY = "overlay"
    DARKEN = "darken"
    LIGHTEN = "lighten"


class Channel(Enum):
    """Source channel feeding a layer's darkness map.

    AIDEV-NOTE: The ink channels (cyan..black) already measure ink, so
    their normalized value is used as darkness directly.
    """

    GRAY = "gray"
    RED = "red"
    GREEN = "green"
    BLUE = "blue"
    CYAN = "cyan"
    MAGENTA = "magenta"
    YELLOW = "yellow"
    BLACK = "black"

    @property
    def is_ink(self) -> bool:
        return self in (Channel.CYAN, Channel.MAGENTA, Channel.YELLOW, Channel.BLACK)


@dataclass(eq=False)
class RasterBuffer:
    """Flat 8-bit RGBA pixel buffer.

    The data array always holds exactly width * height * 4 bytes.
    """

    width: int
    height: int
    data: np.ndarray

    def __post_init__(self):
        self.data = np.ascontiguousarray(self.data, dtype=np.uint8).reshape(-1)
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Invalid buffer size {self.width}x{self.height}")
        expected = self.width * self.height * 4
        if self.data.size != expected:
            raise ValueError(
                f"Buffer holds {self.data.size} bytes, expected {expected} "
                f"for {self.width}x{self.height} RGBA"
            )

    @classmethod
    def blank(
        cls, width: int, height: int, rgb: "tuple[int, int, int]" = (255, 255, 255)
    ) -> "RasterBuffer":
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[..., :3] = rgb
        pixels[..., 3] = 255
        return cls(width, height, pixels)

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterBuffer":
        """Wrap an (height, width, 4) array."""
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"Expected (h, w, 4) array, got {pixels.shape}")
        return cls(pixels.shape[1], pixels.shape[0], pixels)

    @classmethod
    def from_gray(cls, values: np.ndarray) -> "RasterBuffer":
        """Build an opaque gray buffer from an (height, width) value array."""
        height, width = values.shape
        pixels = np.empty((height, width, 4), dtype=np.uint8)
        pixels[..., :3] = values[..., None]
        pixels[..., 3] = 255
        return cls(width, height, pixels)

    @classmethod
    def from_image(cls, image: Image.Image) -> "RasterBuffer":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls.from_array(np.asarray(image, dtype=np.uint8))

    def pixels(self) -> np.ndarray:
        """(height, width, 4) view sharing memory with data."""
        return self.data.reshape(self.height, self.width, 4)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels().copy())

    def copy(self) -> "RasterBuffer":
        return RasterBuffer(self.width, self.height, self.data.copy())

    def equals(self, other: "RasterBuffer") -> bool:
        return (
            self.width == other.width
            and self.height == other.height
            and np.array_equal(self.data, other.data)
        )


@dataclass(frozen=True)
class PaletteColor:
    """Named ink color."""

    name: str
    hex: str
    rgb: "tuple[int, int, int]"

    @classmethod
    def from_hex(cls, name: str, hex_color: str) -> "PaletteColor":
        from halftone_lab.image_processing.pixel_ops import parse_hex_color

        return cls(name, hex_color.lower(), parse_hex_color(hex_color))


FALLBACK_COLOR = PaletteColor("Mid Gray", "#808080", MID_GRAY)

# AIDEV-NOTE: Reserved neutrals are always present in every palette.
RESERVED_COLORS = {
    "black": ("Black", "#000000"),
    "white": ("White", "#ffffff"),
}

DEFAULT_PALETTE_COLORS = {
    "blue": ("Blue", "#0062ff"),
    "darkRed": ("Dark Red", "#430e0a"),
    "red": ("Red", "#e9280a"),
    "green": ("Green", "#11533b"),
    "gold": ("Gold", "#c7a95a"),
    "black": ("Black", "#000000"),
    "white": ("White", "#ffffff"),
}


class Palette:
    """Ordered mapping of color keys to ink colors."""

    def __init__(self, colors: "dict[str, PaletteColor] | None" = None):
        self._colors: dict[str, PaletteColor] = dict(colors or {})
        for key, (name, hex_color) in RESERVED_COLORS.items():
            if key not in self._colors:
                self._colors[key] = PaletteColor.from_hex(name, hex_color)

    @classmethod
    def default(cls) -> "Palette":
        return cls.from_dict(DEFAULT_PALETTE_COLORS)

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "Palette":
        """Build a palette from {key: (name, hex)} or {key: {"name", "hex"}}."""
        colors = {}
        for key, value in data.items():
            if isinstance(value, dict):
                colors[key] = PaletteColor.from_hex(value.get("name", key), value["hex"])
            elif isinstance(value, str):
                colors[key] = PaletteColor.from_hex(key, value)
            else:
                name, hex_color = value
                colors[key] = PaletteColor.from_hex(name, hex_color)
        return cls(colors)

    def to_dict(self) -> "dict[str, dict[str, str]]":
        return {key: {"name": c.name, "hex": c.hex} for key, c in self._colors.items()}

    def keys(self) -> "list[str]":
        return list(self._colors)

    def get(self, key: str) -> "PaletteColor | None":
        return self._colors.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self._colors

    def __len__(self) -> int:
        return len(self._colors)

    def resolve(self, color_key: str, index: int) -> PaletteColor:
        """Color for a layer, tolerating keys that no longer exist.

        Args:
            color_key: Key the layer was assigned
            index: Layer position in the stack

        Returns:
            The keyed color, else the color at the same index in the
            current key list, else mid-gray
        """
        color = self._colors.get(color_key)
        if color is not None:
            return color
        keys = list(self._colors)
        if 0 <= index < len(keys):
            return self._colors[keys[index]]
        return FALLBACK_COLOR


@dataclass(frozen=True)
class Layer:
    """One ink layer of the artwork.

    AIDEV-NOTE: Layers are immutable; edits go through dataclasses.replace
    so every field is always populated and signatures stay exact.
    """

    id: int
    color_key: str = "black"
    dither_type: DitherType = DitherType.HALFTONE_CIRCLE

    # Geometry
    scale: float = 8.0  # cell / dot pitch in source pixels
    angle: float = 15.0  # degrees
    grid_type: GridType = GridType.SQUARE
    hardness: float = 1.0  # 0 = soft edges, 1 = crisp
    dot_scale_min: float = 0.1
    dot_scale_max: float = 1.0

    # Tone
    channel: Channel = Channel.GRAY
    threshold: float = 1.0  # 0-1 density
    gamma: float = 1.0
    brightness: float = 0.0  # -1 to 1
    contrast: float = 0.0  # -1 to 1
    noise: float = 0.0  # 0-1
    clamp_min: float = 0.0
    clamp_max: float = 1.0

    # Compositing
    blend_mode: BlendMode = BlendMode.MULTIPLY
    opacity: float = 1.0
    offset_x: float = 0.0  # preview px
    offset_y: float = 0.0  # preview px
    knockout: bool = False
    visible: bool = True
    locked: bool = False

    def dither_signature(self) -> tuple:
        """Every field that influences the dithered raster."""
        return (
            self.dither_type.value,
            self.scale,
            self.angle,
            self.grid_type.value,
            self.hardness,
            self.dot_scale_min,
            self.dot_scale_max,
            self.channel.value,
            self.threshold,
            self.gamma,
            self.brightness,
            self.contrast,
            self.noise,
            self.clamp_min,
            self.clamp_max,
        )

    def duplicate(self, new_id: int) -> "Layer":
        return replace(self, id=new_id)

    @classmethod
    def from_dict(cls, data: "dict[str, Any]") -> "Layer":
        """Create a layer from a saved document, filling defaults.

        Accepts snake_case field names or the camelCase keys used by
        saved documents.

        Raises:
            UnknownAlgorithmError: If the dither type is not recognized
            ValueError: If the id is missing
        """
        values = {}
        names = {f.name for f in fields(cls)}
        for key, value in data.items():
            name = _CAMEL_TO_FIELD.get(key, key)
            if name in names:
                values[name] = value

        if "id" not in values:
            raise ValueError("Layer is missing an id")
        values["id"] = int(values["id"])

        if "dither_type" in values:
            try:
                values["dither_type"] = DitherType(values["dither_type"])
            except ValueError:
                raise UnknownAlgorithmError(
                    f"Unknown dither algorithm: {values['dither_type']!r}"
                ) from None
        if "grid_type" in values:
            try:
                values["grid_type"] = GridType(values["grid_type"])
            except ValueError:
                values["grid_type"] = GridType.SQUARE
        if "blend_mode" in values:
            try:
                values["blend_mode"] = BlendMode(values["blend_mode"])
            except ValueError:
                values["blend_mode"] = BlendMode.MULTIPLY
        if "channel" in values:
            try:
                values["channel"] = Channel(values["channel"])
            except ValueError:
                values["channel"] = Channel.GRAY

        return cls(**values)

    def to_dict(self) -> "dict[str, Any]":
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
        return data


_CAMEL_TO_FIELD = {
    "colorKey": "color_key",
    "ditherType": "dither_type",
    "gridType": "grid_type",
    "dotScaleMin": "dot_scale_min",
    "dotScaleMax": "dot_scale_max",
    "clampMin": "clamp_min",
    "clampMax": "clamp_max",
    "blendMode": "blend_mode",
    "offsetX": "offset_x",
    "offsetY": "offset_y",
}


def next_layer_id(layers: "list[Layer]") -> int:
    """Id for a newly added or duplicated layer."""
    return max((layer.id for layer in layers), default=0) + 1


@dataclass(frozen=True)
class GlobalAdjustments:
    """Source adjustments applied before any layer is dithered."""

    image_scale: float = 1.0  # 0.5-2.0
    brightness: float = 0.0  # -1 to 1
    contrast: float = 0.0  # -1 to 1
    invert: bool = False
    blur: float = 0.0  # radius in px, 0-20

    def __post_init__(self):
        object.__setattr__(self, "image_scale", min(2.0, max(0.5, self.image_scale)))
        object.__setattr__(self, "brightness", min(1.0, max(-1.0, self.brightness)))
        object.__setattr__(self, "contrast", min(1.0, max(-1.0, self.contrast)))
        object.__setattr__(self, "blur", min(20.0, max(0.0, self.blur)))

    def signature(self) -> tuple:
        return (self.image_scale, self.brightness, self.contrast, self.invert, self.blur)


@dataclass(frozen=True)
class PostEffects:
    """Print-simulation effects applied after dithering."""

    ink_bleed: bool = False
    ink_bleed_amount: float = 0.5  # 0-1
    ink_bleed_roughness: float = 0.5  # 0-1
    paper_texture: bool = False  # preview only

    def signature(self) -> tuple:
        return (self.ink_bleed, self.ink_bleed_amount, self.ink_bleed_roughness)


@dataclass
class RenderConfig:
    """Persisted renderer settings."""

    preview_max_width: int = PREVIEW_MAX_WIDTH  # px
    use_worker: bool = True
    worker_count: int = 1
    export_resolution: str = "1x"  # key of EXPORT_RESOLUTIONS
    svg_min_element_size: float = 0.5  # vector units
    background_color: str = "#ffffff"


@dataclass
class SvgOptions:
    """Vector export options."""

    scale_factor: float = 1.0  # vector units per preview pixel
    include_background: bool = True
    min_element_size: float = 0.5  # vector units
