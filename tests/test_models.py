"""Tests for data models: buffers, layers and palettes."""

from dataclasses import replace

import numpy as np
import pytest

from halftone_lab.models import (
    AlgorithmCategory,
    BlendMode,
    Channel,
    DitherType,
    GlobalAdjustments,
    GridType,
    Layer,
    Palette,
    PaletteColor,
    RasterBuffer,
    UnknownAlgorithmError,
    next_layer_id,
)


class TestRasterBuffer:
    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            RasterBuffer(2, 2, np.zeros(15, dtype=np.uint8))

    def test_blank_fills_color_and_alpha(self):
        buffer = RasterBuffer.blank(3, 2, (10, 20, 30))
        assert buffer.data.size == 3 * 2 * 4
        assert tuple(buffer.pixels()[1, 2]) == (10, 20, 30, 255)

    def test_image_round_trip(self):
        buffer = RasterBuffer.blank(5, 4, (1, 2, 3))
        again = RasterBuffer.from_image(buffer.to_image())
        assert again.equals(buffer)

    def test_copy_is_independent(self):
        buffer = RasterBuffer.blank(2, 2)
        clone = buffer.copy()
        clone.data[0] = 0
        assert buffer.data[0] == 255


class TestLayer:
    def test_defaults_applied_once(self):
        layer = Layer(id=1)
        assert layer.dither_type == DitherType.HALFTONE_CIRCLE
        assert layer.blend_mode == BlendMode.MULTIPLY
        assert layer.visible and not layer.knockout

    def test_from_dict_accepts_camel_case(self):
        layer = Layer.from_dict(
            {
                "id": "3",
                "colorKey": "red",
                "ditherType": "floydSteinberg",
                "gridType": "hex",
                "blendMode": "screen",
                "offsetX": 4,
                "channel": "cyan",
            }
        )
        assert layer.id == 3
        assert layer.color_key == "red"
        assert layer.dither_type == DitherType.FLOYD_STEINBERG
        assert layer.grid_type == GridType.HEX
        assert layer.blend_mode == BlendMode.SCREEN
        assert layer.offset_x == 4
        assert layer.channel == Channel.CYAN

    def test_saved_riemersma_layer_loads(self):
        layer = Layer.from_dict({"id": 2, "ditherType": "riemersma"})
        assert layer.dither_type == DitherType.RIEMERSMA
        assert layer.dither_type.category == AlgorithmCategory.DIFFUSION

    def test_unknown_algorithm_raises(self):
        with pytest.raises(UnknownAlgorithmError):
            Layer.from_dict({"id": 1, "ditherType": "circuit"})

    def test_unknown_blend_mode_falls_back_to_multiply(self):
        layer = Layer.from_dict({"id": 1, "blendMode": "hue"})
        assert layer.blend_mode == BlendMode.MULTIPLY

    def test_dict_round_trip(self):
        layer = Layer(id=9, dither_type=DitherType.BAYER_8X8, angle=45.0, knockout=True)
        assert Layer.from_dict(layer.to_dict()) == layer

    def test_compositing_fields_not_in_dither_signature(self):
        layer = Layer(id=1)
        moved = replace(layer, opacity=0.3, offset_x=10, blend_mode=BlendMode.SCREEN)
        assert moved.dither_signature() == layer.dither_signature()
        assert replace(layer, scale=4.0).dither_signature() != layer.dither_signature()

    def test_next_layer_id(self):
        assert next_layer_id([]) == 1
        assert next_layer_id([Layer(id=2), Layer(id=7)]) == 8


class TestPalette:
    def test_reserved_neutrals_always_present(self):
        palette = Palette({"teal": PaletteColor.from_hex("Teal", "#008080")})
        assert "black" in palette and "white" in palette
        assert palette.get("black").rgb == (0, 0, 0)

    def test_resolve_known_key(self):
        palette = Palette.default()
        assert palette.resolve("red", 0).rgb == (0xE9, 0x28, 0x0A)

    def test_resolve_missing_key_uses_same_index(self):
        palette = Palette.default()
        keys = palette.keys()
        assert palette.resolve("deleted", 2) == palette.get(keys[2])

    def test_resolve_falls_back_to_mid_gray(self):
        palette = Palette.default()
        assert palette.resolve("deleted", 99).rgb == (128, 128, 128)

    def test_from_dict_formats(self):
        palette = Palette.from_dict(
            {"a": {"name": "A", "hex": "#102030"}, "b": "#fff", "c": ("C", "#000001")}
        )
        assert palette.get("a").rgb == (16, 32, 48)
        assert palette.get("b").rgb == (255, 255, 255)
        assert palette.get("c").name == "C"


def test_global_adjustments_are_clamped():
    adjustments = GlobalAdjustments(image_scale=5, brightness=-3, contrast=2, blur=50)
    assert adjustments.image_scale == 2.0
    assert adjustments.brightness == -1.0
    assert adjustments.contrast == 1.0
    assert adjustments.blur == 20.0
