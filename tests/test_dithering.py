"""Tests for the dither algorithm library."""

import numpy as np
import pytest

from halftone_lab.image_processing.dithering import (
    BAYER_4X4,
    BLUE_NOISE,
    DIFFUSION_KERNELS,
    ORDERED_MATRICES,
    DitherOptions,
    cell_average,
    circle_dots,
    darkness_map,
    dither,
    dither_layer,
    grid_sites,
    hilbert_path,
    riemersma,
    square_dots,
)
from halftone_lab.image_processing.pixel_ops import grayscale_array
from halftone_lab.models import (
    AlgorithmCategory,
    Channel,
    DitherType,
    GridType,
    Layer,
    UnknownAlgorithmError,
)

from conftest import make_uniform

ORDERED_AND_DIFFUSION = [
    t
    for t in DitherType
    if t.category in (AlgorithmCategory.ORDERED, AlgorithmCategory.DIFFUSION)
]


def gray_values(buffer):
    return buffer.pixels()[..., 0]


def test_every_algorithm_has_an_implementation(photo_buffer):
    for dither_type in DitherType:
        result = dither(dither_type, photo_buffer, 0.5, 4.0, 15.0, 0.8)
        assert (result.width, result.height) == (photo_buffer.width, photo_buffer.height)
        pixels = result.pixels()
        assert (pixels[..., 0] == pixels[..., 1]).all()
        assert (pixels[..., 3] == 255).all()


@pytest.mark.parametrize("dither_type", list(DitherType))
def test_deterministic(dither_type, photo_buffer):
    options = DitherOptions(grid_type=GridType.HEX, noise=0.3, gamma=1.4)
    first = dither(dither_type, photo_buffer, 0.7, 5.0, 30.0, 0.5, options)
    second = dither(dither_type, photo_buffer, 0.7, 5.0, 30.0, 0.5, options)
    assert first.equals(second)


def test_unknown_algorithm():
    with pytest.raises(UnknownAlgorithmError):
        dither("circuit", make_uniform(2, 2, 0), 0.5, 1.0)


def test_white_bayer_scenario(white_buffer):
    result = dither(DitherType.BAYER_4X4, white_buffer, 0.5, 1.0)
    assert (gray_values(result) == 255).all()


@pytest.mark.parametrize("dither_type", ORDERED_AND_DIFFUSION)
@pytest.mark.parametrize("threshold", [0.0, 0.3, 0.5, 1.0])
def test_black_stays_ink(dither_type, threshold, black_buffer):
    result = dither(dither_type, black_buffer, threshold, 3.0)
    assert (gray_values(result) == 0).all()


@pytest.mark.parametrize("dither_type", ORDERED_AND_DIFFUSION)
@pytest.mark.parametrize("threshold", [0.0, 1.0])
def test_white_stays_paper(dither_type, threshold):
    result = dither(dither_type, make_uniform(16, 16, 255), threshold, 1.0)
    assert (gray_values(result) == 255).all()


class TestOrderedFidelity:
    """On-fraction of a uniform region tracks the gray level."""

    @pytest.mark.parametrize(
        "dither_type,size",
        [
            (DitherType.BAYER_2X2, 8),
            (DitherType.BAYER_4X4, 16),
            (DitherType.BAYER_8X8, 32),
            (DitherType.BLUE_NOISE, 64),
        ],
    )
    @pytest.mark.parametrize("value", [0, 37, 96, 128, 200, 255])
    def test_on_fraction(self, dither_type, size, value):
        buffer = make_uniform(size, size, value)
        gray = grayscale_array(buffer.pixels())[0, 0]
        n = ORDERED_MATRICES[dither_type].shape[0]
        result = dither(dither_type, buffer, 0.5, 1.0)
        on_fraction = (gray_values(result) == 255).mean()
        assert abs(on_fraction - gray) <= 1 / n**2 + 1e-9

    def test_cell_size_tiles_matrix(self):
        result = dither(DitherType.BAYER_4X4, make_uniform(16, 16, 128), 0.5, 4.0)
        values = gray_values(result)
        # Each 4x4 cell is uniform
        for y in range(0, 16, 4):
            for x in range(0, 16, 4):
                assert len(np.unique(values[y : y + 4, x : x + 4])) == 1

    def test_threshold_darkens(self):
        buffer = make_uniform(16, 16, 128)
        light = (gray_values(dither(DitherType.BAYER_4X4, buffer, 0.0, 1.0)) == 255).mean()
        dark = (gray_values(dither(DitherType.BAYER_4X4, buffer, 1.0, 1.0)) == 255).mean()
        assert light > dark

    def test_matrices_are_permutations(self):
        assert sorted((BAYER_4X4 * 16).ravel().tolist()) == list(range(16))
        assert sorted((BLUE_NOISE * 4096).round().ravel().tolist()) == list(range(4096))


class TestErrorDiffusion:
    def test_kernels_diffuse_expected_share(self):
        for dither_type, (divisor, taps) in DIFFUSION_KERNELS.items():
            total = sum(weight for _, _, weight in taps)
            if dither_type == DitherType.ATKINSON:
                assert total / divisor == pytest.approx(0.75)
            else:
                assert total == divisor

    @pytest.mark.parametrize("value", [64, 128, 191])
    def test_floyd_steinberg_conserves_tone(self, value):
        buffer = make_uniform(64, 64, value)
        result = dither(DitherType.FLOYD_STEINBERG, buffer, 0.5, 1.0)
        density = (gray_values(result) == 255).mean()
        assert density == pytest.approx(value / 255, abs=0.02)

    def test_cell_average_handles_partial_cells(self):
        values = np.arange(15, dtype=np.float64).reshape(3, 5)
        averaged = cell_average(values, 2)
        assert averaged.shape == (2, 3)
        assert averaged[0, 0] == pytest.approx((0 + 1 + 5 + 6) / 4)
        assert averaged[1, 2] == pytest.approx(14.0)

    def test_blocks_follow_cell_size(self, gradient_buffer):
        result = dither(DitherType.ATKINSON, gradient_buffer, 0.5, 4.0)
        values = gray_values(result)
        for y in range(0, 32, 4):
            for x in range(0, 64, 4):
                assert len(np.unique(values[y : y + 4, x : x + 4])) == 1

    def test_gradient_gets_lighter_to_the_right(self, gradient_buffer):
        result = dither(DitherType.STUCKI, gradient_buffer, 0.5, 1.0)
        values = gray_values(result)
        assert (values[:, :16] == 255).mean() < (values[:, -16:] == 255).mean()


class TestRiemersma:
    @pytest.mark.parametrize("width,height", [(8, 8), (5, 3), (1, 1), (13, 20)])
    def test_path_visits_every_cell_once(self, width, height):
        xs, ys = hilbert_path(width, height)
        assert len(xs) == width * height
        assert len(set(zip(xs.tolist(), ys.tolist()))) == width * height

    def test_path_steps_are_adjacent_on_square_grid(self):
        xs, ys = hilbert_path(16, 16)
        steps = np.abs(np.diff(xs)) + np.abs(np.diff(ys))
        assert (steps == 1).all()
        assert (xs[0], ys[0]) == (0, 0)

    @pytest.mark.parametrize("value", [64, 128, 191])
    def test_conserves_tone(self, value):
        buffer = make_uniform(64, 64, value)
        result = dither(DitherType.RIEMERSMA, buffer, 0.5, 1.0)
        density = (gray_values(result) == 255).mean()
        assert density == pytest.approx(value / 255, abs=0.05)

    def test_quantizes_grid_against_level(self):
        grid = np.array([[0.0, 255.0], [255.0, 0.0]])
        assert riemersma(grid, 130.0).tolist() == [[False, True], [True, False]]

    def test_blocks_follow_cell_size(self, gradient_buffer):
        result = dither(DitherType.RIEMERSMA, gradient_buffer, 0.5, 4.0)
        values = gray_values(result)
        for y in range(0, 32, 4):
            for x in range(0, 64, 4):
                assert len(np.unique(values[y : y + 4, x : x + 4])) == 1


class TestHalftone:
    def test_black_circle_radius_scenario(self):
        darkness = np.ones((60, 60))
        options = DitherOptions()
        centres, radii = circle_dots(darkness, 10.0, 0.0, 1.0, options)
        assert len(radii) > 0
        assert radii == pytest.approx(np.full(len(radii), 10 * 0.5 * options.dot_scale_max))

    def test_radius_clipped_to_cell(self):
        darkness = np.ones((40, 40))
        _, radii = circle_dots(darkness, 10.0, 15.0, 1.0, DitherOptions(dot_scale_max=1.8))
        assert radii.max() == pytest.approx(5.0)

    def test_white_has_no_dots(self):
        _, radii = circle_dots(np.zeros((40, 40)), 8.0, 0.0, 1.0, DitherOptions(dot_scale_min=0.0))
        assert len(radii) == 0

    def test_black_circle_centres_are_inked(self):
        buffer = make_uniform(40, 40, 0)
        result = dither(DitherType.HALFTONE_CIRCLE, buffer, 1.0, 10.0, 0.0, 1.0)
        # Grid is centred on the canvas centre
        assert gray_values(result)[20, 20] == 0

    def test_soft_edges_produce_gray(self):
        buffer = make_uniform(40, 40, 100)
        result = dither(DitherType.HALFTONE_CIRCLE, buffer, 1.0, 10.0, 0.0, 0.0)
        values = gray_values(result)
        assert ((values > 0) & (values < 255)).any()

    def test_square_dots_and_raster(self):
        darkness = np.ones((40, 40))
        _, halves = square_dots(darkness, 10.0, 45.0, 1.0, DitherOptions())
        assert halves == pytest.approx(np.full(len(halves), 10 * 0.85 * 0.5))
        result = dither(DitherType.HALFTONE_SQUARE, make_uniform(40, 40, 0), 1.0, 10.0, 0.0, 1.0)
        assert gray_values(result)[20, 20] == 0

    def test_lines(self):
        white = dither(DitherType.HALFTONE_LINES, make_uniform(30, 30, 255), 1.0, 6.0, 0.0, 1.0,
                       DitherOptions(dot_scale_min=0.0))
        assert (gray_values(white) == 255).all()
        black = dither(DitherType.HALFTONE_LINES, make_uniform(30, 30, 0), 1.0, 6.0, 0.0, 1.0)
        values = gray_values(black)
        # Angle 0: vertical lines centred at x = 3 mod 6
        assert values[10, 3] == 0
        assert values[10, 0] == 255


class TestGridSites:
    def test_square_grid_pitch(self):
        sites = grid_sites(50, 50, 10, 0.0, GridType.SQUARE)
        xs = np.unique(np.round(sites[:, 0], 6))
        assert np.allclose(np.diff(xs), 10)
        assert [25.0, 25.0] in sites.tolist()

    def test_hex_rows_offset(self):
        sites = grid_sites(50, 50, 10, 0.0, GridType.HEX)
        ys = np.unique(np.round(sites[:, 1], 6))
        assert np.allclose(np.diff(ys), 8.66)
        row0 = sites[np.isclose(sites[:, 1], 25.0)][:, 0]
        row1 = sites[np.isclose(sites[:, 1], 25.0 + 8.66)][:, 0]
        assert np.allclose((row1 - 5.0) % 10, row0[0] % 10)

    def test_radial_starts_at_centre(self):
        sites = grid_sites(40, 30, 5, 10.0, GridType.RADIAL)
        assert sites[0].tolist() == [20.0, 15.0]
        ring = np.hypot(sites[1:, 0] - 20, sites[1:, 1] - 15)
        assert np.allclose(np.round(ring / 5) * 5, ring)

    @pytest.mark.parametrize("grid_type", list(GridType))
    def test_sites_stay_near_canvas(self, grid_type):
        sites = grid_sites(30, 20, 4, 33.0, grid_type)
        assert (sites[:, 0] >= -4).all() and (sites[:, 0] < 34).all()
        assert (sites[:, 1] >= -4).all() and (sites[:, 1] < 24).all()


class TestNoiseStipple:
    def test_white_and_black(self):
        for threshold in (0.0, 0.5, 1.0):
            white = dither(DitherType.NOISE, make_uniform(16, 16, 255), threshold, 2.0)
            black = dither(DitherType.NOISE, make_uniform(16, 16, 0), threshold, 2.0)
            assert (gray_values(white) == 255).all()
            assert (gray_values(black) == 0).all()

    def test_mid_gray_is_mixed(self):
        result = dither(DitherType.NOISE, make_uniform(32, 32, 150), 0.5, 1.0)
        values = gray_values(result)
        assert (values == 0).any() and (values == 255).any()


class TestDarknessMap:
    def test_defaults_are_inverse_luminance(self, photo_buffer):
        darkness = darkness_map(photo_buffer, DitherOptions())
        assert np.allclose(darkness, 1 - grayscale_array(photo_buffer.pixels()))

    def test_ink_channel_used_directly(self):
        buffer = make_uniform(2, 2, 0)
        darkness = darkness_map(buffer, DitherOptions(channel=Channel.CYAN))
        assert np.allclose(darkness, 1.0)

    def test_clamp_range(self):
        buffer = make_uniform(1, 1, 128)
        darkness = darkness_map(buffer, DitherOptions(clamp_min=0.6, clamp_max=0.9))
        assert darkness[0, 0] == 0.0

    def test_noise_is_seeded(self, photo_buffer):
        options = DitherOptions(noise=0.5)
        assert np.array_equal(darkness_map(photo_buffer, options), darkness_map(photo_buffer, options))
        assert not np.array_equal(darkness_map(photo_buffer, options), darkness_map(photo_buffer, DitherOptions()))


def test_dither_layer_uses_layer_parameters(photo_buffer):
    layer = Layer(id=1, dither_type=DitherType.SIERRA_LITE, scale=2.0, threshold=0.3)
    direct = dither(DitherType.SIERRA_LITE, photo_buffer, 0.3, 2.0, layer.angle, layer.hardness,
                    DitherOptions.from_layer(layer))
    assert dither_layer(photo_buffer, layer).equals(direct)
