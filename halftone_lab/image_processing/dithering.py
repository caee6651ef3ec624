"""Dither algorithm library.

AIDEV-NOTE: Every algorithm is a pure function of (buffer, parameters).
The render cache keys results on parameter signatures, so any hidden
state or unseeded randomness here would break cache correctness.

Output buffers are opaque gray: 255 is paper, 0 is full ink.
The geometry helpers (darkness_map, grid_sites, circle_dots, ...) are
shared with svg_export so raster and vector agree on placement.
"""

import math
from dataclasses import dataclass

import numpy as np

from halftone_lab.models import (
    Channel,
    DitherType,
    GridType,
    Layer,
    RasterBuffer,
    UnknownAlgorithmError,
)

from .pixel_ops import channel_array, round_half_up, seeded_random

BAYER_2X2 = np.array([[0, 2], [3, 1]], dtype=np.float64) / 4

BAYER_4X4 = (
    np.array(
        [
            [0, 8, 2, 10],
            [12, 4, 14, 6],
            [3, 11, 1, 9],
            [15, 7, 13, 5],
        ],
        dtype=np.float64,
    )
    / 16
)

BAYER_8X8 = (
    np.array(
        [
            [0, 32, 8, 40, 2, 34, 10, 42],
            [48, 16, 56, 24, 50, 18, 58, 26],
            [12, 44, 4, 36, 14, 46, 6, 38],
            [60, 28, 52, 20, 62, 30, 54, 22],
            [3, 35, 11, 43, 1, 33, 9, 41],
            [51, 19, 59, 27, 49, 17, 57, 25],
            [15, 47, 7, 39, 13, 45, 5, 37],
            [63, 31, 55, 23, 61, 29, 53, 21],
        ],
        dtype=np.float64,
    )
    / 64
)

BLUE_NOISE_SIZE = 64


def _blue_noise_texture(size: int = BLUE_NOISE_SIZE) -> np.ndarray:
    """Procedural blue-noise threshold map.

    Interleaved gradient noise mixed with three low-frequency sine
    fields, then rank-normalized so the levels are uniform in [0, 1).
    """
    ys, xs = np.mgrid[0:size, 0:size].astype(np.float64)
    ign = ((xs + 0.5) * 0.06711056 + (ys + 0.5) * 0.00583715) * 52.9829189
    ign = ign - np.floor(ign)
    s1 = np.sin(xs * 0.1234 + ys * 0.5678) * 0.5 + 0.5
    s2 = np.sin(xs * 0.8765 - ys * 0.4321) * 0.5 + 0.5
    s3 = np.sin((xs + ys) * 0.2468) * 0.5 + 0.5
    value = ign * 0.6 + s1 * 0.15 + s2 * 0.15 + s3 * 0.1

    ranks = np.empty(size * size, dtype=np.float64)
    ranks[np.argsort(value.ravel(), kind="stable")] = np.arange(size * size)
    return (ranks / (size * size)).reshape(size, size)


BLUE_NOISE = _blue_noise_texture()

ORDERED_MATRICES = {
    DitherType.BAYER_2X2: BAYER_2X2,
    DitherType.BAYER_4X4: BAYER_4X4,
    DitherType.BAYER_8X8: BAYER_8X8,
    DitherType.BLUE_NOISE: BLUE_NOISE,
}

# (divisor, ((dx, dy, weight), ...)) relative to the current pixel
DIFFUSION_KERNELS = {
    DitherType.FLOYD_STEINBERG: (16, ((1, 0, 7), (-1, 1, 3), (0, 1, 5), (1, 1, 1))),
    # Atkinson diffuses 6/8 and drops the rest
    DitherType.ATKINSON: (
        8,
        ((1, 0, 1), (2, 0, 1), (-1, 1, 1), (0, 1, 1), (1, 1, 1), (0, 2, 1)),
    ),
    DitherType.STUCKI: (
        42,
        (
            (1, 0, 8), (2, 0, 4),
            (-2, 1, 2), (-1, 1, 4), (0, 1, 8), (1, 1, 4), (2, 1, 2),
            (-2, 2, 1), (-1, 2, 2), (0, 2, 4), (1, 2, 2), (2, 2, 1),
        ),
    ),
    DitherType.SIERRA: (
        32,
        (
            (1, 0, 5), (2, 0, 3),
            (-2, 1, 2), (-1, 1, 4), (0, 1, 5), (1, 1, 4), (2, 1, 2),
            (-1, 2, 2), (0, 2, 3), (1, 2, 2),
        ),
    ),
    DitherType.SIERRA_TWO_ROW: (
        16,
        (
            (1, 0, 4), (2, 0, 3),
            (-2, 1, 1), (-1, 1, 2), (0, 1, 3), (1, 1, 2), (2, 1, 1),
        ),
    ),
    DitherType.SIERRA_LITE: (4, ((1, 0, 2), (-1, 1, 1), (0, 1, 1))),
}

HEX_ROW_RATIO = 0.866  # sqrt(3) / 2
GRID_EXTENT_RATIO = 0.7  # of the canvas diagonal
SQUARE_FILL_RATIO = 0.85
LINE_WIDTH_RATIO = 0.7
MIN_CIRCLE_RADIUS = 0.5  # px
MIN_SQUARE_HALF = 0.25  # px
MIN_LINE_HALF = 0.25  # px
MAX_ORDERED_LEVEL = 1 - 1e-6
RIEMERSMA_QUEUE = 16  # recent errors carried along the curve
RIEMERSMA_WEIGHTS = 2.0 ** (-np.arange(RIEMERSMA_QUEUE) / 4)


@dataclass(frozen=True)
class DitherOptions:
    """Tone and geometry options beyond the common algorithm arguments."""

    grid_type: GridType = GridType.SQUARE
    dot_scale_min: float = 0.1
    dot_scale_max: float = 1.0
    channel: Channel = Channel.GRAY
    gamma: float = 1.0
    brightness: float = 0.0  # -1 to 1
    contrast: float = 0.0  # -1 to 1
    noise: float = 0.0  # 0-1
    clamp_min: float = 0.0
    clamp_max: float = 1.0
    noise_amount: float = 0.25  # stipple threshold jitter

    @classmethod
    def from_layer(cls, layer: Layer) -> "DitherOptions":
        return cls(
            grid_type=layer.grid_type,
            dot_scale_min=layer.dot_scale_min,
            dot_scale_max=layer.dot_scale_max,
            channel=layer.channel,
            gamma=layer.gamma,
            brightness=layer.brightness,
            contrast=layer.contrast,
            noise=layer.noise,
            clamp_min=layer.clamp_min,
            clamp_max=layer.clamp_max,
        )


def cell_size(scale: float, minimum: int = 1) -> int:
    return max(minimum, int(math.floor(scale)))


# ---------------------------------------------------------------------------
# Tone mapping
# ---------------------------------------------------------------------------


def darkness_map(source: RasterBuffer, options: DitherOptions) -> np.ndarray:
    """Per-pixel ink demand in [0, 1] for one layer.

    Args:
        source: Preprocessed source buffer
        options: Layer tone options

    Returns:
        (height, width) float64 array. With default options this is
        exactly 1 - luminance.
    """
    value = channel_array(source.pixels(), options.channel) / 255
    darkness = value if options.channel.is_ink else 1.0 - value

    lo, hi = options.clamp_min, options.clamp_max
    if lo > 0 or hi < 1:
        if hi <= lo:
            darkness = np.where(darkness > lo, 1.0, 0.0)
        else:
            darkness = np.clip((darkness - lo) / (hi - lo), 0.0, 1.0)

    if options.gamma != 1.0:
        darkness = np.clip(darkness, 0.0, 1.0) ** max(options.gamma, 1e-6)
    if options.contrast != 0:
        darkness = (darkness - 0.5) * (1 + options.contrast) + 0.5
    if options.brightness != 0:
        darkness = darkness - options.brightness
    if options.noise > 0:
        index = np.arange(source.width * source.height, dtype=np.float64)
        jitter = seeded_random(index + 0.5).reshape(source.height, source.width)
        darkness = darkness + (jitter - 0.5) * 2 * options.noise * 0.2

    return np.clip(darkness, 0.0, 1.0)


def sample_at(darkness: np.ndarray, xs, ys) -> np.ndarray:
    """Darkness at the nearest pixel to each point, clamped to the image."""
    h, w = darkness.shape
    ix = np.clip(round_half_up(xs), 0, w - 1)
    iy = np.clip(round_half_up(ys), 0, h - 1)
    return darkness[iy, ix]


# ---------------------------------------------------------------------------
# Ordered dithering
# ---------------------------------------------------------------------------


def ordered_levels(matrix: np.ndarray, threshold: float) -> np.ndarray:
    """Threshold levels of a matrix shifted by the layer threshold.

    Levels are clamped just inside [0, 1] so pure black always stays ink
    and pure white always stays paper.
    """
    return np.clip(matrix + (threshold - 0.5) * 0.8, 0.0, MAX_ORDERED_LEVEL)


def ordered_dither(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    matrix: np.ndarray,
    options: DitherOptions,
) -> RasterBuffer:
    gray = 1.0 - darkness_map(source, options)
    cell = cell_size(scale)
    n = matrix.shape[0]
    rows = (np.arange(source.height) // cell) % n
    cols = (np.arange(source.width) // cell) % n
    levels = ordered_levels(matrix, threshold)[rows[:, None], cols[None, :]]
    values = np.where(gray > levels, 255, 0).astype(np.uint8)
    return RasterBuffer.from_gray(values)


# ---------------------------------------------------------------------------
# Error diffusion
# ---------------------------------------------------------------------------


def cell_average(values: np.ndarray, cell: int) -> np.ndarray:
    """Average values over cell x cell blocks; edge blocks may be partial."""
    if cell == 1:
        return values.astype(np.float64)
    h, w = values.shape
    row_starts = np.arange(0, h, cell)
    col_starts = np.arange(0, w, cell)
    sums = np.add.reduceat(
        np.add.reduceat(values.astype(np.float64), row_starts, axis=0),
        col_starts,
        axis=1,
    )
    row_counts = np.diff(np.append(row_starts, h))
    col_counts = np.diff(np.append(col_starts, w))
    return sums / np.outer(row_counts, col_counts)


def diffusion_threshold(threshold: float) -> float:
    return 80 + threshold * 100


def diffuse(grid: np.ndarray, level: float, dither_type: DitherType) -> np.ndarray:
    """Quantize a 0-255 grid to on/off, pushing the error forward.

    Rows are scanned left to right. Kernel taps that fall outside the
    grid are dropped.

    Returns:
        Boolean array, True where the cell is paper
    """
    divisor, taps = DIFFUSION_KERNELS[dither_type]
    weights = [(dx, dy, weight / divisor) for dx, dy, weight in taps]
    sh, sw = grid.shape
    work = grid.astype(np.float64).tolist()
    on_rows = []

    for y in range(sh):
        row = work[y]
        on_row = [False] * sw
        for x in range(sw):
            old = row[x]
            if old > level:
                on_row[x] = True
                error = old - 255.0
            else:
                error = old
            if error == 0:
                continue
            for dx, dy, weight in weights:
                nx = x + dx
                ny = y + dy
                if 0 <= nx < sw and ny < sh:
                    work[ny][nx] += error * weight
        on_rows.append(on_row)

    return np.array(on_rows, dtype=bool).reshape(sh, sw)


def hilbert_path(width: int, height: int) -> "tuple[np.ndarray, np.ndarray]":
    """Hilbert curve visiting every cell of a width x height grid once.

    The curve is laid over the enclosing power-of-two square and points
    outside the grid are dropped.

    Returns:
        (xs, ys) integer arrays in visiting order
    """
    size = 1
    while size < max(width, height):
        size *= 2
    t = np.arange(size * size)
    xs = np.zeros_like(t)
    ys = np.zeros_like(t)
    s = 1
    while s < size:
        rx = 1 & (t // 2)
        ry = 1 & (t ^ rx)
        flip = (ry == 0) & (rx == 1)
        xs = np.where(flip, s - 1 - xs, xs)
        ys = np.where(flip, s - 1 - ys, ys)
        swap = ry == 0
        xs, ys = np.where(swap, ys, xs), np.where(swap, xs, ys)
        xs = xs + s * rx
        ys = ys + s * ry
        t = t // 4
        s *= 2
    inside = (xs < width) & (ys < height)
    return xs[inside], ys[inside]


def riemersma(grid: np.ndarray, level: float) -> np.ndarray:
    """Quantize a 0-255 grid along a Hilbert curve.

    The error carried into each cell is the weighted mean of the last
    RIEMERSMA_QUEUE quantization errors, newest weighted highest.

    Returns:
        Boolean array, True where the cell is paper
    """
    sh, sw = grid.shape
    weights = (RIEMERSMA_WEIGHTS / RIEMERSMA_WEIGHTS.sum()).tolist()
    values = grid.astype(np.float64)
    on = np.zeros((sh, sw), dtype=bool)
    errors = [0.0] * RIEMERSMA_QUEUE  # newest first

    xs, ys = hilbert_path(sw, sh)
    for x, y in zip(xs.tolist(), ys.tolist()):
        carried = sum(e * w for e, w in zip(errors, weights))
        old = values[y, x] + carried
        if old > level:
            on[y, x] = True
            error = old - 255.0
        else:
            error = old
        errors.insert(0, error)
        errors.pop()
    return on


def diffusion_cells(
    darkness: np.ndarray, cell: int, threshold: float, dither_type: DitherType
) -> np.ndarray:
    """Working-grid on/off cells for an error-diffusion layer."""
    grid = cell_average((1.0 - darkness) * 255, cell)
    level = diffusion_threshold(threshold)
    if dither_type == DitherType.RIEMERSMA:
        return riemersma(grid, level)
    return diffuse(grid, level, dither_type)


def error_diffusion(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    dither_type: DitherType,
    options: DitherOptions,
) -> RasterBuffer:
    cell = cell_size(scale)
    on = diffusion_cells(darkness_map(source, options), cell, threshold, dither_type)
    rows = np.arange(source.height) // cell
    cols = np.arange(source.width) // cell
    values = np.where(on[rows[:, None], cols[None, :]], 255, 0).astype(np.uint8)
    return RasterBuffer.from_gray(values)


# ---------------------------------------------------------------------------
# Geometric halftones
# ---------------------------------------------------------------------------


def grid_sites(
    width: int, height: int, step: float, angle: float, grid_type: GridType
) -> np.ndarray:
    """Halftone site centres for a rotated grid.

    Args:
        width: Canvas width in px
        height: Canvas height in px
        step: Site pitch in px
        angle: Grid rotation in degrees, around the canvas centre
        grid_type: Site arrangement

    Returns:
        (n, 2) array of (x, y) centres, row-major, limited to one step
        beyond the canvas
    """
    rad = math.radians(angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    extent = math.hypot(width, height) * GRID_EXTENT_RATIO
    cx0, cy0 = width / 2, height / 2

    if grid_type == GridType.RADIAL:
        points = [(cx0, cy0)]
        ring = 1
        while ring * step <= extent:
            r = ring * step
            count = max(1, int(round_half_up(2 * math.pi * r / step)))
            theta = np.arange(count) * (2 * math.pi / count) + rad
            points.extend(zip(cx0 + r * np.cos(theta), cy0 + r * np.sin(theta)))
            ring += 1
        sites = np.array(points, dtype=np.float64)
    else:
        row_pitch = step * HEX_ROW_RATIO if grid_type == GridType.HEX else step
        cols = np.arange(math.floor(-extent / step), math.ceil(extent / step) + 1)
        rows = np.arange(
            math.floor(-extent / row_pitch), math.ceil(extent / row_pitch) + 1
        )
        gx = cols[None, :] * step + np.zeros((rows.size, 1))
        if grid_type == GridType.HEX:
            gx = gx + np.where(rows % 2 != 0, step * 0.5, 0.0)[:, None]
        gy = (rows * row_pitch)[:, None] + np.zeros((1, cols.size))
        xs = gx * cos_a - gy * sin_a + cx0
        ys = gx * sin_a + gy * cos_a + cy0
        sites = np.stack([xs.ravel(), ys.ravel()], axis=1)

    inside = (
        (sites[:, 0] >= -step)
        & (sites[:, 0] < width + step)
        & (sites[:, 1] >= -step)
        & (sites[:, 1] < height + step)
    )
    return sites[inside]


def dot_sizes(
    darkness: np.ndarray,
    base: float,
    threshold: float,
    options: DitherOptions,
    limit: float,
) -> np.ndarray:
    """Dot radius (or half side) for each darkness sample, capped at limit."""
    relative = options.dot_scale_min + darkness * (
        options.dot_scale_max - options.dot_scale_min
    )
    return np.minimum(base * relative * threshold, limit)


def circle_dots(
    darkness: np.ndarray,
    scale: float,
    angle: float,
    threshold: float,
    options: DitherOptions,
) -> "tuple[np.ndarray, np.ndarray]":
    """Centres and radii of every visible circle dot.

    Returns:
        ((n, 2) centres, (n,) radii), dots under the minimum size removed
    """
    h, w = darkness.shape
    step = cell_size(scale, minimum=2)
    base = step * 0.5
    sites = grid_sites(w, h, step, angle, options.grid_type)
    radii = dot_sizes(
        sample_at(darkness, sites[:, 0], sites[:, 1]), base, threshold, options, step * 0.5
    )
    keep = radii >= MIN_CIRCLE_RADIUS
    return sites[keep], radii[keep]


def square_dots(
    darkness: np.ndarray,
    scale: float,
    angle: float,
    threshold: float,
    options: DitherOptions,
) -> "tuple[np.ndarray, np.ndarray]":
    """Centres and half-sides of every visible square dot."""
    h, w = darkness.shape
    step = cell_size(scale)
    base = step * SQUARE_FILL_RATIO * 0.5
    sites = grid_sites(w, h, step, angle, options.grid_type)
    halves = dot_sizes(
        sample_at(darkness, sites[:, 0], sites[:, 1]), base, threshold, options, step * 0.5
    )
    keep = halves >= MIN_SQUARE_HALF
    return sites[keep], halves[keep]


def _stamp(values: np.ndarray, x0: int, y0: int, coverage: np.ndarray):
    # Overlaps keep the darker value
    ink = 255 - round_half_up(255 * coverage)
    region = values[y0 : y0 + coverage.shape[0], x0 : x0 + coverage.shape[1]]
    np.minimum(region, ink, out=region)


def _dot_window(cx: float, cy: float, reach: float, width: int, height: int):
    x0 = max(0, int(math.floor(cx - reach)))
    x1 = min(width - 1, int(math.ceil(cx + reach)))
    y0 = max(0, int(math.floor(cy - reach)))
    y1 = min(height - 1, int(math.ceil(cy + reach)))
    if x0 > x1 or y0 > y1:
        return None
    return x0, x1, y0, y1


def halftone_circle(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    angle: float,
    hardness: float,
    options: DitherOptions,
) -> RasterBuffer:
    w, h = source.width, source.height
    centres, radii = circle_dots(
        darkness_map(source, options), scale, angle, threshold, options
    )
    edge = (1 - hardness) * 1.5
    values = np.full((h, w), 255, dtype=np.int64)

    for (cx, cy), radius in zip(centres, radii):
        window = _dot_window(cx, cy, radius + edge, w, h)
        if window is None:
            continue
        x0, x1, y0, y1 = window
        yy, xx = np.ogrid[y0 : y1 + 1, x0 : x1 + 1]
        dist = np.sqrt((xx - cx) ** 2 + (yy - cy) ** 2)
        _stamp(values, x0, y0, np.clip(radius - dist + edge, 0.0, 1.0))

    return RasterBuffer.from_gray(values.astype(np.uint8))


def halftone_square(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    angle: float,
    hardness: float,
    options: DitherOptions,
) -> RasterBuffer:
    w, h = source.width, source.height
    centres, halves = square_dots(
        darkness_map(source, options), scale, angle, threshold, options
    )
    rad = math.radians(angle)
    cos_a, sin_a = math.cos(rad), math.sin(rad)
    edge = (1 - hardness) * 1.5
    values = np.full((h, w), 255, dtype=np.int64)

    for (cx, cy), half in zip(centres, halves):
        # Rotated squares reach sqrt(2) further along the diagonal
        window = _dot_window(cx, cy, (half + edge) * 1.5, w, h)
        if window is None:
            continue
        x0, x1, y0, y1 = window
        yy, xx = np.ogrid[y0 : y1 + 1, x0 : x1 + 1]
        dx, dy = xx - cx, yy - cy
        lu = dx * cos_a + dy * sin_a
        lv = -dx * sin_a + dy * cos_a
        dist = np.maximum(np.abs(lu), np.abs(lv))
        _stamp(values, x0, y0, np.clip(half - dist + edge, 0.0, 1.0))

    return RasterBuffer.from_gray(values.astype(np.uint8))


def line_spacing(scale: float) -> float:
    return max(1.0, float(scale))


def line_half_widths(
    darkness: np.ndarray, spacing: float, threshold: float, options: DitherOptions
) -> np.ndarray:
    """Half stroke width of a halftone line for each darkness sample."""
    max_width = spacing * LINE_WIDTH_RATIO
    relative = options.dot_scale_min + darkness * (
        options.dot_scale_max - options.dot_scale_min
    )
    return relative * max_width * threshold / 2


def halftone_lines(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    angle: float,
    hardness: float,
    options: DitherOptions,
) -> RasterBuffer:
    darkness = darkness_map(source, options)
    spacing = line_spacing(scale)
    rad = math.radians(angle)
    ys, xs = np.mgrid[0 : source.height, 0 : source.width].astype(np.float64)

    position = np.mod(xs * math.cos(rad) + ys * math.sin(rad), spacing)
    centre_dist = np.abs(position - spacing / 2)
    half = line_half_widths(darkness, spacing, threshold, options)
    edge = (1 - hardness) * 1.5
    coverage = np.where(
        half >= MIN_LINE_HALF, np.clip(half - centre_dist + edge, 0.0, 1.0), 0.0
    )
    values = 255 - round_half_up(255 * coverage)
    return RasterBuffer.from_gray(values.astype(np.uint8))


# ---------------------------------------------------------------------------
# Stochastic stipple
# ---------------------------------------------------------------------------


def stipple_levels(
    rows: np.ndarray, cols: np.ndarray, columns: int, threshold: float, noise_amount: float
) -> np.ndarray:
    """Per-cell decision level jittered by the seeded noise function."""
    noise = seeded_random(rows * columns + cols + 0.5)
    return 0.3 + (1 - threshold) * 0.4 + (noise - 0.5) * noise_amount


def noise_stipple(
    source: RasterBuffer,
    threshold: float,
    scale: float,
    options: DitherOptions,
) -> RasterBuffer:
    gray = 1.0 - darkness_map(source, options)
    cell = cell_size(scale)
    columns = math.ceil(source.width / cell)
    rows = (np.arange(source.height) // cell)[:, None]
    cols = (np.arange(source.width) // cell)[None, :]
    levels = stipple_levels(rows, cols, columns, threshold, options.noise_amount)
    values = np.where(gray > levels, 255, 0).astype(np.uint8)
    return RasterBuffer.from_gray(values)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def dither(
    dither_type: DitherType,
    source: RasterBuffer,
    threshold: float,
    scale: float,
    angle: float = 0.0,
    hardness: float = 1.0,
    options: DitherOptions | None = None,
) -> RasterBuffer:
    """Run one dither algorithm.

    Args:
        dither_type: Algorithm to run
        source: Preprocessed source buffer
        threshold: Layer density, 0-1
        scale: Cell / dot pitch in px
        angle: Grid or line angle in degrees
        hardness: Edge hardness for geometric halftones, 0-1
        options: Tone and geometry options

    Returns:
        New gray buffer of the source's size

    Raises:
        UnknownAlgorithmError: If dither_type is not a DitherType
    """
    options = options or DitherOptions()

    if dither_type in ORDERED_MATRICES:
        return ordered_dither(
            source, threshold, scale, ORDERED_MATRICES[dither_type], options
        )
    if dither_type in DIFFUSION_KERNELS or dither_type == DitherType.RIEMERSMA:
        return error_diffusion(source, threshold, scale, dither_type, options)
    if dither_type == DitherType.HALFTONE_CIRCLE:
        return halftone_circle(source, threshold, scale, angle, hardness, options)
    if dither_type == DitherType.HALFTONE_SQUARE:
        return halftone_square(source, threshold, scale, angle, hardness, options)
    if dither_type == DitherType.HALFTONE_LINES:
        return halftone_lines(source, threshold, scale, angle, hardness, options)
    if dither_type == DitherType.NOISE:
        return noise_stipple(source, threshold, scale, options)
    raise UnknownAlgorithmError(f"Unknown dither algorithm: {dither_type!r}")


def dither_layer(source: RasterBuffer, layer: Layer) -> RasterBuffer:
    """Dither a source buffer with a layer's parameters."""
    return dither(
        layer.dither_type,
        source,
        layer.threshold,
        layer.scale,
        layer.angle,
        layer.hardness,
        DitherOptions.from_layer(layer),
    )
