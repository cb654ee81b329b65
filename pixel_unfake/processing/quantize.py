"""Palette reduction without dithering."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..errors import StageFailure
from ..raster import Color, Palette, Raster, palette_of
from .cleanup import finalize_pixels
from .cv import cv_scope

logger = logging.getLogger(__name__)

WU_BITS = 5
_WU_SIDE = (1 << WU_BITS) + 1

Cube = Tuple[int, int, int, int, int, int]


@dataclass(frozen=True)
class QuantizeResult:
    raster: Raster
    colors_used: int
    palette: Palette


def _cumulative_moments(rgb: np.ndarray) -> np.ndarray:
    """Summed-volume tables over a 5-bit RGB histogram.

    The last axis holds pixel count, the three channel sums and the summed
    squared norm. Index 0 of every color axis is zero padding.
    """

    values = rgb.reshape(-1, 3).astype(np.int64)
    bins = (values >> (8 - WU_BITS)) + 1
    index = (bins[:, 0], bins[:, 1], bins[:, 2])
    weights = (np.ones(len(values)), values[:, 0], values[:, 1], values[:, 2], (values**2).sum(axis=1))

    moments = np.zeros((_WU_SIDE, _WU_SIDE, _WU_SIDE, len(weights)), dtype=np.float64)
    for channel, weight in enumerate(weights):
        np.add.at(moments[..., channel], index, weight)
    return moments.cumsum(axis=0).cumsum(axis=1).cumsum(axis=2)


def _box_sum(moments: np.ndarray, cube: Cube) -> np.ndarray:
    r0, r1, g0, g1, b0, b1 = cube
    return (
        moments[r1, g1, b1]
        - moments[r1, g1, b0]
        - moments[r1, g0, b1]
        - moments[r0, g1, b1]
        + moments[r1, g0, b0]
        + moments[r0, g1, b0]
        + moments[r0, g0, b1]
        - moments[r0, g0, b0]
    )


def _variance(totals: np.ndarray) -> float:
    if totals[0] == 0:
        return 0.0
    return float(totals[4] - (totals[1:4] ** 2).sum() / totals[0])


def _best_cut(moments: np.ndarray, cube: Cube) -> Optional[Tuple[Cube, Cube]]:
    """Split ``cube`` on the axis and plane that leave the least summed variance."""

    whole = _box_sum(moments, cube)
    best_score = 0.0
    best: Optional[Tuple[Cube, Cube]] = None
    for axis in range(3):
        low, high = cube[2 * axis], cube[2 * axis + 1]
        for cut in range(low + 1, high):
            lower = list(cube)
            lower[2 * axis + 1] = cut
            first = _box_sum(moments, tuple(lower))
            second = whole - first
            if first[0] == 0 or second[0] == 0:
                continue
            # maximising the between-box term minimises the within-box variance
            score = (first[1:4] ** 2).sum() / first[0] + (second[1:4] ** 2).sum() / second[0]
            if score > best_score:
                upper = list(cube)
                upper[2 * axis] = cut
                best_score = score
                best = (tuple(lower), tuple(upper))
    return best


def wu_palette(rgb: np.ndarray, max_colors: int) -> np.ndarray:
    """Xiaolin Wu's variance-minimizing palette for an ``(N, 3)`` color sample.

    The box with the largest variance is split until ``max_colors`` boxes
    exist or no box can be split any further. Each palette entry is the
    rounded mean of the pixels in its box.
    """

    moments = _cumulative_moments(rgb)
    side = _WU_SIDE - 1
    cubes: List[Cube] = [(0, side, 0, side, 0, side)]
    variances = [_variance(_box_sum(moments, cubes[0]))]

    while len(cubes) < max_colors:
        target = int(np.argmax(variances))
        if variances[target] <= 0:
            break
        split = _best_cut(moments, cubes[target])
        if split is None:
            # all pixels of this box share one histogram bin
            variances[target] = 0.0
            continue
        cubes[target], extra = split
        cubes.append(extra)
        variances[target] = _variance(_box_sum(moments, cubes[target]))
        variances.append(_variance(_box_sum(moments, extra)))

    totals = np.array([_box_sum(moments, cube) for cube in cubes])
    means = totals[:, 1:4] / totals[:, :1]
    logger.debug("Wu quantizer built %d boxes", len(cubes))
    return np.clip(np.floor(means + 0.5), 0, 255).astype(np.uint8)


def build_palette(rgb: np.ndarray, max_colors: int) -> np.ndarray:
    """Palette of at most ``max_colors`` entries for an ``(N, 3)`` array of colors.

    A sample that already fits is its own palette.
    """

    unique = np.unique(rgb.reshape(-1, 3), axis=0)
    if len(unique) <= max_colors:
        return unique.astype(np.uint8)
    return wu_palette(rgb, max_colors)


def nearest_palette_indices(rgb: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """Index of the closest palette entry for each row of ``rgb`` (first one on ties)."""

    packed = (rgb[:, 0].astype(np.uint32) << 16) | (rgb[:, 1].astype(np.uint32) << 8) | rgb[:, 2]
    unique, inverse = np.unique(packed, return_inverse=True)
    colors = np.stack([(unique >> 16) & 255, (unique >> 8) & 255, unique & 255], axis=1).astype(np.int32)
    entries = palette.astype(np.int32)

    chunk = max(1, 2_000_000 // max(1, len(entries)))
    nearest = np.empty(len(colors), dtype=np.intp)
    for start in range(0, len(colors), chunk):
        block = colors[start : start + chunk]
        distances = ((block[:, None, :] - entries[None, :, :]) ** 2).sum(axis=2)
        nearest[start : start + chunk] = distances.argmin(axis=1)
    return nearest[inverse.reshape(-1)]


def remap_to_palette(raster: Raster, palette: np.ndarray) -> Raster:
    pixels = raster.pixels.copy()
    flat = pixels.reshape(-1, 4)
    if flat.size:
        flat[:, :3] = palette[nearest_palette_indices(flat[:, :3], palette)]
    return Raster(pixels)


def quantize_image(
    raster: Raster,
    max_colors: int,
    fixed_palette: Optional[Sequence[Color]] = None,
) -> QuantizeResult:
    if not 1 <= max_colors <= 256:
        raise StageFailure("quantize", f"max_colors must be between 1 and 256, got {max_colors}")

    if fixed_palette:
        palette = np.array([color[:3] for color in fixed_palette], dtype=np.uint8)
    else:
        opaque = raster.pixels[raster.alpha > 128][:, :3]
        if opaque.size == 0:
            result = finalize_pixels(raster)
            return QuantizeResult(result, 0, ())
        palette = build_palette(opaque, max_colors)

    result = finalize_pixels(remap_to_palette(raster, palette))
    used = palette_of(result)
    logger.debug("Quantized to %d colors (palette of %d)", len(used), len(palette))
    return QuantizeResult(result, len(used), used)


def detect_optimal_color_count(
    raster: Raster,
    downsample_to: int = 64,
    color_quantize_factor: int = 48,
    dominance_threshold: float = 0.015,
    max_colors: int = 32,
) -> int:
    """Estimate how many colors the artwork really uses.

    The image is shrunk and blurred so anti-aliasing and noise merge into
    their neighbours, then colors are bucketed coarsely and only buckets
    holding a meaningful share of the pixels are counted.
    """

    height = max(1, round(downsample_to * raster.height / max(1, raster.width)))
    with cv_scope("color count detection") as scope:
        small = scope.resize_area(raster.pixels, downsample_to, height)
        small = scope.median_blur(small, 5)
        small = scope.gaussian_blur(small, 5, 1)

    total = small.shape[0] * small.shape[1]
    kept = small.reshape(-1, 4)
    kept = kept[kept[:, 3] >= 200][:, :3].astype(np.float64)
    buckets = (np.floor(kept / color_quantize_factor + 0.5) * color_quantize_factor).astype(np.int32)
    if buckets.size:
        _, counts = np.unique(buckets, axis=0, return_counts=True)
    else:
        counts = np.zeros(0, dtype=np.int64)

    min_pixels = max(3, round(total * dominance_threshold))
    significant = counts[counts >= min_pixels]
    found = len(significant)
    if found > max_colors:
        strict = max(min_pixels, round(total * 0.02))
        found = int((significant >= strict).sum())
        logger.debug("Tightened dominance filter to %d colors", found)

    result = max(2, min(found, max_colors))
    logger.info("Auto-detected color count %d from %d buckets", result, len(counts))
    return result
