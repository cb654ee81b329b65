"""Detection of the native pixel size of upscaled pixel art."""

from __future__ import annotations

import logging
from typing import List, Sequence

import numpy as np

from ..config import SETTINGS
from ..errors import InputError, StageFailure
from ..raster import Raster
from ..stats import gcd_array, median, mode, round_half_up
from .cv import CvScope, cv_scope

logger = logging.getLogger(__name__)

TILE_COUNT = 3
TILE_OVERLAP = 0.25
MIN_TILE_SIDE = 50
MIN_ROI_SIDE = 30
MIN_TILE_STD = 5.0
MIN_RUNS = 10


def _run_lengths(packed: np.ndarray) -> np.ndarray:
    height, width = packed.shape
    boundaries = np.ones((height, width + 1), dtype=bool)
    boundaries[:, 1:width] = packed[:, 1:] != packed[:, :-1]
    # row ends sit one slot before the next row's start, so those gaps are
    # always 1 and drop out with the single-pixel runs
    runs = np.diff(np.flatnonzero(boundaries))
    return runs[runs > 1]


def runs_based_detect(raster: Raster) -> int:
    """GCD of all runs of identical pixels longer than one, along rows and columns."""

    if raster.width == 0 or raster.height == 0:
        return 1
    packed = raster.pixels.view(np.uint32)[..., 0]
    runs = np.concatenate([_run_lengths(packed), _run_lengths(packed.T)])
    if runs.size < MIN_RUNS:
        return 1
    scale = gcd_array(runs.tolist())
    logger.info("Runs-based detection found scale %d", scale)
    return max(1, scale)


def detect_scale_from_signal(signal: Sequence[float]) -> int:
    values = np.asarray(signal, dtype=np.float64)
    if values.size < 3:
        return 1

    threshold = values.mean() + 1.5 * values.std()
    inner = values[1:-1]
    candidates = np.flatnonzero((inner > threshold) & (inner > values[:-2]) & (inner > values[2:])) + 1

    peaks: List[int] = []
    for index in candidates.tolist():
        if not peaks or index - peaks[-1] > 2:
            peaks.append(index)
    if len(peaks) <= 2:
        return 1

    spacings = [b - a for a, b in zip(peaks, peaks[1:])]
    median_spacing = median(spacings)
    close = [s for s in spacings if abs(s - median_spacing) <= 2]
    if len(close) / len(spacings) > 0.7:
        return round_half_up(median_spacing)

    fallback = mode(spacings)
    logger.debug("Peak spacings disagree %s, using mode %d", spacings, fallback)
    return fallback if fallback > 1 else 1


def gradient_profile(scope: CvScope, gray: np.ndarray, direction: str) -> np.ndarray:
    """Absolute Sobel response summed per column (horizontal) or per row (vertical)."""

    if direction == "horizontal":
        return np.abs(scope.sobel(gray, 1, 0)).sum(axis=0)
    return np.abs(scope.sobel(gray, 0, 1)).sum(axis=1)


def _single_region(scope: CvScope, gray: np.ndarray) -> int:
    height, width = gray.shape
    x, y = int(width * 0.125), int(height * 0.125)
    roi_w, roi_h = int(width * 0.75), int(height * 0.75)
    if roi_w < 3 or roi_h < 3:
        logger.warning("ROI %dx%d is too small for edge detection", roi_w, roi_h)
        return 1

    roi = gray[y : y + roi_h, x : x + roi_w]
    h_scale = detect_scale_from_signal(gradient_profile(scope, roi, "horizontal"))
    v_scale = detect_scale_from_signal(gradient_profile(scope, roi, "vertical"))

    if h_scale > 1 and v_scale > 1 and abs(h_scale - v_scale) <= 2:
        return round_half_up((h_scale + v_scale) / 2)
    result = max(h_scale, v_scale, 1)
    logger.info("Single region detection found scale %d (h=%d, v=%d)", result, h_scale, v_scale)
    return result


def legacy_edge_aware_detect(raster: Raster) -> int:
    with cv_scope("legacy edge detection") as scope:
        return _single_region(scope, scope.gray(raster.pixels))


def _tiled(scope: CvScope, gray: np.ndarray) -> int:
    height, width = gray.shape
    tile_w, tile_h = width // TILE_COUNT, height // TILE_COUNT
    overlap_w, overlap_h = int(tile_w * TILE_OVERLAP), int(tile_h * TILE_OVERLAP)

    if tile_w < MIN_TILE_SIDE or tile_h < MIN_TILE_SIDE:
        logger.warning("Image too small for tiled detection, using a single region")
        return _single_region(scope, gray)

    scales: List[int] = []
    for ty in range(TILE_COUNT):
        for tx in range(TILE_COUNT):
            x = max(0, tx * tile_w - overlap_w)
            y = max(0, ty * tile_h - overlap_h)
            roi_w = min(width - x, tile_w + 2 * overlap_w)
            roi_h = min(height - y, tile_h + 2 * overlap_h)
            if roi_w < MIN_ROI_SIDE or roi_h < MIN_ROI_SIDE:
                continue

            tile = gray[y : y + roi_h, x : x + roi_w]
            _, std = scope.mean_std(tile)
            if std < MIN_TILE_STD:
                logger.debug("Skipping tile (%d,%d): low variance", tx, ty)
                continue

            h_scale = detect_scale_from_signal(gradient_profile(scope, tile, "horizontal"))
            v_scale = detect_scale_from_signal(gradient_profile(scope, tile, "vertical"))
            scales.extend(s for s in (h_scale, v_scale) if s > 1)
            logger.debug("Tile (%d,%d) scales: h=%d v=%d", tx, ty, h_scale, v_scale)

    if not scales:
        logger.warning("Tiled detection found no scale, trying a single region")
        return _single_region(scope, gray)

    best = mode(scales) or 1
    logger.info("Edge-aware detection scales %s, best guess %d", scales, best)
    return best


def edge_aware_detect(raster: Raster) -> int:
    if raster.width * raster.height > SETTINGS.edge_detect_max_pixels:
        logger.warning("Image is over %d pixels, using runs-based detection", SETTINGS.edge_detect_max_pixels)
        return runs_based_detect(raster)

    try:
        with cv_scope("edge detection") as scope:
            return _tiled(scope, scope.gray(raster.pixels))
    except StageFailure:
        logger.exception("Edge-aware detection failed")
        return 1


def detect_scale(raster: Raster, method: str = "auto", edge_method: str = "tiled") -> int:
    edge = legacy_edge_aware_detect if edge_method == "legacy" else edge_aware_detect
    if method == "runs":
        return runs_based_detect(raster)
    if method == "edge":
        return edge(raster)
    if method == "auto":
        scale = runs_based_detect(raster)
        if scale <= 1:
            logger.info("Runs-based detection failed, trying edge-aware detection")
            scale = edge(raster)
        return scale
    raise InputError(f"Unknown scale detection method: {method}")
