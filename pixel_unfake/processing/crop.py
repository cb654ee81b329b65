"""Align the pixel grid by cropping to the strongest edge phase."""

from __future__ import annotations

import logging
from typing import Tuple

import numpy as np

from ..raster import Raster
from .cv import CvScope, cv_scope
from .scale import gradient_profile

logger = logging.getLogger(__name__)


def _best_offset(profile: np.ndarray, scale: int) -> int:
    scores = [float(profile[offset::scale].sum()) for offset in range(scale)]
    return int(np.argmax(scores))


def find_optimal_crop(scope: CvScope, gray: np.ndarray, scale: int) -> Tuple[int, int]:
    """Return the ``(dx, dy)`` offset whose grid lines collect the most edge energy."""

    dx = _best_offset(gradient_profile(scope, gray, "horizontal"), scale)
    dy = _best_offset(gradient_profile(scope, gray, "vertical"), scale)
    logger.info("Optimal crop offset x=%d y=%d", dx, dy)
    return dx, dy


def snap_to_grid(raster: Raster, scale: int) -> Tuple[Raster, bool]:
    with cv_scope("grid snap") as scope:
        dx, dy = find_optimal_crop(scope, scope.gray(raster.pixels), scale)

    new_width = (raster.width - dx) // scale * scale
    new_height = (raster.height - dy) // scale * scale
    if new_width < scale or new_height < scale:
        logger.warning("Snapping would leave %dx%d pixels, skipping", new_width, new_height)
        return raster, False

    cropped = raster.pixels[dy : dy + new_height, dx : dx + new_width].copy()
    logger.info("Cropped to %dx%d from offset (%d, %d)", new_width, new_height, dx, dy)
    return Raster(cropped), True
