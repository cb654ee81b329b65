"""Alpha and shape cleanup passes."""

from __future__ import annotations

import numpy as np

from ..raster import Raster
from .cv import cv_scope


def morphological_cleanup(raster: Raster) -> Raster:
    """Open then close with a 2x2 kernel to drop specks and fill pinholes."""

    with cv_scope("morphological cleanup") as scope:
        opened = scope.morph(raster.pixels, "open", (2, 2))
        closed = scope.morph(opened, "close", (2, 2))
    return Raster(closed)


def alpha_binarization(raster: Raster, threshold: int = 128) -> Raster:
    pixels = raster.pixels.copy()
    pixels[..., 3] = np.where(pixels[..., 3] >= threshold, 255, 0)
    return Raster(pixels)


def finalize_pixels(raster: Raster) -> Raster:
    """Make every pixel either fully opaque or fully transparent black."""

    pixels = raster.pixels.copy()
    transparent = pixels[..., 3] < 128
    pixels[transparent] = 0
    pixels[~transparent, 3] = 255
    return Raster(pixels)


def jaggy_cleaner(raster: Raster) -> Raster:
    """Remove opaque pixels that touch the shape through a single corner only.

    Border pixels are never touched. A pixel goes when none of its four
    orthogonal neighbours is opaque and exactly one diagonal neighbour is.
    """

    pixels = raster.pixels.copy()
    if raster.width < 3 or raster.height < 3:
        return Raster(pixels)

    opaque = pixels[..., 3] > 128
    orthogonal = np.zeros_like(opaque, dtype=np.int8)
    orthogonal[1:-1, 1:-1] = (
        opaque[:-2, 1:-1].astype(np.int8) + opaque[2:, 1:-1] + opaque[1:-1, :-2] + opaque[1:-1, 2:]
    )
    interior = np.zeros_like(opaque)
    interior[1:-1, 1:-1] = True
    candidates = np.argwhere(opaque & interior & (orthogonal == 0))

    # removals never change an orthogonal count, only diagonal ones, so
    # candidates are fixed up front and diagonals read the live mask
    live = opaque.astype(np.int8)
    for y, x in candidates:
        diagonal = live[y - 1, x - 1] + live[y - 1, x + 1] + live[y + 1, x - 1] + live[y + 1, x + 1]
        if diagonal == 1:
            pixels[y, x] = 0
            live[y, x] = 0
    return Raster(pixels)
