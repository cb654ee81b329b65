"""Integer-factor downscalers that collapse each block to one pixel."""

from __future__ import annotations

import logging
import warnings
from collections import Counter

import numpy as np

from ..errors import EmptyResult
from ..raster import Raster
from ..stats import dominant_or_mean, mode

logger = logging.getLogger(__name__)

BLOCK_METHODS = ("nearest", "median", "mode", "mean", "dom-mean")


def _blocks(pixels: np.ndarray, h_scale: int, v_scale: int, target_w: int, target_h: int) -> np.ndarray:
    """Return ``(target_h * target_w, v_scale * h_scale, 4)`` block views in scan order."""

    trimmed = pixels[: target_h * v_scale, : target_w * h_scale]
    grid = trimmed.reshape(target_h, v_scale, target_w, h_scale, 4).transpose(0, 2, 1, 3, 4)
    return grid.reshape(target_h * target_w, v_scale * h_scale, 4)


def _median_rounded(values: np.ndarray, axis: int) -> np.ndarray:
    return np.rint(np.median(values, axis=axis)).astype(np.uint8)


def downscale_block(
    raster: Raster,
    h_scale: int,
    v_scale: int,
    method: str = "median",
    dom_mean_threshold: float = 0.05,
) -> Raster:
    target_w = raster.width // h_scale
    target_h = raster.height // v_scale
    if target_w <= 0 or target_h <= 0:
        raise EmptyResult(f"Scale {h_scale}x{v_scale} leaves no pixels from a {raster.width}x{raster.height} image")

    if method == "nearest":
        ys = np.arange(target_h) * v_scale + v_scale // 2
        xs = np.arange(target_w) * h_scale + h_scale // 2
        return Raster(raster.pixels[np.ix_(ys, xs)].copy())

    if method not in BLOCK_METHODS:
        logger.warning("Unknown downscale method %r, falling back to median", method)
        method = "median"

    blocks = _blocks(raster.pixels, h_scale, v_scale, target_w, target_h)
    opaque = blocks[..., 3] > 128
    out = np.zeros((len(blocks), 4), dtype=np.uint8)
    out[:, 3] = _median_rounded(blocks[..., 3].astype(np.float64), axis=1)

    rgb = blocks[..., :3].astype(np.float64)
    counts = opaque.sum(axis=1)
    has_color = counts > 0

    if method == "mean":
        sums = (rgb * opaque[..., None]).sum(axis=1)
        means = sums / np.maximum(counts, 1)[:, None]
        out[has_color, :3] = np.floor(means[has_color] + 0.5)
    elif method == "median":
        masked = np.where(opaque[..., None], rgb, np.nan)
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            medians = np.nanmedian(masked[has_color], axis=1)
        out[has_color, :3] = np.rint(medians)
    else:
        aggregate = mode if method == "mode" else (lambda values: dominant_or_mean(values, dom_mean_threshold))
        for index in np.flatnonzero(has_color):
            colors = blocks[index][opaque[index], :3]
            out[index, :3] = [aggregate(colors[:, channel].tolist()) for channel in range(3)]

    return Raster(out.reshape(target_h, target_w, 4))


def downscale_by_dominant_color(raster: Raster, scale: int, threshold: float = 0.15) -> Raster:
    """Collapse blocks to their most common opaque color.

    Falls back to the rounded mean of the opaque pixels when no color covers
    at least ``threshold`` of them. Output alpha is binary.
    """

    target_w = raster.width // scale
    target_h = raster.height // scale
    if target_w <= 0 or target_h <= 0:
        raise EmptyResult(f"Scale {scale} leaves no pixels from a {raster.width}x{raster.height} image")

    blocks = _blocks(raster.pixels, scale, scale, target_w, target_h)
    alpha = np.median(blocks[..., 3].astype(np.float64), axis=1)
    opaque = blocks[..., 3] > 128
    packed = (
        (blocks[..., 0].astype(np.uint32) << 16) | (blocks[..., 1].astype(np.uint32) << 8) | blocks[..., 2]
    )

    out = np.zeros((len(blocks), 4), dtype=np.uint8)
    for index in np.flatnonzero(opaque.any(axis=1)):
        colors = packed[index][opaque[index]]
        color, count = Counter(colors.tolist()).most_common(1)[0]
        if count / len(colors) >= threshold:
            out[index, :3] = ((color >> 16) & 255, (color >> 8) & 255, color & 255)
        else:
            channels = np.stack([(colors >> 16) & 255, (colors >> 8) & 255, colors & 255], axis=1)
            out[index, :3] = np.floor(channels.mean(axis=0) + 0.5)
        out[index, 3] = 255 if alpha[index] > 128 else 0

    return Raster(out.reshape(target_h, target_w, 4))
