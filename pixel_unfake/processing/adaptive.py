"""Content-adaptive downscaling.

Every output pixel is a 2D Gaussian kernel over the source image with its
own position, shape and Lab color. The kernels are refined with a few rounds
of expectation-maximisation; after each round the kernel shapes are clamped
through an SVD so they neither collapse nor blur across the whole image.

Kernels only see a window of +/-2 source-pixel ratios around their centre.
Those windows have a fixed upper size, so neighbour weights live in plain
``(kernels, window_h, window_w)`` arrays filled chunk by chunk.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..config import SETTINGS
from ..errors import EmptyResult
from ..raster import Raster
from ..stats import multiply_2x2
from .cv import CvScope, cv_scope

logger = logging.getLogger(__name__)

MIN_WEIGHT = 1e-5
MIN_SINGULAR_VALUE = 0.5
CHUNK_ELEMENTS = 1 << 21


@dataclass
class KernelState:
    mu: np.ndarray  # (K, 2) x/y centres
    sigma: np.ndarray  # (K, 2, 2)
    nu: np.ndarray  # (K, 3) Lab colors


@dataclass
class _WindowChunk:
    start: int
    stop: int
    xs: np.ndarray
    ys: np.ndarray
    weights: np.ndarray


def initial_kernels(source_w: int, source_h: int, target_w: int, target_h: int) -> KernelState:
    rx, ry = source_w / target_w, source_h / target_h
    yk, xk = np.mgrid[0:target_h, 0:target_w]
    count = target_w * target_h
    mu = np.stack([(xk.ravel() + 0.5) * rx, (yk.ravel() + 0.5) * ry], axis=1)
    sigma = np.zeros((count, 2, 2))
    sigma[:, 0, 0] = (rx / 3) ** 2
    sigma[:, 1, 1] = (ry / 3) ** 2
    nu = np.tile(np.array([50.0, 0.0, 0.0]), (count, 1))
    return KernelState(mu=mu, sigma=sigma, nu=nu)


def _window(centres: np.ndarray, radius: float, limit: int, size: int) -> Tuple[np.ndarray, np.ndarray]:
    low = np.maximum(0, np.floor(centres - 2 * radius)).astype(np.int64)
    high = np.minimum(limit, np.ceil(centres + 2 * radius)).astype(np.int64)
    coords = low[:, None] + np.arange(size)
    valid = coords < high[:, None]
    return np.minimum(coords, limit - 1), valid


def _expectation(
    state: KernelState,
    shape: Tuple[int, int],
    ratios: Tuple[float, float],
    window: Tuple[int, int],
) -> Tuple[List[_WindowChunk], np.ndarray]:
    height, width = shape
    rx, ry = ratios
    win_w, win_h = window
    gamma_sum = np.full(width * height, 1e-9)
    chunks: List[_WindowChunk] = []
    step = max(1, CHUNK_ELEMENTS // (win_w * win_h))

    for start in range(0, len(state.mu), step):
        stop = min(start + step, len(state.mu))
        mu = state.mu[start:stop]
        sigma = state.sigma[start:stop]

        xs, valid_x = _window(mu[:, 0], rx, width, win_w)
        ys, valid_y = _window(mu[:, 1], ry, height, win_h)
        dx = (xs - mu[:, 0:1])[:, None, :]
        dy = (ys - mu[:, 1:2])[:, :, None]

        inv_det = 1.0 / (sigma[:, 0, 0] * sigma[:, 1, 1] - sigma[:, 0, 1] * sigma[:, 1, 0] + 1e-9)
        inv_xx = (sigma[:, 1, 1] * inv_det)[:, None, None]
        inv_xy = (-sigma[:, 0, 1] * inv_det)[:, None, None]
        inv_yy = (sigma[:, 0, 0] * inv_det)[:, None, None]

        exponent = dx * dx * inv_xx + 2 * dx * dy * inv_xy + dy * dy * inv_yy
        with np.errstate(over="ignore", under="ignore"):
            weights = np.exp(-0.5 * exponent)
        weights[~(valid_y[:, :, None] & valid_x[:, None, :]) | (weights <= MIN_WEIGHT)] = 0.0
        weights /= (1e-9 + weights.sum(axis=(1, 2)))[:, None, None]

        flat = ys[:, :, None] * width + xs[:, None, :]
        gamma_sum += np.bincount(flat.ravel(), weights=weights.ravel(), minlength=width * height)
        chunks.append(_WindowChunk(start, stop, xs, ys, weights.astype(np.float32)))

    return chunks, gamma_sum


def _maximisation(
    chunks: List[_WindowChunk],
    gamma_sum: np.ndarray,
    lab: np.ndarray,
    width: int,
    count: int,
) -> KernelState:
    mu = np.empty((count, 2))
    nu = np.empty((count, 3))
    sigma = np.empty((count, 2, 2))

    for chunk in chunks:
        flat = chunk.ys[:, :, None] * width + chunk.xs[:, None, :]
        gamma = chunk.weights / gamma_sum[flat]
        total = 1e-9 + gamma.sum(axis=(1, 2))
        along_x = gamma.sum(axis=1)
        along_y = gamma.sum(axis=2)

        mean_x = (along_x * chunk.xs).sum(axis=1) / total
        mean_y = (along_y * chunk.ys).sum(axis=1) / total
        sl = slice(chunk.start, chunk.stop)
        mu[sl, 0] = mean_x
        mu[sl, 1] = mean_y
        nu[sl] = np.einsum("kyx,kyxc->kc", gamma, lab[flat]) / total[:, None]

        ddx = chunk.xs - mean_x[:, None]
        ddy = chunk.ys - mean_y[:, None]
        sigma[sl, 0, 0] = (along_x * ddx * ddx).sum(axis=1) / total
        sigma[sl, 1, 1] = (along_y * ddy * ddy).sum(axis=1) / total
        cross = np.einsum("kyx,ky,kx->k", gamma, ddy, ddx) / total
        sigma[sl, 0, 1] = cross
        sigma[sl, 1, 0] = cross

    return KernelState(mu=mu, sigma=sigma, nu=nu)


def clamp_covariances(scope: CvScope, sigma: np.ndarray, max_singular: float) -> np.ndarray:
    u, singular, vt = scope.svd_2x2(sigma)
    singular = np.clip(singular, MIN_SINGULAR_VALUE, max_singular)
    diagonal = np.zeros_like(sigma)
    diagonal[:, 0, 0] = singular[:, 0]
    diagonal[:, 1, 1] = singular[:, 1]
    return multiply_2x2(multiply_2x2(u, diagonal), vt)


def content_adaptive_downscale(
    raster: Raster,
    target_w: int,
    target_h: int,
    iterations: Optional[int] = None,
) -> Raster:
    if target_w < 1 or target_h < 1:
        raise EmptyResult(f"Target size {target_w}x{target_h} has no pixels")
    iterations = SETTINGS.adaptive_iterations if iterations is None else iterations
    logger.warning("Content-adaptive downscaling is CPU intensive and may take a while")

    width, height = raster.width, raster.height
    rx, ry = width / target_w, height / target_h
    max_singular = max(1.0, 0.5 * (rx + ry) / 2.0)
    window = (math.ceil(4 * rx) + 2, math.ceil(4 * ry) + 2)
    logger.debug("Singular value clamp [%.1f, %.2f], window %s", MIN_SINGULAR_VALUE, max_singular, window)

    with cv_scope("content-adaptive downscale") as scope:
        lab = scope.rgb_to_lab(np.ascontiguousarray(raster.pixels[..., :3])).reshape(-1, 3)
        state = initial_kernels(width, height, target_w, target_h)
        count = target_w * target_h

        for iteration in range(iterations):
            logger.debug("EM iteration %d/%d", iteration + 1, iterations)
            chunks, gamma_sum = _expectation(state, (height, width), (rx, ry), window)
            updated = _maximisation(chunks, gamma_sum, lab, width, count)
            updated.sigma = clamp_covariances(scope, updated.sigma, max_singular)
            state = updated

        rgb = scope.lab_to_rgb(state.nu.reshape(target_h, target_w, 3))
        alpha = scope.resize_area(np.ascontiguousarray(raster.alpha), target_w, target_h)

    pixels = np.dstack([rgb, alpha.reshape(target_h, target_w)])
    return Raster(pixels)
