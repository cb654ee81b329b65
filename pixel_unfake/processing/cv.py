"""Scoped access to the OpenCV routines used by the processing stages.

Every array produced through a :class:`CvScope` is tracked and dropped when
the scope exits, whether the stage finished or raised. OpenCV errors raised
inside a scope surface as :class:`StageFailure`.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Tuple

import numpy as np

from ..errors import DependencyUnavailable, StageFailure

logger = logging.getLogger(__name__)

_cv2 = None


def load_cv():
    global _cv2
    if _cv2 is None:
        try:
            import cv2
        except ImportError as exc:
            raise DependencyUnavailable(f"OpenCV could not be loaded: {exc}") from exc
        _cv2 = cv2
    return _cv2


class CvScope:
    def __init__(self, cv, stage: str) -> None:
        self.cv = cv
        self.stage = stage
        self._tracked: List[np.ndarray] = []

    @property
    def live(self) -> int:
        return len(self._tracked)

    def track(self, array):
        self._tracked.append(array)
        return array

    def release(self) -> int:
        released = len(self._tracked)
        self._tracked.clear()
        return released

    def gray(self, rgba: np.ndarray) -> np.ndarray:
        return self.track(self.cv.cvtColor(rgba, self.cv.COLOR_RGBA2GRAY))

    def sobel(self, gray: np.ndarray, dx: int, dy: int) -> np.ndarray:
        return self.track(self.cv.Sobel(gray, self.cv.CV_32F, dx, dy, ksize=3))

    def mean_std(self, gray: np.ndarray) -> Tuple[float, float]:
        mean, std = self.cv.meanStdDev(gray)
        return float(mean[0][0]), float(std[0][0])

    def median_blur(self, image: np.ndarray, ksize: int) -> np.ndarray:
        return self.track(self.cv.medianBlur(image, ksize))

    def gaussian_blur(self, image: np.ndarray, ksize: int, sigma: float = 0) -> np.ndarray:
        return self.track(self.cv.GaussianBlur(image, (ksize, ksize), sigma))

    def bilateral(self, rgb: np.ndarray, diameter: int, sigma_color: float, sigma_space: float) -> np.ndarray:
        return self.track(self.cv.bilateralFilter(rgb, diameter, sigma_color, sigma_space))

    def morph(self, image: np.ndarray, operation: str, kernel: Tuple[int, int]) -> np.ndarray:
        op = {"open": self.cv.MORPH_OPEN, "close": self.cv.MORPH_CLOSE}[operation]
        structuring = self.track(np.ones(kernel, dtype=np.uint8))
        return self.track(self.cv.morphologyEx(image, op, structuring))

    def resize_area(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        return self.track(self.cv.resize(image, (width, height), interpolation=self.cv.INTER_AREA))

    def rgb_to_lab(self, rgb: np.ndarray) -> np.ndarray:
        scaled = self.track(rgb.astype(np.float32) / 255.0)
        return self.track(self.cv.cvtColor(scaled, self.cv.COLOR_RGB2Lab))

    def lab_to_rgb(self, lab: np.ndarray) -> np.ndarray:
        rgb = self.track(self.cv.cvtColor(lab.astype(np.float32), self.cv.COLOR_Lab2RGB))
        return self.track(np.clip(np.rint(rgb * 255.0), 0, 255).astype(np.uint8))

    def svd_2x2(self, matrices: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        u, s, vt = np.linalg.svd(matrices)
        return self.track(u), self.track(s), self.track(vt)

    def find_contours(self, mask: np.ndarray):
        found = self.cv.findContours(mask, self.cv.RETR_CCOMP, self.cv.CHAIN_APPROX_NONE)
        contours, hierarchy = found[-2], found[-1]
        self.track(contours)
        return contours, hierarchy

    def approx_polygon(self, contour: np.ndarray, epsilon: float) -> np.ndarray:
        if epsilon <= 0:
            return contour
        return self.track(self.cv.approxPolyDP(contour, epsilon, True))


@contextmanager
def cv_scope(stage: str = "cv") -> Iterator[CvScope]:
    cv = load_cv()
    scope = CvScope(cv, stage)
    try:
        yield scope
    except cv.error as exc:
        raise StageFailure(stage, str(exc).strip()) from exc
    finally:
        released = scope.release()
        logger.debug("%s: released %d tracked buffers", stage, released)
