import numpy as np
import pytest

from pixel_unfake.errors import EmptyResult
from pixel_unfake.raster import Raster
from pixel_unfake.processing.adaptive import clamp_covariances, content_adaptive_downscale, initial_kernels
from pixel_unfake.processing.cv import cv_scope

pytest.importorskip("cv2")


def test_initial_kernels_sit_on_cell_centres() -> None:
    state = initial_kernels(12, 6, 4, 2)

    assert state.mu[0].tolist() == [1.5, 1.5]
    assert state.mu[-1].tolist() == [10.5, 4.5]
    assert state.sigma[0, 0, 0] == pytest.approx(1.0)
    assert state.sigma[0, 1, 1] == pytest.approx(1.0)
    assert state.nu.shape == (8, 3)


def test_clamp_covariances_bounds_singular_values() -> None:
    sigma = np.array([[[0.01, 0.0], [0.0, 0.01]], [[40.0, 0.0], [0.0, 1.0]]])

    with cv_scope("test") as scope:
        clamped = clamp_covariances(scope, sigma, 2.0)
        singular = scope.svd_2x2(clamped)[1]

    assert singular.min() >= 0.5 - 1e-9
    assert singular.max() <= 2.0 + 1e-9


def test_uniform_image_stays_uniform() -> None:
    pixels = np.full((24, 24, 4), (40, 160, 90, 255), dtype=np.uint8)

    result = content_adaptive_downscale(Raster(pixels), 8, 8, iterations=2)

    assert result.size == (8, 8)
    assert np.all(np.abs(result.pixels[..., :3].astype(int) - (40, 160, 90)) <= 2)
    assert np.all(result.alpha == 255)


def test_halves_keep_their_colors() -> None:
    pixels = np.zeros((24, 24, 4), dtype=np.uint8)
    pixels[:, :12] = (220, 20, 20, 255)
    pixels[:, 12:] = (20, 20, 220, 255)

    result = content_adaptive_downscale(Raster(pixels), 8, 8, iterations=2).pixels.astype(int)

    assert np.all(result[:, 0, 0] > result[:, 0, 2])
    assert np.all(result[:, -1, 2] > result[:, -1, 0])


@pytest.mark.parametrize("size", [(0, 4), (4, 0)])
def test_rejects_empty_target(size) -> None:
    with pytest.raises(EmptyResult):
        content_adaptive_downscale(Raster.blank(8, 8), *size)
