import numpy as np
import pytest

from pixel_unfake.errors import EmptyResult
from pixel_unfake.raster import Raster
from pixel_unfake.processing.downscale import downscale_block, downscale_by_dominant_color


def solid_block(colors) -> Raster:
    """2x2 block from four RGBA tuples in scan order."""
    return Raster(np.array(colors, dtype=np.uint8).reshape(2, 2, 4))


def test_nearest_samples_block_centres() -> None:
    pixels = np.zeros((4, 4, 4), dtype=np.uint8)
    pixels[..., 0] = np.arange(16).reshape(4, 4)
    pixels[..., 3] = 255

    result = downscale_block(Raster(pixels), 2, 2, "nearest")

    assert result.pixels[..., 0].tolist() == [[5, 7], [13, 15]]


@pytest.mark.parametrize("method", ["median", "mean", "mode", "dom-mean"])
def test_transparent_pixels_do_not_tint_color(method: str) -> None:
    block = solid_block([(200, 10, 10, 255), (200, 10, 10, 255), (200, 10, 10, 255), (0, 255, 0, 0)])

    result = downscale_block(block, 2, 2, method)

    assert tuple(result.pixels[0, 0, :3]) == (200, 10, 10)
    assert result.pixels[0, 0, 3] == 255


def test_alpha_is_median_of_whole_block() -> None:
    block = solid_block([(1, 1, 1, 255), (1, 1, 1, 0), (1, 1, 1, 0), (1, 1, 1, 0)])

    result = downscale_block(block, 2, 2, "median")

    assert result.pixels[0, 0, 3] == 0
    assert tuple(result.pixels[0, 0, :3]) == (1, 1, 1)


def test_fully_transparent_block_has_no_color() -> None:
    result = downscale_block(Raster(np.full((2, 2, 4), (90, 90, 90, 10), dtype=np.uint8)), 2, 2, "mean")

    assert result.pixels.tolist() == [[[0, 0, 0, 10]]]


@pytest.mark.parametrize("method", ["median", "mean", "mode"])
def test_output_stays_within_block_range(method: str) -> None:
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 256, size=(12, 12, 4), dtype=np.uint8)
    pixels[..., 3] = rng.choice([0, 255], size=(12, 12), p=[0.2, 0.8])

    result = downscale_block(Raster(pixels), 3, 3, method).pixels

    for ty in range(4):
        for tx in range(4):
            block = pixels[ty * 3 : ty * 3 + 3, tx * 3 : tx * 3 + 3].reshape(-1, 4)
            opaque = block[block[:, 3] > 128]
            if not len(opaque):
                continue
            for channel in range(3):
                assert opaque[:, channel].min() <= result[ty, tx, channel] <= opaque[:, channel].max()


def test_block_output_size_and_oversized_scale() -> None:
    image = Raster(np.zeros((10, 7, 4), dtype=np.uint8))

    assert downscale_block(image, 3, 2).size == (2, 5)
    with pytest.raises(EmptyResult):
        downscale_block(image, 8, 8)
    with pytest.raises(EmptyResult):
        downscale_by_dominant_color(image, 11)


def test_unknown_method_falls_back_to_median() -> None:
    block = solid_block([(10, 0, 0, 255), (20, 0, 0, 255), (30, 0, 0, 255), (200, 0, 0, 255)])

    assert downscale_block(block, 2, 2, "bicubic").pixels[0, 0, 0] == 25


def test_dominant_prefers_majority_color() -> None:
    block = solid_block([(255, 0, 0, 255), (255, 0, 0, 255), (255, 0, 0, 255), (0, 0, 255, 255)])

    result = downscale_by_dominant_color(block, 2)

    assert result.pixels.tolist() == [[[255, 0, 0, 255]]]


def test_dominant_falls_back_to_mean_below_threshold() -> None:
    block = solid_block([(0, 0, 0, 255), (100, 0, 0, 255), (200, 0, 0, 255), (0, 0, 100, 255)])

    result = downscale_by_dominant_color(block, 2, threshold=0.5)

    assert result.pixels.tolist() == [[[75, 0, 25, 255]]]


def test_dominant_ties_keep_first_seen_color() -> None:
    block = solid_block([(0, 255, 0, 255), (9, 9, 9, 255), (9, 9, 9, 255), (0, 255, 0, 255)])

    result = downscale_by_dominant_color(block, 2)

    assert tuple(result.pixels[0, 0, :3]) == (0, 255, 0)


def test_dominant_transparent_and_binary_alpha() -> None:
    pixels = np.zeros((2, 4, 4), dtype=np.uint8)
    pixels[:, 2:] = (50, 60, 70, 200)

    result = downscale_by_dominant_color(Raster(pixels), 2)

    assert result.pixels.tolist() == [[[0, 0, 0, 0], [50, 60, 70, 255]]]
