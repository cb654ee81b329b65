import numpy as np

from pixel_unfake.raster import Raster
from pixel_unfake.processing.crop import find_optimal_crop, snap_to_grid
from pixel_unfake.processing.cv import cv_scope

COLORS = np.array([[255, 0, 0], [0, 255, 0], [0, 0, 255], [255, 255, 0]], dtype=np.uint8)


def blocks(block: int, count: int, offset: int = 0) -> Raster:
    size = block * count
    ys, xs = np.mgrid[0:size, 0:size]
    index = (((xs + block - offset) // block) + 2 * ((ys + block - offset) // block)) % 4
    pixels = np.full((size, size, 4), 255, dtype=np.uint8)
    pixels[..., :3] = COLORS[index]
    return Raster(pixels)


def test_aligned_grid_keeps_origin() -> None:
    image = blocks(8, 8)

    with cv_scope() as scope:
        assert find_optimal_crop(scope, scope.gray(image.pixels), 8) == (0, 0)


def test_shifted_grid_offset_lands_on_block_edge() -> None:
    image = blocks(4, 10, offset=2)

    with cv_scope() as scope:
        dx, dy = find_optimal_crop(scope, scope.gray(image.pixels), 4)

    assert dx in (1, 2)
    assert dy in (1, 2)


def test_snap_trims_to_multiples_of_scale() -> None:
    image = Raster(blocks(4, 10, offset=2).pixels[:, :39])

    snapped, applied = snap_to_grid(image, 4)

    assert applied
    assert snapped.width % 4 == 0
    assert snapped.height % 4 == 0
    assert snapped.width <= 39 and snapped.height <= 40


def test_snap_skipped_when_smaller_than_one_block() -> None:
    image = Raster(np.zeros((3, 3, 4), dtype=np.uint8))

    snapped, applied = snap_to_grid(image, 4)

    assert not applied
    assert snapped is image
