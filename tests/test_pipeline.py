import threading

import numpy as np
import pytest

from pixel_unfake import config
from pixel_unfake.errors import EmptyResult, InputError, PipelineCancelled, StageFailure
from pixel_unfake.infrastructure.cache import Session
from pixel_unfake.options import PipelineOptions
from pixel_unfake.raster import Color, Raster
from pixel_unfake.processing import pipeline

pytest.importorskip("cv2")

COLORS = [(255, 0, 0, 255), (0, 255, 0, 255), (0, 0, 255, 255), (255, 255, 0, 255)]


def upscaled_art(block: int = 32, count: int = 8) -> Raster:
    """``count`` x ``count`` art cells, each colored by ``(bx + 2 * by) % 4`` and blown up by ``block``."""

    ys, xs = np.mgrid[0 : block * count, 0 : block * count]
    index = (xs // block + 2 * (ys // block)) % 4
    return Raster(np.array(COLORS, dtype=np.uint8)[index])


def test_detects_scale_and_restores_native_art() -> None:
    result = pipeline.process_image(upscaled_art())

    assert result.scale == 32
    assert result.raster.size == (8, 8)
    assert set(result.palette) == {Color(*color) for color in COLORS}
    assert result.raster.pixels[0, 1].tolist() == list(COLORS[1])
    assert result.png.startswith(b"\x89PNG")

    steps = result.manifest.to_dict()["processing_steps"]
    assert steps["downscaling"]["applied"] is True
    assert steps["color_quantization"]["initial_colors"] == 4
    assert result.manifest.to_dict()["final_size"] == [8, 8]


def test_accepts_encoded_bytes() -> None:
    result = pipeline.process_image(upscaled_art(8, 4).encode_png())

    assert result.raster.size == (4, 4)


def test_transparent_image_collapses_to_blank() -> None:
    result = pipeline.process_image(Raster.blank(64, 64))

    assert result.raster.size == (1, 1)
    assert result.palette == ()


def test_manual_scale_skips_detection() -> None:
    options = PipelineOptions(manual_scale=16, snap_grid=False)

    result = pipeline.process_image(upscaled_art(), options)

    assert result.raster.size == (16, 16)
    assert result.manifest.processing_steps["scale_detection"]["manual_scale"] == 16


def test_nearest_with_color_limit() -> None:
    options = PipelineOptions(downscale_method="nearest", max_colors=2)

    result = pipeline.process_image(upscaled_art(), options)

    assert result.raster.size == (8, 8)
    assert 1 <= len(result.palette) <= 2
    assert result.manifest.processing_steps["color_quantization"]["final_colors"] <= 2


def test_content_adaptive_downscale() -> None:
    options = PipelineOptions(downscale_method="content-adaptive")

    result = pipeline.process_image(upscaled_art(16, 4), options)

    assert result.raster.size == (4, 4)
    assert set(np.unique(result.raster.alpha).tolist()) == {255}


def test_quantization_failure_is_recorded(monkeypatch) -> None:
    def broken(*args, **kwargs):
        raise StageFailure("quantize", "boom")

    monkeypatch.setattr(pipeline, "quantize_image", broken)

    result = pipeline.process_image(upscaled_art(), PipelineOptions(max_colors=2))

    assert result.raster.size == (8, 8)
    assert any(warning.startswith("quantization") for warning in result.manifest.warnings)


def test_rejects_oversized_images(monkeypatch) -> None:
    monkeypatch.setattr(config.SETTINGS, "max_dimension", 10)

    with pytest.raises(InputError):
        pipeline.process_image(Raster.blank(16, 16))


def test_rejects_garbage_bytes() -> None:
    with pytest.raises(InputError):
        pipeline.process_image(b"definitely not an image")


def test_cancellation_stops_the_pipeline() -> None:
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PipelineCancelled):
        pipeline.process_image(upscaled_art(), cancel=cancel)


def test_result_is_stored_in_session() -> None:
    session = Session()

    result = pipeline.process_image(upscaled_art(8, 4), session=session)

    assert session.result("pixel") is result
    assert session.original_palettes["pixel"] == result.palette


@pytest.mark.parametrize("method", ["dominant", "median", "content-adaptive"])
def test_scale_larger_than_image_is_empty_result(method: str) -> None:
    options = PipelineOptions(manual_scale=32, downscale_method=method)

    with pytest.raises(EmptyResult):
        pipeline.process_image(upscaled_art(5, 4), options)
