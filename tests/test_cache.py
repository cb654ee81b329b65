import numpy as np
import pytest

from pixel_unfake.config import SETTINGS
from pixel_unfake.infrastructure import cache as cache_module
from pixel_unfake.infrastructure.cache import ResultCache, Session
from pixel_unfake.processing.pipeline import PixelArtResult, ProcessingManifest
from pixel_unfake.processing.vector import VectorManifest, VectorResult
from pixel_unfake.raster import Color, Raster

RED = Color(255, 0, 0)
BLUE = Color(0, 0, 255)


def pixel_result() -> PixelArtResult:
    pixels = np.zeros((1, 2, 4), dtype=np.uint8)
    pixels[0, 0] = RED
    pixels[0, 1] = BLUE
    raster = Raster(pixels)
    manifest = ProcessingManifest((2, 1), (2, 1), {"scale_detection": {"detected_scale": 1}}, 0, "now")
    return PixelArtResult(png=raster.encode_png(), raster=raster, palette=(RED, BLUE), manifest=manifest)


def vector_result() -> VectorResult:
    document = '<svg><path fill="rgb(255,0,0)" stroke="rgb(255,0,0)"/><path fill="rgb(0,0,255)"/></svg>'
    manifest = VectorManifest((2, 1), {}, False, 0, "now")
    return VectorResult(svg=document, palette=(RED, BLUE), manifest=manifest)


def test_result_cache_eviction_limit(monkeypatch) -> None:
    monkeypatch.setattr(SETTINGS, "cache_size", 4)
    cache = ResultCache()
    sessions = [Session(f"key-{idx}") for idx in range(6)]

    for session in sessions:
        cache.put(session)

    assert len(cache) == 4
    assert "key-0" not in cache
    assert "key-1" not in cache
    assert "key-2" in cache


def test_result_cache_expires_entries(monkeypatch) -> None:
    now = [1000.0]
    monkeypatch.setattr(cache_module.time, "time", lambda: now[0])
    cache = ResultCache()
    session = Session()
    cache.put(session)

    assert cache.get(session.key) is session

    now[0] += SETTINGS.cache_ttl + 1
    assert cache.get(session.key) is None
    assert session.key not in cache


def test_session_store_rejects_unknown_mode() -> None:
    with pytest.raises(ValueError):
        Session().store("gif", pixel_result())


def test_session_recolors_pixel_result_from_original_palette() -> None:
    session = Session()
    session.store("pixel", pixel_result())

    first = session.recolor("pixel", (BLUE, RED))
    again = session.recolor("pixel", (RED, Color(0, 255, 0)))

    assert first.palette == (BLUE, RED)
    assert first.png.startswith(b"\x89PNG")
    assert again.palette == (RED, Color(0, 255, 0))
    assert session.result("pixel").palette == (RED, BLUE)


def test_session_recolors_vector_result() -> None:
    session = Session()
    session.store("vector", vector_result())

    result = session.recolor("vector", (Color(0, 128, 0), BLUE))

    assert 'stroke="rgb(0,128,0)"' in result.svg
    assert result.palette == (Color(0, 128, 0), BLUE)


def test_session_recolor_requires_result() -> None:
    with pytest.raises(KeyError):
        Session().recolor("vector", ())
