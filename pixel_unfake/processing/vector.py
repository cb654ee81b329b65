"""Raster to SVG conversion with optional denoising and palette reduction."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from ..errors import StageFailure
from ..options import PostProcessOptions, PreProcessOptions, VectorOptions
from ..raster import Color, Palette, Raster
from .cv import cv_scope
from .pipeline import Source, check_cancelled, load_source, timestamp
from .quantize import detect_optimal_color_count, quantize_image
from .tracing import trace_to_svg

logger = logging.getLogger(__name__)

KEY_COLOR = Color(255, 0, 255, 255)

_FILL = re.compile(
    r'fill="(?:rgb\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*\)|#([0-9a-fA-F]{6}))"'
)


@dataclass
class VectorManifest:
    original_size: Tuple[int, int]
    options: Dict[str, Any]
    background_removed: bool
    processing_time_ms: int
    timestamp: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_size": list(self.original_size),
            "options": self.options,
            "preProcess": self.options["pre_process"],
            "quantize": self.options["quantize"],
            "postProcess": self.options["post_process"],
            "background_removed": self.background_removed,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp,
            "warnings": list(self.warnings),
        }


@dataclass
class VectorResult:
    svg: str
    palette: Palette
    manifest: VectorManifest


def _odd(size: int) -> int:
    return size + 1 if size % 2 == 0 else size


def has_transparency(raster: Raster) -> bool:
    return bool((raster.alpha < 255).any())


def fill_background(raster: Raster, color: Color = KEY_COLOR) -> Raster:
    """Put a solid ``color`` behind every fully transparent pixel.

    Pixels with any alpha keep their values; only alpha 0 pixels become
    the opaque key color.
    """

    pixels = np.where(
        (raster.alpha > 0)[..., None],
        raster.pixels,
        np.array(color, dtype=np.uint8),
    )
    return Raster(pixels.astype(np.uint8))


def pre_process_image(raster: Raster, options: PreProcessOptions) -> Raster:
    with cv_scope("pre-process") as scope:
        if options.filter == "bilateral":
            diameter = options.value
            rgb = scope.bilateral(
                np.ascontiguousarray(raster.pixels[..., :3]), diameter, diameter * 2, diameter / 2
            )
            filtered = np.dstack([rgb, raster.alpha])
        else:
            filtered = scope.median_blur(raster.pixels, _odd(options.value))

        if options.morphology:
            size = options.morphology_kernel
            filtered = scope.morph(np.ascontiguousarray(filtered), "close", (size, size))
            logger.debug("Applied closing with a %dx%d kernel", size, size)
    return Raster(filtered)


def post_process_image(raster: Raster, options: PostProcessOptions) -> Raster:
    size = _odd(options.value)
    with cv_scope("post-process") as scope:
        if options.filter == "gaussian":
            smoothed = scope.gaussian_blur(raster.pixels, size, 0)
        else:
            smoothed = scope.median_blur(raster.pixels, size)
    return Raster(smoothed)


def remove_svg_background(document: str, color: Color = KEY_COLOR) -> str:
    fill = rf"rgb\(\s*{color.r}\s*,\s*{color.g}\s*,\s*{color.b}\s*\)"
    pattern = re.compile(rf'<path\b[^>]*?\sfill="{fill}"[^>]*?(?:/>|>\s*</path>)')
    cleaned = pattern.sub("", document)
    if len(cleaned) < len(document):
        logger.info("Removed background paths filled with %s", color.css_rgb)
    else:
        logger.warning("No background path filled with %s found", color.css_rgb)
    return cleaned


def extract_palette_from_svg(document: str) -> Palette:
    """Distinct fill colors of the document in order of appearance, alpha 255."""

    seen: Dict[Color, None] = {}
    for match in _FILL.finditer(document):
        if match.group(4):
            color = Color.parse(f"#{match.group(4)}")
        else:
            color = Color(*(min(255, int(group)) for group in match.groups()[:3]))
        seen.setdefault(color, None)
    return tuple(seen)


def _optional_stage(name: str, warnings: List[str], stage):
    try:
        return stage()
    except (StageFailure, ValueError) as exc:
        logger.error("%s failed, continuing with the previous image: %s", name, exc, exc_info=True)
        warnings.append(f"{name}: {exc}")
        return None


def vectorize_image(
    source: Source,
    options: Optional[VectorOptions] = None,
    *,
    session: Any = None,
    cancel: Any = None,
) -> VectorResult:
    options = options or VectorOptions()
    started = time.perf_counter()
    warnings: List[str] = []

    current = load_source(source)
    original_size = current.size

    background_added = has_transparency(current)
    if background_added:
        logger.info("Transparent image, adding a temporary key-color background")
        current = fill_background(current)

    if options.pre_process.enabled:
        check_cancelled(cancel, "pre-process")
        filtered = _optional_stage("pre-process", warnings, lambda: pre_process_image(current, options.pre_process))
        if filtered is not None:
            current = filtered

    palette: Optional[Sequence[Color]] = None
    if options.quantize.enabled:
        check_cancelled(cancel, "quantization")

        def quantize():
            count = options.quantize.max_colors
            if count == "auto":
                count = detect_optimal_color_count(current)
            return quantize_image(current, count)

        quantized = _optional_stage("quantization", warnings, quantize)
        if quantized is not None:
            current = quantized.raster
            palette = quantized.palette or None
            if palette:
                logger.info("Tracing with a fixed palette of %d colors", len(palette))

    if options.post_process.enabled:
        check_cancelled(cancel, "post-process")
        smoothed = _optional_stage("post-process", warnings, lambda: post_process_image(current, options.post_process))
        if smoothed is not None:
            current = smoothed

    check_cancelled(cancel, "tracing")
    document = trace_to_svg(current, options.trace, palette)

    if background_added:
        document = remove_svg_background(document)
    result_palette = extract_palette_from_svg(document)

    manifest = VectorManifest(
        original_size=original_size,
        options=options.to_dict(),
        background_removed=background_added,
        processing_time_ms=round((time.perf_counter() - started) * 1000),
        timestamp=timestamp(),
        warnings=warnings,
    )
    logger.info("Vectorized in %dms with %d colors", manifest.processing_time_ms, len(result_palette))

    result = VectorResult(svg=document, palette=result_palette, manifest=manifest)
    if session is not None:
        session.store("vector", result)
    return result
