"""End-to-end pixel-art cleanup: detect scale, snap, reduce, downscale."""

from __future__ import annotations

import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..config import SETTINGS
from ..errors import EmptyResult, InputError, PipelineCancelled, StageFailure
from ..options import PipelineOptions
from ..raster import Palette, Raster, count_colors, palette_of
from .adaptive import content_adaptive_downscale
from .cleanup import alpha_binarization, finalize_pixels, jaggy_cleaner, morphological_cleanup
from .crop import snap_to_grid
from .downscale import downscale_block, downscale_by_dominant_color
from .quantize import detect_optimal_color_count, quantize_image
from .scale import detect_scale

logger = logging.getLogger(__name__)

Source = Union[bytes, bytearray, Raster]

AUTO_COLOR_CAP = 32
QUANTIZE_AFTER_METHODS = ("median", "mode", "mean", "nearest")


def load_source(source: Source) -> Raster:
    if isinstance(source, Raster):
        raster = source
    else:
        if len(source) > SETTINGS.max_upload_bytes:
            raise InputError(f"Upload of {len(source)} bytes exceeds {SETTINGS.max_upload_bytes}")
        raster = Raster.decode(bytes(source))

    width, height = raster.size
    if (
        width > SETTINGS.max_dimension
        or height > SETTINGS.max_dimension
        or width * height > SETTINGS.max_pixels
    ):
        raise InputError(f"Image too large: {width}x{height}")
    if width == 0 or height == 0:
        raise InputError("Image has no pixels")
    return raster


def check_cancelled(cancel: Any, stage: str) -> None:
    if cancel is not None and cancel.is_set():
        raise PipelineCancelled(f"Cancelled before {stage}")


def timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class ProcessingManifest:
    original_size: Tuple[int, int]
    final_size: Tuple[int, int]
    processing_steps: Dict[str, Dict[str, Any]]
    processing_time_ms: int
    timestamp: str
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["original_size"] = list(self.original_size)
        data["final_size"] = list(self.final_size)
        return data


@dataclass
class PixelArtResult:
    png: bytes
    raster: Raster
    palette: Palette
    manifest: ProcessingManifest

    @property
    def scale(self) -> int:
        return self.manifest.processing_steps["scale_detection"]["detected_scale"]


def _optional_stage(name: str, warnings: List[str], fallback: Any, stage: Callable[[], Any]) -> Any:
    try:
        return stage()
    except (StageFailure, ValueError) as exc:
        logger.warning("%s failed, continuing without it: %s", name, exc, exc_info=True)
        warnings.append(f"{name}: {exc}")
        return fallback


def process_image(
    source: Source,
    options: Optional[PipelineOptions] = None,
    *,
    session: Any = None,
    cancel: Any = None,
) -> PixelArtResult:
    options = options or PipelineOptions()
    started = time.perf_counter()
    warnings: List[str] = []

    current = load_source(source)
    original_size = current.size

    check_cancelled(cancel, "alpha binarization")
    if options.alpha_threshold is not None:
        current = alpha_binarization(current, options.alpha_threshold)
    unsnapped = current

    check_cancelled(cancel, "scale detection")
    if options.manual_scale:
        scale = max(1, options.manual_scale)
        logger.info("Using manual scale %d", scale)
    else:
        scale = detect_scale(current, options.detect_method, options.edge_detect_method)
    if scale <= 1:
        logger.info("Scale is 1, skipping grid snapping and downscaling")

    snapped = False
    if options.snap_grid and scale > 1:
        check_cancelled(cancel, "grid snapping")
        current, snapped = snap_to_grid(current, scale)

    if options.cleanup.morph:
        check_cancelled(cancel, "morphological cleanup")
        current = _optional_stage("morphological cleanup", warnings, current, lambda: morphological_cleanup(current))

    initial_colors = count_colors(current)
    colors_used = initial_colors
    max_colors = options.max_colors
    if options.auto_color_count and initial_colors > 2:
        check_cancelled(cancel, "color count detection")
        cap = min(options.max_colors, AUTO_COLOR_CAP)
        max_colors = _optional_stage(
            "color count detection",
            warnings,
            options.max_colors,
            lambda: detect_optimal_color_count(current, max_colors=cap),
        )

    method = options.downscale_method
    if method != "content-adaptive" and max_colors < 256 and initial_colors > max_colors:
        check_cancelled(cancel, "quantization")
        logger.info("Quantizing from %d to at most %d colors", initial_colors, max_colors)
        quantized = _optional_stage(
            "quantization", warnings, None, lambda: quantize_image(current, max_colors, options.fixed_palette)
        )
        if quantized is not None:
            current, colors_used = quantized.raster, quantized.colors_used

    quantize_after = False
    if scale > 1:
        # content-adaptive samples the unsnapped source
        base_w, base_h = original_size if method == "content-adaptive" else current.size
        if base_w // scale == 0 or base_h // scale == 0:
            raise EmptyResult(f"Scale {scale} leaves no pixels from a {base_w}x{base_h} image")
        check_cancelled(cancel, "downscaling")
        logger.info("Downscaling by %dx using %s", scale, method)
        if method == "dominant":
            current = downscale_by_dominant_color(current, scale, options.dom_mean_threshold)
        elif method == "content-adaptive":
            target_w = original_size[0] // scale
            target_h = original_size[1] // scale
            current = content_adaptive_downscale(unsnapped, target_w, target_h)
            quantize_after = True
        else:
            if method not in QUANTIZE_AFTER_METHODS:
                logger.warning("Unknown downscale method %r, falling back to median", method)
                method = "median"
            current = downscale_block(current, scale, scale, method, options.dom_mean_threshold)
            quantize_after = True
    current = finalize_pixels(current)

    if quantize_after and max_colors < 256:
        check_cancelled(cancel, "post-downscale quantization")
        quantized = _optional_stage(
            "post-downscale quantization",
            warnings,
            None,
            lambda: quantize_image(current, max_colors, options.fixed_palette),
        )
        if quantized is not None:
            current, colors_used = quantized.raster, quantized.colors_used

    if options.cleanup.jaggy:
        check_cancelled(cancel, "jaggy cleanup")
        current = jaggy_cleaner(current)

    if current.width == 0 or current.height == 0:
        raise EmptyResult("Processing resulted in an empty image")
    png = current.encode_png()
    if not png:
        raise EmptyResult("PNG encoder produced no data")
    palette = palette_of(current)

    manifest = ProcessingManifest(
        original_size=original_size,
        final_size=current.size,
        processing_steps={
            "scale_detection": {
                "method": options.detect_method,
                "edge_method": None
                if options.manual_scale or options.detect_method == "runs"
                else options.edge_detect_method,
                "detected_scale": scale,
                "manual_scale": options.manual_scale,
            },
            "color_quantization": {
                "max_colors": options.max_colors,
                "effective_max_colors": max_colors,
                "initial_colors": initial_colors,
                "final_colors": colors_used,
                "fixed_palette": len(options.fixed_palette) if options.fixed_palette else None,
            },
            "downscaling": {
                "method": options.downscale_method,
                "scale_factor": scale,
                "dom_mean_threshold": options.dom_mean_threshold,
                "applied": scale > 1,
            },
            "cleanup": {
                "morphological": options.cleanup.morph,
                "jaggy": options.cleanup.jaggy,
            },
            "alpha_processing": {
                "threshold": options.alpha_threshold,
                "binarized": options.alpha_threshold is not None,
            },
            "grid_snapping": {
                "enabled": options.snap_grid,
                "applied": snapped,
            },
        },
        processing_time_ms=round((time.perf_counter() - started) * 1000),
        timestamp=timestamp(),
        warnings=warnings,
    )
    logger.info(
        "Processed %dx%d -> %dx%d in %dms",
        original_size[0],
        original_size[1],
        current.width,
        current.height,
        manifest.processing_time_ms,
    )

    result = PixelArtResult(png=png, raster=current, palette=palette, manifest=manifest)
    if session is not None:
        session.store("pixel", result)
    return result
