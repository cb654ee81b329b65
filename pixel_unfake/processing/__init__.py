"""Image processing stages and pipelines."""

from .adaptive import content_adaptive_downscale
from .cleanup import alpha_binarization, finalize_pixels, jaggy_cleaner, morphological_cleanup
from .crop import find_optimal_crop, snap_to_grid
from .cv import CvScope, cv_scope
from .downscale import downscale_block, downscale_by_dominant_color
from .pipeline import PixelArtResult, ProcessingManifest, process_image
from .quantize import QuantizeResult, detect_optimal_color_count, quantize_image
from .recolor import recolor_raster, recolor_svg, upscale_nearest
from .scale import (
    detect_scale,
    detect_scale_from_signal,
    edge_aware_detect,
    legacy_edge_aware_detect,
    runs_based_detect,
)
from .tracing import trace_to_svg
from .vector import VectorManifest, VectorResult, vectorize_image

__all__ = [
    "content_adaptive_downscale",
    "alpha_binarization",
    "finalize_pixels",
    "jaggy_cleaner",
    "morphological_cleanup",
    "find_optimal_crop",
    "snap_to_grid",
    "CvScope",
    "cv_scope",
    "downscale_block",
    "downscale_by_dominant_color",
    "PixelArtResult",
    "ProcessingManifest",
    "process_image",
    "QuantizeResult",
    "detect_optimal_color_count",
    "quantize_image",
    "recolor_raster",
    "recolor_svg",
    "upscale_nearest",
    "detect_scale",
    "detect_scale_from_signal",
    "edge_aware_detect",
    "legacy_edge_aware_detect",
    "runs_based_detect",
    "trace_to_svg",
    "VectorManifest",
    "VectorResult",
    "vectorize_image",
]
