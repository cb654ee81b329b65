"""Application package exports."""

from .app import APP_VERSION, app, create_app
from .options import CleanupOptions, PipelineOptions, VectorOptions
from .processing import process_image, vectorize_image
from .raster import Color, Raster
from . import infrastructure, processing

__version__ = APP_VERSION

__all__ = [
    "APP_VERSION",
    "__version__",
    "app",
    "create_app",
    "CleanupOptions",
    "PipelineOptions",
    "VectorOptions",
    "process_image",
    "vectorize_image",
    "Color",
    "Raster",
    "infrastructure",
    "processing",
]
