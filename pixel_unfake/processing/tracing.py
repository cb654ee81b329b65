"""Per-color contour tracing into SVG paths."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import numpy as np
import svg

from ..options import TraceOptions
from ..raster import Color, Raster
from .cv import CvScope, cv_scope
from .quantize import nearest_palette_indices, quantize_image

logger = logging.getLogger(__name__)


def _number(value: float, places: int):
    rounded = round(float(value), places)
    return int(rounded) if rounded.is_integer() else rounded


def _subpath(points: np.ndarray, options: TraceOptions) -> List[svg.PathData]:
    # contour points are pixel centres
    coords = (points.reshape(-1, 2).astype(np.float64) + 0.5) * options.scale
    commands: List[svg.PathData] = []
    for index, (x, y) in enumerate(coords):
        x, y = _number(x, options.roundcoords), _number(y, options.roundcoords)
        commands.append(svg.MoveTo(x, y) if index == 0 else svg.LineTo(x, y))
    commands.append(svg.ClosePath())
    return commands


def trace_layer(scope: CvScope, mask: np.ndarray, options: TraceOptions) -> List[svg.PathData]:
    """Outline one color mask as a compound path of outer rings and holes."""

    contours, hierarchy = scope.find_contours(mask)
    if hierarchy is None:
        return []

    commands: List[svg.PathData] = []
    for contour in contours:
        if len(contour) < options.pathomit:
            continue
        polygon = scope.approx_polygon(contour, options.ltres)
        if len(polygon) < 2:
            continue
        commands.extend(_subpath(polygon, options))
    return commands


def trace_to_svg(raster: Raster, options: Optional[TraceOptions] = None, palette: Optional[Sequence[Color]] = None) -> str:
    """Trace ``raster`` into an SVG document with one filled path per color.

    With a ``palette`` every opaque pixel is snapped to its closest entry and
    no colors are sampled; otherwise ``numberofcolors`` colors are picked by
    the quantizer first.
    """

    options = options or TraceOptions()
    if not palette:
        sampled = quantize_image(raster, options.numberofcolors)
        raster, palette = sampled.raster, sampled.palette

    entries = np.array([color[:3] for color in palette], dtype=np.uint8).reshape(-1, 3)
    opaque = raster.alpha > 128
    labels = np.full(raster.width * raster.height, -1, dtype=np.intp)
    if entries.size and opaque.any():
        flat_opaque = opaque.reshape(-1)
        labels[flat_opaque] = nearest_palette_indices(raster.pixels.reshape(-1, 4)[flat_opaque, :3], entries)
    labels = labels.reshape(raster.height, raster.width)

    counts = np.bincount(labels[labels >= 0].ravel(), minlength=len(entries))
    order = [int(index) for index in np.argsort(-counts, kind="stable") if counts[index] > 0]

    elements: List[svg.Element] = []
    with cv_scope("trace") as scope:
        for index in order:
            mask = scope.track((labels == index).astype(np.uint8) * 255)
            commands = trace_layer(scope, mask, options)
            if not commands:
                continue
            r, g, b = (int(c) for c in entries[index])
            fill = f"rgb({r},{g},{b})"
            elements.append(
                svg.Path(
                    d=commands,
                    fill=fill,
                    fill_rule="evenodd",
                    stroke=fill,
                    stroke_width=_number(options.strokewidth * options.scale, 2),
                )
            )

    width = _number(raster.width * options.scale, 2)
    height = _number(raster.height * options.scale, 2)
    document = svg.SVG(
        width=width,
        height=height,
        viewBox=svg.ViewBoxSpec(0, 0, width, height) if options.viewbox else None,
        elements=elements,
    )
    logger.info("Traced %d color layers", len(elements))
    return document.as_str()
