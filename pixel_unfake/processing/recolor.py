"""Palette swaps on finished results and nearest-neighbour export scaling."""

from __future__ import annotations

import re
from typing import Dict, Sequence

import numpy as np

from ..errors import InputError
from ..raster import Color, Raster

_SVG_COLOR = re.compile(
    r'(fill|stroke)="(#[0-9a-fA-F]{6}(?:[0-9a-fA-F]{2})?|rgba?\(\s*\d{1,3}\s*,\s*\d{1,3}\s*,\s*\d{1,3}\s*(?:,\s*[\d.]+\s*)?\))"'
)


def _pairs(original: Sequence[Color], replacement: Sequence[Color]):
    if len(original) != len(replacement):
        raise InputError(
            f"Replacement palette has {len(replacement)} colors, expected {len(original)}"
        )
    return [(old, new) for old, new in zip(original, replacement) if old != new]


def recolor_raster(raster: Raster, original: Sequence[Color], replacement: Sequence[Color]) -> Raster:
    """Swap each original palette entry for the entry at the same index.

    Matching is exact on all four channels and is decided against the input,
    so chained swaps (a->b, b->a) do not cascade.
    """

    source = raster.pixels
    pixels = source.copy()
    for old, new in _pairs(original, replacement):
        mask = np.all(source == np.array(old, dtype=np.uint8), axis=2)
        pixels[mask] = new
    pixels[source[..., 3] == 0] = 0
    return Raster(pixels)


def recolor_svg(svg: str, original: Sequence[Color], replacement: Sequence[Color]) -> str:
    mapping: Dict[Color, Color] = {}
    for old, new in _pairs(original, replacement):
        mapping[old._replace(a=255)] = new

    def swap(match: "re.Match[str]") -> str:
        current = Color.parse(match.group(2))._replace(a=255)
        target = mapping.get(current)
        if target is None:
            return match.group(0)
        return f'{match.group(1)}="{target.css_rgb}"'

    return _SVG_COLOR.sub(swap, svg)


def upscale_nearest(raster: Raster, factor: int) -> Raster:
    if factor < 1:
        raise InputError(f"Upscale factor must be at least 1, got {factor}")
    if factor == 1:
        return raster.copy()
    return Raster(np.repeat(np.repeat(raster.pixels, factor, axis=0), factor, axis=1))
