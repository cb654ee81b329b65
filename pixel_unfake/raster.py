"""RGBA raster and palette value types."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from typing import NamedTuple, Sequence, Tuple, Union

import numpy as np
from PIL import Image

from .errors import InputError


_RGB_FUNC = re.compile(
    r"rgba?\(\s*(\d{1,3})\s*,\s*(\d{1,3})\s*,\s*(\d{1,3})\s*(?:,\s*([\d.]+)\s*)?\)",
    re.IGNORECASE,
)


class Color(NamedTuple):
    r: int
    g: int
    b: int
    a: int = 255

    @property
    def hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}{self.a:02x}"

    @property
    def rgb_hex(self) -> str:
        return f"#{self.r:02x}{self.g:02x}{self.b:02x}"

    @property
    def css_rgb(self) -> str:
        return f"rgb({self.r},{self.g},{self.b})"

    @classmethod
    def parse(cls, value: Union[str, Sequence[int]]) -> "Color":
        """Parse ``#rrggbb``, ``#rrggbbaa``, ``rgb(...)`` or a 3/4 element sequence."""

        if isinstance(value, str):
            text = value.strip()
            if text.startswith("#") and len(text) in (7, 9):
                try:
                    channels = [int(text[idx : idx + 2], 16) for idx in range(1, len(text), 2)]
                except ValueError as exc:
                    raise InputError(f"Invalid color: {value!r}") from exc
                return cls(*channels)
            match = _RGB_FUNC.fullmatch(text)
            if match:
                r, g, b = (int(group) for group in match.groups()[:3])
                alpha = match.group(4)
                a = 255 if alpha is None else _alpha_component(float(alpha))
                return cls._checked(r, g, b, a, value)
            raise InputError(f"Invalid color: {value!r}")

        channels = list(value)
        if len(channels) not in (3, 4):
            raise InputError(f"Invalid color: {value!r}")
        return cls._checked(*(int(c) for c in channels), source=value)

    @classmethod
    def _checked(cls, r: int, g: int, b: int, a: int = 255, source: object = None) -> "Color":
        if any(not 0 <= c <= 255 for c in (r, g, b, a)):
            raise InputError(f"Color channel out of range: {source!r}")
        return cls(r, g, b, a)


def _alpha_component(alpha: float) -> int:
    # rgba() alpha may be written as 0..1 or 0..255
    return int(round(alpha * 255)) if alpha <= 1 else int(alpha)


Palette = Tuple[Color, ...]


@dataclass(frozen=True)
class Raster:
    """Row-major, non-premultiplied RGBA pixels held as ``(height, width, 4)`` uint8."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels)
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise InputError(f"Expected an RGBA array, got shape {pixels.shape}")
        if pixels.dtype != np.uint8:
            pixels = np.clip(pixels, 0, 255).astype(np.uint8)
        object.__setattr__(self, "pixels", np.ascontiguousarray(pixels))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    @property
    def alpha(self) -> np.ndarray:
        return self.pixels[..., 3]

    @classmethod
    def blank(cls, width: int, height: int) -> "Raster":
        return cls(np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes) -> "Raster":
        if width < 0 or height < 0 or len(data) != width * height * 4:
            raise InputError(
                f"Pixel buffer of {len(data)} bytes does not match {width}x{height} RGBA"
            )
        array = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        return cls(array.copy())

    @classmethod
    def from_image(cls, image: Image.Image) -> "Raster":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        return cls(np.array(image, dtype=np.uint8))

    @classmethod
    def decode(cls, payload: bytes) -> "Raster":
        if not payload:
            raise InputError("Empty image payload")
        try:
            with Image.open(io.BytesIO(payload)) as image:
                image.load()
                return cls.from_image(image)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise InputError(f"Could not decode image: {exc}") from exc

    def to_bytes(self) -> bytes:
        return self.pixels.tobytes()

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def encode_png(self) -> bytes:
        buffer = io.BytesIO()
        self.to_image().save(buffer, "PNG", optimize=True)
        return buffer.getvalue()

    def copy(self) -> "Raster":
        return Raster(self.pixels.copy())


def _opaque_keys(raster: Raster) -> np.ndarray:
    opaque = raster.pixels[raster.alpha > 128].astype(np.uint32)
    return (opaque[:, 0] << 24) | (opaque[:, 1] << 16) | (opaque[:, 2] << 8) | opaque[:, 3]


def palette_of(raster: Raster) -> Palette:
    """Distinct opaque colors (alpha > 128) in first-seen scan order."""

    keys = _opaque_keys(raster)
    if keys.size == 0:
        return ()
    unique, first_index = np.unique(keys, return_index=True)
    ordered = unique[np.argsort(first_index, kind="stable")]
    return tuple(
        Color(int(k >> 24) & 255, int(k >> 16) & 255, int(k >> 8) & 255, int(k) & 255)
        for k in ordered
    )


def count_colors(raster: Raster) -> int:
    keys = _opaque_keys(raster)
    return int(np.unique(keys).size) if keys.size else 0
