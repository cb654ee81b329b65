from __future__ import annotations

import threading
import time
import uuid
from dataclasses import replace
from typing import Any, Dict, Optional, Sequence, Tuple

from ..config import SETTINGS
from ..raster import Color, Palette, palette_of
from ..processing.recolor import recolor_raster, recolor_svg
from ..processing.vector import extract_palette_from_svg

MODES = ("pixel", "vector")


class Session:
    """Results of one source image, kept per mode with their first palette."""

    def __init__(self, key: Optional[str] = None) -> None:
        self.key = key or uuid.uuid4().hex
        self.mode = "pixel"
        self.results: Dict[str, Any] = {}
        self.original_palettes: Dict[str, Palette] = {}

    def store(self, mode: str, result: Any) -> None:
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode}")
        self.mode = mode
        self.results[mode] = result
        self.original_palettes[mode] = tuple(result.palette)

    def result(self, mode: Optional[str] = None) -> Any:
        return self.results.get(mode or self.mode)

    def recolor(self, mode: str, replacement: Sequence[Color]) -> Any:
        result = self.results.get(mode)
        if result is None:
            raise KeyError(mode)
        original = self.original_palettes[mode]
        if mode == "vector":
            document = recolor_svg(result.svg, original, replacement)
            return replace(result, svg=document, palette=extract_palette_from_svg(document))
        raster = recolor_raster(result.raster, original, replacement)
        return replace(result, raster=raster, png=raster.encode_png(), palette=palette_of(raster))


CacheEntry = Tuple[float, Session]


class ResultCache:
    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Session]:
        with self._lock:
            entry = self._entries.get(key)
            if not entry:
                return None
            timestamp, session = entry
            if time.time() - timestamp > SETTINGS.cache_ttl:
                self._entries.pop(key, None)
                return None
            return session

    def put(self, session: Session) -> None:
        with self._lock:
            if session.key not in self._entries and len(self._entries) >= SETTINGS.cache_size:
                oldest = min(self._entries.items(), key=lambda item: item[1][0])[0]
                self._entries.pop(oldest, None)
            self._entries[session.key] = (time.time(), session)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


CACHE = ResultCache()
