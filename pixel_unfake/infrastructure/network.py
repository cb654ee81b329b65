from __future__ import annotations

import logging
import time
from typing import Callable
from urllib.parse import urlsplit

import requests

from ..config import SETTINGS
from ..errors import InputError

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], requests.Session]


def _validate_url(url: str) -> str:
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InputError(f"Invalid source_url: {url}")
    return url


class SourceFetcher:
    def __init__(self, session_factory: SessionFactory | None = None) -> None:
        self._session_factory = session_factory or requests.Session
        self._session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = self._session_factory()
        session.headers.update({"User-Agent": "pixel-unfake/1.0"})
        return session

    def fetch_bytes(self, source_url: str) -> bytes:
        target_url = _validate_url(source_url)
        last_exception: Exception | None = None
        for attempt in range(1, SETTINGS.retries + 2):
            try:
                response = self._session.get(target_url, timeout=SETTINGS.timeout)
                response.raise_for_status()
                if len(response.content) > SETTINGS.max_upload_bytes:
                    raise InputError(f"Source image exceeds {SETTINGS.max_upload_bytes} bytes")
                return response.content
            except requests.RequestException as exc:
                logger.warning("Fetching %s failed (attempt %d): %s", target_url, attempt, exc)
                last_exception = exc
                time.sleep(0.4 * attempt)
        raise RuntimeError(last_exception)


FETCHER = SourceFetcher()
