"""Infrastructure helpers for networking, caching and HTTP responses."""

from .cache import CACHE, ResultCache, Session
from .network import FETCHER, SourceFetcher
from .responses import send_png, send_result_json, send_svg

__all__ = [
    "CACHE",
    "ResultCache",
    "Session",
    "FETCHER",
    "SourceFetcher",
    "send_png",
    "send_result_json",
    "send_svg",
]
