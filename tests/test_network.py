"""Tests for fetching source images over HTTP."""

import pytest

requests = pytest.importorskip("requests")

from pixel_unfake.errors import InputError
from pixel_unfake.infrastructure import network
from pixel_unfake.infrastructure.network import SourceFetcher


class FakeResponse:
    def __init__(self, content=b"png-bytes", status=200):
        self.content = content
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")


class FakeSession:
    def __init__(self, responses):
        self.headers = {}
        self.calls = []
        self._responses = list(responses)

    def get(self, url, timeout):
        self.calls.append((url, timeout))
        outcome = self._responses.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(network.time, "sleep", lambda seconds: None)


def test_fetch_bytes_sets_user_agent_and_returns_content():
    session = FakeSession([FakeResponse()])
    fetcher = SourceFetcher(lambda: session)

    assert fetcher.fetch_bytes("http://example.com/a.png") == b"png-bytes"
    assert session.headers["User-Agent"].startswith("pixel-unfake/")
    assert session.calls[0][0] == "http://example.com/a.png"


def test_fetch_bytes_retries_until_success(monkeypatch):
    monkeypatch.setattr(network.SETTINGS, "retries", 2)
    session = FakeSession([requests.ConnectionError("down"), FakeResponse(status=503), FakeResponse(b"ok")])
    fetcher = SourceFetcher(lambda: session)

    assert fetcher.fetch_bytes("https://example.com/a.png") == b"ok"
    assert len(session.calls) == 3


def test_fetch_bytes_raises_after_last_attempt(monkeypatch):
    monkeypatch.setattr(network.SETTINGS, "retries", 1)
    session = FakeSession([requests.Timeout("slow"), requests.Timeout("slower")])
    fetcher = SourceFetcher(lambda: session)

    with pytest.raises(RuntimeError, match="slower"):
        fetcher.fetch_bytes("https://example.com/a.png")


@pytest.mark.parametrize("url", ["ftp://example.com/a.png", "not-a-url", "http://"])
def test_fetch_bytes_rejects_invalid_urls(url):
    fetcher = SourceFetcher(lambda: FakeSession([]))

    with pytest.raises(InputError):
        fetcher.fetch_bytes(url)


def test_fetch_bytes_rejects_oversized_sources(monkeypatch):
    monkeypatch.setattr(network.SETTINGS, "max_upload_bytes", 4)
    fetcher = SourceFetcher(lambda: FakeSession([FakeResponse(b"too large")]))

    with pytest.raises(InputError):
        fetcher.fetch_bytes("http://example.com/a.png")
