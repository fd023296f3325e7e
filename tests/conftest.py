"""Shared pytest fixtures for centapi tests."""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from centapi.client import CentClient

API_URL = "http://localhost:8000/api"

Handler = Callable[[httpx.Request], httpx.Response]


def _ndjson(*items: Any) -> bytes:
    return "".join(json.dumps(item) + "\n" for item in items).encode("utf-8")


@pytest.fixture
def ndjson() -> Callable[..., bytes]:
    """Encode objects as a newline-delimited JSON body."""
    return _ndjson


@pytest.fixture
def make_client() -> Callable[..., CentClient]:
    """Build a CentClient whose HTTP client is backed by httpx.MockTransport.

    Usage:
        client = make_client(handler, api_key="secret")
    """

    def factory(handler: Handler, **kwargs: Any) -> CentClient:
        kwargs.setdefault("addr", API_URL)
        transport = httpx.MockTransport(handler)
        return CentClient(http_client=httpx.AsyncClient(transport=transport), **kwargs)

    return factory


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    """Remove centapi environment variables for the duration of a test."""
    for name in ("CENTAPI_CONFIG", "CENTRIFUGO_API_URL", "CENTRIFUGO_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
