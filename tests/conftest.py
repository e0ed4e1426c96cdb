from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from src.tradelog.config import Settings
from src.tradelog.main import create_app


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Upstream:
    """Records outbound requests and answers them with a swappable handler."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.handler: Callable[[httpx.Request], httpx.Response] = lambda request: httpx.Response(404)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upstream() -> Upstream:
    return Upstream()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATA_DIR=str(tmp_path / "data"),
        CLIENT_DIST_DIR=str(tmp_path / "dist"),
        NEWSAPI_KEY="",
        COINGECKO_API_KEY="",
    )


@pytest.fixture
def client(settings: Settings, upstream: Upstream, clock: FakeClock):
    app = create_app(settings, transport=upstream.transport, clock=clock)
    with TestClient(app) as test_client:
        yield test_client
