import asyncio
import time
from typing import Any, Callable, Optional

import jwt
import pytest

from crawldash.config import ClientSettings
from crawldash.http.transport import BaseHttpTransport, HttpRequest, HttpResponse
from crawldash.network.transport.dummy import DummyTransport

SIGNING_KEY = "test-signing-key"


def make_token(expires_in: float = 3600, **claims: Any) -> str:
    payload = {"sub": "1", "exp": int(time.time() + expires_in)}
    payload.update(claims)
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


def make_settings(**overrides: Any) -> ClientSettings:
    values: dict[str, Any] = {
        "state_path": None,
        "transport": "dummy",
        "reconnect_base_delay_seconds": 0.01,
        "reconnect_max_delay_seconds": 0.05,
        "reconnect_max_attempts": 5,
        "connect_timeout_seconds": 0.5,
        "heartbeat_interval_seconds": 0,
        "heartbeat_timeout_seconds": 0,
        "token_poll_interval_seconds": 0.05,
        "token_refresh_threshold_seconds": 300,
        "api_retry_attempts": 3,
        "api_retry_delay_seconds": 0,
    }
    values.update(overrides)
    return ClientSettings(**values)


async def wait_for(predicate: Callable[[], bool], *, timeout: float = 1.0, interval: float = 0.005) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


Route = Callable[[HttpRequest], HttpResponse]


class FakeHttpTransport(BaseHttpTransport):
    """Routes requests to per-endpoint callables and records what was sent."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], Route] = {}
        self.requests: list[HttpRequest] = []
        self.closed = False

    def route(self, method: str, path: str, handler: Route | HttpResponse) -> None:
        if isinstance(handler, HttpResponse):
            response = handler
            handler = lambda _request: response  # noqa: E731
        self.routes[(method.upper(), path)] = handler

    def calls(self, method: str, path: str) -> list[HttpRequest]:
        return [req for req in self.requests if req.method == method.upper() and req.path == path]

    async def send(self, request: HttpRequest) -> HttpResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        handler = self.routes.get((request.method, request.path))
        if handler is None:
            return HttpResponse(status_code=404, data={"error": "not_found"})
        return handler(request)

    async def close(self) -> None:
        self.closed = True


def bearer(request: HttpRequest) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    return header[len("Bearer "):] if header.startswith("Bearer ") else None


class FlakyTransport(DummyTransport):
    def __init__(self, url: str, error: Optional[BaseException] = None) -> None:
        super().__init__(url)
        self._error = error

    async def connect(self) -> None:
        if self._error is not None:
            raise self._error
        await super().connect()


class ChannelFactory:
    """Hands out in-memory channel transports; ``failures`` connects fail first."""

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.created: list[FlakyTransport] = []

    def __call__(self, url: str) -> FlakyTransport:
        error = None
        if self.failures > 0:
            self.failures -= 1
            error = ConnectionRefusedError("refused")
        transport = FlakyTransport(url, error)
        self.created.append(transport)
        return transport

    @property
    def latest(self) -> FlakyTransport:
        return self.created[-1]

    @property
    def connected(self) -> list[FlakyTransport]:
        return [transport for transport in self.created if transport._error is None]


@pytest.fixture
def settings() -> ClientSettings:
    return make_settings()


@pytest.fixture
def http() -> FakeHttpTransport:
    return FakeHttpTransport()


@pytest.fixture
def channels() -> ChannelFactory:
    return ChannelFactory()
