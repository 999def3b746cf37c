"""Pytest configuration and fixtures for rest-engine tests.

This file provides:
- FakeClock: Controllable epoch-seconds clock for token expiry
- RecordingHandler: httpx.MockTransport handler that routes and records calls
- PortReservation: Race-free port allocation for unreachable-host tests
- Fixtures: clock, handler, cache, engine
"""

from __future__ import annotations

import json
import socket
from typing import Any, Callable
from urllib.parse import parse_qsl

import httpx
import pytest

from rest_engine.engine import RestEngine
from rest_engine.models import EngineConfig, Success
from rest_engine.token_cache import TokenCache

TOKEN_URL = "https://auth.example.com/oauth/token"
API_BASE_URL = "https://api.example.com"

Responder = Callable[[httpx.Request], httpx.Response]


def make_success(
    status_code: int = 200,
    headers: dict[str, str] | None = None,
    body: str = "",
    elapsed_ms: float = 10.0,
    url: str = API_BASE_URL,
) -> Success:
    """Create a Success result with sensible defaults."""
    return Success(
        status_code=status_code,
        headers=headers or {},
        body=body,
        elapsed_ms=elapsed_ms,
        url=url,
    )


def token_response(
    access_token: str = "abc123",
    expires_in: Any = 3600,
    status_code: int = 200,
    **extra: Any,
) -> httpx.Response:
    """Build a token endpoint JSON response."""
    payload: dict[str, Any] = {"access_token": access_token, "token_type": "Bearer"}
    if expires_in is not None:
        payload["expires_in"] = expires_in
    payload.update(extra)
    return httpx.Response(status_code, json=payload)


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """Routes requests by URL (query string ignored) and records every call.

    Usage:
        handler = RecordingHandler()
        handler.add(TOKEN_URL, token_response())
        transport = httpx.MockTransport(handler)
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._routes: dict[str, httpx.Response | Responder] = {}

    def add(self, url: str, response: httpx.Response | Responder) -> None:
        self._routes[url] = response

    def calls_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if _route_key(r) == url]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        request.read()
        self.requests.append(request)
        route = self._routes.get(_route_key(request))
        if route is None:
            return httpx.Response(404, json={"error": "no route"})
        if isinstance(route, httpx.Response):
            # Responses are single-use once read; hand out a fresh copy
            return httpx.Response(
                route.status_code,
                headers=route.headers,
                content=route.content,
            )
        return route(request)


def _route_key(request: httpx.Request) -> str:
    return str(request.url.copy_with(query=None))


def form_fields(request: httpx.Request) -> dict[str, str]:
    """Decode a form-encoded request body."""
    return dict(parse_qsl(request.content.decode("ascii")))


def json_body(request: httpx.Request) -> Any:
    return json.loads(request.content)


class PortReservation:
    """Holds a reserved port with socket kept open to prevent races.

    Nothing ever listens on the port, so connecting to it after release()
    gets a prompt connection refusal.
    """

    def __init__(self) -> None:
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(("127.0.0.1", 0))  # Port 0 = OS assigns ephemeral port
        self._port = self._socket.getsockname()[1]
        self._released = False

    @property
    def port(self) -> int:
        return self._port

    def release(self) -> int:
        """Release the socket and return the port. Safe to call multiple times."""
        if not self._released:
            self._socket.close()
            self._released = True
        return self._port

    def __enter__(self) -> PortReservation:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


def find_free_port() -> int:
    """Find a port on localhost with nothing listening on it."""
    with PortReservation() as reservation:
        return reservation.port


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def cache(clock: FakeClock) -> TokenCache:
    return TokenCache(clock=clock)


@pytest.fixture
def engine(handler: RecordingHandler, cache: TokenCache) -> RestEngine:
    """Engine wired to the recording handler, with no default headers."""
    return RestEngine(
        config=EngineConfig(default_headers={}),
        token_cache=cache,
        http_transport=httpx.MockTransport(handler),
    )
