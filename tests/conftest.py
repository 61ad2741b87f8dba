"""Shared fixtures: an in-process fake of the gate-control service.

The fake mirrors the real server's behaviour that matters to the client:

* ``POST /auth/login``   → 200 token pair, 403 on bad password
* ``POST /auth/refresh`` → 200 new pair; refresh tokens are single-use (404 on reuse)
* ``POST /auth/logout``  → 401 without a valid bearer token
* ``GET  /gates/list``   → gates of the user
* ``POST /gates/open/x`` → 401 when the user may not open *x*
"""

from __future__ import annotations

import asyncio
import itertools
from collections import Counter
from pathlib import Path

import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from gate_client.auth.session import Session
from gate_client.utils.environment import GateClientConfig

BASE_URL = "http://gate.test"

DEFAULT_GATES = [
    {"id": 1, "name": "Main", "description": "Main entrance", "retries": 1},
    {"id": 2, "name": "Parking lot", "description": "Parking barrier", "retries": 3},
]


def pytest_addoption(parser):
    """Add integration option to pytest."""
    parser.addoption(
        "--integration",
        action="store_true",
        default=False,
        help="run integration tests",
    )


# --------------------------------------------------------------------------- #
# Fake server                                                                 #
# --------------------------------------------------------------------------- #
class FakeGateServer:
    """Starlette app emulating the gate service with inspectable counters."""

    def __init__(self) -> None:
        self.users: dict[str, str] = {"alice": "wonderland"}
        self.gates: list[dict] = list(DEFAULT_GATES)
        self.access_tokens: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.calls: Counter[str] = Counter()
        self.bearers_seen: list[str | None] = []
        self.opened: list[str] = []
        # seconds the refresh handler waits before answering
        self.refresh_delay: float = 0.0
        self._ids = itertools.count(1)
        self.app = Starlette(
            routes=[
                Route("/auth/login", self._login, methods=["POST"]),
                Route("/auth/refresh", self._refresh, methods=["POST"]),
                Route("/auth/logout", self._logout, methods=["POST"]),
                Route("/gates/list", self._list, methods=["GET"]),
                Route("/gates/open/{gate}", self._open, methods=["POST"]),
            ]
        )

    # ----- helpers -------------------------------------------------------- #
    @property
    def refresh_calls(self) -> int:
        return self.calls["/auth/refresh"]

    def issue(self, username: str) -> dict[str, str]:
        n = next(self._ids)
        pair = {"access_token": f"access-{n}", "refresh_token": f"refresh-{n}"}
        self.access_tokens[pair["access_token"]] = username
        self.refresh_tokens[pair["refresh_token"]] = username
        return pair

    def expire_access_tokens(self) -> None:
        self.access_tokens.clear()

    def revoke_refresh_tokens(self) -> None:
        self.refresh_tokens.clear()

    def _user(self, request: Request) -> str | None:
        header = request.headers.get("authorization")
        token = None
        if header and header.startswith("Bearer "):
            token = header[len("Bearer ") :]
        self.bearers_seen.append(token)
        return self.access_tokens.get(token) if token else None

    @staticmethod
    def _unauthorized() -> JSONResponse:
        return JSONResponse({"error": "Unauthorized access"}, status_code=401)

    # ----- handlers ------------------------------------------------------- #
    async def _login(self, request: Request) -> Response:
        self.calls[request.url.path] += 1
        data = await request.json()
        if self.users.get(data.get("login")) != data.get("password"):
            return JSONResponse({"error": "Invalid login or password"}, status_code=403)
        return JSONResponse(self.issue(data["login"]))

    async def _refresh(self, request: Request) -> Response:
        self.calls[request.url.path] += 1
        data = await request.json()
        if self.refresh_delay:
            await asyncio.sleep(self.refresh_delay)
        username = self.refresh_tokens.pop(data.get("refresh_token"), None)
        if username is None:
            return Response("Not Found", status_code=404)
        return JSONResponse(self.issue(username))

    async def _logout(self, request: Request) -> Response:
        self.calls[request.url.path] += 1
        username = self._user(request)
        if username is None:
            return self._unauthorized()
        for token, owner in list(self.refresh_tokens.items()):
            if owner == username:
                del self.refresh_tokens[token]
        return JSONResponse({"success": True})

    async def _list(self, request: Request) -> Response:
        self.calls[request.url.path] += 1
        if self._user(request) is None:
            return self._unauthorized()
        return JSONResponse({"gates": self.gates})

    async def _open(self, request: Request) -> Response:
        self.calls["/gates/open"] += 1
        if self._user(request) is None:
            return self._unauthorized()
        gate = request.path_params["gate"]
        if gate not in {g["name"] for g in self.gates}:
            return self._unauthorized()
        self.opened.append(gate)
        return JSONResponse({"success": True})


class FaultInjectingTransport(httpx.AsyncBaseTransport):
    """Wrap a transport and raise a chosen exception for selected paths."""

    def __init__(self, inner: httpx.AsyncBaseTransport) -> None:
        self.inner = inner
        self.faults: dict[str, Exception] = {}

    def fail(self, path: str, exc: Exception) -> None:
        self.faults[path] = exc

    def heal(self) -> None:
        self.faults.clear()

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        exc = self.faults.get(request.url.path)
        if exc is not None:
            raise exc
        return await self.inner.handle_async_request(request)

    async def aclose(self) -> None:
        await self.inner.aclose()


# --------------------------------------------------------------------------- #
# Fixtures                                                                    #
# --------------------------------------------------------------------------- #
@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def gate_server() -> FakeGateServer:
    return FakeGateServer()


@pytest.fixture
def transport(gate_server: FakeGateServer) -> FaultInjectingTransport:
    return FaultInjectingTransport(httpx.ASGITransport(app=gate_server.app))


@pytest.fixture
async def http_client(transport: FaultInjectingTransport):
    """AsyncClient bound to the fake server (shared, not owned by sessions)."""
    async with httpx.AsyncClient(transport=transport, base_url=BASE_URL) as client:
        yield client


@pytest.fixture
def config(tmp_path: Path) -> GateClientConfig:
    return GateClientConfig(api_url=BASE_URL, timeout=5.0, storage_dir=tmp_path / "auth")


@pytest.fixture
def session_factory(http_client: httpx.AsyncClient):
    """Session factory injecting the shared fake-server client."""

    def _factory(config: GateClientConfig, **kwargs) -> Session:  # noqa: ANN003
        return Session(config, client=http_client, **kwargs)

    return _factory


@pytest.fixture
def session(config: GateClientConfig, session_factory) -> Session:
    return session_factory(config)
