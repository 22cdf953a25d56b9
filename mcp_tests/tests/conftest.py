import asyncio
import json

import httpx
import pytest

import core.cache as cache_mod
from clients.wanikani import WaniKaniClient
from core.backends import MemoryBackend


TOKEN = "0123456789abcdef0123456789abcdef"
TOKEN_SUFFIX = "89abcdef"
BASE_URL = "https://api.wanikani.com/v2"


class DummyMCP:
    """Minimal FastMCP stand-in to capture tool registration."""

    def __init__(self) -> None:
        self.tools = {}

    def tool(self, *, name: str):
        def _decorator(fn):
            self.tools[name] = fn
            return fn
        return _decorator


class FakeClock:
    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class Router:
    """httpx.MockTransport handler that serves queued responses per path+query.

    routes keys:
        "/user" or "/subjects?levels=1" -> list of httpx.Response (served in order,
        the last one repeats) or a callable(request) -> httpx.Response
    """

    def __init__(self, routes: dict):
        self.routes = {k: (v if callable(v) else list(v)) for k, v in routes.items()}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.decode("ascii")
        if path.startswith("/v2"):
            path = path[len("/v2"):]

        route = self.routes.get(path)
        if route is None:
            return httpx.Response(404, json={"error": "Not found", "code": 404})
        if callable(route):
            return route(request)
        if len(route) > 1:
            return route.pop(0)
        return route[0]

    def count(self, path: str) -> int:
        return sum(1 for r in self.requests if r.url.raw_path.decode("ascii") == "/v2" + path)


def page(items, next_url=None):
    return {
        "object": "collection",
        "url": BASE_URL + "/x",
        "pages": {"per_page": 500, "next_url": next_url, "previous_url": None},
        "total_count": len(items),
        "data_updated_at": "2024-01-01T00:00:00.000000Z",
        "data": items,
    }


def record(obj: str, rid: int, **data):
    return {
        "id": rid,
        "object": obj,
        "url": f"{BASE_URL}/{obj}s/{rid}",
        "data_updated_at": "2024-01-01T00:00:00.000000Z",
        "data": data,
    }


def user_payload(level=5, max_level_granted=60):
    return {
        "object": "user",
        "url": BASE_URL + "/user",
        "data_updated_at": "2024-01-01T00:00:00.000000Z",
        "data": {
            "id": "5a6a5234-a392-4a87-8f3f-33342afe8a42",
            "username": "koichi",
            "level": level,
            "subscription": {"active": True, "type": "recurring", "max_level_granted": max_level_granted},
        },
    }


def json_response(payload, status=200, headers=None):
    return httpx.Response(status, json=payload, headers=headers or {})


def stored(backend, key):
    raw = backend.get_item(key)
    return None if raw is None else json.loads(raw)


@pytest.fixture
def dummy_mcp():
    return DummyMCP()


@pytest.fixture
def clock(monkeypatch):
    c = FakeClock()
    monkeypatch.setattr(cache_mod, "now_ms", c)
    return c


@pytest.fixture
def sleeps(monkeypatch):
    """Record asyncio.sleep durations instead of waiting."""
    calls = []

    async def fake_sleep(seconds, result=None):
        calls.append(seconds)
        return result

    monkeypatch.setattr(asyncio, "sleep", fake_sleep)
    return calls


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def make_client(backend):
    def _make(routes, **kwargs):
        router = routes if isinstance(routes, Router) else Router(routes)
        kwargs.setdefault("backend", backend)
        client = WaniKaniClient(TOKEN, http_transport=httpx.MockTransport(router), **kwargs)
        return client, router
    return _make
