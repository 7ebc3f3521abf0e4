"""
Pytest configuration and shared fixtures.

Run from the repo root:
  pytest tests/

The upstream product-info API is replaced with an httpx.MockTransport, and
every sleep is recorded instead of awaited, so nothing here touches the
network or waits in real time.
"""

import asyncio
import os

# ── Must be set BEFORE any app imports ────────────────────────────────────────
os.environ.setdefault("PORT", "3000")
os.environ.setdefault("CORS_ORIGINS", "*")

import httpx
import pytest
from fastapi.testclient import TestClient

# Import app after env vars are set
from main import app
from cache import TTLCache
from gamepass import GamepassService

UPSTREAM_URL = "https://upstream.test/game-passes/{id}/product-info"

SAMPLE_PRODUCT = {
    "Name":         "VIP Pass",
    "Description":  "Double coins forever",
    "PriceInRobux": 250,
    "IsForSale":    True,
    "Created":      "2023-01-05T10:00:00Z",
    "Updated":      "2024-03-01T12:30:00Z",
}


# ── Fakes ─────────────────────────────────────────────────────────────────────


class FakeUpstream:
    """
    Scripted stand-in for the product-info API.

    ``add(id, *responses)`` queues responses for an id; each request pops the
    next one and the last one repeats. Exceptions in the queue are raised
    from the transport. Unknown ids get a 404.
    """

    def __init__(self):
        self.routes: dict[str, list] = {}
        self.calls: list[str] = []
        self.clients: list[httpx.AsyncClient] = []

    def add(self, gamepass_id, *responses):
        self.routes[str(gamepass_id)] = list(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        gamepass_id = request.url.path.split("/")[-2]
        self.calls.append(gamepass_id)
        queue = self.routes.get(gamepass_id)
        if not queue:
            return httpx.Response(404)
        resp = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(resp, Exception):
            raise resp
        return resp

    def client(self) -> httpx.AsyncClient:
        c = httpx.AsyncClient(transport=httpx.MockTransport(self.handler))
        self.clients.append(c)
        return c

    def close(self) -> None:
        """Close every client handed out, on a private loop so no running loop is disturbed."""
        loop = asyncio.new_event_loop()
        try:
            for c in self.clients:
                loop.run_until_complete(c.aclose())
        finally:
            loop.close()
        self.clients.clear()


class SleepRecorder:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Fixtures ──────────────────────────────────────────────────────────────────


@pytest.fixture
def upstream():
    fake = FakeUpstream()
    yield fake
    fake.close()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(upstream, sleeps, clock):
    return GamepassService(
        TTLCache(clock=clock),
        upstream.client(),
        api_url=UPSTREAM_URL,
        sleep=sleeps,
    )


@pytest.fixture(scope="session")
def client():
    """TestClient running the real lifespan (scheduler + upstream client)."""
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def api(client, service):
    """TestClient whose requests resolve through the fake-upstream service."""
    original = app.state.gamepass
    app.state.gamepass = service
    yield client
    app.state.gamepass = original
