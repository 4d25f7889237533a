"""Test fixtures — fake channels, a controllable clock, and app clients.

Learn: The relay core is transport-agnostic, so most tests drive it with
FakeChannel objects that record what was sent instead of real sockets,
and a FakeClock so keepalive timing is exact without sleeping.

HTTP routes are tested through httpx's ASGITransport (no lifespan, no
background loops). The WebSocket endpoint needs a real event loop on the
app side, so those tests use Starlette's TestClient instead.
"""

import json

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tagrelay.config import Settings
from tagrelay.main import create_app
from tagrelay.relay.dispatcher import BroadcastDispatcher
from tagrelay.relay.keepalive import KeepaliveMonitor
from tagrelay.relay.registry import ConnectionRegistry
from tagrelay.relay.service import Relay


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeChannel:
    """In-memory Channel that records sends and heartbeats."""

    def __init__(self, accept_sends: bool = True, raise_on_send: bool = False):
        self.sent: list[str] = []
        self.pings = 0
        self.open = True
        self.close_calls = 0
        self.accept_sends = accept_sends
        self.raise_on_send = raise_on_send

    def send(self, data: str) -> bool:
        if self.raise_on_send:
            raise ConnectionResetError("peer reset")
        if not self.accept_sends:
            return False
        self.sent.append(data)
        return True

    def ping(self) -> bool:
        if not self.accept_sends:
            return False
        self.pings += 1
        return True

    def close(self) -> None:
        self.close_calls += 1
        self.open = False

    def is_open(self) -> bool:
        return self.open

    @property
    def messages(self) -> list[dict]:
        return [json.loads(s) for s in self.sent]

    def items(self) -> list[dict]:
        """Sent messages minus relay control messages (bound/pong)."""
        return [m for m in self.messages if "type" not in m]


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def registry(clock):
    return ConnectionRegistry(clock=clock)


@pytest.fixture()
def dispatcher(registry):
    return BroadcastDispatcher(registry)


@pytest.fixture()
def monitor(registry):
    return KeepaliveMonitor(
        registry,
        heartbeat_interval=30.0,
        inactivity_timeout=120.0,
        sweep_interval=60.0,
    )


@pytest.fixture()
def relay(registry, dispatcher, monitor):
    return Relay(registry, dispatcher, monitor)


@pytest.fixture()
def test_settings():
    """Settings with Redis disabled so nothing reaches the network."""
    return Settings(redis_url="", environment="test")


@pytest.fixture()
def app(test_settings):
    return create_app(test_settings)


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
