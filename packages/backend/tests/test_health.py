"""Health and stats endpoint tests."""

import pytest
from httpx import ASGITransport, AsyncClient

from tagrelay.config import Settings
from tagrelay.main import create_app

from conftest import FakeChannel


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["status"] == "healthy"
    assert data["message"] == "Server is healthy"
    assert data["redis"] == "disabled"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_degraded_without_redis():
    """A configured but unreachable Redis degrades, never fails, the check."""
    app = create_app(Settings(redis_url="redis://localhost:1/0"))
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        resp = await ac.get("/api/v1/health")

    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["status"] == "degraded"
    assert data["redis"].startswith("error")


@pytest.mark.asyncio
async def test_health_counts_connections(client, app):
    relay = app.state.relay
    ref = relay.on_consumer_connect(FakeChannel(), "10.0.0.1")
    relay.on_consumer_connect(FakeChannel(), "10.0.0.2")
    relay.on_consumer_message(ref, '{"correlationId": "job-42"}')

    data = (await client.get("/api/v1/health")).json()
    assert data["connections"] == 2
    assert data["bound_connections"] == 1


@pytest.mark.asyncio
async def test_stats_endpoint(client):
    await client.post("/api/v1/items", json={"correlationId": "job-42"})
    resp = await client.get("/api/v1/stats")
    assert resp.status_code == 200
    data = resp.json()
    assert data["connections"] == 0
    assert data["dispatcher"]["items"] == 1
    assert data["keepalive"]["evictions"] == 0
