"""Rate limiter tests.

Learn: The limiter talks to Redis through get_redis(). Here that is
patched to return a tiny in-memory counter with the two commands the
limiter uses (INCR, EXPIRE), so the per-minute windows can be checked
without a Redis server.
"""

import pytest

import tagrelay.realtime.redis_client as redis_client


class CounterRedis:
    """Just enough of redis.asyncio.Redis for the limiter."""

    def __init__(self, fail: bool = False):
        self.counts: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail

    async def incr(self, key: str) -> int:
        if self.fail:
            raise ConnectionError("redis down")
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]

    async def expire(self, key: str, seconds: int) -> bool:
        self.ttls[key] = seconds
        return True


@pytest.fixture()
def fake_redis(monkeypatch):
    fake = CounterRedis()
    monkeypatch.setattr(redis_client, "_redis", fake)
    return fake


@pytest.mark.asyncio
async def test_producer_endpoint_limited_to_ten_per_minute(client, fake_redis):
    item = {"correlationId": "job-42"}
    for i in range(10):
        r = await client.post("/api/v1/items", json=item)
        assert r.status_code == 200, i
        assert r.headers["X-RateLimit-Limit"] == "10"
        assert r.headers["X-RateLimit-Remaining"] == str(9 - i)

    r = await client.post("/api/v1/items", json=item)
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "60"
    assert r.json()["detail"].startswith("Rate limit exceeded")


@pytest.mark.asyncio
async def test_other_routes_use_default_limit(client, fake_redis):
    for _ in range(12):
        r = await client.get("/api/v1/health")
        assert r.status_code == 200
    assert r.headers["X-RateLimit-Limit"] == "100"


@pytest.mark.asyncio
async def test_producer_and_api_buckets_are_separate(client, fake_redis):
    for _ in range(10):
        await client.post("/api/v1/items", json={"correlationId": "job-42"})
    assert (await client.post("/api/v1/items", json={"correlationId": "job-42"})).status_code == 429
    assert (await client.get("/api/v1/health")).status_code == 200

    buckets = {key.split(":")[3] for key in fake_redis.counts}
    assert buckets == {"producer", "api"}
    assert set(fake_redis.ttls.values()) == {120}


@pytest.mark.asyncio
async def test_redis_errors_do_not_block(client, monkeypatch):
    monkeypatch.setattr(redis_client, "_redis", CounterRedis(fail=True))
    for _ in range(15):
        r = await client.post("/api/v1/items", json={"correlationId": "job-42"})
        assert r.status_code == 200


@pytest.mark.asyncio
async def test_skipped_without_redis(client):
    for _ in range(15):
        r = await client.post("/api/v1/items", json={"correlationId": "job-42"})
        assert r.status_code == 200
    assert "X-RateLimit-Limit" not in r.headers
