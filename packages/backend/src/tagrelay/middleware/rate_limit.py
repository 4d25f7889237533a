"""Rate limiting middleware — Redis-based per-minute window.

Learn: Uses a per-minute window counter stored in Redis.
Each IP gets a counter key like "tagrelay:rl:{ip}:{bucket}:{minute}".
The producer endpoint gets a stricter limit (10/min) — producers are
expected to submit a handful of items, not stream them.

Gracefully skips rate limiting if Redis is unavailable (e.g., in tests).
WebSocket traffic never passes through here (HTTP middleware only).
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

PRODUCER_PATH = "/api/v1/items"


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(
        self,
        app,
        default_rpm: int = 100,
        producer_rpm: int = 10,
        producer_path: str = PRODUCER_PATH,
    ):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.producer_rpm = producer_rpm
        self.producer_path = producer_path

    async def dispatch(self, request: Request, call_next) -> Response:
        # Skip rate limiting if Redis is unavailable
        try:
            from tagrelay.realtime.redis_client import get_redis

            redis = get_redis()
        except Exception:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"

        # Stricter limit for the producer endpoint
        is_producer = request.url.path.rstrip("/") == self.producer_path
        rpm = self.producer_rpm if is_producer else self.default_rpm

        # Window key: per IP, per bucket type, per minute
        window = int(time.time() // 60)
        bucket = "producer" if is_producer else "api"
        key = f"tagrelay:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)  # 2-min TTL for safety
        except Exception:
            # Redis error: let the request through
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
