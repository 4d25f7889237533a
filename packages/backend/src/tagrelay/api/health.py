"""Health check endpoints.

Learn: The relay itself has no dependencies that can be down — it holds
everything in process memory — so "server": "ok" is the liveness answer.
Redis is reported for visibility but only affects rate limiting, so a
Redis outage marks the service "degraded", never unhealthy.
"""

from fastapi import APIRouter, Depends, Request

from tagrelay import __version__
from tagrelay.api.deps import get_relay
from tagrelay.relay.service import Relay

router = APIRouter()


@router.get("/health")
async def health_check(request: Request, relay: Relay = Depends(get_relay)):
    """Check server health and dependency connectivity."""
    settings = request.app.state.settings
    checks = {"server": "ok", "version": __version__}

    # Check Redis
    if not settings.redis_url:
        checks["redis"] = "disabled"
    else:
        try:
            from tagrelay.realtime.redis_client import get_redis

            await get_redis().ping()
            checks["redis"] = "ok"
        except Exception as e:
            checks["redis"] = f"error: {e}"

    status = "healthy" if checks["redis"] in ("ok", "disabled") else "degraded"

    return {
        "status": status,
        "message": "Server is healthy",
        **checks,
        "connections": len(relay.registry),
        "bound_connections": relay.registry.count_bound(),
    }


@router.get("/stats")
async def relay_stats(relay: Relay = Depends(get_relay)):
    """Connection counts plus dispatcher and keepalive counters."""
    return relay.get_stats()
