"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: There is no auth layer — producers and consumers are trusted
callers on a private network. The producer endpoint is protected by
rate limiting instead (see middleware/rate_limit.py).
"""

from fastapi import APIRouter

from tagrelay.api.health import router as health_router
from tagrelay.api.items import router as items_router

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(health_router, tags=["health"])
api_router.include_router(items_router, tags=["items"])
