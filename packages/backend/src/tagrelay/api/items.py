"""Producer endpoint — submit one item for relay.

Learn: The body must be a JSON object (FastAPI rejects anything else with
422 before the relay sees it). Inside the object only `correlationId` is
checked; every other field is relayed verbatim to the matching
consumers, `correlationId` included.

A missing or blank correlationId is not an HTTP error: the response is
200 with accepted=false and delivered_count=0. Zero deliveries with
accepted=true simply means no consumer is bound to that id right now.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends

from tagrelay.api.deps import get_relay
from tagrelay.relay.service import Relay
from tagrelay.schemas.relay import ItemResponse

router = APIRouter()


@router.post("/items", response_model=ItemResponse)
async def submit_item(
    item: dict[str, Any] = Body(...),
    relay: Relay = Depends(get_relay),
):
    """Broadcast an item to every consumer bound to its correlationId."""
    report = relay.on_producer_item(item)

    if not report.accepted:
        return ItemResponse(
            message="Item rejected: no valid correlationId.",
            delivered_count=0,
            accepted=False,
            detail=report.detail,
        )

    return ItemResponse(
        message="Item received and broadcast.",
        correlation_id=report.correlation_id,
        delivered_count=report.delivered_count,
    )
