"""Pydantic schemas for consumer messages and producer items.

Learn: Both directions carry the correlation id as `correlationId` on the
wire; the Python side uses `correlation_id`. Validation happens here, at
the edge, so the relay core only ever sees a checked, non-blank string.

Consumer → relay messages:
- {"correlationId": "job-42"}   bind (or rebind) this connection
- {"type": "pong"}              heartbeat ack
- {"type": "ping"}              client keepalive, answered with a pong

Relay → consumer messages:
- {"type": "ping"}                              heartbeat
- {"type": "pong"}                              answer to a client ping
- {"type": "bound", "correlationId": "job-42"}  bind acknowledged
- any producer item, verbatim
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ─── Message types ───────────────────────────────────────

PING = "ping"
PONG = "pong"
BOUND = "bound"


def _require_non_blank(value: Optional[str]) -> Optional[str]:
    if value is not None and not value.strip():
        raise ValueError("correlationId must not be blank")
    return value


# ─── Consumer side ───────────────────────────────────────

class ConsumerMessage(BaseModel):
    """Anything a consumer sends over its WebSocket."""

    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    correlation_id: Optional[str] = Field(None, alias="correlationId")

    @field_validator("correlation_id")
    @classmethod
    def correlation_id_not_blank(cls, v):
        return _require_non_blank(v)


# ─── Producer side ───────────────────────────────────────

class ProducerItem(BaseModel):
    """A producer item. Extra fields are allowed and relayed untouched."""

    model_config = ConfigDict(extra="allow")

    correlation_id: str = Field(..., alias="correlationId", min_length=1)

    @field_validator("correlation_id")
    @classmethod
    def correlation_id_not_blank(cls, v):
        return _require_non_blank(v)


class ItemResponse(BaseModel):
    """What POST /items returns."""
    message: str
    correlation_id: Optional[str] = None
    delivered_count: int = Field(0, ge=0)
    accepted: bool = True
    detail: Optional[str] = None
