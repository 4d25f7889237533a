"""Broadcast dispatcher — deliver one item to every matching consumer.

Learn: The dispatcher holds no connections of its own. It asks the
registry for a snapshot of refs bound to the item's correlation id and
resolves each ref to a channel at send time, so a consumer that
disconnects mid-broadcast is simply skipped.

Delivery outcomes per ref:
- channel gone or not open → skipped (raced with a disconnect, not an error)
- send refused or raised    → transport failure, connection removed
- send accepted             → delivered
"""

import json
from dataclasses import dataclass, field
from typing import Any

import structlog

from tagrelay.relay.registry import ConnectionRegistry

logger = structlog.get_logger()


class InvalidItemError(ValueError):
    """Raised for an item that cannot be routed (no correlation id)."""


@dataclass(frozen=True)
class Item:
    """A producer-submitted payload. Never stored, only relayed."""

    correlation_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class DispatcherStats:
    """Runtime statistics for monitoring."""
    items: int = 0
    deliveries: int = 0
    skipped: int = 0
    send_failures: int = 0
    rejected: int = 0


class BroadcastDispatcher:
    """Targeted broadcast over the connection registry."""

    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self.stats = DispatcherStats()

    def dispatch(self, item: Item) -> int:
        """Send `item.payload` to every connection bound to its correlation id.

        Returns the number of connections the payload was handed to. Zero
        is a normal outcome: nobody is listening for that id right now.
        """
        if not isinstance(item.correlation_id, str) or not item.correlation_id.strip():
            self.stats.rejected += 1
            raise InvalidItemError("correlation id is required")

        data = json.dumps(item.payload)
        delivered = 0
        skipped = 0
        failed = 0

        for ref in self.registry.lookup(item.correlation_id):
            channel = self.registry.channel(ref)
            if channel is None or not channel.is_open():
                skipped += 1
                continue

            try:
                ok = channel.send(data)
            except Exception as e:
                logger.warning(
                    "dispatcher.send_error",
                    connection_id=ref,
                    correlation_id=item.correlation_id,
                    error=str(e),
                )
                ok = False

            if ok:
                delivered += 1
            else:
                failed += 1
                self.registry.remove(ref)

        self.stats.items += 1
        self.stats.deliveries += delivered
        self.stats.skipped += skipped
        self.stats.send_failures += failed

        logger.info(
            "dispatcher.broadcast",
            correlation_id=item.correlation_id,
            delivered=delivered,
            skipped=skipped,
            failed=failed,
        )
        return delivered

    def get_stats(self) -> dict:
        return {
            "items": self.stats.items,
            "deliveries": self.stats.deliveries,
            "skipped": self.stats.skipped,
            "send_failures": self.stats.send_failures,
            "rejected": self.stats.rejected,
        }
