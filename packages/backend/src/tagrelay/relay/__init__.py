"""Relay core — connection registry, keepalive monitor, broadcast dispatcher.

Learn: Everything in this package is transport-agnostic. The WebSocket
endpoint wraps each socket in a `Channel` and calls the `Relay`
entrypoints; the core never imports FastAPI or Starlette.

    producer item ─▶ Relay.on_producer_item ─▶ BroadcastDispatcher
                                                   │ lookup(correlation_id)
    consumer ws ──▶ Relay.on_consumer_* ──────▶ ConnectionRegistry ◀── KeepaliveMonitor
"""

from tagrelay.relay.channel import Channel
from tagrelay.relay.dispatcher import BroadcastDispatcher, InvalidItemError, Item
from tagrelay.relay.keepalive import KeepaliveMonitor
from tagrelay.relay.registry import Connection, ConnectionRegistry, LivenessState
from tagrelay.relay.service import DeliveryReport, Relay

__all__ = [
    "BroadcastDispatcher",
    "Channel",
    "Connection",
    "ConnectionRegistry",
    "DeliveryReport",
    "InvalidItemError",
    "Item",
    "KeepaliveMonitor",
    "LivenessState",
    "Relay",
]
