"""Relay — the entrypoints the ingress layer calls.

Learn: The WebSocket endpoint and the items route never touch the
registry directly. They call these five methods:

- on_consumer_connect       socket accepted → register (unbound)
- on_consumer_message       any inbound frame → touch, bind, then ack / pong
- on_consumer_liveness_ack  heartbeat ack → touch
- on_consumer_disconnect    socket gone → remove
- on_producer_item          POST body → validate → dispatch

Validation failures are expected (a consumer typo, a producer omitting
the id). They are logged and turned into no-ops or a success-shaped
report; nothing in here raises to the caller.
"""

import json
from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from tagrelay.relay.channel import Channel
from tagrelay.relay.dispatcher import BroadcastDispatcher, InvalidItemError, Item
from tagrelay.relay.keepalive import KeepaliveMonitor
from tagrelay.relay.registry import ConnectionRegistry
from tagrelay.schemas.relay import BOUND, PING, PONG, ConsumerMessage, ProducerItem

logger = structlog.get_logger()

RawMessage = Union[str, bytes, dict]


@dataclass(frozen=True)
class DeliveryReport:
    """Outcome of one producer submission."""
    delivered_count: int
    correlation_id: Optional[str] = None
    accepted: bool = True
    detail: Optional[str] = None


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(part) for part in err.get("loc", ())) or "body"
    return f"{loc}: {err.get('msg', 'invalid')}"


class Relay:
    """Wires registry, dispatcher and keepalive monitor together."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        dispatcher: Optional[BroadcastDispatcher] = None,
        monitor: Optional[KeepaliveMonitor] = None,
    ):
        self.registry = registry
        self.dispatcher = dispatcher or BroadcastDispatcher(registry)
        self.monitor = monitor or KeepaliveMonitor(registry)

    @classmethod
    def from_settings(cls, settings) -> "Relay":
        registry = ConnectionRegistry()
        monitor = KeepaliveMonitor(
            registry,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            inactivity_timeout=settings.inactivity_timeout_seconds,
            sweep_interval=settings.sweep_interval_seconds,
        )
        return cls(registry, BroadcastDispatcher(registry), monitor)

    # ─── Consumer side ────────────────────────────────────

    def on_consumer_connect(self, channel: Channel, remote_address: str) -> str:
        ref = self.registry.register(channel, remote_address)
        logger.info(
            "relay.consumer_connected",
            connection_id=ref,
            remote_address=remote_address,
            connections=len(self.registry),
        )
        return ref

    def on_consumer_message(self, ref: str, raw: RawMessage) -> None:
        """Handle one inbound consumer frame.

        Every frame counts as a liveness signal, even one we can't parse.
        """
        if not self.registry.touch(ref):
            logger.debug("relay.message_for_unknown_connection", connection_id=ref)
            return

        try:
            if isinstance(raw, dict):
                msg = ConsumerMessage.model_validate(raw)
            else:
                msg = ConsumerMessage.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(
                "relay.consumer_message_invalid",
                connection_id=ref,
                error=_first_error(e),
            )
            return

        # A correlationId binds whatever the message type
        if msg.correlation_id is not None:
            if self.registry.bind(ref, msg.correlation_id):
                logger.info(
                    "relay.consumer_bound",
                    connection_id=ref,
                    correlation_id=msg.correlation_id,
                )
                self._reply(ref, {"type": BOUND, "correlationId": msg.correlation_id})

        if msg.type == PONG:
            self.on_consumer_liveness_ack(ref)
        elif msg.type == PING:
            self._reply(ref, {"type": PONG})
        elif msg.correlation_id is None:
            logger.warning(
                "relay.consumer_message_missing_correlation_id",
                connection_id=ref,
                message_type=msg.type,
            )

    def on_consumer_liveness_ack(self, ref: str) -> None:
        """Heartbeat ack: the connection is alive, reset its inactivity clock.

        The WebSocket ingress reaches this through a {"type": "pong"}
        message. Transports that see protocol-level pongs call it directly.
        """
        self.registry.touch(ref)

    def on_consumer_disconnect(self, ref: str) -> None:
        conn = self.registry.get(ref)
        if self.registry.remove(ref):
            logger.info(
                "relay.consumer_disconnected",
                connection_id=ref,
                remote_address=conn.remote_address if conn else None,
                correlation_id=conn.correlation_id if conn else None,
                connections=len(self.registry),
            )

    def _reply(self, ref: str, message: dict[str, Any]) -> None:
        channel = self.registry.channel(ref)
        if channel is None or not channel.is_open():
            return
        try:
            ok = channel.send(json.dumps(message))
        except Exception as e:
            logger.warning("relay.reply_error", connection_id=ref, error=str(e))
            ok = False
        if not ok:
            self.registry.remove(ref)

    # ─── Producer side ────────────────────────────────────

    def on_producer_item(self, raw: Any) -> DeliveryReport:
        """Validate a producer item and broadcast it verbatim."""
        try:
            item = ProducerItem.model_validate(raw)
        except ValidationError as e:
            detail = _first_error(e)
            logger.warning("relay.producer_item_invalid", error=detail)
            return DeliveryReport(delivered_count=0, accepted=False, detail=detail)

        try:
            delivered = self.dispatcher.dispatch(
                Item(correlation_id=item.correlation_id, payload=raw)
            )
        except InvalidItemError as e:
            logger.warning("relay.producer_item_rejected", error=str(e))
            return DeliveryReport(delivered_count=0, accepted=False, detail=str(e))

        return DeliveryReport(
            delivered_count=delivered,
            correlation_id=item.correlation_id,
        )

    # ─── Lifecycle ────────────────────────────────────────

    def start(self) -> None:
        self.monitor.start()

    async def stop(self) -> None:
        """Stop the monitor and close every remaining connection."""
        await self.monitor.stop()
        refs = self.registry.refs()
        for ref in refs:
            self.registry.remove(ref)
        logger.info("relay.stopped", closed_connections=len(refs))

    def get_stats(self) -> dict:
        return {
            "connections": len(self.registry),
            "bound_connections": self.registry.count_bound(),
            "dispatcher": self.dispatcher.get_stats(),
            "keepalive": self.monitor.get_stats(),
        }
