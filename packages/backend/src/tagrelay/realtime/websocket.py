"""WebSocket endpoint — consumers connect here and bind a correlation id.

Learn: Each consumer connects to /ws and sends {"correlationId": "..."}.
The handler:
1. Wraps the socket in a WebSocketChannel (bounded send queue)
2. Registers it with the relay (unbound until the first valid message)
3. Runs the sender task and the client listener concurrently
4. Removes the connection when either side finishes

The sender task ends when the channel is closed — by the keepalive
sweep, a failed send, or shutdown — so an evicted consumer's handler
exits even if the peer never sends a close frame.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from tagrelay.relay.service import Relay
from tagrelay.schemas.relay import PING

logger = structlog.get_logger()
router = APIRouter()

_CLOSE = object()


class WebSocketChannel:
    """Channel adapter over a Starlette WebSocket.

    Learn: `send` never awaits. Messages go onto a bounded asyncio.Queue
    and the per-connection sender task writes them out. When the queue
    is full the overflow policy decides what happens:
    - disconnect: close the channel (the default; a failed send)
    - drop_new: refuse the new message (a failed send)
    - drop_oldest: discard the oldest queued message to make room. The
      discarded message was already reported as sent, so it is lost.
    """

    def __init__(
        self,
        websocket: WebSocket,
        queue_max: int = 100,
        overflow_policy: str = "disconnect",
    ):
        self.websocket = websocket
        self.overflow_policy = overflow_policy
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, queue_max))
        self._closed = False

    def is_open(self) -> bool:
        return (
            not self._closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def send(self, data: str) -> bool:
        if self._closed:
            return False
        try:
            self._queue.put_nowait(data)
            return True
        except asyncio.QueueFull:
            pass

        if self.overflow_policy == "drop_new":
            logger.warning("ws.send_queue_drop_new")
            return False
        if self.overflow_policy == "disconnect":
            logger.warning("ws.send_queue_disconnect")
            self.close()
            return False

        # drop_oldest
        try:
            self._queue.get_nowait()
        except asyncio.QueueEmpty:
            pass
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            logger.warning("ws.send_queue_drop_after_trim")
            return False
        return True

    def ping(self) -> bool:
        return self.send(json.dumps({"type": PING}))

    def close(self) -> None:
        """Stop the sender task. Pending messages are discarded."""
        if self._closed:
            return
        self._closed = True
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(_CLOSE)

    async def run_sender(self) -> None:
        """Drain the queue onto the socket until the channel is closed."""
        try:
            while True:
                data = await self._queue.get()
                if data is _CLOSE:
                    return
                await self.websocket.send_text(data)
        except asyncio.CancelledError:
            pass
        except Exception as e:
            # The peer is gone; the handler's cleanup removes the connection
            logger.warning("ws.send_failed", error=str(e))
            self._closed = True


@router.websocket("/ws")
async def consumer_websocket(websocket: WebSocket):
    """WebSocket endpoint for relay consumers.

    Learn: Two concurrent tasks run:
    1. Sender — drains the channel's queue to the socket
    2. Client listener — feeds every inbound frame to the relay

    When either side finishes, both are cancelled and the connection is
    removed from the registry (a no-op if the sweep got there first).
    """
    relay: Relay = websocket.app.state.relay
    cfg = websocket.app.state.settings
    await websocket.accept()

    remote_address = websocket.client.host if websocket.client else "unknown"
    channel = WebSocketChannel(
        websocket,
        queue_max=cfg.send_queue_max,
        overflow_policy=cfg.send_overflow_policy,
    )
    ref = relay.on_consumer_connect(channel, remote_address)

    async def client_listener():
        """Hand inbound frames (text or binary) to the relay."""
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                data = message.get("text")
                if data is None:
                    data = message.get("bytes")
                if data is not None:
                    relay.on_consumer_message(ref, data)
        except (WebSocketDisconnect, asyncio.CancelledError):
            pass

    sender_task = asyncio.create_task(channel.run_sender())
    client_task = asyncio.create_task(client_listener())

    try:
        # Wait for either to finish (peer disconnect or channel closed)
        done, pending = await asyncio.wait(
            [sender_task, client_task],
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
    finally:
        relay.on_consumer_disconnect(ref)
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                # Close already sent or the socket is gone
                pass
