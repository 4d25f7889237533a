"""Connection registry — the only owner of live consumer connections.

Learn: Three activity sources touch the registry concurrently: the
WebSocket handlers (connect, bind, disconnect), producer requests
(lookup), and the keepalive monitor (heartbeat, sweep). Every operation
runs under a single lock and never does I/O while holding it, so a reader
sees a connection either fully registered or fully gone.

Connections are keyed by an opaque id generated at registration, not by
the peer's address — two consumers behind the same NAT, or a consumer
that reconnects before its old socket is reclaimed, are distinct entries.
A secondary index maps correlation id -> connection ids so lookups don't
scan every connection.
"""

import threading
import time
import uuid
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, Optional

import structlog

from tagrelay.relay.channel import Channel

logger = structlog.get_logger()


class LivenessState(str, Enum):
    ACTIVE = "active"
    AWAITING_ACK = "awaiting_ack"
    EVICTED = "evicted"


@dataclass
class Connection:
    """One live consumer channel and its binding."""

    id: str
    channel: Channel
    remote_address: str
    connected_at: float
    last_activity_at: float
    correlation_id: Optional[str] = None
    state: LivenessState = LivenessState.ACTIVE


class ConnectionRegistry:
    """Thread-safe registry of consumer connections."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._lock = threading.Lock()
        self._connections: dict[str, Connection] = {}
        self._by_correlation: dict[str, set[str]] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def __contains__(self, ref: object) -> bool:
        with self._lock:
            return ref in self._connections

    # ─── Mutations ────────────────────────────────────────

    def register(self, channel: Channel, remote_address: str) -> str:
        """Add a new, unbound connection and return its ref."""
        ref = uuid.uuid4().hex
        now = self.clock()
        conn = Connection(
            id=ref,
            channel=channel,
            remote_address=remote_address,
            connected_at=now,
            last_activity_at=now,
        )
        with self._lock:
            self._connections[ref] = conn
        return ref

    def bind(self, ref: str, correlation_id: str) -> bool:
        """Bind (or rebind) a connection to a correlation id.

        Returns False when the connection is already gone — it may have
        closed while its bind message was in flight.
        """
        with self._lock:
            conn = self._connections.get(ref)
            if conn is None:
                return False
            if conn.correlation_id == correlation_id:
                return True
            self._unindex(conn)
            conn.correlation_id = correlation_id
            self._by_correlation.setdefault(correlation_id, set()).add(ref)
            return True

    def touch(self, ref: str) -> bool:
        """Record a liveness signal from the peer."""
        with self._lock:
            conn = self._connections.get(ref)
            if conn is None:
                return False
            conn.last_activity_at = self.clock()
            conn.state = LivenessState.ACTIVE
            return True

    def mark_awaiting_ack(self, ref: str) -> bool:
        """Note that a heartbeat went out and an ack is expected."""
        with self._lock:
            conn = self._connections.get(ref)
            if conn is None:
                return False
            conn.state = LivenessState.AWAITING_ACK
            return True

    def remove(self, ref: str, evicted: bool = False) -> bool:
        """Deregister a connection and close its channel.

        Idempotent: returns False if the connection was already removed.
        The channel is closed after the lock is released; a failing close
        is logged and otherwise ignored.
        """
        with self._lock:
            conn = self._connections.pop(ref, None)
            if conn is None:
                return False
            self._unindex(conn)
            if evicted:
                conn.state = LivenessState.EVICTED

        try:
            conn.channel.close()
        except Exception as e:
            logger.warning(
                "registry.channel_close_failed",
                connection_id=ref,
                remote_address=conn.remote_address,
                error=str(e),
            )
        return True

    # ─── Reads (snapshots) ────────────────────────────────

    def lookup(self, correlation_id: str) -> frozenset[str]:
        """Refs currently bound to `correlation_id`, as of this call."""
        with self._lock:
            return frozenset(self._by_correlation.get(correlation_id, ()))

    def all_stale(self, now: float, timeout: float) -> frozenset[str]:
        """Refs with no liveness signal for longer than `timeout` seconds."""
        with self._lock:
            return frozenset(
                ref
                for ref, conn in self._connections.items()
                if now - conn.last_activity_at > timeout
            )

    def channel(self, ref: str) -> Optional[Channel]:
        with self._lock:
            conn = self._connections.get(ref)
            return conn.channel if conn is not None else None

    def get(self, ref: str) -> Optional[Connection]:
        """A copy of the connection record (mutating it changes nothing)."""
        with self._lock:
            conn = self._connections.get(ref)
            return replace(conn) if conn is not None else None

    def refs(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._connections)

    def count_bound(self) -> int:
        with self._lock:
            return sum(len(refs) for refs in self._by_correlation.values())

    # ─── Internal ─────────────────────────────────────────

    def _unindex(self, conn: Connection) -> None:
        """Drop `conn` from the correlation index. Caller holds the lock."""
        if conn.correlation_id is None:
            return
        refs = self._by_correlation.get(conn.correlation_id)
        if refs is None:
            return
        refs.discard(conn.id)
        if not refs:
            del self._by_correlation[conn.correlation_id]
