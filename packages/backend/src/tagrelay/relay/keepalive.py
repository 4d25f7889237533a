"""Keepalive monitor — heartbeat emission and stale-connection eviction.

Learn: "Socket still open" and "peer still responsive" are different
things. A half-open TCP connection can sit in the registry for a long
time before the transport notices. The monitor runs two independent
loops against the registry:

1. Heartbeat loop (every 30s) — queue a ping on every open channel and
   mark the connection AWAITING_ACK. Closed channels are skipped; they
   are already on their way out of the registry.
2. Sweep loop (every 60s) — evict every connection with no liveness
   signal (ack or any other inbound message) for longer than the
   inactivity timeout (120s).

    ACTIVE ──ping──▶ AWAITING_ACK ──ack / message──▶ ACTIVE
                          │
                          └── no signal within timeout ──▶ EVICTED

A failed heartbeat is never retried: it is evidence the peer is gone,
and the next sweep reclaims the connection.
"""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from tagrelay.relay.registry import ConnectionRegistry

logger = structlog.get_logger()


@dataclass
class KeepaliveStats:
    """Runtime statistics for monitoring."""
    heartbeats_sent: int = 0
    heartbeat_failures: int = 0
    sweeps: int = 0
    evictions: int = 0


class KeepaliveMonitor:
    """Owns the heartbeat and sweep tasks for one registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        heartbeat_interval: float = 30.0,
        inactivity_timeout: float = 120.0,
        sweep_interval: float = 60.0,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.registry = registry
        self.heartbeat_interval = heartbeat_interval
        self.inactivity_timeout = inactivity_timeout
        self.sweep_interval = sweep_interval
        self.clock = clock or registry.clock
        self.stats = KeepaliveStats()
        self._tasks: list[asyncio.Task] = []
        self._running = False

    # ─── Single passes ────────────────────────────────────

    def send_heartbeats(self) -> int:
        """Queue one heartbeat per open connection. Returns how many went out."""
        sent = 0
        for ref in self.registry.refs():
            channel = self.registry.channel(ref)
            if channel is None or not channel.is_open():
                continue

            try:
                ok = channel.ping()
            except Exception as e:
                logger.debug("keepalive.ping_error", connection_id=ref, error=str(e))
                ok = False

            if ok:
                self.registry.mark_awaiting_ack(ref)
                sent += 1
            else:
                self.stats.heartbeat_failures += 1

        self.stats.heartbeats_sent += sent
        return sent

    def sweep(self, now: Optional[float] = None) -> list[str]:
        """Evict every connection idle for longer than the inactivity timeout."""
        now = self.clock() if now is None else now
        self.stats.sweeps += 1

        evicted = []
        for ref in self.registry.all_stale(now, self.inactivity_timeout):
            conn = self.registry.get(ref)
            if conn is None or now - conn.last_activity_at <= self.inactivity_timeout:
                continue  # gone already, or touched since all_stale()
            if self.registry.remove(ref, evicted=True):
                evicted.append(ref)
                logger.info(
                    "keepalive.evicted",
                    connection_id=ref,
                    remote_address=conn.remote_address,
                    correlation_id=conn.correlation_id,
                    idle_seconds=round(now - conn.last_activity_at, 1),
                )

        self.stats.evictions += len(evicted)
        return evicted

    # ─── Loops ────────────────────────────────────────────

    async def run_heartbeat_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.heartbeat_interval)
                if not self._running:
                    break
                self.send_heartbeats()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("keepalive.heartbeat_error")

    async def run_sweep_loop(self) -> None:
        while self._running:
            try:
                await asyncio.sleep(self.sweep_interval)
                if not self._running:
                    break
                self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("keepalive.sweep_error")

    def start(self) -> None:
        """Start both loops on the running event loop."""
        if self._running:
            return
        self._running = True
        self._tasks = [
            asyncio.create_task(self.run_heartbeat_loop()),
            asyncio.create_task(self.run_sweep_loop()),
        ]
        logger.info(
            "keepalive.started",
            heartbeat_interval=self.heartbeat_interval,
            inactivity_timeout=self.inactivity_timeout,
            sweep_interval=self.sweep_interval,
        )

    async def stop(self) -> None:
        """Cancel both loops and wait for them to finish."""
        self._running = False
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("keepalive.stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_stats(self) -> dict:
        return {
            "heartbeats_sent": self.stats.heartbeats_sent,
            "heartbeat_failures": self.stats.heartbeat_failures,
            "sweeps": self.stats.sweeps,
            "evictions": self.stats.evictions,
        }
