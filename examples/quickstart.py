#!/usr/bin/env python3
"""
tagrelay Quickstart — one consumer, one producer, one item.

Connects a consumer over WebSocket, binds it to a correlation id,
submits an item for that id over HTTP and prints what the consumer got.
Run with: python examples/quickstart.py

Requires: pip install httpx websockets
Relay must be running: http://localhost:3000
"""

import asyncio
import json
import uuid

import httpx
import websockets

from _common import HTTP_BASE, WS_URL, check_relay


async def main():
    check_relay()
    correlation_id = f"job-{uuid.uuid4().hex[:6]}"

    # ── Consumer: connect and bind ────────────────────────────────
    print(f"\n1. Connecting consumer and binding to {correlation_id!r}...")
    async with websockets.connect(WS_URL) as ws:
        await ws.send(json.dumps({"correlationId": correlation_id}))
        ack = json.loads(await ws.recv())
        assert ack == {"type": "bound", "correlationId": correlation_id}, ack
        print(f"   Bound: {ack}")

        # ── Producer: submit an item ──────────────────────────────
        print("\n2. Submitting item...")
        item = {"correlationId": correlation_id, "data": "hello from the producer"}
        async with httpx.AsyncClient(base_url=HTTP_BASE, timeout=10) as client:
            resp = await client.post("/items", json=item)
        resp.raise_for_status()
        print(f"   Delivered to {resp.json()['delivered_count']} consumer(s)")

        # ── Consumer: receive it (answering heartbeats on the way) ─
        print("\n3. Waiting for the item...")
        while True:
            msg = json.loads(await asyncio.wait_for(ws.recv(), timeout=10))
            if msg.get("type") == "ping":
                await ws.send(json.dumps({"type": "pong"}))
                continue
            print(f"   Received: {msg}")
            break

        # ── Item for another id never arrives ─────────────────────
        print("\n4. Submitting an item for a different id...")
        async with httpx.AsyncClient(base_url=HTTP_BASE, timeout=10) as client:
            resp = await client.post("/items", json={"correlationId": "someone-else"})
        print(f"   Delivered to {resp.json()['delivered_count']} consumer(s)")

    print("\nDone.")


if __name__ == "__main__":
    asyncio.run(main())
