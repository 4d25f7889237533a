"""
Shared helpers for tagrelay examples.

Checks the relay is up before each example runs so failures are obvious.
"""

import sys

import httpx

HTTP_BASE = "http://localhost:3000/api/v1"
WS_URL = "ws://localhost:3000/ws"


def check_relay() -> dict:
    """Verify the relay is reachable and healthy; return the health document."""
    try:
        resp = httpx.get(f"{HTTP_BASE}/health", timeout=5)
    except httpx.ConnectError:
        print(f"ERROR: Relay not reachable at {HTTP_BASE}")
        print("Start it with:  tagrelay serve --port 3000")
        sys.exit(1)

    if resp.status_code != 200:
        print(f"ERROR: Health check returned {resp.status_code}")
        sys.exit(1)

    health = resp.json()
    print("Relay health:")
    print(f"  Status:      {health['status']}")
    print(f"  Redis:       {health['redis']}")
    print(f"  Connections: {health['connections']} ({health['bound_connections']} bound)")
    return health
