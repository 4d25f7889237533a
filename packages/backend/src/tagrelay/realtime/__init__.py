"""Real-time ingress — the consumer WebSocket and its Channel adapter.

Learn: Items flow producer → POST /api/v1/items → Relay → WebSocketChannel
send queue → sender task → consumer socket. Redis is only used by the
rate limiter; relay state never leaves the process.
"""
