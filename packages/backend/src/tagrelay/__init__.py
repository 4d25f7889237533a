"""tagrelay — correlation-routed broadcast relay.

Producers POST items tagged with a correlation id; consumers hold a
WebSocket open and bind to a correlation id; every item is delivered to
each consumer currently bound to its id. Nothing is stored: a consumer
that is not connected when an item arrives never sees it.
"""

__version__ = "0.1.0"
