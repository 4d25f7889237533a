"""Channel — what the relay core needs from a consumer transport.

Learn: The core only ever talks to a consumer through these four calls.
All of them must return immediately: `send` and `ping` enqueue rather
than write, so one slow consumer can never hold up delivery to the rest.
"""

from typing import Protocol, runtime_checkable


@runtime_checkable
class Channel(Protocol):
    """A bidirectional message channel to one consumer."""

    def send(self, data: str) -> bool:
        """Queue a serialized message. False means the transport refused it."""
        ...

    def ping(self) -> bool:
        """Queue a heartbeat. False means the transport refused it."""
        ...

    def close(self) -> None:
        """Close the channel. Must be idempotent and must not block."""
        ...

    def is_open(self) -> bool:
        ...
