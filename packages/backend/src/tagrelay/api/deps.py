"""Shared route dependencies."""

from fastapi import Request

from tagrelay.relay.service import Relay


def get_relay(request: Request) -> Relay:
    """The relay instance owned by this app (created in create_app)."""
    return request.app.state.relay
