"""Stamp Notifier — HTTP Relay Package."""

from stamp_notifier.relay.server import RelayServer, create_app

__all__ = ["RelayServer", "create_app"]
