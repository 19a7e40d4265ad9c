"""
Signaling relay: room membership and negotiation forwarding.

This package provides:
- RoomStore: room membership table
- RelayService: join/leave/relay logic, independent of the network
- RelayServer: websocket binding of the relay service
- RelayClient: a participant's connection to the relay
"""

from .protocol import (
    RelayEvent,
    RelayMessage,
    NEGOTIATION_EVENTS,
    normalize_room_key,
)

from .store import RoomStore

from .service import (
    RelayConnection,
    RelayService,
)

from .server import RelayServer

from .client import RelayClient, EventHandler

__all__ = [
    # Protocol
    "RelayEvent",
    "RelayMessage",
    "NEGOTIATION_EVENTS",
    "normalize_room_key",
    # Store
    "RoomStore",
    # Service
    "RelayConnection",
    "RelayService",
    # Server / client
    "RelayServer",
    "RelayClient",
    "EventHandler",
]
