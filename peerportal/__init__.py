"""
Peerportal - two-party file transfer over a direct peer connection.

Two participants meet in a room on a small signaling relay, negotiate a
direct channel and stream files between them. The relay only ever sees
room membership and negotiation messages, never file contents.

Quick Start:
    from peerportal import Coordinator, RelayClient, OutgoingFile
    from peerportal.session.rtc import rtc_transport_factory

    relay = RelayClient("ws://localhost:3001")
    await relay.connect()

    portal = Coordinator(relay, rtc_transport_factory())
    teardown = portal.initialize("PORTAL1")
    ...
    await portal.send_file(OutgoingFile.from_path("report.pdf"))
    teardown()

Components:
    - Signaling relay (rooms, negotiation forwarding) and its client
    - Peer session with heartbeat liveness and bounded reconnection
    - Chunked transfer engine with backpressure and a transfer history
"""

from .config import PortalConfig
from .coordinator import Coordinator, PortalStatus, choose_initiator
from .exceptions import (
    PortalError,
    NotConnectedError,
    TransportError,
    ConnectionTimeoutError,
    ConnectionLostError,
    ProtocolDesyncError,
)
from .relay import RelayClient, RelayServer, RelayService, RoomStore
from .session import LoopbackNetwork, PeerSession, SessionState
from .transfer import (
    Blob,
    OutgoingFile,
    TransferDirection,
    TransferEngine,
    TransferItem,
    TransferStatus,
)

__version__ = "1.0.0"

__all__ = [
    # Facade
    "Coordinator",
    "PortalStatus",
    "choose_initiator",
    "PortalConfig",
    # Relay
    "RelayClient",
    "RelayServer",
    "RelayService",
    "RoomStore",
    # Session
    "LoopbackNetwork",
    "PeerSession",
    "SessionState",
    # Transfer
    "Blob",
    "OutgoingFile",
    "TransferDirection",
    "TransferEngine",
    "TransferItem",
    "TransferStatus",
    # Exceptions
    "PortalError",
    "NotConnectedError",
    "TransportError",
    "ConnectionTimeoutError",
    "ConnectionLostError",
    "ProtocolDesyncError",
    # Version
    "__version__",
]
