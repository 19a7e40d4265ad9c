"""
Peerportal Exceptions.

All peerportal exceptions inherit from PortalError for easy catching.
"""

from typing import Optional


class PortalError(Exception):
    """Base exception for all peerportal errors."""

    def __init__(self, message: str, code: str = "PORTAL_ERROR"):
        super().__init__(message)
        self.code = code
        self.message = message


class NotConnectedError(PortalError):
    """A send was attempted without an active peer session."""

    def __init__(self, message: str = "Peer session is not connected", peer_id: Optional[str] = None):
        super().__init__(message, "NOT_CONNECTED")
        self.peer_id = peer_id


class TransportError(PortalError):
    """The underlying point-to-point transport reported a fault."""

    def __init__(self, message: str, peer_id: Optional[str] = None):
        super().__init__(message, "TRANSPORT_ERROR")
        self.peer_id = peer_id


class ConnectionTimeoutError(PortalError):
    """Nothing was heard from the peer for longer than the liveness timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, peer_id: Optional[str] = None):
        super().__init__(message, "CONNECTION_TIMEOUT")
        self.timeout = timeout
        self.peer_id = peer_id


class ConnectionLostError(PortalError):
    """Reconnection attempts are exhausted; the room must be rejoined."""

    def __init__(self, message: str, attempts: int = 0, peer_id: Optional[str] = None):
        super().__init__(message, "CONNECTION_LOST")
        self.attempts = attempts
        self.peer_id = peer_id


class ProtocolDesyncError(PortalError):
    """A chunk frame arrived while no transfer metadata was open."""

    def __init__(self, message: str, frame_size: int = 0):
        super().__init__(message, "PROTOCOL_DESYNC")
        self.frame_size = frame_size
