"""
Peer session components: transport capability, lifecycle and liveness.

This package provides:
- Transport / TransportListener: the point-to-point primitive a session drives
- LoopbackNetwork: in-process transports for local use and tests
- PeerSession: connection state machine with bounded reconnection
- LivenessMonitor: heartbeat sender and silence watchdog

The aiortc-backed transport lives in `peerportal.session.rtc` and is
imported on demand.
"""

from .transport import (
    Frame,
    SignalKind,
    Transport,
    TransportFactory,
    TransportListener,
    LoopbackNetwork,
    LoopbackTransport,
    frame_size,
)

from .liveness import (
    HEARTBEAT_TOKEN,
    LivenessMonitor,
    is_heartbeat,
)

from .peer import (
    PeerSession,
    SessionState,
)

__all__ = [
    # Transport
    "Frame",
    "SignalKind",
    "Transport",
    "TransportFactory",
    "TransportListener",
    "LoopbackNetwork",
    "LoopbackTransport",
    "frame_size",
    # Liveness
    "HEARTBEAT_TOKEN",
    "LivenessMonitor",
    "is_heartbeat",
    # Session
    "PeerSession",
    "SessionState",
]
