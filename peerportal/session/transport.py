"""
Transport capability interface for peer sessions.

This module defines:
- TransportListener: callbacks a transport delivers to its owner
- Transport: the direct, ordered, reliable byte channel a session drives
- SignalKind: classification of negotiation message bodies
- LoopbackNetwork: an in-process transport pair with real flow control

A transport is created with its listener injected, so nothing here reaches
into ambient or global state.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Optional

from ..exceptions import TransportError

logger = logging.getLogger(__name__)


Frame = bytes | str


class SignalKind(Enum):
    """Kinds of negotiation message."""

    OFFER = "offer"
    ANSWER = "answer"
    CANDIDATE = "candidate"

    @classmethod
    def classify(cls, body: Any) -> "SignalKind":
        """Classify a negotiation body by its session-description type."""
        kind = body.get("type") if isinstance(body, dict) else None
        if kind == "offer":
            return cls.OFFER
        if kind == "answer":
            return cls.ANSWER
        return cls.CANDIDATE


class TransportListener(ABC):
    """Receives events from a transport. Every call names its source."""

    @abstractmethod
    def on_transport_signal(self, transport: "Transport", body: dict) -> None:
        """A negotiation body must be relayed to the remote peer."""

    @abstractmethod
    def on_transport_connect(self, transport: "Transport") -> None:
        """The direct channel is open."""

    @abstractmethod
    def on_transport_data(self, transport: "Transport", data: Frame) -> None:
        """A frame arrived on the direct channel."""

    @abstractmethod
    def on_transport_close(self, transport: "Transport") -> None:
        """The channel closed, whether requested or not. Fires once."""

    @abstractmethod
    def on_transport_error(self, transport: "Transport", error: Exception) -> None:
        """The transport hit a fault."""


class Transport(ABC):
    """
    A point-to-point connection primitive.

    Lifecycle: construct, `open()` (the initiator starts negotiating),
    feed remote negotiation bodies through `signal()`, exchange frames with
    `send()`, and `destroy()` when done.
    """

    def __init__(self, initiator: bool, listener: TransportListener) -> None:
        self.initiator = initiator
        self.listener = listener

    @property
    @abstractmethod
    def connected(self) -> bool:
        """Check if the direct channel is open."""

    @abstractmethod
    async def open(self) -> None:
        """Start negotiating."""

    @abstractmethod
    async def signal(self, body: dict) -> None:
        """Apply a negotiation body received from the remote peer."""

    @abstractmethod
    def send(self, data: Frame) -> bool:
        """
        Queue a frame on the channel.

        Returns:
            True while the outbound buffer is below its high-water mark,
            False once the caller should wait for a drain
        """

    @abstractmethod
    async def wait_for_drain(self) -> None:
        """Wait until the outbound buffer has emptied enough to continue."""

    @abstractmethod
    def destroy(self) -> None:
        """Tear the channel down. Idempotent."""


TransportFactory = Callable[[bool, TransportListener], Transport]


def frame_size(data: Frame) -> int:
    """Size of a frame in bytes."""
    if isinstance(data, str):
        return len(data.encode("utf-8"))
    return len(data)


class LoopbackTransport(Transport):
    """
    One end of an in-process channel.

    Negotiation mirrors a real offer/answer exchange: the initiator
    publishes an offer token (plus one candidate), the answering side pairs
    with it and replies. Frames are delivered on the next loop iteration
    and count against the sender's buffered amount until then.
    """

    def __init__(
        self,
        initiator: bool,
        listener: TransportListener,
        network: "LoopbackNetwork"
    ) -> None:
        super().__init__(initiator, listener)
        self.network = network
        self.id = uuid.uuid4().hex[:8]

        self._peer: Optional["LoopbackTransport"] = None
        self._connected = False
        self._closed = False
        self._token: Optional[str] = None
        self._buffered = 0
        self._drained = asyncio.Event()
        self._drained.set()
        self.candidates_received = 0

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def buffered_amount(self) -> int:
        return self._buffered

    async def open(self) -> None:
        if not self.initiator:
            return

        self._token = self.network.publish(self)
        self.listener.on_transport_signal(self, {"type": "offer", "sdp": f"loopback:{self._token}"})
        self.listener.on_transport_signal(self, {"candidate": f"candidate:loopback {self.id}", "sdpMid": "0"})

    async def signal(self, body: dict) -> None:
        if self._closed:
            raise TransportError("Transport is closed")

        kind = SignalKind.classify(body)

        if kind == SignalKind.OFFER:
            token = str(body.get("sdp", "")).removeprefix("loopback:")
            offerer = self.network.claim(token)
            if offerer is None:
                raise TransportError(f"Unknown loopback offer: {token}")
            self._peer = offerer
            offerer._peer = self
            self.listener.on_transport_signal(self, {"type": "answer", "sdp": f"loopback:{token}"})
            self._set_connected()

        elif kind == SignalKind.ANSWER:
            if self._peer is None or self._peer.closed:
                raise TransportError("Answer received without a paired peer")
            self._set_connected()

        else:
            self.candidates_received += 1

    def send(self, data: Frame) -> bool:
        if not self._connected or self._peer is None:
            raise TransportError("Channel is not open")

        size = frame_size(data)
        self._buffered += size
        if self._buffered > self.network.low_water_mark:
            self._drained.clear()

        loop = asyncio.get_running_loop()
        loop.call_later(self.network.latency, self._deliver, self._peer, data, size)
        return self._buffered < self.network.high_water_mark

    async def wait_for_drain(self) -> None:
        await self._drained.wait()

    def destroy(self) -> None:
        if self._closed:
            return

        peer = self._peer
        self._close_local()
        if peer is not None and not peer.closed:
            asyncio.get_running_loop().call_soon(peer._close_local)

    def fail(self, error: Exception) -> None:
        """Simulate a transport fault followed by the channel closing."""
        self.listener.on_transport_error(self, error)
        self.destroy()

    def _set_connected(self) -> None:
        if self._connected:
            return
        self._connected = True
        logger.debug(f"Loopback transport {self.id} connected")
        self.listener.on_transport_connect(self)

    def _deliver(self, peer: "LoopbackTransport", data: Frame, size: int) -> None:
        self._buffered = max(0, self._buffered - size)
        if self._buffered <= self.network.low_water_mark:
            self._drained.set()
        if peer.closed:
            return
        peer.listener.on_transport_data(peer, data)

    def _close_local(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._connected = False
        self._peer = None
        self._drained.set()
        if self._token is not None:
            self.network.claim(self._token)
        logger.debug(f"Loopback transport {self.id} closed")
        self.listener.on_transport_close(self)


class LoopbackNetwork:
    """
    Factory and rendezvous point for loopback transports.

    Pass `network.create_transport` wherever a TransportFactory is expected.
    """

    def __init__(
        self,
        high_water_mark: int = 64 * 1024,
        low_water_mark: int = 16 * 1024,
        latency: float = 0.0
    ) -> None:
        self.high_water_mark = high_water_mark
        self.low_water_mark = low_water_mark
        self.latency = latency
        self._offers: dict[str, LoopbackTransport] = {}
        self.transports: list[LoopbackTransport] = []

    def create_transport(self, initiator: bool, listener: TransportListener) -> LoopbackTransport:
        transport = LoopbackTransport(initiator, listener, self)
        self.transports.append(transport)
        return transport

    def publish(self, transport: LoopbackTransport) -> str:
        token = uuid.uuid4().hex
        self._offers[token] = transport
        return token

    def claim(self, token: str) -> Optional[LoopbackTransport]:
        transport = self._offers.pop(token, None)
        if transport is not None and transport.closed:
            return None
        return transport
