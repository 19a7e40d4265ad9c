"""
WebRTC transport built on aiortc.

This module provides:
- RtcTransport: an RTCPeerConnection with one ordered, reliable data
  channel, driven through the Transport interface
- rtc_transport_factory: binds a PortalConfig into a TransportFactory

aiortc gathers ICE candidates before `setLocalDescription` returns, so the
local side sends complete descriptions and no separate candidates. Remote
candidates (trickled by browser peers) are still accepted.
"""

import asyncio
import logging
from typing import Optional

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from ..config import PortalConfig
from ..exceptions import TransportError
from .transport import Frame, SignalKind, Transport, TransportFactory, TransportListener

logger = logging.getLogger(__name__)

CHANNEL_LABEL = "fileTransfer"


def build_rtc_configuration(ice_servers: list[str]) -> RTCConfiguration:
    """Create an RTCConfiguration from a list of STUN/TURN URLs."""
    return RTCConfiguration(iceServers=[RTCIceServer(urls=url) for url in ice_servers])


def parse_candidate(body: dict) -> Optional[RTCIceCandidate]:
    """
    Build an RTCIceCandidate from a browser-style candidate body.

    Returns:
        The candidate, or None for the end-of-candidates marker
    """
    line = body.get("candidate") or ""
    if not line:
        return None
    if line.startswith("candidate:"):
        line = line[len("candidate:"):]

    candidate = candidate_from_sdp(line)
    candidate.sdpMid = body.get("sdpMid")
    candidate.sdpMLineIndex = body.get("sdpMLineIndex")
    return candidate


class RtcTransport(Transport):
    """
    Direct peer connection over a WebRTC data channel.

    The initiator creates the `fileTransfer` channel and the offer; the
    other side answers and receives the channel from its peer. Flow control
    follows the channel's bufferedAmount: `send` reports False above the
    high-water mark and `wait_for_drain` resumes on bufferedamountlow.
    """

    def __init__(
        self,
        initiator: bool,
        listener: TransportListener,
        config: Optional[PortalConfig] = None
    ) -> None:
        """
        Initialize transport.

        Args:
            initiator: Whether this side creates the channel and the offer
            listener: Receives signal/connect/data/close/error events
            config: Optional configuration (ICE servers, buffer marks)
        """
        super().__init__(initiator, listener)
        self.config = config or PortalConfig()

        self._pc = RTCPeerConnection(configuration=build_rtc_configuration(self.config.ice_servers))
        self._channel: Optional[RTCDataChannel] = None
        self._connected = False
        self._closed = False
        self._drained = asyncio.Event()
        self._drained.set()

        self._pc.on("datachannel", self._attach_channel)
        self._pc.on("connectionstatechange", self._on_connection_state)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def buffered_amount(self) -> int:
        return self._channel.bufferedAmount if self._channel is not None else 0

    async def open(self) -> None:
        if not self.initiator:
            return

        self._attach_channel(self._pc.createDataChannel(CHANNEL_LABEL, ordered=True))
        await self._pc.setLocalDescription(await self._pc.createOffer())
        self._emit_local_description()

    async def signal(self, body: dict) -> None:
        if self._closed:
            raise TransportError("Transport is closed")

        kind = SignalKind.classify(body)
        if kind == SignalKind.CANDIDATE:
            candidate = parse_candidate(body)
            if candidate is not None:
                await self._pc.addIceCandidate(candidate)
            return

        await self._pc.setRemoteDescription(
            RTCSessionDescription(sdp=body["sdp"], type=body["type"])
        )
        if kind == SignalKind.OFFER:
            await self._pc.setLocalDescription(await self._pc.createAnswer())
            self._emit_local_description()

    def send(self, data: Frame) -> bool:
        channel = self._channel
        if channel is None or channel.readyState != "open":
            raise TransportError("Data channel is not open")

        channel.send(data)
        if channel.bufferedAmount > self.config.buffer_low_water_mark:
            self._drained.clear()
        return channel.bufferedAmount < self.config.buffer_high_water_mark

    async def wait_for_drain(self) -> None:
        await self._drained.wait()

    def destroy(self) -> None:
        if self._closed:
            return
        self._mark_closed()
        asyncio.ensure_future(self._pc.close())

    def _emit_local_description(self) -> None:
        description = self._pc.localDescription
        self.listener.on_transport_signal(self, {"type": description.type, "sdp": description.sdp})

    def _attach_channel(self, channel: RTCDataChannel) -> None:
        if channel.label != CHANNEL_LABEL:
            logger.warning(f"Ignoring unexpected data channel {channel.label!r}")
            return

        self._channel = channel
        channel.bufferedAmountLowThreshold = self.config.buffer_low_water_mark

        @channel.on("open")
        def on_open():
            self._on_channel_open()

        @channel.on("message")
        def on_message(message):
            if not self._closed:
                self.listener.on_transport_data(self, message)

        @channel.on("bufferedamountlow")
        def on_buffered_amount_low():
            self._drained.set()

        @channel.on("close")
        def on_close():
            self._mark_closed()

        if channel.readyState == "open":
            self._on_channel_open()

    def _on_channel_open(self) -> None:
        if self._connected or self._closed:
            return
        self._connected = True
        logger.debug("Data channel open")
        self.listener.on_transport_connect(self)

    async def _on_connection_state(self) -> None:
        state = self._pc.connectionState
        logger.debug(f"Peer connection state: {state}")

        if state == "failed":
            self.listener.on_transport_error(self, TransportError("Peer connection failed"))
            self.destroy()
        elif state == "closed":
            self._mark_closed()

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._connected = False
        self._drained.set()
        self.listener.on_transport_close(self)


def rtc_transport_factory(config: Optional[PortalConfig] = None) -> TransportFactory:
    """Create a TransportFactory producing RtcTransports with this config."""
    def create(initiator: bool, listener: TransportListener) -> RtcTransport:
        return RtcTransport(initiator, listener, config)
    return create
