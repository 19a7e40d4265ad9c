"""
Portal coordinator: the facade a user interface drives.

This module provides:
- PortalStatus: the single status a UI displays
- choose_initiator: the deterministic initiator rule
- Coordinator: wires relay events to the peer session and exposes
  initialize / send_file / status / history
"""

import logging
from enum import Enum, auto
from pathlib import Path
from typing import Any, Callable, Optional

from .config import PortalConfig
from .exceptions import NotConnectedError, PortalError
from .relay.client import RelayClient
from .relay.protocol import RelayEvent, normalize_room_key
from .session.peer import PeerSession, SessionState
from .session.transport import SignalKind, TransportFactory
from .transfer.engine import TransferEngine
from .transfer.models import OutgoingFile, TransferItem, TransferStatus

logger = logging.getLogger(__name__)


# Type aliases
StatusHandler = Callable[["PortalStatus"], None]


class PortalStatus(Enum):
    """What the portal is doing, as shown to the user."""

    IDLE = auto()
    WAITING_FOR_PEER = auto()
    CONNECTED = auto()
    TRANSFERRING = auto()
    COMPLETED = auto()
    ERROR = auto()


# Relay event and payload key for each outbound negotiation kind
SIGNAL_EVENTS: dict[SignalKind, tuple[RelayEvent, str]] = {
    SignalKind.OFFER: (RelayEvent.OFFER, "sdp"),
    SignalKind.ANSWER: (RelayEvent.ANSWER, "sdp"),
    SignalKind.CANDIDATE: (RelayEvent.ICE_CANDIDATE, "candidate"),
}

_TRANSFER_STATUS = {
    TransferStatus.TRANSFERRING: PortalStatus.TRANSFERRING,
    TransferStatus.COMPLETED: PortalStatus.COMPLETED,
    TransferStatus.ERROR: PortalStatus.ERROR,
}


def choose_initiator(my_id: str, peer_id: str) -> bool:
    """The participant with the lexicographically smaller id initiates."""
    return my_id < peer_id


class Coordinator:
    """
    One room membership: relay channel, peer session and transfer engine.

    The relay channel is anything with the RelayClient surface
    (`participant_id`, `on`, `emit`, `join`, `leave`). Transports are made
    by the injected factory, so the same coordinator runs over aiortc or
    the in-process loopback.

    Usage:
        coordinator = Coordinator(relay, network.create_transport)
        teardown = coordinator.initialize("PORTAL1")
        ...
        await coordinator.send_file(OutgoingFile.from_path("report.pdf"))
        teardown()
    """

    def __init__(
        self,
        relay: RelayClient,
        transport_factory: TransportFactory,
        config: Optional[PortalConfig] = None
    ) -> None:
        """
        Initialize coordinator.

        Args:
            relay: Connection to the signaling relay
            transport_factory: Builds a transport given (initiator, listener)
            config: Optional configuration
        """
        self.relay = relay
        self.config = config or PortalConfig()

        self.session = PeerSession(transport_factory, self.config)
        self.engine = TransferEngine(self.session, self.config.chunk_size)

        self._status = PortalStatus.IDLE
        self._room_key: Optional[str] = None
        self._last_error: Optional[PortalError] = None
        self._status_handlers: list[StatusHandler] = []

        self.session.on_signal(self._on_session_signal)
        self.session.on_connect(self._on_session_connect)
        self.session.on_close(self._on_session_close)
        self.session.on_error(self._on_session_error)
        self.engine.on_update(self._on_transfer_update)

        relay.on(RelayEvent.USER_CONNECTED, self._on_user_connected)
        relay.on(RelayEvent.USER_DISCONNECTED, self._on_user_disconnected)
        relay.on(RelayEvent.OFFER, self._on_offer)
        relay.on(RelayEvent.ANSWER, self._on_answer)
        relay.on(RelayEvent.ICE_CANDIDATE, self._on_candidate)

    @property
    def status(self) -> PortalStatus:
        return self._status

    @property
    def history(self) -> tuple[TransferItem, ...]:
        """Transfers so far, most recent first."""
        return self.engine.history

    @property
    def progress(self) -> int:
        """Progress of the most recent transfer."""
        history = self.engine.history
        return history[0].progress if history else 0

    @property
    def room_key(self) -> Optional[str]:
        return self._room_key

    @property
    def last_error(self) -> Optional[PortalError]:
        return self._last_error

    @property
    def is_connected(self) -> bool:
        return self.session.is_connected

    def on_status(self, handler: StatusHandler) -> None:
        """Register a handler called on every status change."""
        self._status_handlers.append(handler)

    def initialize(self, room_key: str) -> Callable[[], None]:
        """
        Join a room and wait for a peer.

        Any previous room is left first. Session and receive state are
        reset; the transfer history is kept.

        Args:
            room_key: Portal key (case-insensitive)

        Returns:
            The teardown function for this room
        """
        key = normalize_room_key(room_key)
        if self._room_key is not None:
            self.teardown()

        self.session.destroy_session()
        self.engine.reset()
        self._last_error = None
        self._room_key = key

        logger.info(f"Joining room {key}")
        self.relay.join(key)
        self._set_status(PortalStatus.WAITING_FOR_PEER)
        return self.teardown

    def teardown(self) -> None:
        """Destroy the session and leave the room. Idempotent."""
        room_key = self._room_key
        self._room_key = None

        self.session.destroy_session()
        self.engine.reset()

        if room_key is not None:
            logger.info(f"Leaving room {room_key}")
            self.relay.leave(room_key)
        self._set_status(PortalStatus.IDLE)

    async def send_file(self, file: OutgoingFile | str | Path) -> Optional[TransferItem]:
        """
        Send a file to the connected peer.

        Without a connection the status becomes ERROR instead of raising.

        Args:
            file: File to send, or a path to one

        Returns:
            The outgoing TransferItem, or None if nothing was sent
        """
        if not isinstance(file, OutgoingFile):
            file = OutgoingFile.from_path(file)

        try:
            return await self.engine.send_file(file)
        except NotConnectedError as e:
            logger.warning(f"Cannot send {file.name}: {e.message}")
            self._last_error = e
            self._set_status(PortalStatus.ERROR)
            return None

    def _set_status(self, status: PortalStatus) -> None:
        if status == self._status:
            return
        logger.debug(f"Portal status {self._status.name} -> {status.name}")
        self._status = status
        for handler in self._status_handlers:
            try:
                handler(status)
            except Exception as e:
                logger.error(f"Error in status handler: {e}")

    def _has_session(self) -> bool:
        return (
            self.session.has_transport
            or self.session.is_creating
            or self.session.state in (SessionState.CONNECTING, SessionState.CONNECTED)
        )

    def _is_foreign(self, data: Any) -> bool:
        """Check if a negotiation message comes from someone other than the target."""
        sender = data.get("senderId") if isinstance(data, dict) else None
        target = self.session.target_id
        if target is not None and sender != target:
            logger.warning(f"Ignoring negotiation from {sender}, current target is {target}")
            return True
        return False

    # Relay events

    async def _on_user_connected(self, participant_id: str) -> None:
        if self._room_key is None:
            return
        if self._has_session():
            logger.debug(f"Session exists, ignoring arrival of {participant_id}")
            return

        initiator = choose_initiator(self.relay.participant_id, participant_id)
        logger.info(f"Peer {participant_id} arrived, initiator: {initiator}")
        self.session.create_session(participant_id, initiator)

    async def _on_user_disconnected(self, participant_id: str) -> None:
        if participant_id != self.session.target_id:
            return

        logger.info(f"Peer {participant_id} left room {self._room_key}")
        self.session.destroy_session()
        self.engine.reset("Peer disconnected")
        if self._room_key is not None:
            self._set_status(PortalStatus.WAITING_FOR_PEER)

    async def _on_offer(self, data: Any) -> None:
        if self._room_key is None or not isinstance(data, dict):
            return
        if self._is_foreign(data):
            return

        if not self.session.has_transport and not self.session.is_creating:
            self.session.create_session(data.get("senderId"), False)
        await self.session.signal(data.get("sdp"))

    async def _on_answer(self, data: Any) -> None:
        if not isinstance(data, dict) or self._is_foreign(data):
            return
        await self.session.signal(data.get("sdp"))

    async def _on_candidate(self, data: Any) -> None:
        if not isinstance(data, dict) or self._is_foreign(data):
            return
        await self.session.signal(data.get("candidate"))

    # Session callbacks

    def _on_session_signal(self, kind: SignalKind, body: dict) -> None:
        target_id = self.session.target_id
        if target_id is None:
            return
        event, key = SIGNAL_EVENTS[kind]
        self.relay.emit(event, {"targetId": target_id, key: body})

    def _on_session_connect(self) -> None:
        self._last_error = None
        self._set_status(PortalStatus.CONNECTED)

    def _on_session_close(self) -> None:
        self.engine.reset("Connection closed")
        if self._room_key is not None:
            self._set_status(PortalStatus.WAITING_FOR_PEER)
        else:
            self._set_status(PortalStatus.IDLE)

    def _on_session_error(self, error: PortalError) -> None:
        self._last_error = error
        self._set_status(PortalStatus.ERROR)

    def _on_transfer_update(self, item: TransferItem) -> None:
        status = _TRANSFER_STATUS.get(item.status)
        if status is not None:
            self._set_status(status)
