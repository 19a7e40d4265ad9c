"""
Signaling relay logic.

The relay service:
- Maps opaque room keys to participant sets
- Announces arrivals and departures to the other room members
- Forwards offer/answer/candidate messages to their target verbatim

It is independent of the network layer: connections are anything that can
`send` a RelayMessage. See `peerportal.relay.server` for the websocket
binding.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from .protocol import RelayEvent, RelayMessage, normalize_room_key
from .store import RoomStore

logger = logging.getLogger(__name__)


class RelayConnection(ABC):
    """One participant's connection to the relay."""

    participant_id: str

    @abstractmethod
    async def send(self, message: RelayMessage) -> None:
        """Deliver a message to the participant."""


class RelayService:
    """
    Room membership and negotiation forwarding.

    The relay holds no transfer data and performs no retries: delivery to
    a participant that is gone, or whose connection fails, is dropped.
    """

    def __init__(
        self,
        store: Optional[RoomStore] = None,
        max_room_size: Optional[int] = None
    ) -> None:
        """
        Initialize relay service.

        Args:
            store: Room membership table (a fresh one if not provided)
            max_room_size: Reject joins into rooms this full (None = no cap)
        """
        self.store = store or RoomStore()
        self.max_room_size = max_room_size
        self._connections: dict[str, RelayConnection] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def register(self, connection: RelayConnection) -> None:
        """Track a newly accepted connection."""
        self._connections[connection.participant_id] = connection
        logger.info(f"Participant connected: {connection.participant_id}")

    async def unregister(self, participant_id: str) -> None:
        """Forget a closed connection and leave every room it was in."""
        await self.leave(participant_id)
        self._connections.pop(participant_id, None)
        logger.info(f"Participant disconnected: {participant_id}")

    async def handle(self, participant_id: str, message: RelayMessage) -> None:
        """Dispatch a message received from a participant."""
        if message.event == RelayEvent.JOIN_ROOM:
            await self.join(participant_id, message.data)
        elif message.event == RelayEvent.LEAVE_ROOM:
            room_key = normalize_room_key(message.data) if message.data else None
            await self.leave(participant_id, room_key)
        elif message.is_negotiation:
            await self.relay(participant_id, message.event, message.data)
        else:
            logger.warning(f"Ignoring {message.event.value} from {participant_id}")

    async def join(self, participant_id: str, room_key: str) -> list[str]:
        """
        Add a participant to a room.

        The newcomer is told about the earliest-joined existing member, and
        every existing member is told about the newcomer.

        Args:
            participant_id: Joining participant
            room_key: Portal key (case-insensitive)

        Returns:
            Members present before the join
        """
        room_key = normalize_room_key(room_key)

        async with self.store.guard(room_key):
            members = self.store.members(room_key)
            if (
                self.max_room_size is not None
                and participant_id not in members
                and len(members) >= self.max_room_size
            ):
                logger.warning(f"Room {room_key} is full, rejecting {participant_id}")
                await self._deliver(participant_id, RelayMessage.room_full(room_key))
                return members

            existing = self.store.add(room_key, participant_id)
            logger.info(f"{participant_id} joined room {room_key} (existing: {existing})")

            if existing:
                await self._deliver(participant_id, RelayMessage.user_connected(existing[0]))

            announcement = RelayMessage.user_connected(participant_id)
            for member in existing:
                await self._deliver(member, announcement)

        return existing

    async def leave(self, participant_id: str, room_key: Optional[str] = None) -> list[str]:
        """
        Remove a participant from one room, or from every room it is in.

        Remaining members of each affected room receive user-disconnected;
        rooms left empty are deleted.

        Returns:
            Keys of the rooms that were left
        """
        room_keys = [room_key] if room_key else self.store.rooms_of(participant_id)
        left = []

        for key in room_keys:
            async with self.store.guard(key):
                remaining = self.store.remove(key, participant_id)
                if remaining is None:
                    continue
                left.append(key)
                logger.info(f"{participant_id} left room {key}")

                notice = RelayMessage.user_disconnected(participant_id)
                for member in remaining:
                    await self._deliver(member, notice)

        return left

    async def relay(self, participant_id: str, event: RelayEvent, payload: Any) -> bool:
        """
        Forward a negotiation message to its target.

        The payload is forwarded verbatim except that senderId is stamped
        on when missing. Contents are never inspected.

        Returns:
            True if the target was connected and the message handed over
        """
        if not isinstance(payload, dict) or not payload.get("targetId"):
            logger.warning(f"Dropping {event.value} from {participant_id}: no targetId")
            return False

        forwarded = dict(payload)
        forwarded.setdefault("senderId", participant_id)
        target_id = forwarded["targetId"]

        logger.debug(f"Relaying {event.value} from {forwarded['senderId']} to {target_id}")
        return await self._deliver(target_id, RelayMessage(event=event, data=forwarded))

    async def _deliver(self, participant_id: str, message: RelayMessage) -> bool:
        """Best-effort delivery to one participant."""
        connection = self._connections.get(participant_id)
        if connection is None:
            logger.debug(f"Dropping {message.event.value}: {participant_id} not connected")
            return False

        try:
            await connection.send(message)
            return True
        except Exception as e:
            logger.warning(f"Failed to deliver {message.event.value} to {participant_id}: {e}")
            return False
