"""
Wire protocol definitions for the signaling relay.

This module defines:
- Relay event names
- The JSON message envelope exchanged with the relay
- Room key normalization
"""

import json
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ValidationError


class RelayEvent(str, Enum):
    """Events carried over a relay connection."""

    WELCOME = "welcome"                      # relay -> client
    JOIN_ROOM = "join-room"                  # client -> relay
    LEAVE_ROOM = "leave-room"                # client -> relay
    ROOM_FULL = "room-full"                  # relay -> client
    USER_CONNECTED = "user-connected"        # relay -> client
    USER_DISCONNECTED = "user-disconnected"  # relay -> client
    OFFER = "offer"                          # client <-> relay <-> client
    ANSWER = "answer"
    ICE_CANDIDATE = "ice-candidate"


NEGOTIATION_EVENTS = frozenset({
    RelayEvent.OFFER,
    RelayEvent.ANSWER,
    RelayEvent.ICE_CANDIDATE,
})


class RelayMessage(BaseModel):
    """
    A single relay message.

    Serialized as a JSON text frame: {"event": <name>, "data": <payload>}.
    The payload is a bare string for membership events and an object
    ({targetId, senderId, sdp|candidate}) for negotiation events.
    """

    event: RelayEvent
    data: Any = None

    def to_json(self) -> str:
        """Serialize to a JSON text frame."""
        return json.dumps({"event": self.event.value, "data": self.data})

    @classmethod
    def from_json(cls, raw: str | bytes) -> "RelayMessage":
        """
        Parse a JSON text frame.

        Raises:
            ValueError: If the frame is not a valid relay message
        """
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        try:
            obj = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed relay frame: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError("Relay frame must be a JSON object")
        try:
            return cls(event=obj.get("event"), data=obj.get("data"))
        except ValidationError as e:
            raise ValueError(f"Unknown relay event: {obj.get('event')!r}") from e

    @property
    def is_negotiation(self) -> bool:
        return self.event in NEGOTIATION_EVENTS

    @property
    def target_id(self) -> Optional[str]:
        """Target participant of a negotiation message, if any."""
        if isinstance(self.data, dict):
            return self.data.get("targetId")
        return None

    @property
    def sender_id(self) -> Optional[str]:
        if isinstance(self.data, dict):
            return self.data.get("senderId")
        return None

    @classmethod
    def welcome(cls, participant_id: str) -> "RelayMessage":
        return cls(event=RelayEvent.WELCOME, data={"participantId": participant_id})

    @classmethod
    def user_connected(cls, participant_id: str) -> "RelayMessage":
        return cls(event=RelayEvent.USER_CONNECTED, data=participant_id)

    @classmethod
    def user_disconnected(cls, participant_id: str) -> "RelayMessage":
        return cls(event=RelayEvent.USER_DISCONNECTED, data=participant_id)

    @classmethod
    def room_full(cls, room_key: str) -> "RelayMessage":
        return cls(event=RelayEvent.ROOM_FULL, data=room_key)


def normalize_room_key(room_key: str) -> str:
    """
    Normalize a portal key so lookups are case-insensitive.

    Raises:
        ValueError: If the key is empty after trimming
    """
    if not isinstance(room_key, str):
        raise ValueError("Room key must be a string")
    key = room_key.strip().upper()
    if not key:
        raise ValueError("Room key must not be empty")
    return key
