"""
Tests for relay wire messages.
"""

import json

import pytest

from peerportal.relay.protocol import (
    NEGOTIATION_EVENTS,
    RelayEvent,
    RelayMessage,
    normalize_room_key,
)


class TestRelayMessage:
    """Tests for RelayMessage."""

    def test_to_json(self):
        """Messages serialize to an event/data envelope."""
        message = RelayMessage.user_connected("p2")
        assert json.loads(message.to_json()) == {"event": "user-connected", "data": "p2"}

    def test_from_json(self):
        """Negotiation payloads survive parsing unchanged."""
        raw = json.dumps({
            "event": "ice-candidate",
            "data": {"targetId": "p2", "senderId": "p1", "candidate": {"candidate": "c"}},
        })
        message = RelayMessage.from_json(raw)

        assert message.event == RelayEvent.ICE_CANDIDATE
        assert message.is_negotiation
        assert message.target_id == "p2"
        assert message.sender_id == "p1"
        assert message.data["candidate"] == {"candidate": "c"}

    def test_from_json_bytes(self):
        """Binary frames are decoded as UTF-8."""
        message = RelayMessage.from_json(b'{"event": "join-room", "data": "ABC"}')
        assert message.event == RelayEvent.JOIN_ROOM
        assert message.data == "ABC"

    @pytest.mark.parametrize("raw", [
        "not json",
        "[1, 2]",
        '{"event": "teleport", "data": null}',
        '{"data": "x"}',
    ])
    def test_from_json_rejects(self, raw):
        """Malformed frames raise ValueError."""
        with pytest.raises(ValueError):
            RelayMessage.from_json(raw)

    def test_welcome(self):
        """Welcome carries the participant id."""
        assert RelayMessage.welcome("abc").data == {"participantId": "abc"}

    def test_membership_events_have_no_target(self):
        """Only negotiation messages have target/sender ids."""
        message = RelayMessage.user_disconnected("p1")
        assert not message.is_negotiation
        assert message.target_id is None
        assert message.sender_id is None

    def test_negotiation_events(self):
        """Offer, answer and candidate are negotiation events."""
        assert NEGOTIATION_EVENTS == {RelayEvent.OFFER, RelayEvent.ANSWER, RelayEvent.ICE_CANDIDATE}


class TestRoomKey:
    """Tests for room key normalization."""

    def test_case_insensitive(self):
        """Keys are trimmed and upper-cased."""
        assert normalize_room_key("  portal1 ") == "PORTAL1"
        assert normalize_room_key("Portal1") == normalize_room_key("PORTAL1")

    @pytest.mark.parametrize("key", ["", "   ", None, 42])
    def test_invalid(self, key):
        """Empty and non-string keys are rejected."""
        with pytest.raises(ValueError):
            normalize_room_key(key)
