"""
Room membership table for the signaling relay.

Rooms map a normalized portal key to the participants currently in it.
A room is created on first join and deleted when its last member leaves.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterator, Optional

logger = logging.getLogger(__name__)


class RoomStore:
    """
    Tracks which participants occupy which rooms.

    Membership order is preserved (earliest joiner first) so the relay can
    deterministically pick the "first existing member" of a room. Mutating
    calls must be made inside the room's `guard`, since relay connections
    for many rooms are handled concurrently.
    """

    def __init__(self) -> None:
        # room key -> ordered participant ids (dict used as an ordered set)
        self._rooms: dict[str, dict[str, None]] = {}
        # participant id -> room keys it belongs to
        self._memberships: dict[str, set[str]] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        # room key -> coroutines holding or waiting on its lock
        self._lock_users: dict[str, int] = {}

    def lock(self, room_key: str) -> asyncio.Lock:
        """Get the mutual-exclusion lock for a room."""
        lock = self._locks.get(room_key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[room_key] = lock
        return lock

    def add(self, room_key: str, participant_id: str) -> list[str]:
        """
        Add a participant to a room, creating the room if needed.

        Returns:
            Members present before insertion, earliest joiner first
        """
        members = self._rooms.setdefault(room_key, {})
        existing = [pid for pid in members if pid != participant_id]
        members[participant_id] = None
        self._memberships.setdefault(participant_id, set()).add(room_key)
        logger.debug(f"Room {room_key}: {participant_id} added ({len(members)} members)")
        return existing

    def remove(self, room_key: str, participant_id: str) -> Optional[list[str]]:
        """
        Remove a participant from one room.

        Returns:
            Remaining members, or None if the participant was not in the room
        """
        members = self._rooms.get(room_key)
        if members is None or participant_id not in members:
            return None

        del members[participant_id]
        rooms = self._memberships.get(participant_id)
        if rooms is not None:
            rooms.discard(room_key)
            if not rooms:
                del self._memberships[participant_id]

        remaining = list(members)
        if not remaining:
            del self._rooms[room_key]
            logger.debug(f"Room {room_key} deleted (empty)")
        return remaining

    @property
    def lock_count(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def guard(self, room_key: str) -> AsyncIterator[None]:
        """
        Hold a room's lock for the duration of the block.

        The lock of a deleted room is dropped only when no coroutine holds
        or waits on it, so every waiter wakes up on the same lock a new
        joiner would get.
        """
        lock = self.lock(room_key)
        self._lock_users[room_key] = self._lock_users.get(room_key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            users = self._lock_users[room_key] - 1
            if users:
                self._lock_users[room_key] = users
            else:
                del self._lock_users[room_key]
                if room_key not in self._rooms:
                    self._locks.pop(room_key, None)

    def members(self, room_key: str) -> list[str]:
        """Get the members of a room, earliest joiner first."""
        return list(self._rooms.get(room_key, {}))

    def rooms_of(self, participant_id: str) -> list[str]:
        """Get the rooms a participant belongs to."""
        return sorted(self._memberships.get(participant_id, ()))

    def size(self, room_key: str) -> int:
        return len(self._rooms.get(room_key, {}))

    def __contains__(self, room_key: str) -> bool:
        return room_key in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))
