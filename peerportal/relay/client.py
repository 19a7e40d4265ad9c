"""
Client side of the signaling relay.

This module provides:
- RelayClient: a websocket connection to the relay
- Event handler registration per relay event
- An ordered outbound queue that holds messages until the relay has
  assigned this client its participant id
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Callable, Coroutine, Optional

import websockets
from websockets.asyncio.client import ClientConnection, connect

from ..config import PortalConfig
from .protocol import RelayEvent, RelayMessage, normalize_room_key

logger = logging.getLogger(__name__)


# Type aliases
EventHandler = Callable[[Any], Coroutine[Any, Any, None]]


class RelayClient:
    """
    A participant's connection to the signaling relay.

    Messages emitted before the relay's welcome arrives are queued and sent
    in emission order once it does; negotiation messages get this client's
    participant id stamped on as senderId at that point.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        config: Optional[PortalConfig] = None
    ) -> None:
        """
        Initialize relay client.

        Args:
            url: Relay websocket URL (defaults to config.relay_url)
            config: Optional configuration
        """
        self.config = config or PortalConfig()
        self.url = url or self.config.relay_url
        self.participant_id: Optional[str] = None

        self._ws: Optional[ClientConnection] = None
        self._handlers: dict[RelayEvent, list[EventHandler]] = defaultdict(list)
        self._outbox: asyncio.Queue[RelayMessage] = asyncio.Queue()
        self._ready = asyncio.Event()
        self._tasks: list[asyncio.Task] = []

    @property
    def is_ready(self) -> bool:
        """Check if the relay has assigned a participant id."""
        return self._ready.is_set()

    def on(self, event: RelayEvent, handler: EventHandler) -> None:
        """Register a handler for a relay event."""
        self._handlers[event].append(handler)

    def emit(self, event: RelayEvent, data: Any = None) -> None:
        """Queue a message for the relay."""
        if not self.is_ready:
            logger.debug(f"Relay not ready, queueing {event.value}")
        self._outbox.put_nowait(RelayMessage(event=event, data=data))

    def join(self, room_key: str) -> None:
        """Join a room."""
        self.emit(RelayEvent.JOIN_ROOM, normalize_room_key(room_key))

    def leave(self, room_key: str) -> None:
        """Leave a room without closing the relay connection."""
        self.emit(RelayEvent.LEAVE_ROOM, normalize_room_key(room_key))

    async def connect(self, timeout: float = 10.0) -> str:
        """
        Connect to the relay and wait for the participant id.

        Returns:
            The participant id assigned by the relay
        """
        self._ws = await connect(self.url)
        self._tasks.append(asyncio.create_task(self._read_loop()))
        self._tasks.append(asyncio.create_task(self._write_loop()))

        await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        logger.info(f"Connected to relay {self.url} as {self.participant_id}")
        return self.participant_id

    async def close(self) -> None:
        """Close the relay connection."""
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()

        if self._ws is not None:
            await self._ws.close()
            self._ws = None

        self._ready.clear()
        logger.info("Disconnected from relay")

    async def _read_loop(self) -> None:
        try:
            async for raw in self._ws:
                try:
                    message = RelayMessage.from_json(raw)
                except ValueError as e:
                    logger.warning(f"Bad frame from relay: {e}")
                    continue
                await self._dispatch(message)
        except websockets.ConnectionClosed:
            pass
        finally:
            self._ready.clear()
            logger.info("Relay connection closed")

    async def _write_loop(self) -> None:
        await self._ready.wait()
        while True:
            message = await self._outbox.get()
            if message.is_negotiation and isinstance(message.data, dict):
                message.data.setdefault("senderId", self.participant_id)
            await self._ws.send(message.to_json())

    async def _dispatch(self, message: RelayMessage) -> None:
        """Run the handlers registered for a message's event."""
        if message.event == RelayEvent.WELCOME:
            self.participant_id = message.data["participantId"]
            self._ready.set()

        if message.event == RelayEvent.ROOM_FULL:
            logger.warning(f"Room {message.data} is full")

        for handler in self._handlers.get(message.event, []):
            try:
                await handler(message.data)
            except Exception as e:
                logger.error(f"Error in {message.event.value} handler: {e}")
