"""
Shared fixtures: an in-process relay and polling helpers.
"""

import asyncio
from collections import defaultdict
from typing import Any, Callable, Optional

import pytest
import pytest_asyncio

from peerportal.config import PortalConfig
from peerportal.relay.protocol import RelayEvent, RelayMessage, normalize_room_key
from peerportal.relay.service import RelayConnection, RelayService


class InProcessRelayClient(RelayConnection):
    """
    A relay participant wired straight into a RelayService.

    Offers the RelayClient surface (participant_id, on, emit, join, leave)
    without a network. Both directions go through queues drained by tasks,
    so delivery is asynchronous and ordered like a real socket.
    """

    def __init__(self, service: RelayService, participant_id: str) -> None:
        self.service = service
        self.participant_id = participant_id
        self.received: list[RelayMessage] = []
        self.sent: list[RelayMessage] = []

        self._handlers = defaultdict(list)
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._outbox: asyncio.Queue = asyncio.Queue()

        service.register(self)
        self._tasks = [
            asyncio.create_task(self._read_loop()),
            asyncio.create_task(self._write_loop()),
        ]

    async def send(self, message: RelayMessage) -> None:
        self.received.append(message)
        self._inbox.put_nowait(message)

    def on(self, event: RelayEvent, handler) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: RelayEvent, data: Any = None) -> None:
        if event != RelayEvent.JOIN_ROOM and isinstance(data, dict):
            data = dict(data)
            data.setdefault("senderId", self.participant_id)
        message = RelayMessage(event=event, data=data)
        self.sent.append(message)
        self._outbox.put_nowait(message)

    def join(self, room_key: str) -> None:
        self.emit(RelayEvent.JOIN_ROOM, normalize_room_key(room_key))

    def leave(self, room_key: str) -> None:
        self.emit(RelayEvent.LEAVE_ROOM, normalize_room_key(room_key))

    def events(self, event: RelayEvent) -> list[Any]:
        """Payloads of the messages received for an event."""
        return [m.data for m in self.received if m.event == event]

    async def disconnect(self) -> None:
        """Drop the connection as if the socket closed."""
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        await self.service.unregister(self.participant_id)

    async def _read_loop(self) -> None:
        while True:
            message = await self._inbox.get()
            for handler in self._handlers.get(message.event, []):
                await handler(message.data)

    async def _write_loop(self) -> None:
        while True:
            message = await self._outbox.get()
            await self.service.handle(self.participant_id, message)


class InProcessRelay:
    """A RelayService plus the in-process participants attached to it."""

    def __init__(self, max_room_size: Optional[int] = None) -> None:
        self.service = RelayService(max_room_size=max_room_size)
        self.clients: list[InProcessRelayClient] = []

    def client(self, participant_id: str) -> InProcessRelayClient:
        client = InProcessRelayClient(self.service, participant_id)
        self.clients.append(client)
        return client

    async def close(self) -> None:
        for client in self.clients:
            if client._tasks:
                await client.disconnect()


async def wait_for(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> None:
    """Poll until `predicate()` is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(interval)


@pytest_asyncio.fixture
async def relay():
    """In-process relay, closed after the test."""
    in_process = InProcessRelay()
    yield in_process
    await in_process.close()


@pytest.fixture
def eventually():
    """Polling helper: `await eventually(lambda: ...)`."""
    return wait_for


@pytest.fixture
def fast_config():
    """Config with timers shrunk for tests."""
    return PortalConfig(
        heartbeat_interval=0.05,
        watchdog_interval=0.02,
        liveness_timeout=0.3,
        reconnect_delay=0.01,
    )
