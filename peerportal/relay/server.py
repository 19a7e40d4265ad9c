"""
WebSocket server for the signaling relay.

Handles:
- Participant id assignment (welcome event)
- Room join/leave requests
- Offer/answer/candidate forwarding
- Health checks on /healthz
"""

import asyncio
import logging
import signal
import uuid
from http import HTTPStatus
from typing import Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve

from ..config import PortalConfig
from .protocol import RelayMessage
from .service import RelayConnection, RelayService

logger = logging.getLogger(__name__)


class WebSocketRelayConnection(RelayConnection):
    """A relay participant reached over a websocket."""

    def __init__(self, ws: ServerConnection, participant_id: str) -> None:
        self.ws = ws
        self.participant_id = participant_id

    async def send(self, message: RelayMessage) -> None:
        await self.ws.send(message.to_json())


class RelayServer:
    """
    WebSocket front end for a RelayService.

    Every accepted connection is given a fresh participant id, unrelated to
    its network address, that lives exactly as long as the connection.
    """

    def __init__(
        self,
        host: str = "0.0.0.0",
        port: int = 3001,
        config: Optional[PortalConfig] = None
    ) -> None:
        """
        Initialize relay server.

        Args:
            host: Host address to bind
            port: Port to listen on (0 picks an ephemeral port)
            config: Optional configuration
        """
        self.host = host
        self.port = port
        self.config = config or PortalConfig()
        self.service = RelayService(max_room_size=self.config.max_room_size)

        self._server: Optional[Server] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        host = "localhost" if self.host in ("0.0.0.0", "") else self.host
        return f"ws://{host}:{self.port}"

    async def _process_request(self, connection: ServerConnection, request):
        """Answer health checks before the websocket handshake."""
        if request.path == "/healthz":
            return connection.respond(HTTPStatus.OK, "OK\n")
        return None

    async def start(self) -> None:
        """Start the relay server."""
        if self._running:
            return

        self._running = True

        self._server = await serve(
            self._handle_connection,
            self.host,
            self.port,
            ping_interval=30,
            ping_timeout=10,
            process_request=self._process_request
        )

        # Update port if it was 0 (ephemeral)
        if self.port == 0 and self._server.sockets:
            sock = next(iter(self._server.sockets))
            self.port = sock.getsockname()[1]

        logger.info(f"Relay server started on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the relay server."""
        if not self._running:
            return

        self._running = False

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("Relay server stopped")

    async def run_forever(self) -> None:
        """Run the relay until SIGINT or SIGTERM."""
        await self.start()

        loop = asyncio.get_running_loop()
        stop_event = asyncio.Event()

        def handle_signal():
            logger.info("Received shutdown signal...")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, handle_signal)

        try:
            await stop_event.wait()
        finally:
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)
            await self.stop()

    async def _handle_connection(self, ws: ServerConnection) -> None:
        """Handle one participant connection for its whole lifetime."""
        participant_id = uuid.uuid4().hex
        connection = WebSocketRelayConnection(ws, participant_id)
        self.service.register(connection)

        try:
            await connection.send(RelayMessage.welcome(participant_id))

            async for data in ws:
                try:
                    message = RelayMessage.from_json(data)
                except ValueError as e:
                    logger.warning(f"Bad frame from {participant_id}: {e}")
                    continue

                try:
                    await self.service.handle(participant_id, message)
                except Exception as e:
                    logger.error(f"Error handling {message.event.value} from {participant_id}: {e}")

        except websockets.ConnectionClosed:
            pass
        except Exception as e:
            logger.error(f"Connection error: {e}")
        finally:
            await self.service.unregister(participant_id)
