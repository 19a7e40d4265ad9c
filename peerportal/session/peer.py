"""
Peer session lifecycle for one room membership.

This module provides:
- SessionState: IDLE, CONNECTING, CONNECTED, ERROR
- PeerSession: owns at most one transport, queues negotiation bodies that
  arrive while the transport is being created, monitors liveness and
  reconnects with a bounded retry budget
"""

import asyncio
import logging
from collections import deque
from enum import Enum, auto
from typing import Any, Callable, Optional

from ..config import PortalConfig
from ..exceptions import (
    ConnectionLostError,
    ConnectionTimeoutError,
    NotConnectedError,
    PortalError,
    TransportError,
)
from .liveness import HEARTBEAT_TOKEN, LivenessMonitor, is_heartbeat
from .transport import Frame, SignalKind, Transport, TransportFactory, TransportListener

logger = logging.getLogger(__name__)


# Type aliases
SignalHandler = Callable[[SignalKind, dict], None]
DataHandler = Callable[[Frame], None]
ErrorHandler = Callable[[PortalError], None]
EventHandler = Callable[[], None]


class SessionState(Enum):
    """Connection state of a peer session."""

    IDLE = auto()
    CONNECTING = auto()
    CONNECTED = auto()
    ERROR = auto()


class PeerSession(TransportListener):
    """
    Connection state machine between this participant and one target.

    Transitions:
    - IDLE -> CONNECTING on `create_session`
    - CONNECTING -> CONNECTED when the transport opens (retry count reset)
    - any -> ERROR when the transport reports a fault
    - CONNECTING/CONNECTED -> IDLE when the transport closes; an
      unrequested close schedules a reconnect with the same target and role
      until the retry budget is spent, then ConnectionLostError is raised
      to the error handlers

    All callbacks run on the event loop; nothing here is shared between
    rooms, so no locking is needed.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        config: Optional[PortalConfig] = None
    ) -> None:
        """
        Initialize peer session.

        Args:
            transport_factory: Builds a transport given (initiator, listener)
            config: Optional configuration (timers and retry budget)
        """
        self.transport_factory = transport_factory
        self.config = config or PortalConfig()

        self._state = SessionState.IDLE
        self._target_id: Optional[str] = None
        self._is_initiator = False
        self._retry_count = 0

        self._transport: Optional[Transport] = None
        self._creating = False
        self._flushing = False
        self._intentional_close = False
        self._pending_signals: deque[dict] = deque()

        self._open_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._liveness = LivenessMonitor(
            send_heartbeat=self._send_heartbeat,
            on_timeout=self._on_liveness_timeout,
            heartbeat_interval=self.config.heartbeat_interval,
            watchdog_interval=self.config.watchdog_interval,
            timeout=self.config.liveness_timeout,
        )

        # Filled in after construction by whoever consumes inbound data
        self._data_handler: Optional[DataHandler] = None
        self._signal_handlers: list[SignalHandler] = []
        self._connect_handlers: list[EventHandler] = []
        self._close_handlers: list[EventHandler] = []
        self._error_handlers: list[ErrorHandler] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def target_id(self) -> Optional[str]:
        return self._target_id

    @property
    def is_initiator(self) -> bool:
        return self._is_initiator

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def is_connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def has_transport(self) -> bool:
        return self._transport is not None

    @property
    def is_creating(self) -> bool:
        return self._creating

    @property
    def last_liveness_at(self) -> float:
        """Monotonic time anything was last heard from the peer."""
        return self._liveness.last_seen

    @property
    def pending_signal_count(self) -> int:
        return len(self._pending_signals)

    @property
    def has_pending_timers(self) -> bool:
        """Check if any heartbeat, watchdog, open or reconnect task is live."""
        return (
            self._liveness.is_running
            or self._open_task is not None
            or self._reconnect_task is not None
        )

    def set_data_handler(self, handler: Optional[DataHandler]) -> None:
        """Set the consumer of inbound application frames."""
        self._data_handler = handler

    def on_signal(self, handler: SignalHandler) -> None:
        """Register a handler for outbound negotiation bodies."""
        self._signal_handlers.append(handler)

    def on_connect(self, handler: EventHandler) -> None:
        """Register a connection handler."""
        self._connect_handlers.append(handler)

    def on_close(self, handler: EventHandler) -> None:
        """Register a handler for transport closure."""
        self._close_handlers.append(handler)

    def on_error(self, handler: ErrorHandler) -> None:
        """Register an error handler."""
        self._error_handlers.append(handler)

    def create_session(self, target_id: str, initiator: bool) -> bool:
        """
        Create the transport for a target and start negotiating.

        A no-op while a transport exists or is being created.

        Args:
            target_id: Remote participant id
            initiator: Whether this side makes the offer

        Returns:
            True if creation started
        """
        if self._transport is not None or self._creating:
            logger.debug("Transport already exists, skipping creation")
            return False
        if self._state in (SessionState.CONNECTING, SessionState.CONNECTED):
            logger.debug(f"Session already {self._state.name}, skipping creation")
            return False

        self._intentional_close = False
        self._creating = True
        self._target_id = target_id
        self._is_initiator = initiator
        self._set_state(SessionState.CONNECTING)

        logger.info(f"Creating session - target: {target_id}, initiator: {initiator}")
        self._open_task = asyncio.create_task(self._open_transport())
        return True

    def destroy_session(self) -> None:
        """
        Tear the session down and return to IDLE.

        Stops all timers synchronously and marks the close as intentional so
        no reconnection follows. Idempotent.
        """
        self._intentional_close = True

        for task in (self._open_task, self._reconnect_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()
        self._open_task = None
        self._reconnect_task = None
        self._liveness.stop()

        transport = self._transport
        if transport is not None:
            transport.destroy()
        self._transport = None

        self._target_id = None
        self._is_initiator = False
        self._creating = False
        self._flushing = False
        self._pending_signals.clear()
        self._retry_count = 0
        self._set_state(SessionState.IDLE)

    async def signal(self, body: Any) -> None:
        """
        Route a negotiation body from the relay to the transport.

        Bodies are queued while the transport is still being created and
        applied in receipt order once it exists.
        """
        if body is None:
            return

        if self._creating or self._flushing:
            logger.debug("Transport still being created, queueing signal")
            self._pending_signals.append(body)
            return

        if self._transport is not None:
            await self._apply_signal(self._transport, body)
            return

        logger.warning("Received signal but no transport exists and none is being created")

    def send(self, data: Frame) -> bool:
        """
        Send a frame to the peer.

        Returns:
            False when the caller should `wait_for_drain` before sending more

        Raises:
            NotConnectedError: If the session is not connected
            TransportError: If the transport rejects the frame
        """
        transport = self._transport
        if self._state != SessionState.CONNECTED or transport is None:
            raise NotConnectedError(peer_id=self._target_id)

        try:
            return transport.send(data)
        except PortalError:
            raise
        except Exception as e:
            raise TransportError(f"Send failed: {e}", self._target_id) from e

    async def wait_for_drain(self) -> None:
        """Wait for the transport's outbound buffer to drain."""
        transport = self._transport
        if transport is None:
            raise NotConnectedError(peer_id=self._target_id)
        await transport.wait_for_drain()

    async def _open_transport(self) -> None:
        try:
            transport = self.transport_factory(self._is_initiator, self)
        except Exception as e:
            self._open_task = None
            self._creating = False
            self._pending_signals.clear()
            logger.error(f"Failed to create transport: {e}")
            self._fail(TransportError(f"Failed to create transport: {e}", self._target_id))
            return
        self._transport = transport

        try:
            await transport.open()
        except Exception as e:
            self._open_task = None
            self._creating = False
            logger.error(f"Failed to open transport: {e}")
            self._fail(TransportError(f"Failed to open transport: {e}", self._target_id))
            transport.destroy()
            return

        self._open_task = None
        self._creating = False
        await self._flush_pending()

    async def _flush_pending(self) -> None:
        transport = self._transport
        if transport is None or not self._pending_signals:
            return

        logger.debug(f"Processing {len(self._pending_signals)} pending signals")
        self._flushing = True
        try:
            while self._pending_signals and transport is self._transport:
                await self._apply_signal(transport, self._pending_signals.popleft())
        finally:
            self._flushing = False

    async def _apply_signal(self, transport: Transport, body: dict) -> None:
        try:
            await transport.signal(body)
        except Exception as e:
            logger.error(f"Error signaling transport: {e}")

    async def _reconnect(self, target_id: str, initiator: bool) -> None:
        await asyncio.sleep(self.config.reconnect_delay)
        self._reconnect_task = None
        if self._intentional_close:
            return
        self.create_session(target_id, initiator)

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            logger.debug(f"Session state {self._state.name} -> {state.name}")
        self._state = state

    def _fail(self, error: PortalError) -> None:
        self._set_state(SessionState.ERROR)
        logger.error(f"Session error [{error.code}]: {error.message}")
        for handler in self._error_handlers:
            handler(error)

    def _send_heartbeat(self) -> None:
        if self._state == SessionState.CONNECTED and self._transport is not None:
            self._transport.send(HEARTBEAT_TOKEN)

    def _on_liveness_timeout(self, silence: float) -> None:
        self._fail(ConnectionTimeoutError(
            f"No data from peer for {silence:.1f}s",
            timeout=self.config.liveness_timeout,
            peer_id=self._target_id,
        ))
        transport = self._transport
        if transport is not None:
            transport.destroy()

    # TransportListener

    def on_transport_signal(self, transport: Transport, body: dict) -> None:
        if transport is not self._transport:
            return
        kind = SignalKind.classify(body)
        for handler in self._signal_handlers:
            handler(kind, body)

    def on_transport_connect(self, transport: Transport) -> None:
        if transport is not self._transport:
            return

        self._set_state(SessionState.CONNECTED)
        self._retry_count = 0
        logger.info(f"Peer connected: {self._target_id}")

        if self._pending_signals and not self._creating:
            asyncio.create_task(self._flush_pending())

        self._liveness.start()
        for handler in self._connect_handlers:
            handler()

    def on_transport_data(self, transport: Transport, data: Frame) -> None:
        if transport is not self._transport:
            return

        self._liveness.touch()
        if is_heartbeat(data):
            return

        if self._data_handler is None:
            logger.debug("Dropping frame: no data handler")
            return
        try:
            self._data_handler(data)
        except Exception as e:
            logger.error(f"Error handling inbound frame: {e}")

    def on_transport_close(self, transport: Transport) -> None:
        if transport is not self._transport:
            return

        self._transport = None
        self._creating = False
        self._liveness.stop()
        self._set_state(SessionState.IDLE)
        logger.info("Connection closed")

        for handler in self._close_handlers:
            handler()

        if self._intentional_close:
            return

        max_attempts = self.config.max_reconnect_attempts
        target_id = self._target_id
        if target_id is None or self._retry_count >= max_attempts:
            attempts = self._retry_count
            self._target_id = None
            self._pending_signals.clear()
            self._fail(ConnectionLostError(
                f"Connection lost after {attempts} reconnection attempts",
                attempts=attempts,
                peer_id=target_id,
            ))
            return

        self._retry_count += 1
        logger.warning(
            f"Connection dropped, reconnecting in {self.config.reconnect_delay}s "
            f"(attempt {self._retry_count}/{max_attempts})"
        )
        self._reconnect_task = asyncio.create_task(
            self._reconnect(target_id, self._is_initiator)
        )

    def on_transport_error(self, transport: Transport, error: Exception) -> None:
        if transport is not self._transport:
            return
        if not isinstance(error, PortalError):
            error = TransportError(str(error), self._target_id)
        self._fail(error)
