"""
Transfer engine: file sending and receiving over a peer session.

This module provides:
- TransferEngine: chunked sending with backpressure, reassembly of inbound
  files, and the transfer history ledger (most recent first)
"""

import asyncio
import logging
from typing import Callable, Optional

from ..exceptions import NotConnectedError, ProtocolDesyncError
from ..session.peer import PeerSession
from ..session.transport import Frame
from .chunker import CHUNK_SIZE, ReceiveCursor, percent_of
from .framing import decode_meta, encode_meta, frame_bytes
from .models import (
    Blob,
    FileMeta,
    OutgoingFile,
    TransferDirection,
    TransferItem,
)

logger = logging.getLogger(__name__)


# Type aliases
TransferCallback = Callable[[TransferItem], None]


class TransferEngine:
    """
    Sends and receives files over a connected PeerSession.

    Outgoing transfers go out one at a time so their chunks never
    interleave. Only one inbound transfer is open at a time: a new metadata
    record abandons any incomplete one, which stays TRANSFERRING.
    """

    def __init__(self, session: PeerSession, chunk_size: int = CHUNK_SIZE) -> None:
        """
        Initialize transfer engine and attach it to the session's inbound data.

        Args:
            session: Peer session providing send/receive primitives
            chunk_size: Maximum chunk size in bytes
        """
        self.session = session
        self.chunk_size = chunk_size

        self._history: list[TransferItem] = []
        self._cursor: Optional[ReceiveCursor] = None
        self._cursor_item: Optional[TransferItem] = None
        self._send_lock = asyncio.Lock()
        self._update_handlers: list[TransferCallback] = []

        session.set_data_handler(self.on_inbound_data)

    @property
    def history(self) -> tuple[TransferItem, ...]:
        """Transfer ledger, most recent first."""
        return tuple(self._history)

    @property
    def receiving(self) -> Optional[TransferItem]:
        """The inbound transfer currently open, if any."""
        return self._cursor_item

    def on_update(self, handler: TransferCallback) -> None:
        """Register a handler called whenever a TransferItem changes."""
        self._update_handlers.append(handler)

    def get(self, transfer_id: str) -> Optional[TransferItem]:
        """Get the most recent transfer with this id."""
        for item in self._history:
            if item.id == transfer_id:
                return item
        return None

    def reset(self, reason: Optional[str] = None) -> None:
        """
        Drop any open inbound transfer. History is kept.

        Args:
            reason: If given, the dropped transfer is marked ERROR with it
        """
        item = self._cursor_item
        self._cursor = None
        self._cursor_item = None

        if item is not None and reason is not None:
            item.fail(reason)
            self._notify(item)

    async def send_file(self, file: OutgoingFile) -> TransferItem:
        """
        Send a file: one metadata frame, then its chunks in order.

        Emission pauses whenever the session reports a full outbound buffer
        and resumes at the same position after the drain. A failure marks the
        item ERROR and stops sending; it is not retried.

        Returns:
            The outgoing TransferItem (COMPLETED or ERROR)

        Raises:
            NotConnectedError: If the session is not connected
        """
        if not self.session.is_connected:
            raise NotConnectedError("Cannot send file: not connected", self.session.target_id)

        item = TransferItem(
            name=file.name,
            size=file.size,
            mime_type=file.mime_type,
            direction=TransferDirection.OUTGOING,
        )
        self._record(item)

        async with self._send_lock:
            try:
                item.start()
                self._notify(item)

                if not self.session.send(encode_meta(item.to_meta())):
                    await self.session.wait_for_drain()

                sent = 0
                for chunk in file.read_chunks(self.chunk_size):
                    has_room = self.session.send(chunk)
                    sent += len(chunk)
                    if item.update_progress(percent_of(sent, item.size)):
                        self._notify(item)
                    if not has_room:
                        await self.session.wait_for_drain()

                item.complete()
            except Exception as e:
                item.fail(str(e))

        self._notify(item)
        return item

    def on_inbound_data(self, frame: Frame) -> None:
        """Handle one application frame from the peer."""
        meta = decode_meta(frame)
        if meta is not None:
            self._open_cursor(meta)
            return

        try:
            self._append_chunk(frame_bytes(frame))
        except ProtocolDesyncError as e:
            logger.warning(f"Discarding frame: {e.message}")

    def _open_cursor(self, meta: FileMeta) -> None:
        if self._cursor_item is not None:
            logger.warning(
                f"Abandoning incomplete transfer {self._cursor_item.id} "
                f"({self._cursor.received}/{self._cursor.meta.size} bytes)"
            )

        item = TransferItem.from_meta(meta, TransferDirection.INCOMING)
        item.start()
        self._record(item)

        self._cursor = ReceiveCursor(meta=meta)
        self._cursor_item = item
        self._notify(item)

        if self._cursor.is_complete:
            self._finish()

    def _append_chunk(self, data: bytes) -> None:
        cursor, item = self._cursor, self._cursor_item
        if cursor is None or item is None:
            raise ProtocolDesyncError("Received chunk but no metadata set", len(data))

        progress = cursor.add_chunk(data)
        if cursor.is_complete:
            self._finish()
        elif item.update_progress(progress):
            self._notify(item)

    def _finish(self) -> None:
        cursor, item = self._cursor, self._cursor_item
        self._cursor = None
        self._cursor_item = None

        blob = Blob(data=cursor.assemble(), mime_type=cursor.meta.mime_type)
        if blob.size != cursor.meta.size:
            logger.warning(f"Transfer {item.id} received {blob.size} bytes, expected {cursor.meta.size}")
        item.complete(blob)
        self._notify(item)

    def _record(self, item: TransferItem) -> None:
        self._history.insert(0, item)

    def _notify(self, item: TransferItem) -> None:
        for handler in self._update_handlers:
            try:
                handler(item)
            except Exception as e:
                logger.error(f"Error in transfer update handler: {e}")
