"""
Transfer data model.

This module provides:
- FileMeta: the metadata record announcing a file on the wire
- TransferItem: one entry of the transfer history ledger
- Blob: a received payload typed by its MIME type
- OutgoingFile: a local file or in-memory buffer ready to send
"""

import logging
import mimetypes
import uuid
from datetime import datetime
from enum import Enum, auto
from pathlib import Path
from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

logger = logging.getLogger(__name__)

DEFAULT_MIME_TYPE = "application/octet-stream"


class TransferDirection(Enum):
    """Which way a file is moving."""

    INCOMING = auto()
    OUTGOING = auto()


class TransferStatus(Enum):
    """Status of a file transfer."""

    PENDING = auto()       # Waiting for the channel
    TRANSFERRING = auto()  # Chunks in flight
    COMPLETED = auto()     # All bytes sent / received
    ERROR = auto()         # Aborted


def detect_mime_type(file_path: Path) -> str:
    """
    Detect MIME type from file path.

    Args:
        file_path: Path to the file

    Returns:
        MIME type string (e.g., 'image/jpeg')
    """
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE


def format_file_size(size_bytes: int) -> str:
    """Format file size in human-readable format (e.g. '1.5 MB')."""
    size = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024:
            return f"{size:.1f} {unit}" if size != int(size) else f"{int(size)} {unit}"
        size /= 1024
    return f"{size:.1f} PB"


class FileMeta(BaseModel):
    """
    Metadata record sent ahead of a file's chunks.

    Wire form uses camelCase: {id, name, size, mimeType}.
    """

    id: str
    name: str
    size: int = Field(ge=0)
    mime_type: str = Field(default=DEFAULT_MIME_TYPE, alias="mimeType")

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict:
        """Convert to the camelCase wire dictionary."""
        return self.model_dump(by_alias=True)


class Blob(BaseModel):
    """Received file contents with their MIME type."""

    data: bytes = Field(repr=False)
    mime_type: str = DEFAULT_MIME_TYPE

    @property
    def size(self) -> int:
        return len(self.data)

    def save(self, directory: Path, filename: str) -> Path:
        """
        Write the payload into a directory without overwriting anything.

        Args:
            directory: Destination directory (created if missing)
            filename: Preferred file name; only its final component is used

        Returns:
            Path actually written
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        name = Path(filename).name or "download"
        target = directory / name
        stem, suffix = target.stem, target.suffix
        counter = 1
        while target.exists():
            target = directory / f"{stem} ({counter}){suffix}"
            counter += 1

        target.write_bytes(self.data)
        logger.info(f"Saved {format_file_size(self.size)} to {target}")
        return target


class TransferItem(BaseModel):
    """
    One file transfer, incoming or outgoing.

    Progress is an integer percentage that never decreases while the item
    is transferring. `payload` is only set on completed incoming items.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    size: int = Field(ge=0)
    mime_type: str = DEFAULT_MIME_TYPE
    direction: TransferDirection
    status: TransferStatus = TransferStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    payload: Optional[Blob] = Field(default=None, repr=False)
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(validate_assignment=True)

    @field_serializer("direction", "status")
    def serialize_enum(self, v: Enum, _info):
        return v.name

    @classmethod
    def from_meta(cls, meta: FileMeta, direction: TransferDirection) -> "TransferItem":
        return cls(
            id=meta.id,
            name=meta.name,
            size=meta.size,
            mime_type=meta.mime_type,
            direction=direction,
        )

    def to_meta(self) -> FileMeta:
        """Build the metadata record announcing this item."""
        return FileMeta(id=self.id, name=self.name, size=self.size, mime_type=self.mime_type)

    @property
    def is_active(self) -> bool:
        return self.status in (TransferStatus.PENDING, TransferStatus.TRANSFERRING)

    def start(self) -> None:
        """Mark transfer as started."""
        self.status = TransferStatus.TRANSFERRING
        logger.info(f"Transfer {self.id[:8]}... started: {self.name} ({format_file_size(self.size)})")

    def update_progress(self, percent: int) -> bool:
        """
        Raise progress to `percent`, clamped to [0, 100].

        Returns:
            True if progress changed
        """
        percent = max(0, min(100, int(percent)))
        if percent <= self.progress:
            return False
        self.progress = percent
        return True

    def complete(self, payload: Optional[Blob] = None) -> None:
        """Mark transfer as completed."""
        self.progress = 100
        self.payload = payload
        self.status = TransferStatus.COMPLETED
        self.completed_at = datetime.now()
        logger.info(f"Transfer {self.id[:8]}... completed: {self.name}")

    def fail(self, error: str) -> None:
        """Mark transfer as failed."""
        self.error = error
        self.status = TransferStatus.ERROR
        self.completed_at = datetime.now()
        logger.error(f"Transfer {self.id[:8]}... failed: {error}")

    def __repr__(self) -> str:
        return f"TransferItem({self.direction.name}, {self.name}, {self.status.name}, {self.progress}%)"


class OutgoingFile(BaseModel):
    """
    A file ready to be sent, backed by a path or an in-memory buffer.
    """

    name: str
    size: int = Field(ge=0)
    mime_type: str = DEFAULT_MIME_TYPE
    path: Optional[Path] = None
    content: Optional[bytes] = Field(default=None, repr=False)

    @classmethod
    def from_path(cls, file_path: str | Path) -> "OutgoingFile":
        """
        Create OutgoingFile from a file path.

        Raises:
            FileNotFoundError: If the path is not an existing file
        """
        path = Path(file_path).resolve()
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")

        return cls(
            name=path.name,
            size=path.stat().st_size,
            mime_type=detect_mime_type(path),
            path=path,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: Optional[str] = None) -> "OutgoingFile":
        """Wrap an in-memory buffer."""
        return cls(
            name=name,
            size=len(data),
            mime_type=mime_type or detect_mime_type(Path(name)),
            content=data,
        )

    def read_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """
        Read the file in order, `chunk_size` bytes at a time.

        Yields:
            File data chunks
        """
        if self.content is not None:
            for start in range(0, len(self.content), chunk_size):
                yield self.content[start:start + chunk_size]
            return

        if self.path is None:
            raise ValueError(f"OutgoingFile {self.name!r} has neither path nor content")

        with open(self.path, "rb") as f:
            while True:
                chunk = f.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    def __repr__(self) -> str:
        return f"OutgoingFile({self.name}, {self.mime_type}, {format_file_size(self.size)})"
