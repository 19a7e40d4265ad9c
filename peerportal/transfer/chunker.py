"""
Chunking and reassembly for file transfers.

This module provides:
- CHUNK_SIZE and progress arithmetic for the send and receive paths
- ReceiveCursor: accumulate the chunks of the one open inbound transfer
"""

from pydantic import BaseModel, Field

from .models import FileMeta


# Data-channel friendly chunk size
CHUNK_SIZE = 16 * 1024


def percent_of(done: int, total: int) -> int:
    """Integer percentage, floored and capped at 100. Empty totals are done."""
    if total <= 0:
        return 100
    return min(100, (done * 100) // total)


class ReceiveCursor(BaseModel):
    """Reassembly state for the single open inbound transfer."""

    meta: FileMeta
    chunks: list[bytes] = Field(default_factory=list, repr=False)
    received: int = 0

    def add_chunk(self, data: bytes) -> int:
        """
        Append the next chunk.

        Returns:
            Progress percentage after the chunk
        """
        self.chunks.append(data)
        self.received += len(data)
        return self.progress

    @property
    def progress(self) -> int:
        return percent_of(self.received, self.meta.size)

    @property
    def is_complete(self) -> bool:
        return self.received >= self.meta.size

    def assemble(self) -> bytes:
        """Join the chunks in arrival order."""
        return b"".join(self.chunks)
