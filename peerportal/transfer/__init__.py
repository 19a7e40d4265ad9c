"""
File transfer over a peer session.

This package provides:
- TransferItem / FileMeta / Blob / OutgoingFile: the transfer data model
- Framing of metadata and chunk frames on the direct channel
- ReceiveCursor: reassembly of the open inbound transfer
- TransferEngine: sending with backpressure, receiving, history
"""

from .models import (
    DEFAULT_MIME_TYPE,
    Blob,
    FileMeta,
    OutgoingFile,
    TransferDirection,
    TransferItem,
    TransferStatus,
    detect_mime_type,
    format_file_size,
)

from .framing import (
    META_PREFIX,
    decode_meta,
    encode_meta,
    frame_bytes,
)

from .chunker import (
    CHUNK_SIZE,
    ReceiveCursor,
    percent_of,
)

from .engine import TransferEngine, TransferCallback

__all__ = [
    # Models
    "DEFAULT_MIME_TYPE",
    "Blob",
    "FileMeta",
    "OutgoingFile",
    "TransferDirection",
    "TransferItem",
    "TransferStatus",
    "detect_mime_type",
    "format_file_size",
    # Framing
    "META_PREFIX",
    "decode_meta",
    "encode_meta",
    "frame_bytes",
    # Chunking
    "CHUNK_SIZE",
    "ReceiveCursor",
    "percent_of",
    # Engine
    "TransferEngine",
    "TransferCallback",
]
