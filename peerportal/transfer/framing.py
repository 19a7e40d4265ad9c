"""
Data-channel framing for file transfers.

Frame kinds:
- Metadata: UTF-8 JSON text {"meta": {id, name, size, mimeType}}
- Chunk: raw bytes, at most CHUNK_SIZE each, in emission order

A frame is metadata only if it starts with the {"meta": prefix, decodes as
UTF-8 and parses; anything else is a chunk.
"""

import json
from typing import Optional

from pydantic import ValidationError

from .models import FileMeta

META_PREFIX = '{"meta":'
META_PREFIX_BYTES = META_PREFIX.encode("utf-8")


def encode_meta(meta: FileMeta) -> str:
    """Serialize a metadata record as a text frame."""
    return json.dumps({"meta": meta.to_wire()}, separators=(",", ":"))


def decode_meta(frame: bytes | str) -> Optional[FileMeta]:
    """
    Interpret a frame as a metadata record.

    Returns:
        The FileMeta, or None if the frame is a binary chunk
    """
    if isinstance(frame, str):
        text = frame
    else:
        raw = bytes(frame)
        if not raw.startswith(META_PREFIX_BYTES):
            return None
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None

    if not text.startswith(META_PREFIX):
        return None

    try:
        obj = json.loads(text)
        return FileMeta.model_validate(obj["meta"])
    except (ValueError, KeyError, TypeError, ValidationError):
        return None


def frame_bytes(frame: bytes | str) -> bytes:
    """Get the raw bytes of a frame."""
    if isinstance(frame, str):
        return frame.encode("utf-8")
    return bytes(frame)
