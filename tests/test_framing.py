"""
Tests for data-channel framing.
"""

import json

import pytest

from peerportal.transfer.framing import META_PREFIX, decode_meta, encode_meta, frame_bytes
from peerportal.transfer.models import FileMeta


class TestEncodeMeta:
    """Tests for metadata frames."""

    def test_wire_shape(self):
        """Metadata uses a top-level meta key and camelCase fields."""
        frame = encode_meta(FileMeta(id="x", name="a.bin", size=10, mime_type="application/pdf"))

        assert frame.startswith(META_PREFIX)
        assert json.loads(frame) == {
            "meta": {"id": "x", "name": "a.bin", "size": 10, "mimeType": "application/pdf"}
        }

    def test_decodes_own_output(self):
        """Encoded metadata is recognized as metadata."""
        meta = FileMeta(id="y", name="ünïcode.txt", size=3, mime_type="text/plain")
        assert decode_meta(encode_meta(meta)) == meta


class TestDecodeMeta:
    """Tests for telling metadata apart from chunks."""

    def test_literal_frame(self):
        """The documented wire example parses."""
        frame = '{"meta":{"id":"x","name":"a.bin","size":10,"mimeType":"application/octet-stream"}}'
        meta = decode_meta(frame)

        assert meta.id == "x"
        assert meta.size == 10
        assert meta.mime_type == "application/octet-stream"

    def test_bytes_frame(self):
        """Metadata arriving as bytes is still recognized."""
        frame = b'{"meta":{"id":"x","name":"a","size":1,"mimeType":"text/plain"}}'
        assert decode_meta(frame).name == "a"

    @pytest.mark.parametrize("frame", [
        b"\x00\x01\x02binary",
        b"\xff\xfe{\"meta\":",
        b'{"meta":{"id":"x"',
        '{"other":{"id":"x","name":"a","size":1}}',
        '{"meta":{"id":"x","name":"a","size":-1}}',
        '{"meta":"nope"}',
        b"HEARTBEAT",
        b"",
    ])
    def test_not_metadata(self, frame):
        """Anything failing the prefix, UTF-8 or parse checks is a chunk."""
        assert decode_meta(frame) is None

    def test_chunk_that_looks_like_json(self):
        """File bytes that happen to be JSON without the prefix are chunks."""
        assert decode_meta(b'{"name": "meta"}') is None


class TestFrameBytes:
    """Tests for frame_bytes."""

    def test_text(self):
        assert frame_bytes("hé") == "hé".encode("utf-8")

    def test_bytes(self):
        assert frame_bytes(bytearray(b"abc")) == b"abc"
