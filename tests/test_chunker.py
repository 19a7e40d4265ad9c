"""
Tests for chunking and reassembly.

These tests cover:
- percent_of
- OutgoingFile.read_chunks sizing
- ReceiveCursor class
"""

import pytest

from peerportal.transfer.chunker import CHUNK_SIZE, ReceiveCursor, percent_of
from peerportal.transfer.models import FileMeta, OutgoingFile


class TestPercentOf:
    """Tests for progress arithmetic."""

    @pytest.mark.parametrize("done,total,expected", [
        (0, 100, 0),
        (1, 3, 33),
        (2, 3, 66),
        (16384, 40000, 40),
        (40000, 40000, 100),
        (50, 10, 100),
        (0, 0, 100),
    ])
    def test_floor_and_cap(self, done, total, expected):
        """Progress is floored and capped at 100."""
        assert percent_of(done, total) == expected


class TestReadChunks:
    """Tests for splitting outgoing files into chunks."""

    def test_default_chunk_size(self):
        """Chunks are 16 KiB."""
        assert CHUNK_SIZE == 16384

    def test_chunk_sizes(self):
        """A 40000-byte file splits into 16384, 16384, 7232."""
        chunks = list(OutgoingFile.from_bytes("a.bin", bytes(40000)).read_chunks(CHUNK_SIZE))
        assert [len(c) for c in chunks] == [16384, 16384, 7232]

    def test_chunk_sizes_from_disk(self, tmp_path):
        """Files on disk split the same way as in-memory content."""
        source = tmp_path / "big.bin"
        source.write_bytes(bytes(40000))
        chunks = list(OutgoingFile.from_path(source).read_chunks(CHUNK_SIZE))
        assert [len(c) for c in chunks] == [16384, 16384, 7232]

    def test_chunk_preserves_order(self):
        """Concatenated chunks equal the input."""
        data = bytes(range(256)) * 100
        chunks = list(OutgoingFile.from_bytes("a.bin", data).read_chunks(1000))
        assert b"".join(chunks) == data

    def test_exact_multiple(self):
        """No empty trailing chunk."""
        assert len(list(OutgoingFile.from_bytes("a.bin", bytes(30)).read_chunks(10))) == 3

    def test_empty(self):
        """Empty input yields no chunks."""
        assert list(OutgoingFile.from_bytes("a.bin", b"").read_chunks(CHUNK_SIZE)) == []


class TestReceiveCursor:
    """Tests for ReceiveCursor class."""

    def make_cursor(self, size: int) -> ReceiveCursor:
        return ReceiveCursor(meta=FileMeta(id="x", name="a.bin", size=size))

    def test_accumulates(self):
        """Chunks accumulate in arrival order."""
        cursor = self.make_cursor(10)
        assert cursor.add_chunk(b"abcd") == 40
        assert not cursor.is_complete
        assert cursor.add_chunk(b"efghij") == 100
        assert cursor.is_complete
        assert cursor.assemble() == b"abcdefghij"
        assert cursor.received == 10

    def test_empty_file_complete(self):
        """A zero-byte transfer is complete immediately."""
        cursor = self.make_cursor(0)
        assert cursor.is_complete
        assert cursor.progress == 100
        assert cursor.assemble() == b""
