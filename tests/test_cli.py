import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from peerportal.cli import KEY_ALPHABET, cli, generate_room_key
from peerportal.coordinator import PortalStatus
from peerportal.transfer.models import Blob, TransferDirection, TransferItem


class FakeEngine:
    def __init__(self, incoming=()):
        self.incoming = list(incoming)

    def on_update(self, handler):
        loop = asyncio.get_running_loop()
        for item in self.incoming:
            loop.call_soon(handler, item)


class FakePortal:
    """Coordinator stand-in that is already connected."""

    def __init__(self, room_key="K7Q2XD", incoming=(), fail_sends=False):
        self.status = PortalStatus.CONNECTED
        self.room_key = room_key
        self.engine = FakeEngine(incoming)
        self.fail_sends = fail_sends
        self.sent = []
        self.torn_down = False

    def on_status(self, handler):
        pass

    async def send_file(self, file):
        if self.fail_sends:
            return None
        item = TransferItem(name=file.name, size=file.size, direction=TransferDirection.OUTGOING)
        item.start()
        item.complete()
        self.sent.append(file.name)
        return item

    def teardown(self):
        self.torn_down = True


@pytest.fixture
def runner():
    return CliRunner()


def patch_portal(portal):
    relay_client = MagicMock()
    relay_client.close = AsyncMock()
    return patch("peerportal.cli.open_portal", AsyncMock(return_value=(relay_client, portal)))


class TestCLI:
    def test_cli_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "direct two-party file transfer" in result.output
        for command in ("relay", "new-key", "send", "receive"):
            assert command in result.output

    def test_new_key(self, runner):
        result = runner.invoke(cli, ["new-key"])
        assert result.exit_code == 0
        key = result.output.strip()
        assert len(key) == 6
        assert all(c in KEY_ALPHABET for c in key)

    def test_generate_room_key_length(self):
        assert len(generate_room_key(10)) == 10

    @patch("peerportal.cli.RelayServer")
    def test_relay_command(self, MockServer, runner):
        server = MockServer.return_value
        server.host = "127.0.0.1"
        server.port = 4000
        server.run_forever = AsyncMock()

        result = runner.invoke(cli, ["relay", "--host", "127.0.0.1", "-p", "4000"])

        assert result.exit_code == 0
        assert "Relay listening on 127.0.0.1:4000" in result.output
        server.run_forever.assert_awaited_once()
        _, kwargs = MockServer.call_args
        assert kwargs["host"] == "127.0.0.1"
        assert kwargs["port"] == 4000

    def test_config_file(self, runner, tmp_path):
        """Relay defaults come from --config."""
        config_path = tmp_path / "portal.json"
        config_path.write_text('{"relay_host": "0.0.0.0", "relay_port": 4555}')

        with patch("peerportal.cli.RelayServer") as MockServer:
            MockServer.return_value.run_forever = AsyncMock()
            result = runner.invoke(cli, ["--config", str(config_path), "relay"])

        assert result.exit_code == 0
        _, kwargs = MockServer.call_args
        assert kwargs["host"] == "0.0.0.0"
        assert kwargs["port"] == 4555


class TestSendCommand:
    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["send", "K7Q2XD", str(tmp_path / "missing.bin")])
        assert result.exit_code != 0

    def test_send_files(self, runner, tmp_path):
        first = tmp_path / "a.txt"
        second = tmp_path / "b.txt"
        first.write_text("first")
        second.write_text("second")
        portal = FakePortal()

        with patch_portal(portal):
            result = runner.invoke(cli, ["send", "K7Q2XD", str(first), str(second), "--linger", "0.01"])

        assert result.exit_code == 0
        assert "Peer connected" in result.output
        assert "Sent 2 file(s)" in result.output
        assert portal.sent == ["a.txt", "b.txt"]
        assert portal.torn_down

    def test_partial_send(self, runner, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("data")
        portal = FakePortal(fail_sends=True)

        with patch_portal(portal):
            result = runner.invoke(cli, ["send", "K7Q2XD", str(source), "--linger", "0.01"])

        assert result.exit_code == 1
        assert "Sent 0 of 1 file(s)" in result.output

    def test_relay_unreachable(self, runner, tmp_path):
        source = tmp_path / "a.txt"
        source.write_text("data")

        with patch("peerportal.cli.open_portal", AsyncMock(side_effect=OSError("connection refused"))):
            result = runner.invoke(cli, ["send", "K7Q2XD", str(source)])

        assert result.exit_code == 1
        assert "connection refused" in result.output


class TestReceiveCommand:
    def test_receive_saves_files(self, runner, tmp_path):
        item = TransferItem(name="photo.jpg", size=5, direction=TransferDirection.INCOMING)
        item.start()
        item.complete(Blob(data=b"hello", mime_type="image/jpeg"))
        portal = FakePortal(incoming=[item])
        out_dir = tmp_path / "downloads"

        with patch_portal(portal):
            result = runner.invoke(cli, ["receive", "K7Q2XD", "--out", str(out_dir), "--count", "1"])

        assert result.exit_code == 0
        assert "Received 1 file(s)" in result.output
        assert (out_dir / "photo.jpg").read_bytes() == b"hello"
        assert portal.torn_down

    def test_receive_ignores_outgoing(self, runner, tmp_path):
        outgoing = TransferItem(name="mine.txt", size=1, direction=TransferDirection.OUTGOING)
        outgoing.complete()
        incoming = TransferItem(name="theirs.txt", size=1, direction=TransferDirection.INCOMING)
        incoming.complete(Blob(data=b"x"))
        portal = FakePortal(incoming=[outgoing, incoming])

        with patch_portal(portal):
            result = runner.invoke(cli, ["receive", "K7Q2XD", "-o", str(tmp_path), "-n", "1"])

        assert result.exit_code == 0
        assert (tmp_path / "theirs.txt").exists()
        assert not (tmp_path / "mine.txt").exists()
