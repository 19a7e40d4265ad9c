"""
Command-line interface for peerportal.

Usage:
    peerportal relay --port 3001
    peerportal new-key
    peerportal send K7Q2XD report.pdf photo.jpg --relay ws://relay.example:3001
    peerportal receive K7Q2XD --out ./downloads --count 2
"""

import asyncio
import logging
import secrets
import string
import sys
from pathlib import Path
from typing import Optional

import click

from .config import PortalConfig
from .coordinator import Coordinator, PortalStatus
from .relay.client import RelayClient
from .relay.server import RelayServer
from .transfer.models import (
    OutgoingFile,
    TransferDirection,
    TransferItem,
    TransferStatus,
    format_file_size,
)

logger = logging.getLogger(__name__)

KEY_ALPHABET = string.ascii_uppercase + string.digits
KEY_LENGTH = 6


def generate_room_key(length: int = KEY_LENGTH) -> str:
    """Generate a random upper-case portal key."""
    return "".join(secrets.choice(KEY_ALPHABET) for _ in range(length))


def wait_for_status(coordinator: Coordinator, *statuses: PortalStatus) -> asyncio.Event:
    """Get an event that is set once the coordinator reaches one of `statuses`."""
    reached = asyncio.Event()
    if coordinator.status in statuses:
        reached.set()

    def handler(status: PortalStatus) -> None:
        if status in statuses:
            reached.set()

    coordinator.on_status(handler)
    return reached


async def open_portal(config: PortalConfig, room_key: str) -> tuple[RelayClient, Coordinator]:
    """Connect to the relay and join a room over the WebRTC transport."""
    from .session.rtc import rtc_transport_factory

    relay = RelayClient(config=config)
    await relay.connect()

    portal = Coordinator(relay, rtc_transport_factory(config), config)
    portal.initialize(room_key)
    return relay, portal


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON config file")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, config_path: Optional[str], debug: bool):
    """Peerportal - direct two-party file transfer"""
    ctx.ensure_object(dict)

    config = PortalConfig.load(Path(config_path)) if config_path else PortalConfig()

    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )

    ctx.obj["config"] = config


@cli.command()
@click.option("--host", default=None, help="Host address to bind")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on")
@click.pass_context
def relay(ctx, host: Optional[str], port: Optional[int]):
    """Run the signaling relay."""
    config = ctx.obj["config"]
    server = RelayServer(
        host=host or config.relay_host,
        port=port if port is not None else config.relay_port,
        config=config
    )

    click.echo(click.style(f"Relay listening on {server.host}:{server.port}", fg="cyan", bold=True))
    click.echo(click.style("Press Ctrl+C to stop", fg="bright_black"))

    try:
        asyncio.run(server.run_forever())
    except KeyboardInterrupt:
        pass
    click.echo("Stopped.")


@cli.command("new-key")
def new_key():
    """Print a fresh portal key."""
    click.echo(generate_room_key())


@cli.command()
@click.argument("key")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--relay", "-r", "relay_url", default=None, help="Relay websocket URL")
@click.option("--linger", type=float, default=30.0, help="Seconds to wait for the peer to leave after sending")
@click.pass_context
def send(ctx, key: str, files: tuple[str, ...], relay_url: Optional[str], linger: float):
    """Send files to the peer in room KEY."""
    config = ctx.obj["config"]
    if relay_url:
        config.relay_url = relay_url

    outgoing = [OutgoingFile.from_path(f) for f in files]

    async def do_send() -> list[TransferItem]:
        relay_client, portal = await open_portal(config, key)
        connected = wait_for_status(portal, PortalStatus.CONNECTED)

        click.echo(f"Portal key: {click.style(portal.room_key, fg='yellow', bold=True)}")
        click.echo("Waiting for peer...")
        await connected.wait()
        click.echo(click.style("✓ Peer connected", fg="green"))

        results = []
        for file in outgoing:
            click.echo(f"Sending {file.name} ({format_file_size(file.size)})...")
            item = await portal.send_file(file)
            if item is None or item.status != TransferStatus.COMPLETED:
                break
            results.append(item)

        # Keep the channel open until the receiver has everything and leaves
        left = wait_for_status(portal, PortalStatus.WAITING_FOR_PEER, PortalStatus.ERROR)
        try:
            await asyncio.wait_for(left.wait(), timeout=linger)
        except asyncio.TimeoutError:
            logger.debug("Peer still connected, closing anyway")

        portal.teardown()
        await relay_client.close()
        return results

    try:
        sent = asyncio.run(do_send())
    except KeyboardInterrupt:
        click.echo()
        click.echo("Stopped.")
        return
    except Exception as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"))
        sys.exit(1)

    if len(sent) == len(outgoing):
        click.echo(click.style(f"✓ Sent {len(sent)} file(s)", fg="green", bold=True))
    else:
        click.echo(click.style(f"✗ Sent {len(sent)} of {len(outgoing)} file(s)", fg="red"))
        sys.exit(1)


@cli.command()
@click.argument("key")
@click.option("--relay", "-r", "relay_url", default=None, help="Relay websocket URL")
@click.option("--out", "-o", "out_dir", type=click.Path(file_okay=False), default=None, help="Download directory")
@click.option("--count", "-n", type=int, default=None, help="Exit after this many files")
@click.pass_context
def receive(ctx, key: str, relay_url: Optional[str], out_dir: Optional[str], count: Optional[int]):
    """Receive files from the peer in room KEY."""
    config = ctx.obj["config"]
    if relay_url:
        config.relay_url = relay_url
    download_dir = Path(out_dir) if out_dir else config.download_dir

    async def do_receive() -> int:
        relay_client, portal = await open_portal(config, key)
        done = asyncio.Event()
        received = 0

        def on_update(item: TransferItem) -> None:
            nonlocal received
            if item.direction != TransferDirection.INCOMING or item.status != TransferStatus.COMPLETED:
                return
            path = item.payload.save(download_dir, item.name)
            received += 1
            click.echo(click.style(f"✓ {item.name} ({format_file_size(item.size)}) -> {path}", fg="green"))
            if count is not None and received >= count:
                done.set()

        portal.engine.on_update(on_update)

        click.echo(f"Portal key: {click.style(portal.room_key, fg='yellow', bold=True)}")
        click.echo(click.style("Waiting for files... Press Ctrl+C to stop", fg="bright_black"))

        try:
            await done.wait()
        finally:
            portal.teardown()
            await relay_client.close()
        return received

    try:
        total = asyncio.run(do_receive())
        click.echo(click.style(f"✓ Received {total} file(s)", fg="green", bold=True))
    except KeyboardInterrupt:
        click.echo()
        click.echo("Stopped.")
    except Exception as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"))
        sys.exit(1)


def main():
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
