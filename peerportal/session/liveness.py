"""
Heartbeat and silence detection for connected peer sessions.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

# Sent as a text frame; binary frames are always file chunks
HEARTBEAT_TOKEN = "HEARTBEAT"


def is_heartbeat(data: bytes | str) -> bool:
    """Check if a frame is the heartbeat token."""
    return isinstance(data, str) and data == HEARTBEAT_TOKEN


class LivenessMonitor:
    """
    Sends heartbeats on a fixed interval and watches for silence.

    Any inbound frame counts as a sign of life (`touch`), so the timeout
    fires only when nothing at all has been heard for `timeout` seconds.
    """

    def __init__(
        self,
        send_heartbeat: Callable[[], None],
        on_timeout: Callable[[float], None],
        heartbeat_interval: float = 3.0,
        watchdog_interval: float = 1.0,
        timeout: float = 10.0,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        """
        Initialize liveness monitor.

        Args:
            send_heartbeat: Emits one heartbeat frame
            on_timeout: Called once with the observed silence in seconds
            heartbeat_interval: Seconds between heartbeats
            watchdog_interval: Seconds between silence checks
            timeout: Silence that counts as a dead connection
            clock: Monotonic time source
        """
        self.send_heartbeat = send_heartbeat
        self.on_timeout = on_timeout
        self.heartbeat_interval = heartbeat_interval
        self.watchdog_interval = watchdog_interval
        self.timeout = timeout
        self.clock = clock

        self.last_seen: float = clock()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._heartbeat_task is not None or self._watchdog_task is not None

    @property
    def silence(self) -> float:
        """Seconds since anything was last heard."""
        return self.clock() - self.last_seen

    def start(self) -> None:
        """Start heartbeats and the watchdog. Restarts if already running."""
        self.stop()
        self.touch()
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        self._watchdog_task = asyncio.create_task(self._watchdog_loop())

    def stop(self) -> None:
        """Cancel both timers."""
        for task in (self._heartbeat_task, self._watchdog_task):
            if task is not None:
                task.cancel()
        self._heartbeat_task = None
        self._watchdog_task = None

    def touch(self) -> None:
        """Record a sign of life."""
        self.last_seen = self.clock()

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.send_heartbeat()
            except Exception as e:
                logger.debug(f"Heartbeat not sent: {e}")

    async def _watchdog_loop(self) -> None:
        while True:
            await asyncio.sleep(self.watchdog_interval)
            silence = self.silence
            if silence > self.timeout:
                logger.warning(f"No data from peer for {silence:.1f}s")
                self.stop()
                self.on_timeout(silence)
                return
