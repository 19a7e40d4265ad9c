"""
Peerportal Configuration.

Provides sensible defaults with override capability.
"""

from pydantic import BaseModel, Field, ConfigDict
from pathlib import Path
from typing import Any, Optional
import json
import os


DEFAULT_ICE_SERVERS = [
    "stun:stun.l.google.com:19302",
    "stun:global.stun.twilio.com:3478",
]


class PortalConfig(BaseModel):
    """
    Configuration for the relay, peer sessions and transfers.

    Timing defaults match the wire protocol constants; tests shrink them.
    Environment variables override defaults (PORTAL_* prefix).
    """

    # Relay
    relay_host: str = "0.0.0.0"
    relay_port: int = 3001
    relay_url: str = "ws://localhost:3001"
    max_room_size: Optional[int] = None  # None = no cap

    # Transfer
    chunk_size: int = 16 * 1024
    download_dir: Path = Field(default_factory=lambda: Path.cwd() / "downloads")

    # Peer session
    heartbeat_interval: float = 3.0
    watchdog_interval: float = 1.0
    liveness_timeout: float = 10.0
    reconnect_delay: float = 2.0
    max_reconnect_attempts: int = 5

    # Transport
    buffer_high_water_mark: int = 1024 * 1024
    buffer_low_water_mark: int = 256 * 1024
    ice_servers: list[str] = Field(default_factory=lambda: list(DEFAULT_ICE_SERVERS))

    # Logging
    log_level: str = "INFO"

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def model_post_init(self, __context):
        """Apply environment variable overrides."""
        self._apply_env_overrides()

    def _apply_env_overrides(self):
        """Override config from environment variables."""
        env_map = {
            "PORTAL_RELAY_HOST": ("relay_host", str),
            "PORTAL_RELAY_PORT": ("relay_port", int),
            "PORTAL_RELAY_URL": ("relay_url", str),
            "PORTAL_MAX_ROOM_SIZE": ("max_room_size", int),
            "PORTAL_DOWNLOAD_DIR": ("download_dir", Path),
            "PORTAL_LOG_LEVEL": ("log_level", str),
        }

        for env_var, (attr, type_fn) in env_map.items():
            value = os.environ.get(env_var)
            if value is not None:
                setattr(self, attr, type_fn(value))

    def to_dict(self) -> dict[str, Any]:
        """Export config to dictionary."""
        return {
            "relay_host": self.relay_host,
            "relay_port": self.relay_port,
            "relay_url": self.relay_url,
            "max_room_size": self.max_room_size,
            "chunk_size": self.chunk_size,
            "download_dir": str(self.download_dir),
            "heartbeat_interval": self.heartbeat_interval,
            "watchdog_interval": self.watchdog_interval,
            "liveness_timeout": self.liveness_timeout,
            "reconnect_delay": self.reconnect_delay,
            "max_reconnect_attempts": self.max_reconnect_attempts,
            "buffer_high_water_mark": self.buffer_high_water_mark,
            "buffer_low_water_mark": self.buffer_low_water_mark,
            "ice_servers": list(self.ice_servers),
            "log_level": self.log_level,
        }

    def save(self, path: Path):
        """Save config to file."""
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: Path) -> "PortalConfig":
        """Load config from file."""
        with open(path) as f:
            data = json.load(f)

        if "download_dir" in data:
            data["download_dir"] = Path(data["download_dir"])
        return cls(**data)

    @classmethod
    def development(cls) -> "PortalConfig":
        """Create development config with verbose logging and a local relay."""
        return cls(
            relay_host="127.0.0.1",
            log_level="DEBUG",
        )

    @classmethod
    def production(cls) -> "PortalConfig":
        """Create production config with strict settings."""
        return cls(
            max_room_size=2,
            log_level="WARNING",
        )
