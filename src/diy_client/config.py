"""Client configuration.

Everything is held in memory for one run; nothing is read from files or
persisted. The CLI maps its options onto a ClientConfig.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field

from .protocol.types import PROTOCOL_VERSION

DEFAULT_SERVER_COMMAND = "node ../server/dist/index.js"


@dataclass
class ClientConfig:
    """Configuration for one client session."""

    # Peer process
    command: list[str] = field(default_factory=lambda: shlex.split(DEFAULT_SERVER_COMMAND))
    working_directory: str | None = None
    env: dict[str, str] | None = None

    # Handshake
    protocol_version: str = PROTOCOL_VERSION
    client_name: str = "diy-client"
    client_version: str = "0.1.0"

    # Per-call deadline in seconds; None waits indefinitely
    request_timeout: float | None = None

    # Grace period for the peer to exit after stdin closes
    shutdown_timeout: float = 5.0

    # Max bytes in one inbound line (asyncio's default is 64 KiB)
    read_limit: int = 16 * 1024 * 1024

    @classmethod
    def from_command_line(cls, command: str, **kwargs: object) -> ClientConfig:
        """Build a config from a shell-style peer command string."""
        argv = shlex.split(command)
        if not argv:
            raise ValueError("Peer command must not be empty")
        return cls(command=argv, **kwargs)  # type: ignore[arg-type]
