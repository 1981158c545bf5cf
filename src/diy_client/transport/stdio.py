"""Stdio transport to a peer subprocess.

Launches the peer and communicates via newline-delimited JSON:
- Requests/notifications: JSON object + newline to the peer's stdin
- Replies: JSON object + newline from the peer's stdout
- Diagnostics: the peer's stderr is inherited, so it reaches the operator
  untouched and is never parsed as protocol data
"""

from __future__ import annotations

import asyncio
import logging
import os

from ..config import ClientConfig
from .base import LineTransport

logger = logging.getLogger(__name__)


class StdioPeerTransport(LineTransport):
    """Transport over a subprocess's stdin/stdout.

    Owns the peer process lifecycle: spawn on open, graceful shutdown on
    close. When the peer exits its stdout closes, so ``read_lines()``
    finishes after the last reply the peer flushed.
    """

    def __init__(self, config: ClientConfig | None = None):
        super().__init__()
        self.config = config or ClientConfig()
        self._process: asyncio.subprocess.Process | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process else None

    @property
    def returncode(self) -> int | None:
        """Exit status of the peer, None while it is running."""
        return self._process.returncode if self._process else None

    async def _do_open(self) -> None:
        """Launch subprocess and wire its pipes."""
        cmd = self.config.command

        # Build environment
        env = None
        if self.config.env:
            env = {**os.environ, **self.config.env}

        self._process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=None,
            cwd=self.config.working_directory,
            env=env,
            limit=self.config.read_limit,
        )

        logger.info(f"Launched peer: {' '.join(cmd)} (pid={self._process.pid})")

    async def _do_close(self) -> None:
        """Close stdin, then terminate the peer if it does not exit."""
        if not self._process:
            return

        process = self._process
        if process.stdin and not process.stdin.is_closing():
            process.stdin.close()

        if process.returncode is None:
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.shutdown_timeout)
            except TimeoutError:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self.config.shutdown_timeout)
                except TimeoutError:
                    process.kill()
                    await process.wait()

        logger.info(f"Peer exited (pid={process.pid}, returncode={process.returncode})")

    async def _do_write(self, data: bytes) -> None:
        """Write one encoded message to the peer's stdin."""
        if not self._process or not self._process.stdin:
            raise ConnectionResetError("Process not running")

        self._process.stdin.write(data)
        await self._process.stdin.drain()

    async def _readline(self) -> bytes:
        """Read one line from the peer's stdout."""
        if not self._process or not self._process.stdout:
            return b""

        while True:
            try:
                line = await self._process.stdout.readline()
            except ValueError as e:
                # Line exceeded read_limit; asyncio has already discarded it
                logger.warning(f"Dropping oversized line from peer: {e}")
                continue

            if not line and self._process.returncode is not None:
                logger.info(f"Peer stdout closed (returncode={self._process.returncode})")
            return line


def create_stdio_transport(
    command: list[str] | None = None,
    working_directory: str | None = None,
    env: dict[str, str] | None = None,
) -> StdioPeerTransport:
    """Create a stdio transport for a peer subprocess.

    Args:
        command: Peer command (default: ClientConfig's default command)
        working_directory: CWD for subprocess
        env: Additional environment variables

    Returns:
        StdioPeerTransport configured for subprocess communication
    """
    config = ClientConfig(working_directory=working_directory, env=env)
    if command:
        config.command = command
    return StdioPeerTransport(config)
