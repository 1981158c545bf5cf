"""Line transport abstraction.

A transport is a bidirectional byte stream to exactly one peer:
- write side: raw bytes, already framed by the codec
- read side: complete newline-delimited lines, one message per line

Transports know nothing about the protocol. End of stream is reported by
the line iterator finishing normally, never as a parse failure.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from enum import Enum
from typing import Any

from ..protocol.errors import PeerDisconnected

logger = logging.getLogger(__name__)


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"


class LineTransport(ABC):
    """Base class for line transports.

    Provides:
    - State management
    - Serialized writes (one encoded message is one atomic write)
    - Line framing on the read side
    """

    def __init__(self) -> None:
        self._state = TransportState.DISCONNECTED
        self._lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if transport is connected."""
        return self._state == TransportState.CONNECTED

    async def open(self) -> None:
        """Establish the byte stream to the peer.

        Raises:
            PeerDisconnected: If the peer cannot be reached
        """
        async with self._lock:
            if self._state == TransportState.CONNECTED:
                return

            self._state = TransportState.CONNECTING
            try:
                await self._do_open()
                self._state = TransportState.CONNECTED
                logger.info(f"{self.__class__.__name__} connected")
            except Exception as e:
                self._state = TransportState.DISCONNECTED
                raise PeerDisconnected(f"Failed to open transport: {e}") from e

    async def close(self) -> None:
        """Close the stream. Safe to call more than once."""
        async with self._lock:
            if self._state in (TransportState.DISCONNECTED, TransportState.CLOSED):
                return

            self._state = TransportState.CLOSED
            await self._do_close()
            logger.info(f"{self.__class__.__name__} closed")

    async def write(self, data: bytes) -> None:
        """Send raw bytes to the peer.

        Raises:
            PeerDisconnected: If the transport is not connected or the pipe broke
        """
        if not self.is_connected:
            raise PeerDisconnected("Transport not connected")

        async with self._write_lock:
            try:
                await self._do_write(data)
            except (BrokenPipeError, ConnectionResetError) as e:
                raise PeerDisconnected(f"Write to peer failed: {e}") from e

    async def read_lines(self) -> AsyncIterator[bytes]:
        """Yield complete lines until the stream ends.

        Lines are raw bytes; text decoding belongs to the codec so that
        invalid UTF-8 fails one line instead of the stream. Trailing LF/CRLF
        and surrounding whitespace are stripped, blank lines are skipped. A
        fragment left without a newline at EOF means the stream closed
        mid-message; it is dropped and the iteration ends.
        """
        while True:
            raw = await self._readline()
            if not raw:
                return

            if not raw.endswith(b"\n"):
                logger.warning(f"Stream closed before line completed, dropping {len(raw)} bytes")
                return

            line = raw.strip()

            # Skip UTF-8 BOM if present at start
            if line.startswith(codecs.BOM_UTF8):
                line = line[len(codecs.BOM_UTF8) :]

            if not line:
                continue
            yield line

    # Abstract methods for subclasses
    @abstractmethod
    async def _do_open(self) -> None:
        """Implementation-specific connection logic."""
        ...

    @abstractmethod
    async def _do_close(self) -> None:
        """Implementation-specific disconnection logic."""
        ...

    @abstractmethod
    async def _do_write(self, data: bytes) -> None:
        """Implementation-specific write logic."""
        ...

    @abstractmethod
    async def _readline(self) -> bytes:
        """Read up to and including the next newline; b"" at EOF."""
        ...

    async def __aenter__(self) -> LineTransport:
        await self.open()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
