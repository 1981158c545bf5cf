"""Tests for line transports and client configuration.

Tests:
- Line framing (LF/CRLF, blank lines, BOM, fragment at EOF)
- Transport state machine
- Write serialization under concurrent writers
- Stdio transport launch failures
- ClientConfig construction
"""

from __future__ import annotations

import asyncio
import json

import pytest

from diy_client.config import DEFAULT_SERVER_COMMAND, ClientConfig
from diy_client.protocol.errors import PeerDisconnected
from diy_client.sdk.correlator import Correlator
from diy_client.transport.base import TransportState
from diy_client.transport.memory import MemoryTransport
from diy_client.transport.stdio import StdioPeerTransport, create_stdio_transport


async def collect(transport: MemoryTransport) -> list[bytes]:
    return [line async for line in transport.read_lines()]


# =============================================================================
# Line Framing Tests
# =============================================================================


class TestReadLines:
    """Tests for LineTransport.read_lines."""

    @pytest.mark.asyncio
    async def test_lines_until_eof(self, transport: MemoryTransport) -> None:
        transport.feed('{"a": 1}')
        transport.feed('{"b": 2}')
        transport.feed_eof()

        assert await collect(transport) == [b'{"a": 1}', b'{"b": 2}']

    @pytest.mark.asyncio
    async def test_crlf_stripped(self, transport: MemoryTransport) -> None:
        transport.feed_raw(b'{"a": 1}\r\n')
        transport.feed_eof()

        assert await collect(transport) == [b'{"a": 1}']

    @pytest.mark.asyncio
    async def test_blank_lines_skipped(self, transport: MemoryTransport) -> None:
        transport.feed_raw(b"\n")
        transport.feed_raw(b"   \r\n")
        transport.feed("{}")
        transport.feed_eof()

        assert await collect(transport) == [b"{}"]

    @pytest.mark.asyncio
    async def test_bom_stripped(self, transport: MemoryTransport) -> None:
        transport.feed_raw(b'\xef\xbb\xbf{"a": 1}\n')
        transport.feed_eof()

        assert await collect(transport) == [b'{"a": 1}']

    @pytest.mark.asyncio
    async def test_fragment_at_eof_dropped(self, transport: MemoryTransport) -> None:
        """A line cut off by EOF ends the stream instead of being yielded."""
        transport.feed("{}")
        transport.feed_raw(b'{"jsonrpc": "2.0", "id"')

        assert await collect(transport) == [b"{}"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_passed_through(self, transport: MemoryTransport) -> None:
        """Bytes are not decoded here; the codec rejects invalid UTF-8."""
        transport.feed_raw(b'{"a": "\xff"}\n')
        transport.feed_eof()

        assert await collect(transport) == [b'{"a": "\xff"}']


# =============================================================================
# State Tests
# =============================================================================


class TestTransportState:
    """Tests for the open/close state machine."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, transport: MemoryTransport) -> None:
        assert transport.state == TransportState.DISCONNECTED

        await transport.open()
        assert transport.is_connected

        await transport.close()
        assert transport.state == TransportState.CLOSED

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, transport: MemoryTransport) -> None:
        await transport.open()
        await transport.close()
        await transport.close()

        assert transport.state == TransportState.CLOSED

    @pytest.mark.asyncio
    async def test_write_before_open(self, transport: MemoryTransport) -> None:
        with pytest.raises(PeerDisconnected):
            await transport.write(b"{}\n")

    @pytest.mark.asyncio
    async def test_write_after_close(self, transport: MemoryTransport) -> None:
        await transport.open()
        await transport.close()

        with pytest.raises(PeerDisconnected):
            await transport.write(b"{}\n")

    @pytest.mark.asyncio
    async def test_context_manager(self) -> None:
        async with MemoryTransport() as transport:
            assert transport.is_connected
        assert transport.state == TransportState.CLOSED

    @pytest.mark.asyncio
    async def test_canned_response(self, transport: MemoryTransport) -> None:
        transport.set_response("ping", {"pong": True})
        await transport.open()

        await transport.write(b'{"jsonrpc": "2.0", "id": 4, "method": "ping", "params": {}}\n')
        transport.feed_eof()

        lines = await collect(transport)
        assert lines == [b'{"jsonrpc":"2.0","id":4,"result":{"pong":true}}']


class ChunkedTransport(MemoryTransport):
    """Writes each message in small pieces, yielding to the loop between them."""

    def __init__(self) -> None:
        super().__init__()
        self.stream = bytearray()

    async def _do_write(self, data: bytes) -> None:
        for start in range(0, len(data), 7):
            self.stream.extend(data[start : start + 7])
            await asyncio.sleep(0)
        await super()._do_write(data)


class TestWriteSerialization:
    """Concurrent writers never interleave partial lines."""

    @pytest.mark.asyncio
    async def test_concurrent_call_and_notify(self) -> None:
        transport = ChunkedTransport()
        transport.set_response("work", {"done": True})
        correlator = Correlator(transport)
        await correlator.start()

        calls = [correlator.call("work", {"n": n, "pad": "x" * 40}) for n in range(5)]
        notes = [correlator.notify("notifications/progress", {"n": n}) for n in range(5)]
        results = await asyncio.gather(*calls, *notes)

        assert results[:5] == [{"done": True}] * 5
        lines = bytes(transport.stream).split(b"\n")
        assert lines[-1] == b""
        envelopes = [json.loads(line) for line in lines[:-1]]
        assert len(envelopes) == 10
        assert all(envelope["jsonrpc"] == "2.0" for envelope in envelopes)
        assert sorted(e["id"] for e in envelopes if "id" in e) == [0, 1, 2, 3, 4]
        await correlator.close()


# =============================================================================
# Stdio Transport Tests
# =============================================================================


class TestStdioTransport:
    """Tests for StdioPeerTransport that do not need a working peer."""

    @pytest.mark.asyncio
    async def test_missing_command(self, tmp_path) -> None:
        transport = create_stdio_transport([str(tmp_path / "no-such-peer")])

        with pytest.raises(PeerDisconnected):
            await transport.open()
        assert transport.state == TransportState.DISCONNECTED
        assert transport.pid is None

    def test_factory_defaults(self) -> None:
        transport = create_stdio_transport()

        assert isinstance(transport, StdioPeerTransport)
        assert transport.config.command == DEFAULT_SERVER_COMMAND.split()
        assert transport.returncode is None

    def test_factory_command(self) -> None:
        transport = create_stdio_transport(["python", "peer.py"], working_directory="/tmp")

        assert transport.config.command == ["python", "peer.py"]
        assert transport.config.working_directory == "/tmp"


# =============================================================================
# ClientConfig Tests
# =============================================================================


class TestClientConfig:
    """Tests for ClientConfig."""

    def test_defaults(self) -> None:
        config = ClientConfig()

        assert config.command == ["node", "../server/dist/index.js"]
        assert config.protocol_version == "2025-03-26"
        assert config.client_name == "diy-client"
        assert config.request_timeout is None

    def test_from_command_line(self) -> None:
        config = ClientConfig.from_command_line(
            "python 'my server.py' --flag", request_timeout=2.5
        )

        assert config.command == ["python", "my server.py", "--flag"]
        assert config.request_timeout == 2.5

    def test_empty_command(self) -> None:
        with pytest.raises(ValueError):
            ClientConfig.from_command_line("   ")
