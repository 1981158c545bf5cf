"""In-memory transport for testing and embedding.

Stands in for a peer process: records every message the client writes,
lets the caller feed inbound lines, and can answer requests by method with
canned results or errors.

Usage:
    transport = MemoryTransport()
    transport.set_response("initialize", {
        "protocolVersion": "2025-03-26",
        "capabilities": {"tools": {}},
        "serverInfo": {"name": "mock", "version": "1.0"},
    })

    client = await create_memory_client(transport)

    assert transport.sent_methods[0] == "initialize"
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from ..protocol.codec import encode_response
from ..protocol.types import JsonRpcError
from .base import LineTransport

Responder = Callable[[dict[str, Any]], Any]


class MemoryTransport(LineTransport):
    """Transport with no I/O - everything is in-memory."""

    def __init__(self) -> None:
        super().__init__()
        self._inbound: asyncio.Queue[bytes] = asyncio.Queue()
        self._written: list[bytes] = []
        self._responses: dict[str, Responder | Any] = {}
        self._errors: dict[str, JsonRpcError] = {}

    @property
    def written(self) -> list[dict[str, Any]]:
        """Decoded messages written by the client, in order."""
        return [json.loads(data) for data in self._written]

    @property
    def sent_methods(self) -> list[str]:
        return [message["method"] for message in self.written if "method" in message]

    def requests(self, method: str | None = None) -> list[dict[str, Any]]:
        """Written messages that carry an id, optionally filtered by method."""
        return [
            message
            for message in self.written
            if "id" in message and (method is None or message.get("method") == method)
        ]

    def set_response(self, method: str, result: Responder | Any) -> None:
        """Answer every request for ``method`` with ``result``.

        ``result`` may be a callable taking the request params.
        """
        self._errors.pop(method, None)
        self._responses[method] = result

    def set_error(self, method: str, code: int, message: str, data: Any | None = None) -> None:
        """Answer every request for ``method`` with an error object."""
        self._responses.pop(method, None)
        self._errors[method] = JsonRpcError(code=code, message=message, data=data)

    def feed(self, message: dict[str, Any] | str | bytes) -> None:
        """Queue one inbound message as if the peer had written it."""
        if isinstance(message, dict):
            message = json.dumps(message)
        if isinstance(message, str):
            message = message.encode("utf-8")
        if not message.endswith(b"\n"):
            message += b"\n"
        self._inbound.put_nowait(message)

    def feed_raw(self, data: bytes) -> None:
        """Queue bytes exactly as given, without adding a newline."""
        self._inbound.put_nowait(data)

    def feed_eof(self) -> None:
        """Signal that the peer closed its output stream."""
        self._inbound.put_nowait(b"")

    async def _do_open(self) -> None:
        """No-op for memory."""
        pass

    async def _do_close(self) -> None:
        self.feed_eof()

    async def _do_write(self, data: bytes) -> None:
        """Record message and queue a canned reply when one is set."""
        self._written.append(data)

        message = json.loads(data)
        method = message.get("method")
        if "id" not in message or method is None:
            return

        if method in self._errors:
            self.feed_raw(encode_response(message["id"], error=self._errors[method]))
        elif method in self._responses:
            result = self._responses[method]
            if callable(result):
                result = result(message.get("params") or {})
            self.feed_raw(encode_response(message["id"], result=result))

    async def _readline(self) -> bytes:
        return await self._inbound.get()
