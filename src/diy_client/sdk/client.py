"""Invocation façade.

A thin typed surface over a ready Session: call a tool, read a resource.
Failures propagate unchanged (RemoteError, PeerDisconnected,
RequestTimeout); nothing here adds a new failure kind.

Rendering helpers live here rather than in the codec: reading a text block
as JSON is a display nicety, and the wire codec stays strict.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from typing import Any

from pydantic import ValidationError

from ..config import ClientConfig
from ..protocol.errors import MalformedMessage
from ..protocol.types import (
    CallToolResult,
    ContentBlock,
    Method,
    ReadResourceResult,
    ResourceDescriptor,
    ServerCapabilities,
    ServerInfo,
    ToolDescriptor,
)
from ..transport.base import LineTransport
from ..transport.memory import MemoryTransport
from ..transport.stdio import StdioPeerTransport
from .session import Session

logger = logging.getLogger(__name__)


class PeerClient:
    """Client for one peer.

    Usage:
        async with create_subprocess_client(config) as client:
            for tool in client.tools:
                print(tool.name)
            blocks = await client.call_tool("echo", {"text": "hi"})
            for line in render_content(blocks):
                print(line)
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    @property
    def server_info(self) -> ServerInfo:
        return self._session.server_info

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._session.capabilities

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        return self._session.tools

    @property
    def resources(self) -> tuple[ResourceDescriptor, ...]:
        return self._session.resources

    async def start(self) -> PeerClient:
        await self._session.start()
        return self

    async def close(self) -> None:
        await self._session.close()

    async def call_tool(
        self,
        tool: ToolDescriptor | str,
        arguments: dict[str, Any] | None = None,
    ) -> list[ContentBlock]:
        """Invoke a tool and return its content blocks.

        Args:
            tool: Descriptor from the catalog, or a tool name
            arguments: Named arguments (string-valued when collected interactively)
        """
        name = tool.name if isinstance(tool, ToolDescriptor) else tool
        result = await self._session.call(
            Method.TOOLS_CALL.value,
            {"name": name, "arguments": arguments or {}},
        )
        parsed = _parse(CallToolResult, result, Method.TOOLS_CALL)
        if parsed.isError:
            logger.warning(f"Tool {name} reported an error result")
        return parsed.content

    async def read_resource(self, resource: ResourceDescriptor | str) -> list[ContentBlock]:
        """Read a resource and return its content blocks.

        Args:
            resource: Descriptor from the catalog, or a resource URI
        """
        uri = resource.uri if isinstance(resource, ResourceDescriptor) else resource
        result = await self._session.call(Method.RESOURCES_READ.value, {"uri": uri})
        return _parse(ReadResourceResult, result, Method.RESOURCES_READ).contents

    async def ping(self) -> None:
        """Check the peer is still responsive."""
        await self._session.call(Method.PING.value)

    async def __aenter__(self) -> PeerClient:
        return await self.start()

    async def __aexit__(self, *args: Any) -> None:
        await self.close()


def _parse(model: Any, result: Any, method: Method) -> Any:
    try:
        return model.model_validate(result)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid {method.value} result: {e}") from e


# =============================================================================
# Rendering
# =============================================================================


def display_value(block: ContentBlock) -> Any:
    """Value to show for one block.

    Text that parses as JSON is returned as the parsed structure, otherwise
    the raw text. Binary blobs render as a short placeholder.
    """
    if block.text is not None:
        try:
            return json.loads(block.text)
        except ValueError:
            return block.text

    if block.blob is not None:
        return f"<{block.mimeType or 'binary'} blob, {len(block.blob)} base64 chars>"

    return block.model_dump(exclude_none=True)


def render_content(blocks: Iterable[ContentBlock]) -> Iterator[str]:
    """Printable strings for a sequence of content blocks."""
    for block in blocks:
        value = display_value(block)
        if isinstance(value, str):
            yield value
        else:
            yield json.dumps(value, indent=2, ensure_ascii=False)


# Factory functions


def create_client(transport: LineTransport, config: ClientConfig | None = None) -> PeerClient:
    """Create an unstarted client over any transport."""
    return PeerClient(Session(transport, config))


def create_subprocess_client(config: ClientConfig | None = None) -> PeerClient:
    """Create a client that launches the peer as a subprocess.

    The handshake runs on ``start()`` or when entering ``async with``.
    """
    config = config or ClientConfig()
    return create_client(StdioPeerTransport(config), config)


async def create_memory_client(
    transport: MemoryTransport,
    config: ClientConfig | None = None,
) -> PeerClient:
    """Create and start a client over an in-memory transport.

    The transport must already have canned responses for the handshake.
    """
    return await create_client(transport, config).start()
