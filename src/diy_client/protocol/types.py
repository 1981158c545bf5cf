"""Protocol type definitions.

JSON-RPC 2.0 envelopes plus the MCP result shapes the client consumes
during the handshake, discovery and invocation.

Note: Field names use camelCase to match the wire protocol.
This is required for protocol compatibility - do not change to snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

JSONRPC_VERSION = "2.0"

# Protocol version requested during initialize
PROTOCOL_VERSION = "2025-03-26"


class McpModel(BaseModel):
    """Base model for MCP payloads; unknown keys are kept, not dropped."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


# =============================================================================
# JSON-RPC 2.0 Base Types
# =============================================================================


class JsonRpcRequest(BaseModel):
    """JSON-RPC 2.0 request."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcNotification(BaseModel):
    """JSON-RPC 2.0 notification (no response expected)."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcError(BaseModel):
    """JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """JSON-RPC 2.0 response.

    Exactly one of ``result``/``error`` is present on the wire. A
    ``"result": null`` counts as present, so presence is read from
    ``model_fields_set`` rather than from the value.
    """

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: int | str | None
    result: Any | None = None
    error: JsonRpcError | None = None

    @property
    def is_error(self) -> bool:
        return "error" in self.model_fields_set


class JsonRpcErrorCode:
    """Standard JSON-RPC 2.0 error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class Method(str, Enum):
    """Methods this client sends or answers."""

    INITIALIZE = "initialize"
    INITIALIZED = "notifications/initialized"
    PING = "ping"
    TOOLS_LIST = "tools/list"
    TOOLS_CALL = "tools/call"
    RESOURCES_LIST = "resources/list"
    RESOURCES_READ = "resources/read"


# =============================================================================
# Handshake Types
# =============================================================================


class ClientInfo(BaseModel):
    """Information about the client."""

    name: str
    version: str


class ServerInfo(McpModel):
    """Information about the peer."""

    name: str
    version: str = ""


class ServerCapabilities(McpModel):
    """Capability set advertised by the peer.

    Immutable once negotiation completes. A capability is advertised when
    its key is present and not null or false.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    tools: dict[str, Any] | bool | None = None
    resources: dict[str, Any] | bool | None = None
    prompts: dict[str, Any] | bool | None = None
    logging: dict[str, Any] | bool | None = None
    experimental: dict[str, Any] | None = None

    def supports(self, name: str) -> bool:
        """Check whether the peer advertised ``name``.

        An empty object (``"tools": {}``) counts as advertised.
        """
        value = getattr(self, name, None)
        return value is not None and value is not False


class InitializeResult(McpModel):
    """Result of the initialize request."""

    protocolVersion: str = PROTOCOL_VERSION
    capabilities: ServerCapabilities
    serverInfo: ServerInfo
    instructions: str | None = None


# =============================================================================
# Discovery Types
# =============================================================================


class ToolDescriptor(McpModel):
    """A callable tool exposed by the peer."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    name: str
    description: str = ""
    inputSchema: dict[str, Any] = Field(default_factory=dict)

    @property
    def properties(self) -> dict[str, Any]:
        return self.inputSchema.get("properties") or {}

    def string_parameters(self) -> list[str]:
        """Names of the parameters whose primitive kind is ``string``."""
        return [
            key
            for key, schema in self.properties.items()
            if isinstance(schema, dict) and schema.get("type") == "string"
        ]

    def required_parameters(self) -> list[str]:
        return list(self.inputSchema.get("required") or [])


class ResourceDescriptor(McpModel):
    """A readable resource exposed by the peer."""

    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    uri: str
    name: str
    description: str | None = None
    mimeType: str | None = None


class ListToolsResult(McpModel):
    tools: list[ToolDescriptor] = Field(default_factory=list)
    nextCursor: str | None = None


class ListResourcesResult(McpModel):
    resources: list[ResourceDescriptor] = Field(default_factory=list)
    nextCursor: str | None = None


# =============================================================================
# Invocation Types
# =============================================================================


class ContentBlock(McpModel):
    """One block of tool output or resource contents.

    Tool results carry ``type`` + ``text``; resource contents carry ``uri``
    plus either ``text`` or a base64 ``blob``.
    """

    type: str | None = None
    text: str | None = None
    uri: str | None = None
    mimeType: str | None = None
    blob: str | None = None


class CallToolResult(McpModel):
    content: list[ContentBlock] = Field(default_factory=list)
    isError: bool = False


class ReadResourceResult(McpModel):
    contents: list[ContentBlock] = Field(default_factory=list)
