"""diy-client - a minimal MCP client over stdio.

Launches a peer process, negotiates capabilities with it, discovers its
tools and resources, and invokes them.

Usage:
    from diy_client import ClientConfig, create_subprocess_client

    config = ClientConfig.from_command_line("python my_server.py")
    async with create_subprocess_client(config) as client:
        blocks = await client.call_tool("echo", {"text": "hi"})
"""

from .config import ClientConfig
from .protocol import (
    ClientError,
    ContentBlock,
    MalformedMessage,
    PeerDisconnected,
    ProtocolViolation,
    RemoteError,
    RequestTimeout,
    ResourceDescriptor,
    ServerCapabilities,
    ServerInfo,
    ToolDescriptor,
    UnsolicitedReply,
)
from .sdk import (
    Correlator,
    PeerClient,
    Session,
    SessionState,
    create_client,
    create_memory_client,
    create_subprocess_client,
    display_value,
    render_content,
)
from .transport import LineTransport, MemoryTransport, StdioPeerTransport

__version__ = "0.1.0"

__all__ = [
    "ClientConfig",
    # Client
    "PeerClient",
    "Session",
    "SessionState",
    "Correlator",
    "create_client",
    "create_subprocess_client",
    "create_memory_client",
    "display_value",
    "render_content",
    # Transports
    "LineTransport",
    "StdioPeerTransport",
    "MemoryTransport",
    # Types
    "ServerInfo",
    "ServerCapabilities",
    "ToolDescriptor",
    "ResourceDescriptor",
    "ContentBlock",
    # Errors
    "ClientError",
    "MalformedMessage",
    "UnsolicitedReply",
    "ProtocolViolation",
    "RemoteError",
    "PeerDisconnected",
    "RequestTimeout",
]
