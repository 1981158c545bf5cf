"""Protocol layer: JSON-RPC envelopes, codec and error kinds.

Key concepts:
- Requests: carry an integer id and await exactly one reply
- Notifications: carry no id and never produce a reply
- Replies: carry the id of the request they answer and one of result/error
"""

from .codec import (
    decode_message,
    decode_reply,
    decode_text,
    encode_notification,
    encode_request,
    encode_response,
)
from .errors import (
    ClientError,
    MalformedMessage,
    PeerDisconnected,
    ProtocolViolation,
    RemoteError,
    RequestTimeout,
    UnsolicitedReply,
)
from .types import (
    PROTOCOL_VERSION,
    CallToolResult,
    ClientInfo,
    ContentBlock,
    InitializeResult,
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Method,
    ReadResourceResult,
    ResourceDescriptor,
    ServerCapabilities,
    ServerInfo,
    ToolDescriptor,
)

__all__ = [
    # Codec
    "encode_request",
    "encode_notification",
    "encode_response",
    "decode_reply",
    "decode_message",
    "decode_text",
    # Errors
    "ClientError",
    "MalformedMessage",
    "UnsolicitedReply",
    "ProtocolViolation",
    "RemoteError",
    "PeerDisconnected",
    "RequestTimeout",
    # Types
    "PROTOCOL_VERSION",
    "Method",
    "JsonRpcRequest",
    "JsonRpcNotification",
    "JsonRpcResponse",
    "JsonRpcError",
    "JsonRpcErrorCode",
    "ClientInfo",
    "ServerInfo",
    "ServerCapabilities",
    "InitializeResult",
    "ToolDescriptor",
    "ResourceDescriptor",
    "ContentBlock",
    "CallToolResult",
    "ReadResourceResult",
]
