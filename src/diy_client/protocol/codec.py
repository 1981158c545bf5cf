"""Wire codec for newline-delimited JSON-RPC.

Turns outgoing calls into single encoded lines and a single inbound line
into a typed envelope. The codec knows nothing about transports or
correlation and never allocates ids.

Wire format (UTF-8, one JSON object per line, LF terminated):
    → {"jsonrpc":"2.0","id":0,"method":"initialize","params":{...}}
    → {"jsonrpc":"2.0","method":"notifications/initialized","params":{}}
    ← {"jsonrpc":"2.0","id":0,"result":{...}}
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from .errors import MalformedMessage
from .types import (
    JSONRPC_VERSION,
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
)

ENCODING = "utf-8"
NEWLINE = "\n"

InboundMessage = JsonRpcResponse | JsonRpcRequest | JsonRpcNotification


def _line(payload: str) -> bytes:
    return (payload + NEWLINE).encode(ENCODING)


def encode_request(method: str, params: dict[str, Any] | None, request_id: int) -> bytes:
    """Encode a request that expects a reply."""
    if isinstance(request_id, bool) or not isinstance(request_id, int) or request_id < 0:
        raise ValueError(f"Request id must be a non-negative integer, got {request_id!r}")
    request = JsonRpcRequest(id=request_id, method=method, params=params or {})
    return _line(request.model_dump_json())


def encode_notification(method: str, params: dict[str, Any] | None = None) -> bytes:
    """Encode a notification. The ``id`` key is absent, not null."""
    notification = JsonRpcNotification(method=method, params=params or {})
    return _line(notification.model_dump_json())


def encode_response(
    request_id: int | str,
    result: Any | None = None,
    error: JsonRpcError | None = None,
) -> bytes:
    """Encode a reply to a request the peer sent us."""
    payload: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id}
    if error is not None:
        payload["error"] = error.model_dump(exclude_none=True)
    else:
        payload["result"] = result if result is not None else {}
    return _line(json.dumps(payload, separators=(",", ":"), ensure_ascii=False))


def decode_text(raw: str | bytes) -> str:
    """Decode one inbound line as strict UTF-8.

    Raises:
        MalformedMessage: If the bytes are not valid UTF-8
    """
    if isinstance(raw, str):
        return raw
    try:
        return raw.decode(ENCODING)
    except UnicodeDecodeError as e:
        line = raw.decode(ENCODING, errors="replace")
        raise MalformedMessage(f"Invalid UTF-8: {e}", line) from e


def _load_object(line: str) -> dict[str, Any]:
    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise MalformedMessage(f"Invalid JSON: {e}", line) from e

    if not isinstance(data, dict):
        raise MalformedMessage("Top-level JSON-RPC payload must be an object", line)
    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedMessage(f"Unsupported jsonrpc version: {data.get('jsonrpc')!r}", line)
    return data


def _to_response(data: dict[str, Any], line: str) -> JsonRpcResponse:
    if "id" not in data:
        raise MalformedMessage("Reply is missing 'id'", line)

    has_result = "result" in data
    has_error = "error" in data
    if has_result == has_error:
        raise MalformedMessage("Reply must carry exactly one of 'result' or 'error'", line)
    if has_error and not isinstance(data["error"], dict):
        raise MalformedMessage("Reply 'error' must be an object", line)
    if data["id"] is None and not has_error:
        raise MalformedMessage("Only error replies may carry a null 'id'", line)

    try:
        return JsonRpcResponse.model_validate(data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid reply envelope: {e}", line) from e


def decode_reply(raw: str | bytes) -> JsonRpcResponse:
    """Parse one line into a reply envelope.

    Raises:
        MalformedMessage: If the line is not a well-formed reply
    """
    line = decode_text(raw)
    return _to_response(_load_object(line), line)


def decode_message(raw: str | bytes) -> InboundMessage:
    """Classify and parse any inbound line.

    Returns a response, a peer-initiated request (``method`` + ``id``) or a
    peer notification (``method`` without ``id``).

    Raises:
        MalformedMessage: If the line matches none of those shapes
    """
    line = decode_text(raw)
    data = _load_object(line)

    if "method" not in data:
        return _to_response(data, line)

    try:
        if "id" in data:
            return JsonRpcRequest.model_validate(data)
        return JsonRpcNotification.model_validate(data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid message envelope: {e}", line) from e
