"""Unit tests for the wire codec.

Tests encoding of requests/notifications/responses and strict decoding of
inbound lines into typed envelopes.
"""

from __future__ import annotations

import json

import pytest

from diy_client.protocol.codec import (
    decode_message,
    decode_reply,
    decode_text,
    encode_notification,
    encode_request,
    encode_response,
)
from diy_client.protocol.errors import MalformedMessage
from diy_client.protocol.types import (
    JsonRpcError,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
)

# =============================================================================
# Encoding
# =============================================================================


class TestEncodeRequest:
    """Tests for encode_request."""

    def test_single_newline_terminated_line(self) -> None:
        """Request is one LF-terminated line."""
        data = encode_request("tools/list", {}, 0)

        assert data.endswith(b"\n")
        assert data.count(b"\n") == 1

    def test_fields(self) -> None:
        """Request carries jsonrpc, method, params and id."""
        data = json.loads(encode_request("initialize", {"a": 1}, 7))

        assert data == {"jsonrpc": "2.0", "method": "initialize", "params": {"a": 1}, "id": 7}

    def test_none_params_become_empty_object(self) -> None:
        """Missing params are sent as an empty object."""
        data = json.loads(encode_request("ping", None, 1))
        assert data["params"] == {}

    def test_negative_id_rejected(self) -> None:
        """Ids must be non-negative integers."""
        with pytest.raises(ValueError):
            encode_request("ping", {}, -1)

    def test_non_int_id_rejected(self) -> None:
        """String and bool ids are never produced by this client."""
        with pytest.raises(ValueError):
            encode_request("ping", {}, "1")  # type: ignore[arg-type]
        with pytest.raises(ValueError):
            encode_request("ping", {}, True)

    def test_unicode_survives(self) -> None:
        """Non-ASCII text round-trips through UTF-8."""
        data = json.loads(encode_request("tools/call", {"text": "héllo ✓"}, 2).decode("utf-8"))
        assert data["params"]["text"] == "héllo ✓"


class TestEncodeNotification:
    """Tests for encode_notification."""

    def test_id_key_absent(self) -> None:
        """A notification has no id key at all (not id: null)."""
        data = json.loads(encode_notification("notifications/initialized", {}))

        assert "id" not in data
        assert data["method"] == "notifications/initialized"
        assert data["jsonrpc"] == "2.0"

    def test_default_params(self) -> None:
        data = json.loads(encode_notification("notifications/initialized"))
        assert data["params"] == {}


class TestEncodeResponse:
    """Tests for encode_response (answers to peer requests)."""

    def test_result_response(self) -> None:
        data = json.loads(encode_response("srv-1", result={}))
        assert data == {"jsonrpc": "2.0", "id": "srv-1", "result": {}}

    def test_error_response(self) -> None:
        """Error responses omit result and drop empty data."""
        error = JsonRpcError(code=-32601, message="Method not found")
        data = json.loads(encode_response(3, error=error))

        assert data == {"jsonrpc": "2.0", "id": 3, "error": {"code": -32601, "message": "Method not found"}}


# =============================================================================
# Decoding
# =============================================================================


class TestDecodeReply:
    """Tests for decode_reply."""

    def test_result_reply(self) -> None:
        reply = decode_reply('{"jsonrpc": "2.0", "id": 0, "result": {"ok": true}}')

        assert isinstance(reply, JsonRpcResponse)
        assert reply.id == 0
        assert reply.result == {"ok": True}
        assert not reply.is_error

    def test_error_reply(self) -> None:
        reply = decode_reply(
            '{"jsonrpc": "2.0", "id": 4, "error": {"code": -32602, "message": "bad", "data": [1]}}'
        )

        assert reply.is_error
        assert reply.error is not None
        assert reply.error.code == -32602
        assert reply.error.message == "bad"
        assert reply.error.data == [1]

    def test_null_result_counts_as_present(self) -> None:
        """A result of null is still a result."""
        reply = decode_reply('{"jsonrpc": "2.0", "id": 1, "result": null}')

        assert reply.result is None
        assert not reply.is_error

    def test_null_id_error_allowed(self) -> None:
        """Parse-error replies may carry a null id."""
        reply = decode_reply(
            '{"jsonrpc": "2.0", "id": null, "error": {"code": -32700, "message": "Parse error"}}'
        )
        assert reply.id is None
        assert reply.is_error

    @pytest.mark.parametrize(
        "line",
        [
            "not json",
            "[1, 2, 3]",
            '"just a string"',
            '{"id": 0, "result": {}}',
            '{"jsonrpc": "1.0", "id": 0, "result": {}}',
            '{"jsonrpc": "2.0", "result": {}}',
            '{"jsonrpc": "2.0", "id": 0}',
            '{"jsonrpc": "2.0", "id": 0, "result": {}, "error": {"code": 1, "message": "x"}}',
            '{"jsonrpc": "2.0", "id": null, "result": {}}',
            '{"jsonrpc": "2.0", "id": 0, "error": null}',
            '{"jsonrpc": "2.0", "id": 0, "error": {"message": "no code"}}',
        ],
    )
    def test_malformed(self, line: str) -> None:
        """Anything that is not a well-formed reply raises MalformedMessage."""
        with pytest.raises(MalformedMessage) as exc_info:
            decode_reply(line)
        assert exc_info.value.line == line

    def test_request_is_not_a_reply(self) -> None:
        """An encoded request never decodes as a reply."""
        line = encode_request("tools/list", {}, 3).decode("utf-8")
        with pytest.raises(MalformedMessage):
            decode_reply(line)

    def test_synthesized_reply_matches_request(self) -> None:
        """A reply built for a prior request's id yields the supplied result."""
        request = json.loads(encode_request("tools/call", {"name": "echo"}, 5))
        supplied = {"content": [{"type": "text", "text": "hi"}], "nested": {"n": [1, 2]}}

        line = encode_response(request["id"], result=supplied).decode("utf-8")
        reply = decode_reply(line)

        assert reply.id == request["id"]
        assert reply.result == supplied

    def test_bytes_line(self) -> None:
        reply = decode_reply('{"jsonrpc": "2.0", "id": 1, "result": "héllo"}'.encode())
        assert reply.result == "héllo"

    def test_invalid_utf8_rejected(self) -> None:
        """Undecodable bytes fail the line instead of being silently replaced."""
        with pytest.raises(MalformedMessage) as exc_info:
            decode_reply(b'{"jsonrpc": "2.0", "id": 1, "result": "\xff"}')

        assert "UTF-8" in str(exc_info.value)
        assert exc_info.value.line is not None


class TestDecodeText:
    """Tests for decode_text."""

    def test_str_unchanged(self) -> None:
        assert decode_text("{}") == "{}"

    def test_truncated_multibyte(self) -> None:
        with pytest.raises(MalformedMessage):
            decode_text("é".encode()[:1])


class TestDecodeMessage:
    """Tests for decode_message classification."""

    def test_reply(self) -> None:
        message = decode_message('{"jsonrpc": "2.0", "id": 2, "result": {}}')
        assert isinstance(message, JsonRpcResponse)

    def test_peer_request(self) -> None:
        message = decode_message('{"jsonrpc": "2.0", "id": "s1", "method": "ping"}')

        assert isinstance(message, JsonRpcRequest)
        assert message.id == "s1"
        assert message.params == {}

    def test_peer_notification(self) -> None:
        message = decode_message(
            '{"jsonrpc": "2.0", "method": "notifications/progress", "params": {"progress": 1}}'
        )

        assert isinstance(message, JsonRpcNotification)
        assert message.params == {"progress": 1}

    def test_invalid_method_type(self) -> None:
        with pytest.raises(MalformedMessage):
            decode_message('{"jsonrpc": "2.0", "method": 42}')

    def test_not_json(self) -> None:
        with pytest.raises(MalformedMessage):
            decode_message("{oops")
