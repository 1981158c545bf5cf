"""Error kinds raised by the protocol engine.

Parse-level and correlation-level anomalies (MalformedMessage,
UnsolicitedReply, ProtocolViolation) are contained by the dispatch loop and
only logged. RemoteError reaches the one caller whose request failed.
PeerDisconnected is fatal to the whole session.
"""

from __future__ import annotations

from typing import Any


class ClientError(Exception):
    """Base class for all client protocol errors."""


class MalformedMessage(ClientError):
    """A line could not be parsed or violates the envelope shape."""

    def __init__(self, message: str, line: str | None = None) -> None:
        super().__init__(message)
        self.line = line


class UnsolicitedReply(ClientError):
    """A reply arrived for an id that was never issued."""

    def __init__(self, request_id: Any) -> None:
        super().__init__(f"Reply for unknown request id: {request_id!r}")
        self.request_id = request_id


class ProtocolViolation(ClientError):
    """The peer (or a caller) broke a protocol precondition."""


class RemoteError(ClientError):
    """The peer answered a request with an error object."""

    def __init__(
        self,
        code: int,
        message: str,
        data: Any | None = None,
    ) -> None:
        super().__init__(f"[{code}] {message}")
        self.code = code
        self.message = message
        self.data = data


class PeerDisconnected(ClientError, ConnectionError):
    """The peer's stream ended or the peer process exited."""


class RequestTimeout(ClientError, TimeoutError):
    """A request's deadline expired before its reply arrived."""

    def __init__(self, method: str, request_id: int, timeout: float) -> None:
        super().__init__(f"{method} (id={request_id}) timed out after {timeout}s")
        self.method = method
        self.request_id = request_id
        self.timeout = timeout
