"""Request/response correlation over a line transport.

Every request gets the next integer id and a pending future keyed by that
id. One background task reads lines from the transport, decodes them and
resolves the matching future, so replies may arrive in any order.
Notifications bypass all of this: no id, no pending entry, no wait.

Anomalies on a single line (malformed JSON, unknown ids, duplicate replies)
are logged and recorded in ``anomalies``; they never stop the dispatch loop.
Only the end of the stream is fatal: every pending call then fails with
PeerDisconnected and no further calls are accepted.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from ..protocol.codec import decode_message, encode_notification, encode_request, encode_response
from ..protocol.errors import (
    ClientError,
    PeerDisconnected,
    ProtocolViolation,
    RemoteError,
    RequestTimeout,
    UnsolicitedReply,
)
from ..protocol.types import (
    JsonRpcError,
    JsonRpcErrorCode,
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    Method,
)
from ..transport.base import LineTransport

logger = logging.getLogger(__name__)

# Type aliases
NotificationHandler = Callable[[str, dict[str, Any]], Awaitable[None] | None]
DisconnectHandler = Callable[[PeerDisconnected], None]

# Sentinel: use the correlator's default timeout
DEFAULT_TIMEOUT: Any = object()


@dataclass
class PendingRequest:
    """In-flight correlation record, owned by the Correlator.

    Resolved or rejected exactly once; later attempts are no-ops.
    """

    id: int
    method: str
    future: asyncio.Future[Any]
    issued_at: float = field(default_factory=time.monotonic)

    @property
    def done(self) -> bool:
        return self.future.done()

    def resolve(self, result: Any) -> bool:
        if self.future.done():
            return False
        self.future.set_result(result)
        return True

    def reject(self, error: BaseException) -> bool:
        if self.future.done():
            return False
        self.future.set_exception(error)
        return True


class Correlator:
    """Matches inbound replies to outbound requests by id."""

    def __init__(
        self,
        transport: LineTransport,
        *,
        timeout: float | None = None,
        max_anomalies: int = 100,
    ) -> None:
        self._transport = transport
        self.timeout = timeout
        self._next_id = 0
        self._pending: dict[int, PendingRequest] = {}
        # Ids whose caller gave up (timeout or cancellation)
        self._abandoned: set[int] = set()
        self._reader_task: asyncio.Task[None] | None = None
        self._disconnected: PeerDisconnected | None = None
        self._notification_handlers: dict[str, list[NotificationHandler]] = {}
        self._disconnect_handlers: list[DisconnectHandler] = []
        self.anomalies: deque[ClientError] = deque(maxlen=max_anomalies)

    @property
    def transport(self) -> LineTransport:
        return self._transport

    @property
    def next_id(self) -> int:
        """Id the next request will receive."""
        return self._next_id

    @property
    def pending(self) -> Mapping[int, PendingRequest]:
        """Read-only view of in-flight requests."""
        return MappingProxyType(self._pending)

    @property
    def is_running(self) -> bool:
        return self._reader_task is not None and self._disconnected is None

    @property
    def disconnect_reason(self) -> PeerDisconnected | None:
        return self._disconnected

    async def start(self) -> None:
        """Open the transport and start the dispatch loop."""
        if self._reader_task is not None:
            return
        if self._disconnected is not None:
            raise PeerDisconnected(str(self._disconnected))

        await self._transport.open()
        self._reader_task = asyncio.create_task(self._read_loop())

    async def close(self) -> None:
        """Stop dispatching, fail pending calls and close the transport."""
        if self._reader_task:
            self._reader_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reader_task

        self.abort(PeerDisconnected("Session closed"))
        await self._transport.close()

    # =========================================================================
    # Outbound
    # =========================================================================

    async def call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        timeout: float | None = DEFAULT_TIMEOUT,
    ) -> Any:
        """Send a request and wait for its reply.

        Args:
            method: JSON-RPC method name
            params: Request params (default: empty object)
            timeout: Seconds to wait; None waits forever. Defaults to
                the correlator's timeout.

        Returns:
            The reply's ``result`` value

        Raises:
            RemoteError: If the peer replied with an error object
            PeerDisconnected: If the session ended before the reply
            RequestTimeout: If the deadline expired
        """
        self._ensure_running()
        if timeout is DEFAULT_TIMEOUT:
            timeout = self.timeout

        # No await between reading and bumping the counter; an unencodable
        # request consumes no id and leaves no pending entry
        request_id = self._next_id
        data = encode_request(method, params, request_id)
        self._next_id += 1

        pending = PendingRequest(
            id=request_id,
            method=method,
            future=asyncio.get_running_loop().create_future(),
        )
        self._pending[request_id] = pending
        logger.debug(f"→ {method} (id={request_id})")

        try:
            await self._transport.write(data)
        except PeerDisconnected as e:
            self._pending.pop(request_id, None)
            self.abort(e)
            raise
        except BaseException:
            # Cancelled mid-write: the line may still reach the peer
            self._abandon(request_id)
            raise

        try:
            if timeout is None:
                return await pending.future
            return await asyncio.wait_for(pending.future, timeout)
        except TimeoutError:
            self._abandon(request_id)
            logger.warning(f"{method} (id={request_id}) timed out after {timeout}s")
            raise RequestTimeout(method, request_id, timeout) from None
        except asyncio.CancelledError:
            self._abandon(request_id)
            raise

    async def notify(self, method: str, params: dict[str, Any] | None = None) -> None:
        """Send a notification. Allocates no id and expects no reply."""
        self._ensure_running()
        logger.debug(f"→ {method} (notification)")

        try:
            await self._transport.write(encode_notification(method, params))
        except PeerDisconnected as e:
            self.abort(e)
            raise

    def on_notification(self, method: str, handler: NotificationHandler) -> None:
        """Register a handler for peer notifications (``"*"`` matches all)."""
        self._notification_handlers.setdefault(method, []).append(handler)

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        """Register a callback run once, when the session first aborts."""
        self._disconnect_handlers.append(handler)

    def abort(self, reason: PeerDisconnected) -> None:
        """Fail every pending request and refuse further calls."""
        if self._disconnected is None:
            self._disconnected = reason
            logger.info(f"Session aborted: {reason}")
            for handler in self._disconnect_handlers:
                try:
                    handler(reason)
                except Exception as e:
                    logger.exception(f"Error in disconnect handler: {e}")

        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            request.reject(PeerDisconnected(str(reason)))

        if pending:
            logger.warning(f"Failed {len(pending)} pending request(s): {reason}")

    def _ensure_running(self) -> None:
        if self._disconnected is not None:
            raise PeerDisconnected(str(self._disconnected))
        if self._reader_task is None:
            raise ProtocolViolation("Correlator not started")

    def _abandon(self, request_id: int) -> None:
        if self._pending.pop(request_id, None) is not None:
            self._abandoned.add(request_id)

    # =========================================================================
    # Inbound
    # =========================================================================

    async def _read_loop(self) -> None:
        """Background task reading lines and routing them."""
        reason = "Peer closed its output stream"
        try:
            async for line in self._transport.read_lines():
                try:
                    await self._handle_line(line)
                except ClientError as e:
                    self._record_anomaly(e)
        except asyncio.CancelledError:
            reason = "Session closed"
        except Exception as e:
            logger.error(f"Read loop error: {e}")
            reason = f"Transport error: {e}"
        finally:
            self.abort(PeerDisconnected(reason))

    async def _handle_line(self, line: bytes) -> None:
        message = decode_message(line)

        if isinstance(message, JsonRpcResponse):
            self._dispatch_reply(message)
        elif isinstance(message, JsonRpcRequest):
            await self._answer_peer_request(message)
        else:
            await self._dispatch_notification(message)

    def _dispatch_reply(self, reply: JsonRpcResponse) -> None:
        request_id = reply.id
        pending = self._pending.pop(request_id, None) if type(request_id) is int else None

        if pending is None:
            if request_id in self._abandoned:
                self._abandoned.discard(request_id)
                logger.debug(f"Discarding late reply for abandoned request id={request_id}")
                return
            if type(request_id) is int and 0 <= request_id < self._next_id:
                raise ProtocolViolation(f"Duplicate reply for resolved request id={request_id}")
            if reply.error is not None:
                logger.warning(f"Peer error without matching request: {reply.error.message}")
            raise UnsolicitedReply(request_id)

        elapsed = time.monotonic() - pending.issued_at
        logger.debug(f"← {pending.method} (id={request_id}) in {elapsed:.3f}s")

        if reply.is_error and reply.error is not None:
            error = reply.error
            pending.reject(RemoteError(error.code, error.message, error.data))
        else:
            pending.resolve(reply.result)

    async def _answer_peer_request(self, request: JsonRpcRequest) -> None:
        """Reply to a request the peer sent us."""
        if request.method == Method.PING.value:
            response = encode_response(request.id, result={})
        else:
            logger.warning(f"Peer sent unsupported request: {request.method}")
            response = encode_response(
                request.id,
                error=JsonRpcError(
                    code=JsonRpcErrorCode.METHOD_NOT_FOUND,
                    message=f"Method not found: {request.method}",
                ),
            )

        try:
            await self._transport.write(response)
        except PeerDisconnected as e:
            logger.warning(f"Could not answer peer request {request.method}: {e}")

    async def _dispatch_notification(self, notification: JsonRpcNotification) -> None:
        handlers = [
            *self._notification_handlers.get(notification.method, []),
            *self._notification_handlers.get("*", []),
        ]
        if not handlers:
            logger.debug(f"Unhandled notification: {notification.method}")
            return

        for handler in handlers:
            try:
                result = handler(notification.method, notification.params)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.exception(f"Error handling notification {notification.method}: {e}")

    def _record_anomaly(self, error: ClientError) -> None:
        logger.warning(f"{type(error).__name__}: {error}")
        self.anomalies.append(error)
