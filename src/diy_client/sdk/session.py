"""Session negotiation.

Drives the fixed handshake over a Correlator:

    unstarted → initializing → initialized → notified_ready
              → discovering_tools → discovering_resources → ready

Any failure moves the session to ``aborted`` and it stays unusable.
Discovery is gated on the negotiated capabilities: asking a peer to list
tools it never advertised is a protocol error, not an empty result.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import ValidationError

from ..config import ClientConfig
from ..protocol.errors import (
    ClientError,
    MalformedMessage,
    PeerDisconnected,
    ProtocolViolation,
)
from ..protocol.types import (
    ClientInfo,
    InitializeResult,
    ListResourcesResult,
    ListToolsResult,
    Method,
    ResourceDescriptor,
    ServerCapabilities,
    ServerInfo,
    ToolDescriptor,
)
from ..transport.base import LineTransport
from .correlator import Correlator

logger = logging.getLogger(__name__)

# Opaque token attached to discovery calls
PROGRESS_TOKEN = 1


class SessionState(str, Enum):
    """Handshake state machine."""

    UNSTARTED = "unstarted"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    NOTIFIED_READY = "notified_ready"
    DISCOVERING_TOOLS = "discovering_tools"
    DISCOVERING_RESOURCES = "discovering_resources"
    READY = "ready"
    ABORTED = "aborted"


class Session:
    """One negotiated session with one peer.

    Owns the transport (through its Correlator), the capability set and
    the tool/resource catalogs. Capabilities and catalogs are read-only
    once the handshake completes.

    Usage:
        async with Session(transport, config) as session:
            print(session.server_info.name, [t.name for t in session.tools])
    """

    def __init__(self, transport: LineTransport, config: ClientConfig | None = None):
        self.config = config or ClientConfig()
        self.correlator = Correlator(transport, timeout=self.config.request_timeout)
        self.correlator.on_disconnect(self._on_disconnect)
        self._state = SessionState.UNSTARTED
        self._init_result: InitializeResult | None = None
        self._tools: tuple[ToolDescriptor, ...] = ()
        self._resources: tuple[ResourceDescriptor, ...] = ()

    @property
    def state(self) -> SessionState:
        """Current handshake state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == SessionState.READY and self.correlator.is_running

    @property
    def server_info(self) -> ServerInfo:
        return self._require_initialized().serverInfo

    @property
    def capabilities(self) -> ServerCapabilities:
        return self._require_initialized().capabilities

    @property
    def instructions(self) -> str | None:
        return self._require_initialized().instructions

    @property
    def protocol_version(self) -> str:
        return self._require_initialized().protocolVersion

    @property
    def tools(self) -> tuple[ToolDescriptor, ...]:
        return self._tools

    @property
    def resources(self) -> tuple[ResourceDescriptor, ...]:
        return self._resources

    def find_tool(self, name: str) -> ToolDescriptor | None:
        return next((tool for tool in self._tools if tool.name == name), None)

    def find_resource(self, uri: str) -> ResourceDescriptor | None:
        return next((res for res in self._resources if res.uri == uri), None)

    async def start(self) -> Session:
        """Run the handshake and discovery.

        Raises:
            MalformedMessage: If the initialize result lacks serverInfo/capabilities
            RemoteError: If the peer rejected a handshake request
            PeerDisconnected: If the peer went away mid-handshake
        """
        if self._state != SessionState.UNSTARTED:
            raise ProtocolViolation(f"Session already started (state={self._state.value})")

        try:
            await self.correlator.start()
            await self._initialize()

            self._transition(SessionState.NOTIFIED_READY)
            await self.correlator.notify(Method.INITIALIZED.value, {})

            if self.capabilities.supports("tools"):
                self._transition(SessionState.DISCOVERING_TOOLS)
                self._tools = tuple(await self._discover_tools())
            else:
                logger.debug("Peer did not advertise tools; skipping discovery")

            if self.capabilities.supports("resources"):
                self._transition(SessionState.DISCOVERING_RESOURCES)
                self._resources = tuple(await self._discover_resources())
            else:
                logger.debug("Peer did not advertise resources; skipping discovery")

        except BaseException as e:
            await self._abort(e)
            raise

        # Peer may have gone away right after the last discovery reply
        if self.correlator.disconnect_reason is not None:
            error = PeerDisconnected(str(self.correlator.disconnect_reason))
            await self._abort(error)
            raise error

        self._transition(SessionState.READY)
        logger.info(
            f"Connected to {self.server_info.name} v{self.server_info.version} "
            f"({len(self._tools)} tools, {len(self._resources)} resources)"
        )
        return self

    async def close(self) -> None:
        """End the session and release the peer."""
        if self._state != SessionState.ABORTED:
            self._transition(SessionState.ABORTED)
        await self.correlator.close()

    def require_capability(self, name: str) -> None:
        """Raise ProtocolViolation unless the peer advertised ``name``."""
        if not self.capabilities.supports(name):
            raise ProtocolViolation(f"Peer did not advertise the '{name}' capability")

    def require_ready(self) -> None:
        """Raise unless the session can accept invocations."""
        reason = self.correlator.disconnect_reason
        if self._state == SessionState.ABORTED or reason is not None:
            raise PeerDisconnected(str(reason) if reason else "Session aborted")
        if self._state != SessionState.READY:
            raise ProtocolViolation(f"Session not ready (state={self._state.value})")

    async def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """Issue a request on a ready session."""
        self.require_ready()
        return await self.correlator.call(method, params)

    # =========================================================================
    # Handshake steps
    # =========================================================================

    async def _initialize(self) -> None:
        self._transition(SessionState.INITIALIZING)
        client_info = ClientInfo(
            name=self.config.client_name,
            version=self.config.client_version,
        )
        result = await self.correlator.call(
            Method.INITIALIZE.value,
            {
                "protocolVersion": self.config.protocol_version,
                "capabilities": {},
                "clientInfo": client_info.model_dump(),
            },
        )

        if not isinstance(result, dict) or "serverInfo" not in result or "capabilities" not in result:
            raise MalformedMessage("initialize result must contain serverInfo and capabilities")
        try:
            self._init_result = InitializeResult.model_validate(result)
        except ValidationError as e:
            raise MalformedMessage(f"Invalid initialize result: {e}") from e

        if self._init_result.protocolVersion != self.config.protocol_version:
            logger.warning(
                f"Peer negotiated protocol {self._init_result.protocolVersion}, "
                f"requested {self.config.protocol_version}"
            )
        self._transition(SessionState.INITIALIZED)

    async def _discover_tools(self) -> list[ToolDescriptor]:
        self.require_capability("tools")
        tools: list[ToolDescriptor] = []
        cursor: str | None = None
        while True:
            result = await self.correlator.call(Method.TOOLS_LIST.value, self._list_params(cursor))
            page = self._validate(ListToolsResult, result, Method.TOOLS_LIST)
            tools.extend(page.tools)
            cursor = page.nextCursor
            if not cursor:
                return tools

    async def _discover_resources(self) -> list[ResourceDescriptor]:
        self.require_capability("resources")
        resources: list[ResourceDescriptor] = []
        cursor: str | None = None
        while True:
            result = await self.correlator.call(
                Method.RESOURCES_LIST.value, self._list_params(cursor)
            )
            page = self._validate(ListResourcesResult, result, Method.RESOURCES_LIST)
            resources.extend(page.resources)
            cursor = page.nextCursor
            if not cursor:
                return resources

    @staticmethod
    def _list_params(cursor: str | None) -> dict[str, Any]:
        params: dict[str, Any] = {"_meta": {"progressToken": PROGRESS_TOKEN}}
        if cursor:
            params["cursor"] = cursor
        return params

    @staticmethod
    def _validate(model: Any, result: Any, method: Method) -> Any:
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise MalformedMessage(f"Invalid {method.value} result: {e}") from e

    # =========================================================================
    # State helpers
    # =========================================================================

    def _transition(self, state: SessionState) -> None:
        logger.debug(f"Session {self._state.value} → {state.value}")
        self._state = state

    def _require_initialized(self) -> InitializeResult:
        if self._init_result is None:
            raise ProtocolViolation("Session has not completed initialize")
        return self._init_result

    def _on_disconnect(self, reason: PeerDisconnected) -> None:
        if self._state in (SessionState.UNSTARTED, SessionState.ABORTED):
            return
        logger.warning(f"Session lost in state {self._state.value}: {reason}")
        self._transition(SessionState.ABORTED)

    async def _abort(self, error: BaseException) -> None:
        if isinstance(error, ClientError):
            logger.error(f"Handshake failed in state {self._state.value}: {error}")
        if self._state != SessionState.ABORTED:
            self._transition(SessionState.ABORTED)
        await self.correlator.close()

    async def __aenter__(self) -> Session:
        return await self.start()

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
