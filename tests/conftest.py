"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import shlex
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import pytest

from diy_client.transport.memory import MemoryTransport

FAKE_PEER = Path(__file__).parent / "fixtures" / "fake_peer.py"

INITIALIZE_RESULT: dict[str, Any] = {
    "protocolVersion": "2025-03-26",
    "capabilities": {"tools": {}, "resources": {}},
    "serverInfo": {"name": "mock-peer", "version": "1.2.3"},
}

TOOLS: list[dict[str, Any]] = [
    {
        "name": "echo",
        "description": "Echo the text back",
        "inputSchema": {
            "type": "object",
            "properties": {"text": {"type": "string"}, "times": {"type": "number"}},
            "required": ["text"],
        },
    },
    {"name": "status", "description": "Report status", "inputSchema": {"properties": {}}},
]

RESOURCES: list[dict[str, Any]] = [{"uri": "mem://greeting", "name": "Greeting"}]


@pytest.fixture
def transport() -> MemoryTransport:
    """Bare in-memory transport with no canned responses."""
    return MemoryTransport()


@pytest.fixture
def peer() -> MemoryTransport:
    """In-memory peer that completes the handshake with tools and resources."""
    transport = MemoryTransport()
    transport.set_response("initialize", INITIALIZE_RESULT)
    transport.set_response("tools/list", {"tools": TOOLS})
    transport.set_response("resources/list", {"resources": RESOURCES})
    return transport


@pytest.fixture
def fake_peer_command() -> list[str]:
    """Command that launches the stdio fake peer."""
    return [sys.executable, str(FAKE_PEER)]


@pytest.fixture
def fake_peer_shell() -> str:
    """Fake peer command as a single shell-style string (for --server)."""
    return shlex.join([sys.executable, str(FAKE_PEER)])


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate on the event loop until it holds."""

    async def _wait(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("Condition not met before timeout")
            await asyncio.sleep(0.001)

    return _wait
