"""diy-client SDK - protocol engine and invocation façade.

Layers, leaves first:
- Correlator: ids, pending requests, reply dispatch
- Session: handshake, capabilities, tool/resource catalogs
- PeerClient: call_tool / read_resource for the Operator UI
"""

from .client import (
    PeerClient,
    create_client,
    create_memory_client,
    create_subprocess_client,
    display_value,
    render_content,
)
from .correlator import Correlator, PendingRequest
from .session import Session, SessionState

__all__ = [
    # Façade
    "PeerClient",
    "create_client",
    "create_subprocess_client",
    "create_memory_client",
    "display_value",
    "render_content",
    # Engine
    "Correlator",
    "PendingRequest",
    "Session",
    "SessionState",
]
