"""Transport layer.

Byte-stream transports to a single peer:
- stdio - the peer runs as a subprocess (the normal mode)
- memory - an in-process stand-in for tests and embedding

Transports frame lines but never parse protocol data.
"""

from .base import LineTransport, TransportState
from .memory import MemoryTransport
from .stdio import StdioPeerTransport, create_stdio_transport

__all__ = [
    "LineTransport",
    "TransportState",
    "MemoryTransport",
    "StdioPeerTransport",
    "create_stdio_transport",
]
