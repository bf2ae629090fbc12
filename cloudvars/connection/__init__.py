"""Transport handles and the reconnecting connection manager."""

from .manager import (
    ConnectionManager,
    ConnectionState,
    exponential_timeout,
    randomize_duration,
)
from .transport import (
    ReadyState,
    Transport,
    TransportFactory,
    WebSocketTransport,
    check_connection,
)

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "ReadyState",
    "Transport",
    "TransportFactory",
    "WebSocketTransport",
    "check_connection",
    "exponential_timeout",
    "randomize_duration",
]
