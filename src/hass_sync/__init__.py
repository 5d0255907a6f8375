"""
hass-sync: real-time mirror of Home Assistant entity state.

The client keeps one authenticated websocket open, correlates requests with
their results, applies ``state_changed`` pushes to a local entity store and
reconnects after accidental disconnects.
"""

__version__ = "0.1.0"

from hass_sync.errors import (  # noqa: E402
    AuthError,
    ConfigError,
    ConnectionClosedError,
    HassSyncError,
    NotConnectedError,
    ProtocolError,
    RemoteActionError,
    RequestTimeoutError,
    TransportError,
)

__all__ = [
    "__version__",
    "AuthError",
    "ConfigError",
    "ConnectionClosedError",
    "HassSyncError",
    "NotConnectedError",
    "ProtocolError",
    "RemoteActionError",
    "RequestTimeoutError",
    "TransportError",
]
