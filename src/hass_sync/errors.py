"""Error taxonomy for the synchronization client."""

from __future__ import annotations

from typing import Optional


class HassSyncError(Exception):
    """Base class for every error raised by hass-sync."""


class ConfigError(HassSyncError, ValueError):
    """Connection configuration is missing or still holds the placeholder token."""


class AuthError(HassSyncError):
    """The remote side rejected the access token.  Terminal; no reconnect."""


class TransportError(HassSyncError):
    """Socket-level failure; recovered through the reconnect loop."""


class ProtocolError(HassSyncError, ValueError):
    """An inbound frame could not be decoded."""


class RequestTimeoutError(HassSyncError, TimeoutError):
    """No result arrived for a request within its timeout window."""

    def __init__(self, request_id: int, timeout_s: float) -> None:
        super().__init__(f"request {request_id} timed out after {timeout_s:.1f}s")
        self.request_id = request_id
        self.timeout_s = timeout_s


class NotConnectedError(HassSyncError):
    """A request was attempted while the connection was not ready."""


class ConnectionClosedError(HassSyncError):
    """The connection closed while the request was still pending."""


class RemoteActionError(HassSyncError):
    """The remote side reported a failed action call."""

    def __init__(self, code: str, message: str, *, request_id: Optional[int] = None) -> None:
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message
        self.request_id = request_id


__all__ = [
    "HassSyncError",
    "ConfigError",
    "AuthError",
    "TransportError",
    "ProtocolError",
    "RequestTimeoutError",
    "NotConnectedError",
    "ConnectionClosedError",
    "RemoteActionError",
]
