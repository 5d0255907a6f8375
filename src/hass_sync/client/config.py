"""Connection configuration for the synchronization client."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional
from urllib.parse import urlsplit, urlunsplit

from hass_sync.errors import ConfigError
from hass_sync.utils.env import env_float, env_str

PLACEHOLDER_CREDENTIAL = "YOUR_LONG_LIVED_ACCESS_TOKEN"
WEBSOCKET_PATH = "/api/websocket"

DEFAULT_REQUEST_TIMEOUT_S = 15.0
DEFAULT_RECONNECT_DELAY_S = 5.0
DEFAULT_RECONNECT_BACKOFF = 1.0
DEFAULT_RECONNECT_MAX_DELAY_S = 30.0
DEFAULT_HANDSHAKE_TIMEOUT_S = 10.0
DEFAULT_PING_INTERVAL_S = 20.0

_SCHEME_MAP = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}


def websocket_url_for(endpoint: str) -> str:
    """Map an ``http(s)://host:port`` endpoint onto the websocket API URL."""

    parts = urlsplit(str(endpoint).strip())
    scheme = _SCHEME_MAP.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise ConfigError(f"Unsupported endpoint URL: {endpoint!r}")
    path = parts.path.rstrip("/")
    if not path.endswith(WEBSOCKET_PATH):
        path = f"{path}{WEBSOCKET_PATH}"
    return urlunsplit((scheme, parts.netloc, path, parts.query, ""))


@dataclass(frozen=True)
class ConnectionConfig:
    """Endpoint, credential and timing knobs for one ``Connection``."""

    endpoint: str
    credential: str
    request_timeout_s: float = DEFAULT_REQUEST_TIMEOUT_S
    reconnect_delay_s: float = DEFAULT_RECONNECT_DELAY_S
    reconnect_backoff: float = DEFAULT_RECONNECT_BACKOFF
    reconnect_max_delay_s: float = DEFAULT_RECONNECT_MAX_DELAY_S
    handshake_timeout_s: Optional[float] = DEFAULT_HANDSHAKE_TIMEOUT_S
    ping_interval_s: Optional[float] = DEFAULT_PING_INTERVAL_S

    def validate(self) -> None:
        """Raise :class:`ConfigError` unless the config can open a socket."""

        if not self.endpoint or not str(self.endpoint).strip():
            raise ConfigError("Invalid configuration: endpoint is missing")
        if not self.credential or not str(self.credential).strip():
            raise ConfigError("Invalid configuration: credential is missing")
        if self.credential == PLACEHOLDER_CREDENTIAL:
            raise ConfigError("Configuration contains the placeholder token; update the credential")
        if self.request_timeout_s <= 0:
            raise ConfigError("request_timeout_s must be positive")
        if self.reconnect_delay_s < 0:
            raise ConfigError("reconnect_delay_s must not be negative")
        if self.reconnect_backoff < 1.0:
            raise ConfigError("reconnect_backoff must be >= 1.0")
        if self.reconnect_max_delay_s <= 0:
            raise ConfigError("reconnect_max_delay_s must be positive")
        if self.handshake_timeout_s is not None and self.handshake_timeout_s <= 0:
            raise ConfigError("handshake_timeout_s must be positive or None")
        if self.ping_interval_s is not None and self.ping_interval_s <= 0:
            raise ConfigError("ping_interval_s must be positive or None")
        websocket_url_for(self.endpoint)

    @property
    def websocket_url(self) -> str:
        return websocket_url_for(self.endpoint)

    def with_overrides(self, **changes: Any) -> "ConnectionConfig":
        return replace(self, **{k: v for k, v in changes.items() if v is not None})


def load_connection_config(**overrides: Any) -> ConnectionConfig:
    """Resolve ``HASS_SYNC_*`` environment variables into a ``ConnectionConfig``.

    Keyword overrides that are not ``None`` win over the environment.  The
    result is not validated; ``Connection.connect`` does that.
    """

    config = ConnectionConfig(
        endpoint=env_str("HASS_SYNC_ENDPOINT", "") or "",
        credential=env_str("HASS_SYNC_TOKEN", "") or "",
        request_timeout_s=float(env_float("HASS_SYNC_REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT_S)
                                or DEFAULT_REQUEST_TIMEOUT_S),
        reconnect_delay_s=float(env_float("HASS_SYNC_RECONNECT_DELAY_S", DEFAULT_RECONNECT_DELAY_S) or 0.0),
        reconnect_backoff=float(env_float("HASS_SYNC_RECONNECT_BACKOFF", DEFAULT_RECONNECT_BACKOFF)
                                or DEFAULT_RECONNECT_BACKOFF),
        reconnect_max_delay_s=float(
            env_float("HASS_SYNC_RECONNECT_MAX_DELAY_S", DEFAULT_RECONNECT_MAX_DELAY_S)
            or DEFAULT_RECONNECT_MAX_DELAY_S
        ),
        handshake_timeout_s=env_float("HASS_SYNC_HANDSHAKE_TIMEOUT_S", DEFAULT_HANDSHAKE_TIMEOUT_S),
        ping_interval_s=env_float("HASS_SYNC_PING_INTERVAL_S", DEFAULT_PING_INTERVAL_S),
    )
    return config.with_overrides(**overrides)


__all__ = [
    "PLACEHOLDER_CREDENTIAL",
    "ConnectionConfig",
    "load_connection_config",
    "websocket_url_for",
]
