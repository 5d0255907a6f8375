"""Frame shapes for the Home Assistant websocket API.

Every inbound frame decodes into exactly one of the dataclasses below.  Each
frame keeps the mapping it was decoded from in ``raw`` so collaborators can be
handed the frame unmodified.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

AUTH_REQUIRED_TYPE = "auth_required"
AUTH_TYPE = "auth"
AUTH_OK_TYPE = "auth_ok"
AUTH_INVALID_TYPE = "auth_invalid"
RESULT_TYPE = "result"
EVENT_TYPE = "event"
PING_TYPE = "ping"
PONG_TYPE = "pong"

SUBSCRIBE_EVENTS_TYPE = "subscribe_events"
GET_STATES_TYPE = "get_states"
GET_SERVICES_TYPE = "get_services"
GET_CONFIG_TYPE = "get_config"
AREA_REGISTRY_LIST_TYPE = "config/area_registry/list"
CALL_SERVICE_TYPE = "call_service"

STATE_CHANGED_EVENT = "state_changed"

HANDSHAKE_TYPES = frozenset({AUTH_REQUIRED_TYPE, AUTH_OK_TYPE, AUTH_INVALID_TYPE})


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _optional_id(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class AuthRequired:
    ha_version: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = AUTH_REQUIRED_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthRequired":
        return cls(ha_version=_optional_str(data.get("ha_version")), raw=data)


@dataclass(frozen=True)
class AuthOk:
    ha_version: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = AUTH_OK_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthOk":
        return cls(ha_version=_optional_str(data.get("ha_version")), raw=data)


@dataclass(frozen=True)
class AuthInvalid:
    message: str = ""
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = AUTH_INVALID_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AuthInvalid":
        return cls(message=str(data.get("message") or ""), raw=data)


@dataclass(frozen=True)
class RemoteError:
    code: str
    message: str

    @classmethod
    def from_value(cls, value: Any) -> "RemoteError":
        if isinstance(value, Mapping):
            return cls(
                code=str(value.get("code") or "unknown_error"),
                message=str(value.get("message") or ""),
            )
        if value is None:
            return cls(code="unknown_error", message="")
        return cls(code="unknown_error", message=str(value))

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ResultFrame:
    """Reply to a request, correlated by ``id``."""

    id: int
    success: bool
    result: Any = None
    error: Optional[RemoteError] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = RESULT_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ResultFrame":
        frame_id = _optional_id(data.get("id"))
        if frame_id is None:
            raise ValueError("result frame missing integer 'id'")
        success = bool(data.get("success", False))
        error = None
        if not success:
            error = RemoteError.from_value(data.get("error"))
        return cls(id=frame_id, success=success, result=data.get("result"), error=error, raw=data)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "type": RESULT_TYPE,
            "success": self.success,
            "result": self.result,
        }
        if self.error is not None:
            payload["error"] = self.error.to_dict()
        return payload


@dataclass(frozen=True)
class EventFrame:
    """Push event delivered for a subscription."""

    event_type: str
    data: Mapping[str, Any]
    id: Optional[int] = None
    origin: Optional[str] = None
    time_fired: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = EVENT_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EventFrame":
        event = data.get("event")
        if not isinstance(event, Mapping):
            raise ValueError("event frame missing 'event' mapping")
        event_data = event.get("data")
        return cls(
            event_type=str(event.get("event_type") or ""),
            data=event_data if isinstance(event_data, Mapping) else {},
            id=_optional_id(data.get("id")),
            origin=_optional_str(event.get("origin")),
            time_fired=_optional_str(event.get("time_fired")),
            raw=data,
        )

    @property
    def is_state_changed(self) -> bool:
        return self.event_type == STATE_CHANGED_EVENT

    @property
    def entity_id(self) -> Optional[str]:
        return _optional_str(self.data.get("entity_id"))

    @property
    def new_state(self) -> Optional[Mapping[str, Any]]:
        value = self.data.get("new_state")
        return value if isinstance(value, Mapping) else None

    @property
    def old_state(self) -> Optional[Mapping[str, Any]]:
        value = self.data.get("old_state")
        return value if isinstance(value, Mapping) else None


@dataclass(frozen=True)
class PingFrame:
    id: Optional[int] = None
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    type = PING_TYPE

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PingFrame":
        return cls(id=_optional_id(data.get("id")), raw=data)


@dataclass(frozen=True)
class UnknownFrame:
    """Any frame the client does not interpret; forwarded as-is."""

    type: str
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UnknownFrame":
        return cls(type=str(data.get("type") or ""), raw=data)


HandshakeFrame = Union[AuthRequired, AuthOk, AuthInvalid]
InboundFrame = Union[AuthRequired, AuthOk, AuthInvalid, ResultFrame, EventFrame, PingFrame, UnknownFrame]


# --- Outbound builders ------------------------------------------------------


def build_auth(access_token: str) -> Dict[str, Any]:
    return {"type": AUTH_TYPE, "access_token": access_token}


def build_pong(ping: Optional[PingFrame] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": PONG_TYPE}
    if ping is not None and ping.id is not None:
        payload["id"] = ping.id
    return payload


def build_subscribe_events(event_type: Optional[str] = STATE_CHANGED_EVENT) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": SUBSCRIBE_EVENTS_TYPE}
    if event_type is not None:
        payload["event_type"] = event_type
    return payload


def build_get_states() -> Dict[str, Any]:
    return {"type": GET_STATES_TYPE}


def build_get_services() -> Dict[str, Any]:
    return {"type": GET_SERVICES_TYPE}


def build_get_config() -> Dict[str, Any]:
    return {"type": GET_CONFIG_TYPE}


def build_area_registry_list() -> Dict[str, Any]:
    return {"type": AREA_REGISTRY_LIST_TYPE}


def build_call_service(
    domain: str,
    service: str,
    service_data: Optional[Mapping[str, Any]] = None,
    *,
    target: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "type": CALL_SERVICE_TYPE,
        "domain": str(domain),
        "service": str(service),
        "service_data": dict(service_data) if service_data is not None else {},
    }
    if target is not None:
        payload["target"] = dict(target)
    return payload


__all__ = [
    "AUTH_REQUIRED_TYPE",
    "AUTH_TYPE",
    "AUTH_OK_TYPE",
    "AUTH_INVALID_TYPE",
    "RESULT_TYPE",
    "EVENT_TYPE",
    "PING_TYPE",
    "PONG_TYPE",
    "SUBSCRIBE_EVENTS_TYPE",
    "GET_STATES_TYPE",
    "GET_SERVICES_TYPE",
    "GET_CONFIG_TYPE",
    "AREA_REGISTRY_LIST_TYPE",
    "CALL_SERVICE_TYPE",
    "STATE_CHANGED_EVENT",
    "HANDSHAKE_TYPES",
    "AuthRequired",
    "AuthOk",
    "AuthInvalid",
    "RemoteError",
    "ResultFrame",
    "EventFrame",
    "PingFrame",
    "UnknownFrame",
    "HandshakeFrame",
    "InboundFrame",
    "build_auth",
    "build_pong",
    "build_subscribe_events",
    "build_get_states",
    "build_get_services",
    "build_get_config",
    "build_area_registry_list",
    "build_call_service",
]
