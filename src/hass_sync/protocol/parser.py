"""Decode inbound websocket text into typed frames."""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, Mapping

from hass_sync.errors import ProtocolError

from .messages import (
    AUTH_INVALID_TYPE,
    AUTH_OK_TYPE,
    AUTH_REQUIRED_TYPE,
    EVENT_TYPE,
    PING_TYPE,
    RESULT_TYPE,
    AuthInvalid,
    AuthOk,
    AuthRequired,
    EventFrame,
    InboundFrame,
    PingFrame,
    ResultFrame,
    UnknownFrame,
)


class FrameParser:
    """Parse JSON/mapping payloads into exactly one frame variant.

    Unknown ``type`` values decode to :class:`UnknownFrame` so newer servers
    keep working; anything that is not a JSON object with a ``type`` raises
    :class:`ProtocolError`.
    """

    def __init__(self) -> None:
        self._loaders: Dict[str, Callable[[Mapping[str, Any]], InboundFrame]] = {
            AUTH_REQUIRED_TYPE: AuthRequired.from_dict,
            AUTH_OK_TYPE: AuthOk.from_dict,
            AUTH_INVALID_TYPE: AuthInvalid.from_dict,
            RESULT_TYPE: ResultFrame.from_dict,
            EVENT_TYPE: EventFrame.from_dict,
            PING_TYPE: PingFrame.from_dict,
        }

    def parse(self, data: Any) -> InboundFrame:
        if not isinstance(data, Mapping):
            raise ProtocolError("Decoded frame must be a JSON object")
        frame_type = data.get("type")
        if not isinstance(frame_type, str) or not frame_type:
            raise ProtocolError("Frame missing 'type'")
        loader = self._loaders.get(frame_type)
        if loader is None:
            return UnknownFrame.from_dict(data)
        try:
            return loader(data)
        except (TypeError, ValueError) as exc:
            raise ProtocolError(f"malformed {frame_type} frame: {exc}") from exc

    def parse_json(self, raw: str | bytes | bytearray) -> InboundFrame:
        if isinstance(raw, (bytes, bytearray)):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as exc:
                raise ProtocolError("frame payload was not UTF-8") from exc
        try:
            mapping = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"frame payload was not valid JSON: {exc.msg}") from exc
        return self.parse(mapping)


def encode_frame(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, separators=(",", ":"))


__all__ = ["FrameParser", "encode_frame"]
