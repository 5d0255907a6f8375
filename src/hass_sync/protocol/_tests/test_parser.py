from __future__ import annotations

import json

import pytest

from hass_sync.errors import ProtocolError
from hass_sync.protocol import (
    AuthInvalid,
    AuthOk,
    AuthRequired,
    EventFrame,
    FrameParser,
    PingFrame,
    ResultFrame,
    UnknownFrame,
    encode_frame,
)


@pytest.fixture
def parser() -> FrameParser:
    return FrameParser()


def test_handshake_frames(parser: FrameParser) -> None:
    required = parser.parse_json('{"type": "auth_required", "ha_version": "2025.1.0"}')
    assert isinstance(required, AuthRequired)
    assert required.ha_version == "2025.1.0"

    ok = parser.parse({"type": "auth_ok", "ha_version": "2025.1.0"})
    assert isinstance(ok, AuthOk)

    invalid = parser.parse({"type": "auth_invalid", "message": "Invalid access token"})
    assert isinstance(invalid, AuthInvalid)
    assert invalid.message == "Invalid access token"


def test_result_success_and_failure(parser: FrameParser) -> None:
    ok = parser.parse({"id": 1000, "type": "result", "success": True, "result": [1, 2]})
    assert isinstance(ok, ResultFrame)
    assert ok.id == 1000
    assert ok.success is True
    assert ok.result == [1, 2]
    assert ok.error is None

    failed = parser.parse(
        {"id": 1001, "type": "result", "success": False, "error": {"code": "not_found", "message": "Service not found"}}
    )
    assert isinstance(failed, ResultFrame)
    assert failed.success is False
    assert failed.error is not None
    assert failed.error.code == "not_found"
    assert failed.error.message == "Service not found"


def test_result_without_error_payload_gets_unknown_code(parser: FrameParser) -> None:
    frame = parser.parse({"id": 7, "type": "result", "success": False})
    assert frame.error is not None
    assert frame.error.code == "unknown_error"


def test_result_without_id_is_protocol_error(parser: FrameParser) -> None:
    with pytest.raises(ProtocolError):
        parser.parse({"type": "result", "success": True})


def test_state_changed_event(parser: FrameParser) -> None:
    frame = parser.parse(
        {
            "id": 1000,
            "type": "event",
            "event": {
                "event_type": "state_changed",
                "data": {
                    "entity_id": "light.kitchen",
                    "old_state": {"entity_id": "light.kitchen", "state": "off"},
                    "new_state": {"entity_id": "light.kitchen", "state": "on"},
                },
                "origin": "LOCAL",
                "time_fired": "2025-01-01T00:00:00+00:00",
            },
        }
    )
    assert isinstance(frame, EventFrame)
    assert frame.is_state_changed
    assert frame.entity_id == "light.kitchen"
    assert frame.new_state == {"entity_id": "light.kitchen", "state": "on"}
    assert frame.old_state == {"entity_id": "light.kitchen", "state": "off"}
    assert frame.origin == "LOCAL"


def test_event_removal_has_no_new_state(parser: FrameParser) -> None:
    frame = parser.parse(
        {
            "type": "event",
            "event": {"event_type": "state_changed", "data": {"entity_id": "sensor.gone", "new_state": None}},
        }
    )
    assert frame.new_state is None


def test_event_without_body_is_protocol_error(parser: FrameParser) -> None:
    with pytest.raises(ProtocolError):
        parser.parse({"type": "event"})


def test_ping_keeps_id(parser: FrameParser) -> None:
    frame = parser.parse({"type": "ping", "id": 42})
    assert isinstance(frame, PingFrame)
    assert frame.id == 42


def test_unknown_type_passes_through(parser: FrameParser) -> None:
    payload = {"type": "supported_features", "features": {"coalesce_messages": 1}}
    frame = parser.parse(payload)
    assert isinstance(frame, UnknownFrame)
    assert frame.type == "supported_features"
    assert frame.raw == payload


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", "{}", '{"type": 5}', b"\xff\xfe"])
def test_malformed_payloads_raise(parser: FrameParser, raw) -> None:
    with pytest.raises(ProtocolError):
        parser.parse_json(raw)


def test_bytes_payload_decodes(parser: FrameParser) -> None:
    frame = parser.parse_json(b'{"type": "pong"}')
    assert isinstance(frame, UnknownFrame)
    assert frame.type == "pong"


def test_encode_frame_is_compact_json() -> None:
    text = encode_frame({"type": "get_states", "id": 1001})
    assert " " not in text
    assert json.loads(text) == {"type": "get_states", "id": 1001}
