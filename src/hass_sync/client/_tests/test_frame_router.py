from __future__ import annotations

from typing import Any, Dict, List, Mapping

import pytest

from hass_sync.client.frame_router import FrameHandlers, FrameKind, FrameRouter, classify
from hass_sync.protocol import FrameParser

_PARSER = FrameParser()


class _Recorder:
    def __init__(self, *, known_ids: tuple[int, ...] = ()) -> None:
        self.known_ids = set(known_ids)
        self.handshakes: List[Any] = []
        self.results: List[Any] = []
        self.state_changes: List[Any] = []
        self.messages: List[Mapping[str, Any]] = []
        self.replies: List[Dict[str, Any]] = []

    def handlers(self) -> FrameHandlers:
        return FrameHandlers(
            handshake=self.handshakes.append,
            result=self._result,
            state_change=self.state_changes.append,
            message=self.messages.append,
        )

    def _result(self, frame: Any) -> bool:
        self.results.append(frame)
        return frame.id in self.known_ids

    def reply(self, payload: Mapping[str, Any]) -> bool:
        self.replies.append(dict(payload))
        return True


@pytest.mark.parametrize(
    "payload, kind",
    [
        ({"type": "auth_required"}, FrameKind.HANDSHAKE),
        ({"type": "auth_ok"}, FrameKind.HANDSHAKE),
        ({"type": "auth_invalid", "message": "x"}, FrameKind.HANDSHAKE),
        ({"type": "result", "id": 1, "success": True}, FrameKind.RESULT),
        ({"type": "event", "event": {"event_type": "state_changed", "data": {}}}, FrameKind.STATE_CHANGE),
        ({"type": "event", "event": {"event_type": "call_service", "data": {}}}, FrameKind.EVENT),
        ({"type": "ping"}, FrameKind.HEARTBEAT),
        ({"type": "pong"}, FrameKind.PASSTHROUGH),
    ],
)
def test_classify(payload, kind) -> None:
    assert classify(_PARSER.parse(payload)) is kind


def test_ping_answered_once_and_not_forwarded() -> None:
    recorder = _Recorder()
    router = FrameRouter(recorder.handlers())
    router.dispatch(_PARSER.parse({"type": "ping", "id": 5}), reply=recorder.reply)
    assert recorder.replies == [{"type": "pong", "id": 5}]
    assert recorder.messages == []
    assert router.pings_answered == 1


def test_ping_without_socket_is_dropped() -> None:
    recorder = _Recorder()
    router = FrameRouter(recorder.handlers())
    router.dispatch(_PARSER.parse({"type": "ping"}), reply=lambda payload: False)
    router.dispatch(_PARSER.parse({"type": "ping"}))
    assert router.pings_answered == 0
    assert recorder.messages == []


def test_handshake_frames_are_not_forwarded() -> None:
    recorder = _Recorder()
    router = FrameRouter(recorder.handlers())
    router.dispatch(_PARSER.parse({"type": "auth_required", "ha_version": "2025.1.0"}))
    assert len(recorder.handshakes) == 1
    assert recorder.messages == []


def test_results_go_to_result_handler_known_or_not() -> None:
    recorder = _Recorder(known_ids=(1000,))
    router = FrameRouter(recorder.handlers())
    router.dispatch(_PARSER.parse({"type": "result", "id": 1000, "success": True}))
    router.dispatch(_PARSER.parse({"type": "result", "id": 9999, "success": True}))
    assert [frame.id for frame in recorder.results] == [1000, 9999]
    assert recorder.messages == []


def test_state_changed_vs_other_events() -> None:
    recorder = _Recorder()
    router = FrameRouter(recorder.handlers())
    state_changed = {"type": "event", "event": {"event_type": "state_changed", "data": {"entity_id": "a.b"}}}
    other = {"type": "event", "event": {"event_type": "automation_triggered", "data": {}}}
    router.dispatch(_PARSER.parse(state_changed))
    router.dispatch(_PARSER.parse(other))
    assert len(recorder.state_changes) == 1
    assert recorder.messages == [other]


def test_unknown_frame_forwarded_unmodified() -> None:
    recorder = _Recorder()
    router = FrameRouter(recorder.handlers())
    payload = {"type": "supported_features", "id": 3}
    assert router.dispatch(_PARSER.parse(payload)) is FrameKind.PASSTHROUGH
    assert recorder.messages == [payload]
    assert recorder.messages[0] is payload
