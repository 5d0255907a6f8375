"""Classify decoded frames and hand each to exactly one handler."""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional

from hass_sync.protocol import (
    AuthInvalid,
    AuthOk,
    AuthRequired,
    EventFrame,
    HandshakeFrame,
    InboundFrame,
    PingFrame,
    ResultFrame,
    build_pong,
)


logger = logging.getLogger(__name__)


class FrameKind(enum.Enum):
    HANDSHAKE = "handshake"
    RESULT = "result"
    STATE_CHANGE = "state_change"
    EVENT = "event"
    HEARTBEAT = "heartbeat"
    PASSTHROUGH = "passthrough"


def classify(frame: InboundFrame) -> FrameKind:
    if isinstance(frame, (AuthRequired, AuthOk, AuthInvalid)):
        return FrameKind.HANDSHAKE
    if isinstance(frame, ResultFrame):
        return FrameKind.RESULT
    if isinstance(frame, EventFrame):
        return FrameKind.STATE_CHANGE if frame.is_state_changed else FrameKind.EVENT
    if isinstance(frame, PingFrame):
        return FrameKind.HEARTBEAT
    return FrameKind.PASSTHROUGH


@dataclass
class FrameHandlers:
    """Callbacks the router dispatches to.

    ``reply`` posts a mapping on the socket the frame arrived on and returns
    False when that socket is gone.
    """

    handshake: Callable[[HandshakeFrame], None]
    result: Callable[[ResultFrame], bool]
    state_change: Callable[[EventFrame], None]
    message: Callable[[Mapping[str, Any]], None]


class FrameRouter:
    def __init__(self, handlers: FrameHandlers) -> None:
        self._handlers = handlers
        self.pings_answered = 0

    def dispatch(
        self,
        frame: InboundFrame,
        *,
        reply: Optional[Callable[[Mapping[str, Any]], bool]] = None,
    ) -> FrameKind:
        kind = classify(frame)
        handlers = self._handlers

        if kind is FrameKind.HEARTBEAT:
            # Protocol-internal: answer once, never forward.
            if reply is None or not reply(build_pong(frame)):  # type: ignore[arg-type]
                logger.debug("pong dropped; socket for ping is gone")
            else:
                self.pings_answered += 1
            return kind

        if kind is FrameKind.HANDSHAKE:
            handlers.handshake(frame)  # type: ignore[arg-type]
            return kind

        if kind is FrameKind.RESULT:
            if not handlers.result(frame):  # type: ignore[arg-type]
                logger.debug("result for unknown request id=%s dropped", frame.id)  # type: ignore[union-attr]
            return kind

        if kind is FrameKind.STATE_CHANGE:
            handlers.state_change(frame)  # type: ignore[arg-type]
            return kind

        handlers.message(frame.raw)
        return kind


__all__ = ["FrameHandlers", "FrameKind", "FrameRouter", "classify"]
