"""Typed events published by the connection, plus a small pub/sub bus."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Mapping, Optional, Type, TypeVar

if TYPE_CHECKING:
    from .entity_store import Entity


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientEvent:
    kind: ClassVar[str] = "event"


@dataclass(frozen=True)
class ConnectionOpened(ClientEvent):
    epoch: int
    url: str

    kind: ClassVar[str] = "open"


@dataclass(frozen=True)
class ConnectionReady(ClientEvent):
    epoch: int
    ha_version: Optional[str] = None

    kind: ClassVar[str] = "ready"


@dataclass(frozen=True)
class ConnectionClosed(ClientEvent):
    epoch: int
    intentional: bool
    reason: Optional[str] = None

    kind: ClassVar[str] = "close"


@dataclass(frozen=True)
class ConnectionErrored(ClientEvent):
    error: BaseException

    kind: ClassVar[str] = "error"


@dataclass(frozen=True)
class MessageReceived(ClientEvent):
    """Frame forwarded unmodified; never an auth or ping frame."""

    frame: Mapping[str, Any]

    kind: ClassVar[str] = "message"


@dataclass(frozen=True)
class EntityUpdated(ClientEvent):
    entity: "Entity"
    previous: Optional["Entity"] = None

    kind: ClassVar[str] = "entity-updated"


@dataclass(frozen=True)
class SnapshotApplied(ClientEvent):
    count: int
    entity_ids: tuple[str, ...] = field(default=(), repr=False)

    kind: ClassVar[str] = "snapshot"


EventT = TypeVar("EventT", bound=ClientEvent)
Listener = Callable[[Any], None]


class EventBus:
    """Dispatch events to listeners registered per event class.

    Listeners run synchronously in registration order.  A failing listener is
    logged and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: Dict[Type[ClientEvent], List[Listener]] = {}
        self._global_listeners: List[Listener] = []

    def subscribe(self, event_type: Type[EventT], listener: Callable[[EventT], None]) -> Callable[[], None]:
        listeners = self._listeners.setdefault(event_type, [])
        listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def subscribe_all(self, listener: Callable[[ClientEvent], None]) -> Callable[[], None]:
        self._global_listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._global_listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def emit(self, event: ClientEvent) -> None:
        targets = list(self._listeners.get(type(event), ())) + list(self._global_listeners)
        for listener in targets:
            try:
                listener(event)
            except Exception:
                logger.debug("%s listener failed", event.kind, exc_info=True)

    def listener_count(self, event_type: Optional[Type[ClientEvent]] = None) -> int:
        if event_type is None:
            return sum(len(v) for v in self._listeners.values()) + len(self._global_listeners)
        return len(self._listeners.get(event_type, ()))


__all__ = [
    "ClientEvent",
    "ConnectionOpened",
    "ConnectionReady",
    "ConnectionClosed",
    "ConnectionErrored",
    "MessageReceived",
    "EntityUpdated",
    "SnapshotApplied",
    "EventBus",
]
