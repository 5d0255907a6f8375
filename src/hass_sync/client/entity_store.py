"""Local mirror of remote entity state."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Union

from .events import EntityUpdated, SnapshotApplied


logger = logging.getLogger(__name__)


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.debug("entity timestamp not ISO-8601: %r", value)
        return None


def _state_text(value: Any) -> str:
    # JSON null means the server has no value yet.
    if value is None:
        return "unknown"
    return str(value)


@dataclass(frozen=True)
class Entity:
    entity_id: str
    state: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    last_changed: Optional[datetime] = None
    last_updated: Optional[datetime] = None
    context: Optional[Mapping[str, Any]] = None

    @property
    def domain(self) -> str:
        return self.entity_id.split(".", 1)[0]

    @property
    def object_id(self) -> str:
        return self.entity_id.split(".", 1)[-1]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Entity":
        entity_id = data.get("entity_id")
        if not entity_id:
            raise ValueError("entity state missing 'entity_id'")
        attributes = data.get("attributes")
        context = data.get("context")
        return cls(
            entity_id=str(entity_id),
            state=_state_text(data.get("state")),
            attributes=dict(attributes) if isinstance(attributes, Mapping) else {},
            last_changed=_parse_timestamp(data.get("last_changed")),
            last_updated=_parse_timestamp(data.get("last_updated")),
            context=dict(context) if isinstance(context, Mapping) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "entity_id": self.entity_id,
            "state": self.state,
            "attributes": dict(self.attributes),
            "last_changed": self.last_changed.isoformat() if self.last_changed else None,
            "last_updated": self.last_updated.isoformat() if self.last_updated else None,
        }
        if self.context is not None:
            payload["context"] = dict(self.context)
        return payload


EntityLike = Union[Entity, Mapping[str, Any]]


def _coerce_entity(value: EntityLike) -> Entity:
    if isinstance(value, Entity):
        return value
    return Entity.from_dict(value)


class EntityStore:
    """Map ``entity_id`` to the latest :class:`Entity`, last write wins.

    Entities are created on first reference and replaced in full by every
    delta; the store never deletes them.
    """

    def __init__(self, *, emit: Optional[Callable[[Any], None]] = None) -> None:
        self._entities: MutableMapping[str, Entity] = {}
        self._emit = emit

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def get(self, entity_id: str) -> Optional[Entity]:
        return self._entities.get(entity_id)

    def get_all(self) -> Mapping[str, Entity]:
        return MappingProxyType(dict(self._entities))

    def by_domain(self, domain: str) -> List[Entity]:
        prefix = f"{domain}."
        return [entity for key, entity in self._entities.items() if key.startswith(prefix)]

    # ------------------------------------------------------------------
    def apply_snapshot(self, entities: Iterable[EntityLike]) -> List[Entity]:
        """Upsert each entity of a bulk listing independently."""

        applied: List[Entity] = []
        for item in entities:
            try:
                entity = _coerce_entity(item)
            except (TypeError, ValueError):
                logger.warning("snapshot entry skipped: %r", item, exc_info=True)
                continue
            self._entities[entity.entity_id] = entity
            applied.append(entity)
        logger.debug("snapshot applied: %d entities (store size %d)", len(applied), len(self._entities))
        self._publish(
            SnapshotApplied(count=len(applied), entity_ids=tuple(entity.entity_id for entity in applied))
        )
        return applied

    def apply_delta(self, entity_id: str, new_entity: EntityLike) -> Entity:
        """Replace ``entity_id`` in full and publish ``EntityUpdated``."""

        entity = _coerce_entity(new_entity)
        if entity.entity_id != entity_id:
            raise ValueError(f"delta for {entity_id!r} carries state for {entity.entity_id!r}")
        previous = self._entities.get(entity_id)
        self._entities[entity_id] = entity
        self._publish(EntityUpdated(entity=entity, previous=previous))
        return entity

    def _publish(self, event: Any) -> None:
        if self._emit is None:
            return
        self._emit(event)


__all__ = ["Entity", "EntityStore"]
