"""Bootstrap metadata fetched after the handshake."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping, Optional


logger = logging.getLogger(__name__)


@dataclass
class RemoteCatalog:
    """Invokable actions, areas and server configuration.

    Each section is replaced wholesale by the matching bootstrap reply.
    """

    services: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    areas: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    server_config: Dict[str, Any] = field(default_factory=dict)

    def apply_services(self, result: Any) -> None:
        if not isinstance(result, Mapping):
            logger.warning("get_services returned %s; expected a mapping", type(result).__name__)
            return
        self.services = {
            str(domain): dict(actions) if isinstance(actions, Mapping) else {}
            for domain, actions in result.items()
        }
        logger.debug("action catalog: %d domains", len(self.services))

    def apply_areas(self, result: Any) -> None:
        if not isinstance(result, Iterable) or isinstance(result, (str, bytes, Mapping)):
            logger.warning("area registry returned %s; expected a list", type(result).__name__)
            return
        areas: Dict[str, Dict[str, Any]] = {}
        for entry in result:
            if isinstance(entry, Mapping) and entry.get("area_id"):
                areas[str(entry["area_id"])] = dict(entry)
        self.areas = areas
        logger.debug("area registry: %d areas", len(areas))

    def apply_server_config(self, result: Any) -> None:
        if not isinstance(result, Mapping):
            logger.warning("get_config returned %s; expected a mapping", type(result).__name__)
            return
        self.server_config = dict(result)

    def has_action(self, domain: str, name: str) -> bool:
        return name in self.services.get(domain, {})

    @property
    def unit_system(self) -> Optional[Mapping[str, Any]]:
        value = self.server_config.get("unit_system")
        return value if isinstance(value, Mapping) else None


__all__ = ["RemoteCatalog"]
