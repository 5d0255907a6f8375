"""Synchronization client: connection, request registry and entity mirror."""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "ActionInvoker",
    "Connection",
    "ConnectionConfig",
    "ConnectionState",
    "Entity",
    "EntityStore",
    "EventBus",
    "PendingRequestRegistry",
    "RemoteCatalog",
    "load_connection_config",
]


def _lazy_attr(name: str) -> Any:
    module_map = {
        "ActionInvoker": ("hass_sync.client.actions", "ActionInvoker"),
        "Connection": ("hass_sync.client.connection", "Connection"),
        "ConnectionConfig": ("hass_sync.client.config", "ConnectionConfig"),
        "ConnectionState": ("hass_sync.client.connection", "ConnectionState"),
        "Entity": ("hass_sync.client.entity_store", "Entity"),
        "EntityStore": ("hass_sync.client.entity_store", "EntityStore"),
        "EventBus": ("hass_sync.client.events", "EventBus"),
        "PendingRequestRegistry": ("hass_sync.client.pending_requests", "PendingRequestRegistry"),
        "RemoteCatalog": ("hass_sync.client.catalog", "RemoteCatalog"),
        "load_connection_config": ("hass_sync.client.config", "load_connection_config"),
    }
    if name not in module_map:
        raise AttributeError(name)
    module_path, attr = module_map[name]
    module = import_module(module_path)
    return getattr(module, attr)


def __getattr__(name: str) -> Any:  # pragma: no cover - trivial delegation
    return _lazy_attr(name)
