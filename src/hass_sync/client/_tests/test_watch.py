from __future__ import annotations

import asyncio

import pytest

from hass_sync.client import watch
from hass_sync.client.entity_store import Entity
from hass_sync.client.connection import Connection
from hass_sync.client.events import EntityUpdated

from ._fakes import FakeServer, settle


def test_format_update() -> None:
    on = Entity(entity_id="light.kitchen", state="on")
    off = Entity(entity_id="light.kitchen", state="off")
    assert watch._format_update(EntityUpdated(entity=on)) == "light.kitchen: on"
    assert watch._format_update(EntityUpdated(entity=on, previous=off)) == "light.kitchen: off -> on"


def test_main_without_credentials_exits_with_config_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HASS_SYNC_ENDPOINT", raising=False)
    monkeypatch.delenv("HASS_SYNC_TOKEN", raising=False)
    assert watch.main(["--endpoint", "http://127.0.0.1:8123"]) == 2


def test_main_rejects_placeholder_token(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("HASS_SYNC_TOKEN", raising=False)
    code = watch.main(["--endpoint", "http://127.0.0.1:8123", "--token", "YOUR_LONG_LIVED_ACCESS_TOKEN"])
    assert code == 2


def test_watch_keeps_running_until_cancelled(monkeypatch: pytest.MonkeyPatch) -> None:
    server = FakeServer()
    monkeypatch.setattr(watch, "Connection", lambda: Connection(connector=server))

    async def _run() -> None:
        task = asyncio.ensure_future(watch.watch("http://127.0.0.1:8123", "tok"))
        await settle()
        sock = server.latest
        sock.push({"type": "auth_required"})
        await settle()
        sock.push({"type": "auth_ok", "ha_version": "2025.1.0"})
        await asyncio.sleep(0.05)

        assert not task.done()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert sock.closed

    asyncio.run(_run())
