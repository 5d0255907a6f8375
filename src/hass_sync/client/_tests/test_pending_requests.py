from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Mapping

import pytest

from hass_sync.errors import (
    ConnectionClosedError,
    NotConnectedError,
    RequestTimeoutError,
    TransportError,
)
from hass_sync.client.pending_requests import INITIAL_REQUEST_ID, PendingRequestRegistry
from hass_sync.protocol import ResultFrame


class _Wire:
    def __init__(self, *, ready: bool = True, fail: bool = False) -> None:
        self.ready = ready
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    def transmit(self, frame: Mapping[str, Any]) -> None:
        if self.fail:
            raise ConnectionResetError("socket gone")
        self.sent.append(dict(frame))

    def is_ready(self) -> bool:
        return self.ready


def _registry(wire: _Wire, **kwargs: Any) -> PendingRequestRegistry:
    return PendingRequestRegistry(transmit=wire.transmit, is_ready=wire.is_ready, **kwargs)


def _ok(request_id: int, result: Any = None) -> ResultFrame:
    return ResultFrame(id=request_id, success=True, result=result)


def test_defaults() -> None:
    wire = _Wire()
    registry = _registry(wire)
    assert registry.timeout_s == 15.0
    assert INITIAL_REQUEST_ID == 1000


def test_ids_start_at_1000_and_are_merged_into_frame() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire)
        first = registry.send({"type": "get_states"})
        second = registry.send({"type": "get_config"})
        assert (first.id, second.id) == (1000, 1001)
        assert wire.sent == [{"type": "get_states", "id": 1000}, {"type": "get_config", "id": 1001}]
        assert registry.pending_ids == (1000, 1001)
        registry.reject_all("test over")

    asyncio.run(_run())


def test_out_of_order_results_resolve_by_id() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire)
        handles = [registry.send({"type": "call_service", "n": n}) for n in range(3)]
        assert [h.id for h in handles] == [1000, 1001, 1002]

        for request_id in (1002, 1000, 1001):
            assert registry.resolve(_ok(request_id, result=request_id * 10)) is True

        frames = await asyncio.gather(*handles)
        assert [frame.result for frame in frames] == [10000, 10010, 10020]
        assert len(registry) == 0

    asyncio.run(_run())


def test_unknown_result_is_ignored() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire)
        handle = registry.send({"type": "get_states"})
        assert registry.resolve(_ok(4242)) is False
        assert not handle.done()
        assert registry.resolve(_ok(handle.id)) is True
        # Second result for the same id finds nothing.
        assert registry.resolve(_ok(handle.id)) is False

    asyncio.run(_run())


def test_timeout_rejects_and_purges() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire, timeout_s=0.02)
        handle = registry.send({"type": "get_states"})
        with pytest.raises(RequestTimeoutError) as info:
            await handle
        assert info.value.request_id == handle.id
        assert len(registry) == 0
        # A late reply is dropped quietly.
        assert registry.resolve(_ok(handle.id)) is False

    asyncio.run(_run())


def test_per_request_timeout_override() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire, timeout_s=60.0)
        handle = registry.send({"type": "get_states"}, timeout_s=0.01)
        with pytest.raises(RequestTimeoutError):
            await handle

    asyncio.run(_run())


def test_not_ready_rejects_without_transmit() -> None:
    async def _run() -> None:
        wire = _Wire(ready=False)
        registry = _registry(wire)
        handle = registry.send({"type": "get_states"})
        assert handle.done()
        with pytest.raises(NotConnectedError):
            await handle
        assert wire.sent == []
        assert len(registry) == 0
        # The id is consumed all the same.
        wire.ready = True
        assert registry.send({"type": "get_states"}).id == handle.id + 1
        registry.reject_all()

    asyncio.run(_run())


def test_transmit_failure_is_transport_error() -> None:
    async def _run() -> None:
        wire = _Wire(fail=True)
        registry = _registry(wire)
        handle = registry.send({"type": "get_states"})
        with pytest.raises(TransportError):
            await handle
        assert len(registry) == 0

    asyncio.run(_run())


def test_reject_all_and_ids_keep_growing() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire)
        handles = [registry.send({"type": "get_states"}) for _ in range(2)]
        assert registry.reject_all("socket closed") == 2
        for handle in handles:
            with pytest.raises(ConnectionClosedError):
                await handle
        assert len(registry) == 0
        later = registry.send({"type": "get_states"})
        assert later.id > max(h.id for h in handles)
        registry.reject_all()

    asyncio.run(_run())


def test_cancelled_request_is_purged() -> None:
    async def _run() -> None:
        wire = _Wire()
        registry = _registry(wire)
        handle = registry.send({"type": "get_states"})
        handle.future.cancel()
        await asyncio.sleep(0)
        assert handle.id not in registry

    asyncio.run(_run())
