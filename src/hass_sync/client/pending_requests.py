"""Correlate outbound requests with inbound ``result`` frames by id."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generator, Mapping, Optional

from hass_sync.errors import (
    ConnectionClosedError,
    NotConnectedError,
    RequestTimeoutError,
    TransportError,
)
from hass_sync.protocol import ResultFrame


logger = logging.getLogger(__name__)

INITIAL_REQUEST_ID = 1000

Transmit = Callable[[Mapping[str, Any]], None]


@dataclass
class PendingRequest:
    id: int
    created_at: float
    future: "asyncio.Future[ResultFrame]"
    timeout_handle: Optional[asyncio.TimerHandle]
    request_type: Optional[str] = None


@dataclass(frozen=True)
class PendingHandle:
    """Awaitable result of :meth:`PendingRequestRegistry.send`, tagged with its id."""

    id: int
    future: "asyncio.Future[ResultFrame]"

    def __await__(self) -> Generator[Any, None, ResultFrame]:
        return self.future.__await__()

    def done(self) -> bool:
        return self.future.done()


class PendingRequestRegistry:
    """Own the id counter and the map of in-flight requests.

    Ids start at ``initial_id`` and only grow, across reconnects too, so a
    stale reply from a previous socket can never match a newer request.  All
    methods must run on the event loop thread.
    """

    def __init__(
        self,
        *,
        transmit: Transmit,
        is_ready: Callable[[], bool],
        timeout_s: float = 15.0,
        initial_id: int = INITIAL_REQUEST_ID,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._transmit = transmit
        self._is_ready = is_ready
        self.timeout_s = float(timeout_s)
        self._ids = itertools.count(int(initial_id))
        self._clock = clock
        self._pending: Dict[int, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    @property
    def pending_ids(self) -> tuple[int, ...]:
        return tuple(self._pending)

    # ------------------------------------------------------------------
    def send(self, body: Mapping[str, Any], *, timeout_s: Optional[float] = None) -> PendingHandle:
        """Assign the next id, transmit ``body`` and return a handle for the reply."""

        loop = asyncio.get_running_loop()
        request_id = next(self._ids)
        future: asyncio.Future[ResultFrame] = loop.create_future()
        handle = PendingHandle(id=request_id, future=future)
        request_type = body.get("type")

        if not self._is_ready():
            logger.debug("request %s (%s) rejected: not connected", request_id, request_type)
            future.set_exception(NotConnectedError(f"not connected; request {request_id} not sent"))
            return handle

        frame = dict(body)
        frame["id"] = request_id
        window = self.timeout_s if timeout_s is None else float(timeout_s)
        entry = PendingRequest(
            id=request_id,
            created_at=self._clock(),
            future=future,
            timeout_handle=loop.call_later(window, self._expire, request_id, window),
            request_type=str(request_type) if request_type is not None else None,
        )
        self._pending[request_id] = entry
        future.add_done_callback(lambda fut, rid=request_id: self._discard_cancelled(rid, fut))

        try:
            self._transmit(frame)
        except Exception as exc:
            self._purge(request_id)
            logger.debug("request %s transmit failed", request_id, exc_info=True)
            if not future.done():
                future.set_exception(TransportError(f"failed to send request {request_id}: {exc}"))
            return handle

        logger.debug("request %s (%s) sent; pending=%d", request_id, request_type, len(self._pending))
        return handle

    def resolve(self, frame: ResultFrame) -> bool:
        """Settle the entry matching ``frame.id``; False when none is pending."""

        entry = self._purge(frame.id)
        if entry is None:
            return False
        if not entry.future.done():
            entry.future.set_result(frame)
        elapsed_ms = (self._clock() - entry.created_at) * 1000.0
        logger.debug(
            "request %s (%s) resolved success=%s in %.1fms",
            frame.id,
            entry.request_type,
            frame.success,
            elapsed_ms,
        )
        return True

    def reject_all(self, reason: str = "connection closed") -> int:
        """Reject every outstanding request with ``ConnectionClosedError``."""

        entries = list(self._pending.values())
        self._pending.clear()
        for entry in entries:
            if entry.timeout_handle is not None:
                entry.timeout_handle.cancel()
            if not entry.future.done():
                entry.future.set_exception(ConnectionClosedError(f"request {entry.id}: {reason}"))
        if entries:
            logger.info("rejected %d pending request(s): %s", len(entries), reason)
        return len(entries)

    # ------------------------------------------------------------------
    def _expire(self, request_id: int, window: float) -> None:
        entry = self._pending.pop(request_id, None)
        if entry is None:
            return
        logger.debug("request %s (%s) timed out after %.1fs", request_id, entry.request_type, window)
        if not entry.future.done():
            entry.future.set_exception(RequestTimeoutError(request_id, window))

    def _purge(self, request_id: int) -> Optional[PendingRequest]:
        entry = self._pending.pop(request_id, None)
        if entry is not None and entry.timeout_handle is not None:
            entry.timeout_handle.cancel()
        return entry

    def _discard_cancelled(self, request_id: int, future: asyncio.Future) -> None:
        if future.cancelled():
            self._purge(request_id)


__all__ = [
    "INITIAL_REQUEST_ID",
    "PendingHandle",
    "PendingRequest",
    "PendingRequestRegistry",
]
