"""Translate ``call_service`` replies into results or ``RemoteActionError``."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

from hass_sync.errors import RemoteActionError
from hass_sync.protocol import ResultFrame, build_call_service

from .pending_requests import PendingHandle


logger = logging.getLogger(__name__)

SendRequest = Callable[[Mapping[str, Any]], PendingHandle]


def raise_for_result(frame: ResultFrame) -> Any:
    """Return ``frame.result`` or raise ``RemoteActionError`` for a failed reply."""

    if frame.success:
        return frame.result
    error = frame.error
    code = error.code if error is not None else "unknown_error"
    message = error.message if error is not None else ""
    raise RemoteActionError(code, message, request_id=frame.id)


class ActionInvoker:
    def __init__(self, send: SendRequest) -> None:
        self._send = send

    async def invoke_action(
        self,
        category: str,
        name: str,
        payload: Optional[Mapping[str, Any]] = None,
        *,
        target: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        """Call ``category.name`` remotely and return the server's result payload.

        Registry errors (timeout, not connected, closed) propagate unchanged.
        """

        handle = self._send(build_call_service(category, name, payload, target=target))
        frame = await handle
        try:
            return raise_for_result(frame)
        except RemoteActionError as exc:
            logger.info("action %s.%s failed (request %s): %s", category, name, handle.id, exc)
            raise


__all__ = ["ActionInvoker", "raise_for_result"]
