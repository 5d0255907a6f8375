"""Cancellable delayed callbacks on the running event loop."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional


logger = logging.getLogger(__name__)


class ScheduledTask:
    """Run ``callback`` once after a delay unless cancelled first.

    Re-arming replaces any pending run, so at most one run is outstanding.
    """

    def __init__(self, callback: Callable[[], None], *, name: str = "scheduled") -> None:
        self._callback = callback
        self._name = name
        self._handle: Optional[asyncio.TimerHandle] = None
        self._due: Optional[float] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def delay_remaining(self) -> Optional[float]:
        if self._handle is None or self._due is None:
            return None
        return max(0.0, self._due - asyncio.get_running_loop().time())

    def arm(self, delay_s: float, *, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self.cancel()
        target_loop = loop or asyncio.get_running_loop()
        self._due = target_loop.time() + max(0.0, delay_s)
        self._handle = target_loop.call_later(max(0.0, delay_s), self._fire)
        logger.debug("%s armed for %.2fs", self._name, delay_s)

    def cancel(self) -> bool:
        handle = self._handle
        self._handle = None
        self._due = None
        if handle is None:
            return False
        handle.cancel()
        logger.debug("%s cancelled", self._name)
        return True

    def _fire(self) -> None:
        self._handle = None
        self._due = None
        try:
            self._callback()
        except Exception:
            logger.exception("%s callback failed", self._name)


__all__ = ["ScheduledTask"]
