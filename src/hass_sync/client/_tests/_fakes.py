"""In-memory stand-ins for ``websockets.connect`` used by the client tests.

``FakeServer`` is passed as the ``connector`` of a ``Connection``; every
connect attempt yields a ``FakeSocket`` whose inbound frames are scripted with
``push`` and whose outbound frames are collected in ``sent``.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, List, Mapping, Tuple

_CLOSE = object()


class FakeSocket:
    def __init__(self, url: str) -> None:
        self.url = url
        self.sent: List[str] = []
        self.closed = False
        self._incoming: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self) -> "FakeSocket":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def __aiter__(self) -> "FakeSocket":
        return self

    async def __anext__(self) -> str:
        item = await self._incoming.get()
        if item is _CLOSE:
            self.closed = True
            raise StopAsyncIteration
        return item

    async def send(self, text: str) -> None:
        if self.closed:
            raise ConnectionResetError("socket closed")
        self.sent.append(text)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if not self.closed:
            self.closed = True
            self._incoming.put_nowait(_CLOSE)

    # --- Test controls -----------------------------------------------------------
    def push(self, payload: Mapping[str, Any] | str) -> None:
        text = payload if isinstance(payload, str) else json.dumps(payload)
        self._incoming.put_nowait(text)

    def drop(self) -> None:
        """Simulate the remote end going away."""
        self._incoming.put_nowait(_CLOSE)

    @property
    def sent_frames(self) -> List[dict]:
        return [json.loads(text) for text in self.sent]

    def sent_of_type(self, frame_type: str) -> List[dict]:
        return [frame for frame in self.sent_frames if frame.get("type") == frame_type]


class _RefusedConnect:
    async def __aenter__(self) -> None:
        raise ConnectionRefusedError("connection refused")

    async def __aexit__(self, *exc_info: Any) -> None:
        return None


class FakeServer:
    def __init__(self, *, refuse: int = 0) -> None:
        self.refuse = refuse
        self.sockets: List[FakeSocket] = []
        self.connect_calls: List[Tuple[str, dict]] = []

    def __call__(self, url: str, **kwargs: Any) -> Any:
        self.connect_calls.append((url, kwargs))
        if self.refuse > 0:
            self.refuse -= 1
            return _RefusedConnect()
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket

    @property
    def latest(self) -> FakeSocket:
        return self.sockets[-1]


async def settle(rounds: int = 10) -> None:
    """Let queued callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)
