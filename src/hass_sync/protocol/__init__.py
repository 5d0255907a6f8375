"""Wire protocol definitions for the Home Assistant websocket API."""

from __future__ import annotations

from .messages import *  # noqa: F401,F403
from .parser import FrameParser, encode_frame

__all__ = [name for name in globals().keys() if not name.startswith("_")]
