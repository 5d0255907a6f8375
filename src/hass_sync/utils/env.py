from __future__ import annotations

import os
from typing import Optional


def env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.getenv(name)
    return v if v is not None else default


def env_bool(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    s = v.strip().lower()
    if s in ("1", "true", "yes", "on", "debug"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    return default


def env_float(name: str, default: Optional[float]) -> Optional[float]:
    """Return the float value of ``name``; ``none``/``off`` map to ``None``."""

    v = os.getenv(name)
    if not v:
        return default
    s = v.strip().lower()
    if s in ("none", "off", "disabled"):
        return None
    try:
        return float(s)
    except ValueError:
        return default
