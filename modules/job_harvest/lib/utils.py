from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


def truthy(v: Any) -> bool:
    """
    Normalize common truthy inputs from env/kwargs.
    Accepts bools or strings like: '1', 'true', 'yes', 'on'.
    """
    if isinstance(v, bool):
        return v
    if v is None:
        return False
    if isinstance(v, (int, float)):
        return v != 0
    s = str(v).strip().lower()
    return s in {"1", "true", "yes", "on", "y", "t"}


def now_iso() -> str:
    """
    UTC ISO-8601 timestamp with 'Z' suffix.
    """
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def format_duration(millis: int) -> str:
    """
    Human-readable duration for console lines:
        65012 -> "1 min 5 s 12 ms"
        5012  -> "5 s 12 ms"
        12    -> "12 ms"
    """
    millis = max(int(millis), 0)
    minutes = millis // 60_000
    seconds = (millis // 1000) % 60
    ms = millis % 1000

    if minutes > 0:
        return f"{minutes} min {seconds} s {ms} ms"
    if seconds > 0:
        return f"{seconds} s {ms} ms"
    return f"{ms} ms"
