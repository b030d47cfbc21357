# service/logging_utils.py
"""
Daily JSONL sinks for structured activity and error records.

Records arrive from many threads at once (industry walkers, job tasks, the
scheduler), so every write is a single O_APPEND write of one complete line and
size rotation is serialized by a process-wide lock.
"""

from __future__ import annotations

import contextlib
import datetime as _dt
import json
import os
import socket
import threading
from collections.abc import Iterable
from typing import Any

# ---- Configuration (read at call time so tests and the CLI can repoint it) ---

_DEFAULT_LOG_DIR = "/app/local/logs"

# Secret-like key substrings (case-insensitive)
_DEFAULT_REDACT_KEYS = frozenset({
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
})

_REDACTED = "***REDACTED***"

_HOSTNAME = socket.gethostname()
_PID = os.getpid()

_rotate_lock = threading.Lock()


# ---- Public API --------------------------------------------------------------


def write_activity_log(record: dict[str, Any]) -> None:
    """
    Append one structured activity record to today's activity file.
    Never mutates the passed-in dict; raises OSError on unrecoverable I/O errors.
    """
    _write_jsonl(_log_path_for_today(_prefix("ACTIVITY_LOG_PREFIX", "activity")), record)


def write_error_log(record: dict[str, Any]) -> None:
    """Append one structured error record to today's error file."""
    _write_jsonl(_log_path_for_today(_prefix("ERROR_LOG_PREFIX", "error")), record)


def get_activity_log_path() -> str:
    return _log_path_for_today(_prefix("ACTIVITY_LOG_PREFIX", "activity"))


def get_error_log_path() -> str:
    return _log_path_for_today(_prefix("ERROR_LOG_PREFIX", "error"))


def read_records(path: str) -> list[dict[str, Any]]:
    """Load every record of one JSONL file (diagnostics and tests)."""
    if not os.path.exists(path):
        return []
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def redact(record: dict[str, Any], keys: Iterable[str] | None = None) -> dict[str, Any]:
    """Redacted deep copy of `record`; keys containing any of `keys` get their values scrubbed."""
    return _redact_deep(record, tuple(keys or _DEFAULT_REDACT_KEYS))


# ---- Internal helpers --------------------------------------------------------


def _log_dir() -> str:
    return os.getenv("LOG_DIR", _DEFAULT_LOG_DIR)


def _prefix(env_name: str, default: str) -> str:
    return os.getenv(env_name, default)


def _max_bytes() -> int:
    # <= 0 disables size rotation; date rotation is inherent in the filename.
    try:
        return int(os.getenv("ACTIVITY_LOG_MAX_BYTES", "0"))
    except ValueError:
        return 0


def _log_path_for_today(prefix: str) -> str:
    today = _dt.date.today().isoformat()
    return os.path.join(_log_dir(), f"{prefix}-{today}.jsonl")


def _rotate_if_needed(path: str) -> None:
    limit = _max_bytes()
    if limit <= 0:
        return
    with _rotate_lock:
        try:
            if os.path.getsize(path) < limit:
                return
        except FileNotFoundError:
            return
        ts = _dt.datetime.now().strftime("%Y%m%d-%H%M%S-%f")
        with contextlib.suppress(FileNotFoundError):
            os.replace(path, f"{path}.{ts}")


def _redact_deep(value: Any, patterns: tuple[str, ...]) -> Any:
    if isinstance(value, dict):
        out: dict[Any, Any] = {}
        for k, v in value.items():
            if isinstance(k, str) and any(p in k.lower() for p in patterns):
                out[k] = _REDACTED
            else:
                out[k] = _redact_deep(v, patterns)
        return out
    if isinstance(value, (list, tuple)):
        return [_redact_deep(v, patterns) for v in value]
    if isinstance(value, str) and "bearer " in value.lower():
        scheme = value.split(" ", 1)[0]
        return f"{scheme} {_REDACTED}"
    return value


def _write_jsonl(path: str, record: dict[str, Any]) -> None:
    """
    Redact, stamp host/pid, serialize, then append one line.
    Datetimes and other non-JSON values are written with str().
    """
    os.makedirs(os.path.dirname(path), exist_ok=True)
    _rotate_if_needed(path)

    payload = _redact_deep(record, tuple(_DEFAULT_REDACT_KEYS))
    payload = {**payload, "_meta": {"host": _HOSTNAME, "pid": _PID, "thread": threading.current_thread().name}}
    data = (json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str) + "\n").encode("utf-8")

    fd = os.open(path, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o644)
    try:
        os.write(fd, data)
    finally:
        os.close(fd)
