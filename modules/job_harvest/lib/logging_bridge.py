from __future__ import annotations

import copy
import logging
from typing import Any

from service import logging_utils

# Keys that should never reach the JSONL sink verbatim
_REDACT_KEYS = {
    "password",
    "token",
    "apikey",
    "api_key",
    "secret",
    "authorization",
    "cookie",
}


def _redact_record(record: dict[str, Any]) -> dict[str, Any]:
    """
    Shallow-copy record and redact secret-like fields at top level.
    Deep redaction happens again in logging_utils before the write.
    """
    redacted = copy.copy(record)
    for k in list(redacted.keys()):
        lk = str(k).lower()
        if lk in _REDACT_KEYS or lk.endswith("_secret"):
            redacted[k] = "***REDACTED***"
    return redacted


def activity(record: dict[str, Any]) -> None:
    """
    Write an activity record (run start, summaries) to the daily activity JSONL.
    A failing sink is reported on the stdlib logger and never breaks the harvest.
    """
    payload = _redact_record(record)
    try:
        logging_utils.write_activity_log(payload)
    except OSError:
        logging.getLogger("job_harvest.activity").warning("activity sink failed: %s", payload, exc_info=True)


def error(record: dict[str, Any]) -> None:
    """Write an error record (failed pages/jobs/industries) to the daily error JSONL."""
    payload = _redact_record(record)
    try:
        logging_utils.write_error_log(payload)
    except OSError:
        logging.getLogger("job_harvest.error").error("error sink failed: %s", payload, exc_info=True)
