"""
JSON-structured logging helpers: every line carries ts + event, plus whatever fields
the caller passes (run_id, batch, symbol, ...) so batch runs can be grepped/replayed.
"""
import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone


def get_logger(name: str = "stockpulse"):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    log = logging.getLogger(name)
    if log.handlers:
        return log
    log.setLevel(level)
    h = logging.StreamHandler(sys.stdout)
    h.setLevel(level)
    log.addHandler(h)
    log.propagate = False
    return log


def new_run_id() -> str:
    return os.getenv("RUN_ID") or uuid.uuid4().hex[:12]


def _payload(event: str, fields: dict) -> dict:
    return {
        "ts": datetime.now(timezone.utc).isoformat(),
        "event": event,
        **fields,
    }


def log_event(log, event: str, **fields):
    log.info(json.dumps(_payload(event, fields), default=str))


def log_warning(log, event: str, **fields):
    log.warning(json.dumps(_payload(event, fields), default=str))


def log_error(log, event: str, exc: Exception, **fields):
    payload = _payload(event, {
        "error_type": type(exc).__name__,
        "error": str(exc),
        **fields,
    })
    log.error(json.dumps(payload, default=str))
