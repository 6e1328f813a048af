"""
Logging for the badge service.

Every record is stamped with the id and path of the badge request that
produced it, even when it comes from a cache callback that fires after the
request's own task has returned. Output is one JSON object per line by
default; ``LOG_FORMAT=text`` gives readable lines for local runs.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import uuid
from datetime import datetime, timezone

request_id_ctx: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_id", default="-"
)
request_path_ctx: contextvars.ContextVar[str] = contextvars.ContextVar(
    "request_path", default="-"
)

# Passed through ``extra=`` by the cache and the API clients.
EXTRA_FIELDS = ("cache_key", "url", "ttl")

TEXT_FORMAT = "%(asctime)s %(levelname)-7s [%(request_id)s %(request_path)s] %(name)s: %(message)s"

# Per-request logging from these is redundant with the cache's hit/miss lines.
QUIET_LOGGERS = ("httpx", "httpcore")


class RequestContextFilter(logging.Filter):
    """Copy the current badge request's id and path onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_ctx.get()
        record.request_path = request_path_ctx.get()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", "-"),
        }
        path = getattr(record, "request_path", "-")
        if path != "-":
            entry["path"] = path
        entry.update(
            (name, getattr(record, name))
            for name in EXTRA_FIELDS
            if getattr(record, name, None) is not None
        )
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def build_handler(fmt: str = "json", stream=None) -> logging.Handler:
    """Stream handler with the request filter and the chosen formatter."""
    handler = logging.StreamHandler(stream or sys.stdout)
    handler.addFilter(RequestContextFilter())
    if fmt.lower() == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    elif fmt.lower() == "json":
        handler.setFormatter(JSONFormatter())
    else:
        raise ValueError(f"Unknown log format: {fmt!r}")
    return handler


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    """Replace the root logger's handlers with a single configured one."""
    root = logging.getLogger()
    root.setLevel(level.upper())
    for h in root.handlers[:]:
        root.removeHandler(h)
    root.addHandler(build_handler(fmt))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request(path: str) -> str:
    """Start a request context: new short id, plus the path being served."""
    rid = uuid.uuid4().hex[:12]
    request_id_ctx.set(rid)
    request_path_ctx.set(path)
    return rid
