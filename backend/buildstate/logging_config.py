# backend/buildstate/logging_config.py
from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .config import settings
from .middleware.request_id import get_request_id

# keys callers pass through `extra=` that end up as top-level JSON fields
EXTRA_FIELDS = (
    "user_id",
    "role",
    "property_id",
    "unit_id",
    "job_id",
    "inspection_id",
    "notification_id",
    "method",
    "path",
    "status_code",
    "latency_ms",
)


class RequestContextFilter(logging.Filter):
    """Stamps the current request id (if any) onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = get_request_id()
        return True


class JsonFormatter(logging.Formatter):
    def __init__(self, *, env: str) -> None:
        super().__init__()
        self.env = env

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "env": self.env,
            "message": record.getMessage(),
        }

        rid = getattr(record, "request_id", None)
        if rid:
            payload["request_id"] = rid

        for k in EXTRA_FIELDS:
            v = getattr(record, k, None)
            if v is not None:
                payload[k] = v

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Routes everything through one stdout handler emitting JSON lines.

    Safe to call more than once: existing root handlers are replaced, which
    matters when uvicorn reloads the app module.
    """
    lvl = (level or settings.log_level).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(env=settings.app_env))
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)
    root.addHandler(handler)
    root.setLevel(lvl)

    logging.getLogger("uvicorn.access").setLevel(lvl)
    logging.getLogger("sqlalchemy.engine").setLevel(settings.sql_log_level.upper())
    logging.getLogger("celery").setLevel(lvl)
