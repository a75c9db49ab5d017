"""
Logging setup for the DRD service.

Every record carries the request id (set by RequestIdMiddleware) and the
actor ref (set once the bearer token is resolved), so a submission's
review trail can be followed through the logs of a single request.

Production emits one JSON object per line; development a compact text line.

    from drd.logging_config import get_logger
    logger = get_logger(__name__)
    logger.info("Transition applied", extra={"submission_id": str(sid), "action": "approve"})
"""

import json
import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_ref_var: ContextVar[Optional[str]] = ContextVar("actor_ref", default=None)

# Workflow fields are promoted to the front of JSON records in this order
_WORKFLOW_FIELDS = (
    "submission_id",
    "application_number",
    "action",
    "from_status",
    "to_status",
    "policy_id",
)

_STANDARD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName", "request_id", "actor_ref"}


def bind_actor(actor_ref: Optional[str]) -> None:
    """Attach the authenticated actor to all later records in this request."""
    actor_ref_var.set(actor_ref)


class LogContextFilter(logging.Filter):
    """Stamp request_id and actor_ref from context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"  # type: ignore[attr-defined]
        record.actor_ref = actor_ref_var.get() or "-"  # type: ignore[attr-defined]
        return True


def _jsonable(value: Any) -> Any:
    try:
        json.dumps(value)
        return value
    except (TypeError, ValueError):
        return str(value)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in ("request_id", "actor_ref"):
            value = getattr(record, key, "-")
            if value != "-":
                entry[key] = value

        extras = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and value is not None
        }
        for key in _WORKFLOW_FIELDS:
            if key in extras:
                entry[key] = _jsonable(extras.pop(key))
        for key, value in extras.items():
            entry[key] = _jsonable(value)

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


class DevFormatter(logging.Formatter):
    """One line per record, workflow fields appended as key=value."""

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-7s [%(name)s] req=%(request_id)s actor=%(actor_ref)s %(message)s",
            datefmt="%H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = [
            f"{key}={getattr(record, key)}"
            for key in _WORKFLOW_FIELDS
            if getattr(record, key, None) is not None
        ]
        return f"{line} {' '.join(fields)}" if fields else line


def configure_logging(
    *,
    log_level: str = "INFO",
    environment: str = "development",
    debug: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: DEBUG, INFO, WARNING or ERROR
        environment: 'production' selects the JSON formatter
        debug: forces DEBUG regardless of log_level
    """
    level = logging.DEBUG if debug else getattr(logging, log_level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)
    for existing in root.handlers[:]:
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(LogContextFilter())
    handler.setFormatter(JsonFormatter() if environment == "production" else DevFormatter())
    root.addHandler(handler)

    for noisy in ("uvicorn.access", "sqlalchemy.engine", "aiosqlite"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
