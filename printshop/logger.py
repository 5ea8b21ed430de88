"""
Structured logging for the production board.

Every record is one JSON object on stderr. Keyword context passed to a
ComponentLogger call becomes a top-level field of that object.
"""

import json
import logging
import os
import sys
from datetime import date, datetime, timezone
from enum import Enum

LOGGER_NAME = "printshop"

# LogRecord internals that never become JSON fields
RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime", "taskName"}


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return [_jsonable(item) for item in value]
    try:
        json.dumps(value)
    except (TypeError, ValueError):
        return str(value)
    return value


class JsonFormatter(logging.Formatter):
    """Render a record and its extra fields as a single JSON line."""

    def format(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
        }
        for key, value in record.__dict__.items():
            if key in RECORD_ATTRS or key.startswith("_"):
                continue
            payload[key] = _jsonable(value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level=None, stream=None):
    """
    Attach the JSON handler to the package logger once.

    Records go to stderr so stdout stays free for command output. Passing
    ``stream`` again redirects the existing handler.
    Level defaults to $PRINTSHOP_LOG_LEVEL, then INFO.
    """
    base = logging.getLogger(LOGGER_NAME)
    base.setLevel(level or os.environ.get("PRINTSHOP_LOG_LEVEL", "INFO").upper())
    handler = next((h for h in base.handlers if getattr(h, "_printshop", False)), None)
    if handler is None:
        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(JsonFormatter())
        handler._printshop = True
        base.addHandler(handler)
    elif stream is not None:
        handler.setStream(stream)
    return base


configure_logging()


def get_logger(component: str = "BOARD"):
    return ComponentLogger(component)


class ComponentLogger:
    """Thin wrapper tagging every record with a component and work order id."""

    def __init__(self, component):
        self.component = component
        self.logger = logging.getLogger(LOGGER_NAME)

    def _extra(self, work_order_id, context):
        extra = {"component": self.component}
        if work_order_id:
            extra["work_order_id"] = work_order_id
        for key, value in context.items():
            # logging refuses extras that shadow record attributes
            extra[f"ctx_{key}" if key in RECORD_ATTRS else key] = value
        return extra

    def debug(self, msg, work_order_id=None, **context):
        self.logger.debug(msg, extra=self._extra(work_order_id, context))

    def info(self, msg, work_order_id=None, **context):
        self.logger.info(msg, extra=self._extra(work_order_id, context))

    def warning(self, msg, work_order_id=None, **context):
        self.logger.warning(msg, extra=self._extra(work_order_id, context))

    def error(self, msg, work_order_id=None, exc_info=False, **context):
        self.logger.error(msg, extra=self._extra(work_order_id, context), exc_info=exc_info)
