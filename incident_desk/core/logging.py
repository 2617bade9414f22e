"""
Structured logging for the Incident Desk backend.

Provides a JSON formatter for log aggregation and a context variable that
tags every record emitted during an SLA breach-check pass with the pass id.
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime
from typing import Optional

from incident_desk.core.config import settings

logger = logging.getLogger(__name__)

# Id of the SLA pass currently executing in this task, if any
pass_id_ctx: ContextVar[Optional[str]] = ContextVar("sla_pass_id", default=None)

_RESERVED_ATTRS = frozenset((
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName", "pass_id",
))


def get_pass_id() -> Optional[str]:
    """Get the current pass ID from context."""
    return pass_id_ctx.get()


class PassIdFilter(logging.Filter):
    """Copies the current pass id onto the record for plain-text formatting."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.pass_id = pass_id_ctx.get() or "-"
        return True


class StructuredJsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format for easy parsing by log aggregation systems.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        pass_id = pass_id_ctx.get()
        if pass_id:
            log_data["pass_id"] = pass_id

        # Add extra fields from the record
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def configure_structured_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application-wide structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: If True, use JSON formatting; otherwise use standard format
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.addFilter(PassIdFilter())

    if json_format:
        console_handler.setFormatter(StructuredJsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - [%(pass_id)s] %(message)s")
        )

    root_logger.addHandler(console_handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if settings.DEBUG else logging.WARNING
    )

    logger.info("Structured logging configured", extra={"json_format": json_format})
