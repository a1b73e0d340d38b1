"""
Structured Logging Configuration Module

Banking services log through ``log_action`` so every line carries who did
what to which resource. ``JSONFormatter`` renders those fields as one JSON
object per line; the text format is meant for local development.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Optional


# Record attributes that log_action attaches and JSONFormatter emits
CONTEXT_FIELDS = ("correlation_id", "user_id", "action", "resource", "extra")

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields are omitted when unset"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", logger_name: str = "retail_banking",
                  log_format: str = "json", log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the application logger

    Calling it again replaces the previous handler, so reconfiguring in tests
    or on reload does not duplicate output.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        logger_name: Application logger; ``retail_banking.*`` loggers inherit from it
        log_format: "json" or "text"
        log_file: Write here instead of stderr
    """
    logger = logging.getLogger(logger_name)
    for old in list(logger.handlers):
        logger.removeHandler(old)

    handler = logging.FileHandler(log_file) if log_file else logging.StreamHandler()
    handler.setFormatter(JSONFormatter() if log_format == "json" else logging.Formatter(TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger


def get_logger(name: str = "retail_banking") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None) -> None:
    """
    Log a message with structured context

    Args:
        logger: Logger to write to
        level: "debug", "info", "warning", "error" or "critical"
        message: Human-readable message
        user_id: Actor
        action: Operation name, e.g. "deposit"
        resource: Affected record, e.g. "account:<id>"
        correlation_id: Request tracing ID
        extra: Additional structured data
    """
    context = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    logger.log(
        getattr(logging, level.upper()),
        message,
        extra={name: value for name, value in context.items() if value},
        stacklevel=2
    )
