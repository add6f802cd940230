# dlm_agent/logger.py
"""
Logging setup for the dlm agent.

Provides a text formatter and a JSON formatter and configures the package
logger once per process.
"""

from datetime import datetime
import json
import logging
import sys

PACKAGE_LOGGER = "dlm_agent"

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class StructuredFormatter(logging.Formatter):
    """Single-line text format with ``extra`` fields appended as key=value."""

    def __init__(self, fmt: str | None = None, datefmt: str | None = None):
        if fmt is None:
            fmt = "%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
        super().__init__(fmt, datefmt)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)

        extras = " | ".join(f"{k}={v}" for k, v in _extra_fields(record).items())
        return f"{message} | {extras}" if extras else message


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for log shippers."""

    def __init__(self, include_exception: bool = True):
        super().__init__()
        self.include_exception = include_exception

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON formatted log message.
        """
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if self.include_exception and record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        # extra= fields, never overriding the standard keys
        for key, value in _extra_fields(record).items():
            log_data.setdefault(key, value)

        return json.dumps(log_data, default=str, ensure_ascii=False)


def setup_logging(level: str = "INFO", json_format: bool = False) -> logging.Logger:
    """
    Configure the package logger and return it.

    Calling this again replaces the handler, so the last call wins.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else StructuredFormatter())
    logger.addHandler(handler)

    return logger
