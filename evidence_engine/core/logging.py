"""Structured logging configuration for the evidence engine."""

import logging
import sys
from typing import Any

# Context fields promoted to top-level keys when passed through ``extra``
CONTEXT_FIELDS = ("source_file", "chunk_id")


def _format_value(value: Any) -> str:
    text = str(value)
    if not text or any(c.isspace() for c in text) or "=" in text:
        return repr(text)
    return text


class StructuredFormatter(logging.Formatter):
    """key=value structured log formatter."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as structured output."""
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "message": record.getMessage(),
        }

        for name in CONTEXT_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        # Free-form fields from log_with_context
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        line = " ".join(f"{k}={_format_value(v)}" for k, v in log_data.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level() -> int:
    try:
        from evidence_engine.core.config import get_settings

        settings = get_settings()
    except Exception:
        # Settings unreadable (e.g. invalid env); keep logging usable
        return logging.INFO

    level = logging.getLevelNamesMapping().get((settings.LOG_LEVEL or "").upper())
    if level is not None:
        return level
    return logging.DEBUG if settings.ENGINE_ENV == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a configured logger instance.

    Level comes from LOG_LEVEL when set, otherwise DEBUG in the dev
    environment and INFO elsewhere.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_resolve_level())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields; source_file and chunk_id become top-level keys
    """
    extra: dict[str, Any] = {name: kwargs.pop(name) for name in CONTEXT_FIELDS if name in kwargs}
    extra["extra_data"] = kwargs
    logger.log(level, msg, extra=extra)
