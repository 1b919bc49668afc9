"""Structured logging configuration for the application.

Production writes one JSON object per line; development writes colored,
human-readable lines. Checkpoint code attaches context through ``extra=``
(``device_id``, ``symbol``, ``level_index``), which both formats carry.
"""
import copy
import logging
import sys
import json
from datetime import datetime
from typing import Any, Dict
from bopomofo.config import settings

CONTEXT_FIELDS = ("device_id", "symbol", "level_index")
"""Record attributes picked up from ``extra=``."""

HANDLER_NAME = "bopomofo"


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Context fields present on ``record``, in a fixed order."""
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class JSONFormatter(logging.Formatter):
    """JSON lines for log shipping in production."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        log_data.update(record_context(record))

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Symbols stay readable instead of \u escapes
        return json.dumps(log_data, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colored console lines for development, with context appended in brackets."""

    COLORS = {
        "DEBUG": "\033[36m",      # Cyan
        "INFO": "\033[32m",       # Green
        "WARNING": "\033[33m",    # Yellow
        "ERROR": "\033[31m",      # Red
        "CRITICAL": "\033[35m",   # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # Other handlers see the same record; color a copy only
        record = copy.copy(record)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"

        line = super().format(record)
        context = record_context(record)
        if context:
            line += " [" + " ".join(f"{k}={v}" for k, v in context.items()) + "]"
        return line


def setup_logging(log_level: str = None) -> None:
    """Configure application-wide logging.

    Installs one stdout handler on the root logger; calling again replaces it.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   If None, INFO in production and DEBUG elsewhere.
    """
    if log_level is None:
        log_level = "INFO" if settings.is_production else "DEBUG"

    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(HANDLER_NAME)

    if settings.is_production:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for existing in list(root_logger.handlers):
        if existing.get_name() == HANDLER_NAME:
            root_logger.removeHandler(existing)
    root_logger.addHandler(handler)

    # Silence noisy third-party loggers
    for noisy in ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore", "PIL"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured: level={log_level}, "
        f"environment={settings.ENVIRONMENT}, "
        f"format={'JSON' if settings.is_production else 'colored'}"
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("Level passed", extra={"device_id": "dev_123", "symbol": "ㄅ"})
    """
    return logging.getLogger(name)
