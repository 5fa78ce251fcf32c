"""
Logging configuration

Two output formats, picked by ``LOG_FORMAT``:

    text  "time | LEVEL | logger | message", with the structured context of
          pipeline errors (``extra={"error_context": ...}``) appended
    json  one JSON object per line, error context as a nested field
"""

import json
import logging
import sys
from typing import Optional
from core.config import settings

TEXT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

NOISY_LOGGERS = ("sqlalchemy.engine", "sqlalchemy.pool", "httpx", "httpcore", "aiosqlite", "apscheduler")


class ContextTextFormatter(logging.Formatter):
    """Text lines with the error type and context of pipeline errors"""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        error_context = getattr(record, "error_context", None)
        if error_context:
            context = {
                k: v for k, v in error_context.get("context", {}).items()
                if k != "error_timestamp"
            }
            details = ", ".join(f"{k}={v}" for k, v in context.items())
            line += f" | {error_context.get('error_type')}"
            if details:
                line += f" [{details}]"
        return line


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record, DATE_FORMAT),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        error_context = getattr(record, "error_context", None)
        if error_context:
            entry["error_context"] = error_context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: Optional[str] = None):
    """Configure application logging"""

    level_name = (level or settings.LOG_LEVEL).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.LOG_FORMAT.lower() == "json":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(ContextTextFormatter(TEXT_FORMAT, datefmt=DATE_FORMAT))

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=[handler], force=True)

    # Set library logging to WARNING to reduce noise
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at {level_name} level ({settings.LOG_FORMAT})")
