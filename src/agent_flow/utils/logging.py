"""Logging configuration for agent-flow.

Console output is coloured text by default; JSON lines are available for
log shipping. Turn-engine modules pass ``session_id``/``agent``/``node``
through ``extra=`` and both formatters render them.
"""

import json
import logging
import os
import sys
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel

# Record attributes promoted into the structured context
CONTEXT_FIELDS = ("session_id", "agent", "node", "tool", "stop_reason")


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEntry(BaseModel):
    """Structured log entry.

    Attributes:
        timestamp: ISO-8601 timestamp
        level: Log level name
        message: Rendered message
        logger: Logger name
        context: Turn-engine context plus source location
    """

    timestamp: str
    level: str
    message: str
    logger: str
    context: dict[str, Any] = {}


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    return {
        field: getattr(record, field)
        for field in CONTEXT_FIELDS
        if getattr(record, field, None) is not None
    }


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            message=record.getMessage(),
            logger=record.name,
            context={
                **_record_context(record),
                "module": record.module,
                "line": record.lineno,
            },
        )
        if record.exc_info:
            entry.context["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry.model_dump(), default=str)


class ColoredFormatter(logging.Formatter):
    """Coloured console formatter using ANSI escape codes."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_colors: bool = True) -> None:
        super().__init__()
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        level = record.levelname
        if self.use_colors:
            level = f"{self.COLORS.get(level, '')}{level}{self.RESET}"

        line = f"[{level}] {record.name}: {record.getMessage()}"
        context = _record_context(record)
        if context:
            line += " " + " ".join(f"{k}={v}" for k, v in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str | LogLevel | None = None,
    format_type: str = "text",
    use_colors: bool = True,
    log_file: str | None = None,
) -> None:
    """Configure the root logger.

    Args:
        level: Log level; defaults to $AGENT_FLOW_LOG_LEVEL or INFO
        format_type: "text" or "json"
        use_colors: Colour console output (text format only)
        log_file: Optional file receiving JSON records
    """
    if level is None:
        level = os.environ.get("AGENT_FLOW_LOG_LEVEL", "INFO")
    level_name = level.value if isinstance(level, LogLevel) else level.upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    if format_type == "json":
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(ColoredFormatter(use_colors=use_colors and sys.stderr.isatty()))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    # The HTTP stacks under openai/aiohttp are chatty at INFO
    for noisy in ("httpx", "httpcore", "openai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (usually __name__ of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
