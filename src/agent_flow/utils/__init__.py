"""Utility modules for agent-flow."""

from .id import generate_history_id, generate_session_id, generate_uuid, generate_uuid7, is_valid_uuid
from .logging import ColoredFormatter, LogEntry, LogLevel, StructuredFormatter, get_logger, setup_logging

__all__ = [
    # ID generation
    "generate_uuid",
    "generate_uuid7",
    "generate_session_id",
    "generate_history_id",
    "is_valid_uuid",
    # Logging
    "setup_logging",
    "get_logger",
    "LogLevel",
    "LogEntry",
    "StructuredFormatter",
    "ColoredFormatter",
]
