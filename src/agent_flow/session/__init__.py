"""Session management for agent-flow."""

from .manager import DEFAULT_MAX_LOOPS, SessionManager
from .service import AgentService
from .store import FileHistoryStore, HistoryStore, InMemoryHistoryStore

__all__ = [
    "AgentService",
    "SessionManager",
    "DEFAULT_MAX_LOOPS",
    "HistoryStore",
    "InMemoryHistoryStore",
    "FileHistoryStore",
]
