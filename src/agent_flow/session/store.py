"""Session and history persistence for agent-flow.

History is an append-only log per session: entries are appended and read
back in append order, never updated or deleted. Two stores are provided:
an in-memory store for tests and embedding, and a file store keeping one
JSON document per session and a JSON-lines history file next to it.
"""

import asyncio
import json
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ..models import AgentFlowRecord, HistoryEntry, Session
from ..utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T", bound=BaseModel)


class HistoryStore(ABC):
    """Persistence collaborator of the session manager."""

    @abstractmethod
    async def create_session(self, session: Session) -> Session:
        """Store a new session."""

    @abstractmethod
    async def get_session(self, session_id: str) -> Optional[Session]:
        """Get a session by id, or None."""

    @abstractmethod
    async def list_sessions(self) -> list[Session]:
        """List all sessions, oldest first."""

    @abstractmethod
    async def update_turn_count(self, session_id: str, turn_count: int) -> None:
        """Persist a session's step counter."""

    @abstractmethod
    async def append_history(self, entry: HistoryEntry) -> None:
        """Append one entry; it is visible to reads immediately."""

    @abstractmethod
    async def read_history(self, session_id: str) -> list[HistoryEntry]:
        """Read a session's entries in append order."""

    @abstractmethod
    async def get_agent_flow(self, agent_flow_id: str) -> Optional[AgentFlowRecord]:
        """Get a stored flow record, or None."""

    @abstractmethod
    async def save_agent_flow(self, record: AgentFlowRecord) -> None:
        """Store or replace a flow record."""


class InMemoryHistoryStore(HistoryStore):
    """Dictionary-backed store guarded by an asyncio lock."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._history: dict[str, list[HistoryEntry]] = {}
        self._flows: dict[str, AgentFlowRecord] = {}
        self._lock = asyncio.Lock()

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"session already exists: {session.id}")
            self._sessions[session.id] = session
            self._history[session.id] = []
            return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy() if session else None

    async def list_sessions(self) -> list[Session]:
        async with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at)

    async def update_turn_count(self, session_id: str, turn_count: int) -> None:
        async with self._lock:
            session = self._require(session_id)
            self._sessions[session_id] = session.model_copy(update={"turn_count": turn_count})

    async def append_history(self, entry: HistoryEntry) -> None:
        async with self._lock:
            self._require(entry.session_id)
            self._history[entry.session_id].append(entry)

    async def read_history(self, session_id: str) -> list[HistoryEntry]:
        async with self._lock:
            return list(self._history.get(session_id, []))

    async def get_agent_flow(self, agent_flow_id: str) -> Optional[AgentFlowRecord]:
        async with self._lock:
            return self._flows.get(agent_flow_id)

    async def save_agent_flow(self, record: AgentFlowRecord) -> None:
        async with self._lock:
            self._flows[record.id] = record

    def _require(self, session_id: str) -> Session:
        try:
            return self._sessions[session_id]
        except KeyError:
            raise KeyError(f"session not found: {session_id}") from None


class FileHistoryStore(HistoryStore):
    """File-based store.

    Layout under the base directory::

        sessions/<session_id>.json           session document
        sessions/<session_id>.history.jsonl  one HistoryEntry per line
        flows/<agent_flow_id>.json           flow record

    Documents are written to a temporary file and renamed into place;
    history lines are appended. A threading RLock serialises access.
    """

    def __init__(self, base_dir: Path | str) -> None:
        """Initialize the store.

        Args:
            base_dir: Data directory (created if missing)
        """
        self.base_dir = Path(base_dir)
        self.sessions_dir = self.base_dir / "sessions"
        self.flows_dir = self.base_dir / "flows"
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self.flows_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def session_file(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    def history_file(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.history.jsonl"

    def flow_file(self, agent_flow_id: str) -> Path:
        return self.flows_dir / f"{agent_flow_id}.json"

    async def create_session(self, session: Session) -> Session:
        with self._lock:
            path = self.session_file(session.id)
            if path.exists():
                raise ValueError(f"session already exists: {session.id}")
            self._save(session, path)
            self.history_file(session.id).touch()
            return session

    async def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._load(self.session_file(session_id), Session)

    async def list_sessions(self) -> list[Session]:
        with self._lock:
            sessions = []
            for path in self.sessions_dir.glob("*.json"):
                session = self._load(path, Session)
                if session is not None:
                    sessions.append(session)
            return sorted(sessions, key=lambda s: s.created_at)

    async def update_turn_count(self, session_id: str, turn_count: int) -> None:
        with self._lock:
            session = self._load(self.session_file(session_id), Session)
            if session is None:
                raise KeyError(f"session not found: {session_id}")
            self._save(session.model_copy(update={"turn_count": turn_count}), self.session_file(session_id))

    async def append_history(self, entry: HistoryEntry) -> None:
        with self._lock:
            if not self.session_file(entry.session_id).exists():
                raise KeyError(f"session not found: {entry.session_id}")
            with open(self.history_file(entry.session_id), "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
                f.flush()

    async def read_history(self, session_id: str) -> list[HistoryEntry]:
        with self._lock:
            path = self.history_file(session_id)
            if not path.exists():
                return []

            entries = []
            with open(path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        entries.append(HistoryEntry.model_validate_json(line))
                    except ValidationError as e:
                        raise ValueError(f"Failed to load history entry {path}:{line_no}: {e}") from e
            return entries

    async def get_agent_flow(self, agent_flow_id: str) -> Optional[AgentFlowRecord]:
        with self._lock:
            return self._load(self.flow_file(agent_flow_id), AgentFlowRecord)

    async def save_agent_flow(self, record: AgentFlowRecord) -> None:
        with self._lock:
            self._save(record, self.flow_file(record.id))

    @staticmethod
    def _save(model: BaseModel, path: Path) -> None:
        """Write a model atomically (temporary file, then rename)."""
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        temp_path.write_text(
            json.dumps(model.model_dump(mode="json"), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(path)

    @staticmethod
    def _load(path: Path, model_class: type[T]) -> Optional[T]:
        if not path.exists():
            return None
        try:
            return model_class.model_validate_json(path.read_text(encoding="utf-8"))
        except ValidationError as e:
            raise ValueError(f"Failed to load {model_class.__name__} from {path}: {e}") from e
