"""Session and history entities for agent-flow.

This module defines the conversation Session, the append-only HistoryEntry
and the closed enumerations that drive the turn state machine.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .message import HistoryMessage


class StopReason(str, Enum):
    """Terminal signal of a step; selects the next state-machine transition."""

    USER_INPUT = "user_input"
    TOOL_CALL = "tool_call"
    TOOL_RESULT = "tool_result"
    AGENT_DONE = "agent_done"
    MAX_TOKENS = "max_tokens"
    UNKNOWN = "unknown"

    @property
    def is_tool_exchange(self) -> bool:
        """Whether the agent is mid tool exchange (call issued or results pending review)."""
        return self in (StopReason.TOOL_CALL, StopReason.TOOL_RESULT)


class NodeType(str, Enum):
    START = "start"
    AGENT = "agent"


class ModelProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class Session(BaseModel):
    """One conversation instance.

    Attributes:
        id: Session identifier
        created_by: Owning user id
        agent_flow_id: Flow configuration bound to this session
        title: Display title
        turn_count: Number of completed steps, monotonically increasing
        created_at: Creation timestamp
    """

    id: str = Field(..., description="Session identifier")
    created_by: str = Field(..., description="Owning user id")
    agent_flow_id: str = Field(..., description="Bound flow configuration id")
    title: str = Field(default="New Session", description="Display title")
    turn_count: int = Field(default=0, ge=0, description="Completed step counter")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")


class HistoryEntry(BaseModel):
    """One append-only step of a session transcript.

    Entries are never mutated; the last entry decides what happens next.

    Attributes:
        id: Time-ordered identifier
        session_id: Owning session
        content: Provider-tagged message payload
        stop_reason: Stop reason of the step that produced this entry
        node: Flow node that produced the entry
        created_at: Append timestamp
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Time-ordered identifier")
    session_id: str = Field(..., description="Owning session id")
    content: HistoryMessage = Field(..., description="Provider-tagged message payload")
    stop_reason: StopReason = Field(..., description="Stop reason of the step")
    node: str = Field(..., description="Flow node id that produced the entry")
    created_at: datetime = Field(default_factory=datetime.now, description="Append timestamp")


class AgentFlowRecord(BaseModel):
    """Persisted flow configuration record.

    The config payload is kept as raw data and validated by the loader so
    that this module does not depend on the configuration schemas.
    """

    id: str = Field(..., description="Flow identifier")
    name: str = Field(..., description="Flow display name")
    config: dict = Field(..., description="Raw AgentFlowConfig data")
    description: Optional[str] = Field(None, description="Flow description")
