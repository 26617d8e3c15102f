"""Turn state machine for agent-flow.

The SessionManager drives one session. The stop reason of the last history
entry fully determines the next step:

    (no history) / user_input   first agent runs a completion
    tool_call                   the same agent executes the requested tools
    tool_result                 the same agent runs a completion
    agent_done                  turn ends (no successor) or hand-off (not supported)
    max_tokens / unknown        cannot continue

Every successful step appends exactly one entry and bumps the session's
turn counter. A failed step appends nothing.
"""

from types import TracebackType
from typing import Awaitable, Callable, Optional

from ..agent import Agent
from ..config.schemas import AgentConfig, AgentFlowConfig, Node
from ..errors import InvalidContinuation, TooManyLoopsError
from ..flow import START_NODE_ID, FlowGraph
from ..models import CallerContext, HistoryEntry, HistoryMessage, Session, StopReason
from ..streaming import StreamEvent, StreamObserver, emit_to
from ..utils import generate_history_id, get_logger
from .store import HistoryStore

logger = get_logger(__name__)

DEFAULT_MAX_LOOPS = 10

AgentFactory = Callable[[str, AgentConfig], Awaitable[Agent]]


class SessionManager:
    """Stateful controller of one session's turns.

    A manager is driven by one caller at a time; steps never run
    concurrently.

    Attributes:
        session: Cached session record
        graph: Flow graph of the session's flow
        agents: Agents by name, owned by this manager
        store: Persistence collaborator
    """

    def __init__(
        self,
        session: Session,
        graph: FlowGraph,
        agents: dict[str, Agent],
        store: HistoryStore,
        history: Optional[list[HistoryEntry]] = None,
    ) -> None:
        self.session = session
        self.graph = graph
        self.agents = agents
        self.store = store
        self._history: list[HistoryEntry] = list(history or [])

    @classmethod
    async def initialize(
        cls,
        session: Session,
        config: AgentFlowConfig,
        store: HistoryStore,
        agent_factory: AgentFactory,
    ) -> "SessionManager":
        """Load history and build the agents of every agent node.

        Args:
            session: Session record
            config: Flow configuration of the session
            store: Persistence collaborator
            agent_factory: Builds a connected agent from its name and config

        Returns:
            Ready session manager

        Raises:
            ConfigError: If the flow graph is invalid
            ToolConnectionError: If an agent's tool server is unreachable
        """
        graph = FlowGraph(config)
        history = await store.read_history(session.id)

        agents: dict[str, Agent] = {}
        try:
            for node in graph.agent_nodes():
                name = node.agent_name
                if name in agents:
                    continue
                agents[name] = await agent_factory(name, config.agents[name])
        except BaseException:
            for agent in agents.values():
                await agent.close()
            raise

        logger.info(
            f"Session {session.id} initialised with {len(history)} entries and {len(agents)} agents",
            extra={"session_id": session.id},
        )
        return cls(session, graph, agents, store, history)

    @property
    def history(self) -> list[HistoryEntry]:
        return list(self._history)

    @property
    def caller(self) -> CallerContext:
        return CallerContext(user_id=self.session.created_by, session_id=self.session.id)

    def _messages(self) -> list[HistoryMessage]:
        return [entry.content for entry in self._history]

    def _agent_for(self, node: Node) -> Agent:
        if not node.is_agent:
            raise InvalidContinuation(f"node {node.id} is not an agent node")
        agent = self.agents.get(node.agent_name)
        if agent is None:
            raise InvalidContinuation(f"agent {node.agent_name} not found in session manager")
        return agent

    def _node_of(self, entry: HistoryEntry) -> Node:
        node = self.graph.get_node(entry.node)
        if node is None:
            raise InvalidContinuation(f"history entry {entry.id} references unknown node {entry.node}")
        return node

    def is_human_turn(self) -> bool:
        """Whether the next step is waiting for human input.

        True on an empty history, or when the last entry was produced by an
        agent node and the agent is not in the middle of a tool exchange.
        """
        if not self._history:
            return True
        last = self._history[-1]
        node = self.graph.get_node(last.node)
        if node is None or not node.is_agent:
            return False
        return not last.stop_reason.is_tool_exchange

    async def human_input(self, text: str) -> HistoryEntry:
        """Append the human's message.

        The message uses the provider variant of the agent that will read it.

        Args:
            text: Human message

        Returns:
            Appended entry

        Raises:
            InvalidContinuation: If it is not the human's turn
        """
        if not self.is_human_turn():
            last = self._history[-1]
            raise InvalidContinuation(
                f"not at start of flow, cannot accept human input "
                f"(last node {last.node}, stop reason {last.stop_reason.value})"
            )

        agent = self._agent_for(self.graph.first_agent_node)
        entry = await self._append(agent.backend.human_message(text), StopReason.USER_INPUT, START_NODE_ID)
        logger.info("Human input received", extra={"session_id": self.session.id, "node": START_NODE_ID})
        return entry

    async def continue_turn(self, observer: Optional[StreamObserver] = None) -> Optional[HistoryEntry]:
        """Perform one state-machine step.

        Args:
            observer: Receives streamed deltas of a completion step

        Returns:
            The appended entry, or None when the turn ended without a step

        Raises:
            InvalidContinuation: If the history cannot be continued
            AgentFlowError: If the agent step fails; nothing is appended
        """
        last = self._history[-1] if self._history else None
        stop_reason = last.stop_reason if last else StopReason.USER_INPUT
        logger.debug(
            f"Continuing after {stop_reason.value}",
            extra={"session_id": self.session.id, "stop_reason": stop_reason.value},
        )

        if stop_reason == StopReason.USER_INPUT:
            node = self.graph.first_agent_node
            agent = self._agent_for(node)
            message, new_reason = await agent.run_completion(self._messages(), observer)

        elif stop_reason == StopReason.TOOL_CALL:
            node = self._node_of(last)
            agent = self._agent_for(node)
            message = await agent.execute_tools(last.content, self.caller)
            new_reason = StopReason.TOOL_RESULT

        elif stop_reason == StopReason.TOOL_RESULT:
            node = self._node_of(last)
            agent = self._agent_for(node)
            message, new_reason = await agent.run_completion(self._messages(), observer)

        elif stop_reason == StopReason.AGENT_DONE:
            successor = self.graph.successor(last.node)
            if successor is None:
                logger.info(
                    "No next node, turn is complete",
                    extra={"session_id": self.session.id, "node": last.node},
                )
                return None
            if not successor.is_agent:
                raise InvalidContinuation(f"next node {successor.id} is not an agent node, cannot continue turn")
            raise InvalidContinuation(f"hand-off from {last.node} to agent node {successor.id} is not supported")

        else:
            raise InvalidContinuation(f"cannot continue turn, last history stop reason is {stop_reason.value}")

        entry = await self._append(message, new_reason, node.id)
        self.session = self.session.model_copy(update={"turn_count": self.session.turn_count + 1})
        await self.store.update_turn_count(self.session.id, self.session.turn_count)

        logger.info(
            f"Agent {agent.name} step finished with {new_reason.value}",
            extra={"session_id": self.session.id, "agent": agent.name, "node": node.id, "stop_reason": new_reason.value},
        )
        return entry

    async def run_turn(
        self,
        text: str,
        observer: Optional[StreamObserver] = None,
        max_loops: int = DEFAULT_MAX_LOOPS,
    ) -> list[HistoryEntry]:
        """Run a full turn: human input, then steps until the human's turn.

        Args:
            text: Human message
            observer: Receives deltas and a final ``complete`` event
            max_loops: Maximum number of steps before giving up

        Returns:
            Entries appended during the turn, human input first

        Raises:
            TooManyLoopsError: If the turn does not return to the human in time
        """
        appended = [await self.human_input(text)]

        loops = 0
        while not self.is_human_turn():
            if loops >= max_loops:
                logger.error(
                    f"Turn exceeded {max_loops} steps",
                    extra={"session_id": self.session.id},
                )
                raise TooManyLoopsError(max_loops)
            entry = await self.continue_turn(observer)
            loops += 1
            if entry is None:
                break
            appended.append(entry)

        await emit_to(
            observer,
            StreamEvent.complete(session_id=self.session.id, turn_count=self.session.turn_count),
        )
        return appended

    async def _append(self, message: HistoryMessage, stop_reason: StopReason, node_id: str) -> HistoryEntry:
        entry = HistoryEntry(
            id=generate_history_id(),
            session_id=self.session.id,
            content=message,
            stop_reason=stop_reason,
            node=node_id,
        )
        await self.store.append_history(entry)
        self._history.append(entry)
        return entry

    async def close(self) -> None:
        """Close every agent and its tool servers."""
        for agent in self.agents.values():
            await agent.close()
        self.agents.clear()

    async def __aenter__(self) -> "SessionManager":
        return self

    async def __aexit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        await self.close()
