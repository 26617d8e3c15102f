"""Flow graph for agent-flow.

The flow graph is the static node configuration of a session: one ``start``
node (the human entry point) followed by agent nodes. Nodes are held in a
networkx DiGraph keyed by node id; today every node has at most one successor,
but the structure is a general node-to-successor mapping.
"""

from typing import Any, Optional

import networkx as nx

from ..config.schemas import AgentFlowConfig, Node
from ..errors import ConfigError

START_NODE_ID = "start"


class FlowGraph:
    """Validated, read-only view of an AgentFlowConfig.

    Attributes:
        config: Source flow configuration
        graph: Directed graph of node ids
        nodes: Nodes by id
    """

    def __init__(self, config: AgentFlowConfig) -> None:
        """Build and validate the graph.

        Args:
            config: Flow configuration

        Raises:
            ConfigError: If the graph is malformed
        """
        self.config = config
        self.graph: nx.DiGraph = nx.DiGraph()
        self.nodes: dict[str, Node] = {}
        self._load(config)
        self._validate()

    def _load(self, config: AgentFlowConfig) -> None:
        for node in config.nodes:
            if node.id in self.nodes:
                raise ConfigError(f"duplicate node id: {node.id}")
            self.nodes[node.id] = node
            self.graph.add_node(node.id, type=node.type.value, agent=node.agent_name)

        for node in config.nodes:
            if node.next is None:
                continue
            if node.next not in self.nodes:
                raise ConfigError(f"node '{node.id}' points to unknown node '{node.next}'")
            self.graph.add_edge(node.id, node.next)

    def _validate(self) -> None:
        start_nodes = [node for node in self.nodes.values() if node.is_start]
        if len(start_nodes) != 1:
            raise ConfigError(f"flow must have exactly one start node, found {len(start_nodes)}")
        if start_nodes[0].id != START_NODE_ID:
            raise ConfigError(f"start node must have id '{START_NODE_ID}', got '{start_nodes[0].id}'")

        for node in self.nodes.values():
            if node.is_agent and node.agent_name not in self.config.agents:
                raise ConfigError(f"node '{node.id}' references unknown agent '{node.agent_name}'")

        first = self.successor(START_NODE_ID)
        if first is None:
            raise ConfigError("start node has no next node")
        if not first.is_agent:
            raise ConfigError(f"next node {first.id} is not an agent node")

        if not nx.is_directed_acyclic_graph(self.graph):
            cycles = list(nx.simple_cycles(self.graph))
            raise ConfigError(f"flow graph contains cycles: {cycles}")

    @property
    def start_node(self) -> Node:
        return self.nodes[START_NODE_ID]

    @property
    def first_agent_node(self) -> Node:
        """The agent node that receives human input."""
        node = self.successor(START_NODE_ID)
        assert node is not None  # checked in _validate
        return node

    def get_node(self, node_id: str) -> Optional[Node]:
        """Get a node by id.

        Args:
            node_id: Node identifier

        Returns:
            Node or None if not found
        """
        return self.nodes.get(node_id)

    def successor(self, node_id: str) -> Optional[Node]:
        """Get the single successor of a node.

        Args:
            node_id: Node identifier

        Returns:
            Successor node or None at the end of the chain
        """
        successors = list(self.graph.successors(node_id))
        if not successors:
            return None
        return self.nodes[successors[0]]

    def agent_nodes(self) -> list[Node]:
        """List agent nodes in configuration order."""
        return [node for node in self.config.nodes if node.is_agent]

    def get_execution_path(self, start_node: str = START_NODE_ID) -> list[str]:
        """Follow successors from a node.

        Args:
            start_node: Node to start from

        Returns:
            Node ids in execution order
        """
        path: list[str] = []
        current: Optional[str] = start_node
        while current is not None and current not in path:
            path.append(current)
            nxt = self.successor(current)
            current = nxt.id if nxt else None
        return path

    def get_node_info(self, node_id: str) -> Optional[dict[str, Any]]:
        """Get graph attributes of a node.

        Args:
            node_id: Node identifier

        Returns:
            Node attributes or None if not found
        """
        return self.graph.nodes.get(node_id)

    def visualize(self, format: str = "mermaid") -> str:
        """Render the flow graph.

        Args:
            format: "mermaid" or "dot"

        Returns:
            Diagram source
        """
        if format == "mermaid":
            return self._to_mermaid()
        elif format == "dot":
            return self._to_dot()
        else:
            raise ValueError(f"Unsupported format: {format}")

    def _label(self, node: Node) -> str:
        return f"{node.id} ({node.agent_name})" if node.is_agent else node.id

    def _to_mermaid(self) -> str:
        lines = ["graph TD"]
        for node in self.config.nodes:
            if node.is_start:
                lines.append(f"  {node.id}(({self._label(node)}))")
            else:
                lines.append(f"  {node.id}[{self._label(node)}]")
        for from_node, to_node in self.graph.edges():
            lines.append(f"  {from_node} --> {to_node}")
        return "\n".join(lines)

    def _to_dot(self) -> str:
        lines = ["digraph agent_flow {", "  rankdir=LR;", "  node [shape=box];"]
        for node in self.config.nodes:
            style = ',style="bold"' if node.is_start else ""
            lines.append(f'  "{node.id}" [label="{self._label(node)}"{style}];')
        for from_node, to_node in self.graph.edges():
            lines.append(f'  "{from_node}" -> "{to_node}";')
        lines.append("}")
        return "\n".join(lines)
