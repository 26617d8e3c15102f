"""Flow graph for agent-flow."""

from .graph import START_NODE_ID, FlowGraph

__all__ = [
    "FlowGraph",
    "START_NODE_ID",
]
