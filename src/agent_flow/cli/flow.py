"""CLI commands for flow configuration files.

This module provides commands to validate and inspect flow files.
"""

import json
import sys

import click
from tabulate import tabulate

from ..config import load_agent_flow_config
from ..errors import ConfigError
from ..flow import FlowGraph


@click.group(name="flow")
def flow_cli() -> None:
    """Inspect agent flow configuration files."""


@flow_cli.command()
@click.argument("flow_file", type=click.Path(exists=True, dir_okay=False))
def validate(flow_file: str) -> None:
    """Validate a flow file."""
    try:
        config = load_agent_flow_config(flow_file)
    except ConfigError as e:
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)

    click.echo(f"✓ Flow is valid ({len(config.nodes)} nodes, {len(config.agents)} agents)")


@flow_cli.command()
@click.argument("flow_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "mermaid", "dot", "json"]),
    default="table",
    help="Output format",
)
def show(flow_file: str, output_format: str) -> None:
    """Show the nodes and agents of a flow file."""
    try:
        config = load_agent_flow_config(flow_file)
    except ConfigError as e:
        click.echo(f"Error loading flow: {e}", err=True)
        sys.exit(1)

    graph = FlowGraph(config)

    if output_format in ("mermaid", "dot"):
        click.echo(graph.visualize(output_format))
        return

    if output_format == "json":
        output = config.model_dump(mode="json", by_alias=True, exclude_none=True)
        output["execution_path"] = graph.get_execution_path()
        click.echo(json.dumps(output, indent=2))
        return

    node_rows = [
        [node.id, node.type.value, node.agent_name or "-", node.next or "-"]
        for node in config.nodes
    ]
    click.echo(tabulate(node_rows, headers=["Node", "Type", "Agent", "Next"], tablefmt="grid"))

    agent_rows = [
        [
            name,
            agent.provider.value,
            agent.model_id,
            ", ".join(server.name for server in agent.mcp_servers) or "-",
            ", ".join(agent.tools) or "all",
        ]
        for name, agent in config.agents.items()
    ]
    if agent_rows:
        click.echo()
        click.echo(
            tabulate(agent_rows, headers=["Agent", "Provider", "Model", "MCP Servers", "Tools"], tablefmt="grid")
        )

    click.echo(f"\nExecution path: {' -> '.join(graph.get_execution_path())}")
