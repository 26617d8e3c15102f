"""Main CLI entry point for agent-flow.

This module provides the command-line interface: an interactive chat
session, session history inspection, flow file tools and the HTTP server.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

import click
from tabulate import tabulate

from .. import __version__
from ..config import get_default_config_dir, load_agent_flow_config
from ..errors import AgentFlowError
from ..session import DEFAULT_MAX_LOOPS, AgentService, FileHistoryStore
from ..streaming import CallbackObserver, StreamEvent
from ..utils.logging import setup_logging
from .flow import flow_cli

EXIT_COMMANDS = ("exit", "quit")


def _get_store(ctx: click.Context) -> FileHistoryStore:
    data_dir = ctx.obj.get("data_dir") or get_default_config_dir()
    return FileHistoryStore(data_dir)


@click.group()
@click.version_option(version=__version__)
@click.option("--data-dir", type=click.Path(file_okay=False), help="Data directory (default: ~/.agent-flow)")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--log-format", type=click.Choice(["text", "json"]), default="text", help="Log output format")
@click.pass_context
def main(ctx: click.Context, data_dir: Optional[str], verbose: bool, log_format: str) -> None:
    """agent-flow CLI.

    Conversational agents driven by a flow graph, with tools reached over MCP.
    """
    ctx.ensure_object(dict)
    ctx.obj["data_dir"] = Path(data_dir) if data_dir else None
    ctx.obj["verbose"] = verbose
    setup_logging(level="DEBUG" if verbose else None, format_type=log_format)


main.add_command(flow_cli, name="flow")


async def _register_flow(service: AgentService, flow_file: str) -> str:
    """Store a flow file's configuration under the file's stem."""
    config = load_agent_flow_config(flow_file)
    flow_id = Path(flow_file).stem
    await service.register_flow(config, name=flow_id, agent_flow_id=flow_id)
    return flow_id


def _print_event(event: StreamEvent) -> None:
    if event.type == "text_delta":
        click.echo(event.content, nl=False)
    elif event.type == "thinking_delta":
        click.secho(event.content, dim=True, nl=False)
    elif event.type == "complete":
        click.echo()


async def _chat(
    store: FileHistoryStore,
    flow_file: str,
    user_id: str,
    session_id: Optional[str],
    max_loops: int,
) -> None:
    service = AgentService(store)
    try:
        flow_id = await _register_flow(service, flow_file)
        manager = await service.get_or_create_session(
            user_id=user_id,
            agent_flow_id=flow_id,
            session_id=session_id,
        )
        async with manager:
            click.echo(f"Session {manager.session.id} ({len(manager.history)} entries). Type 'exit' to quit.")
            observer = CallbackObserver(_print_event)
            while True:
                try:
                    text = await asyncio.to_thread(click.prompt, "you", prompt_suffix="> ")
                except click.Abort:
                    click.echo()
                    break
                if text.strip().lower() in EXIT_COMMANDS:
                    break
                if not text.strip():
                    continue

                try:
                    await manager.run_turn(text, observer, max_loops=max_loops)
                except AgentFlowError as e:
                    click.secho(f"\nError: {e}", fg="red", err=True)
    finally:
        await service.close()


@main.command()
@click.argument("flow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--session", "session_id", help="Resume an existing session")
@click.option("--user", "user_id", default="local-user", help="User id for new sessions")
@click.option("--max-loops", type=int, default=DEFAULT_MAX_LOOPS, help="Step ceiling per turn")
@click.pass_context
def chat(ctx: click.Context, flow_file: str, session_id: Optional[str], user_id: str, max_loops: int) -> None:
    """Chat interactively with the flow in FLOW_FILE."""
    try:
        asyncio.run(_chat(_get_store(ctx), flow_file, user_id, session_id, max_loops))
    except AgentFlowError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@main.command()
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.pass_context
def sessions(ctx: click.Context, output_format: str) -> None:
    """List stored sessions."""
    all_sessions = asyncio.run(_get_store(ctx).list_sessions())

    if output_format == "json":
        click.echo(json.dumps([s.model_dump(mode="json") for s in all_sessions], indent=2))
        return

    if not all_sessions:
        click.echo("No sessions found.")
        return

    rows = [
        [s.id, s.title, s.created_by, s.agent_flow_id, s.turn_count, s.created_at.strftime("%Y-%m-%d %H:%M")]
        for s in all_sessions
    ]
    click.echo(tabulate(rows, headers=["Session ID", "Title", "User", "Flow", "Turns", "Created"], tablefmt="grid"))


@main.command()
@click.argument("session_id")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.pass_context
def history(ctx: click.Context, session_id: str, output_format: str) -> None:
    """Show the history entries of SESSION_ID."""
    store = _get_store(ctx)
    session = asyncio.run(store.get_session(session_id))
    if session is None:
        click.echo(f"Session not found: {session_id}", err=True)
        sys.exit(1)

    entries = asyncio.run(store.read_history(session_id))
    if output_format == "json":
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    rows = []
    for i, entry in enumerate(entries, start=1):
        message = entry.content
        if message.tool_calls:
            preview = ", ".join(call.function.name for call in message.tool_calls)
        elif message.tool_results:
            preview = " | ".join(result.text for result in message.tool_results)
        else:
            preview = message.content
        preview = preview.replace("\n", " ")
        rows.append([i, entry.node, entry.stop_reason.value, message.role, preview[:60]])

    click.echo(f"Session: {session.title} ({session.id}), {session.turn_count} steps")
    if rows:
        click.echo(tabulate(rows, headers=["#", "Node", "Stop Reason", "Role", "Content"], tablefmt="grid"))
    else:
        click.echo("No history entries.")


@main.command()
@click.argument("flow_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", type=int, default=8080, help="Bind port")
@click.option("--user", "user_id", default="anonymous", help="Default user id for requests")
@click.option("--max-loops", type=int, default=DEFAULT_MAX_LOOPS, help="Step ceiling per turn")
@click.pass_context
def serve(ctx: click.Context, flow_file: str, host: str, port: int, user_id: str, max_loops: int) -> None:
    """Serve the SSE chat endpoint for the flow in FLOW_FILE."""
    from aiohttp import web

    from ..server import create_app

    async def build_app() -> web.Application:
        service = AgentService(_get_store(ctx))
        flow_id = await _register_flow(service, flow_file)
        return create_app(service, flow_id, default_user_id=user_id, max_loops=max_loops)

    try:
        web.run_app(build_app(), host=host, port=port)
    except AgentFlowError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
