#!/usr/bin/env python3
"""Simple MCP tool server for the demo flow.

Speaks newline-delimited JSON-RPC on stdin/stdout and provides two tools:
hello_world (text result) and add_numbers (structured-only result).
Started by the demo flow as a stdio MCP server.
"""

import asyncio
import json
import sys

TOOLS = [
    {
        "name": "hello_world",
        "description": "Say hello to someone.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "name": {"type": "string", "description": "Name of the person to greet"}
            },
            "required": ["name"],
        },
    },
    {
        "name": "add_numbers",
        "description": "Add two numbers and return the sum.",
        "inputSchema": {
            "type": "object",
            "properties": {
                "a": {"type": "number", "description": "First number"},
                "b": {"type": "number", "description": "Second number"},
            },
            "required": ["a", "b"],
        },
    },
]


def call_tool(name: str, arguments: dict) -> dict:
    """Execute a tool.

    Args:
        name: Tool name
        arguments: Tool arguments

    Returns:
        MCP tool result
    """
    if name == "hello_world":
        who = arguments.get("name", "world")
        return {"content": [{"type": "text", "text": f"Hello, {who}!"}]}

    if name == "add_numbers":
        try:
            total = float(arguments["a"]) + float(arguments["b"])
        except (KeyError, TypeError, ValueError) as e:
            return {"content": [{"type": "text", "text": f"Invalid arguments: {e}"}], "isError": True}
        return {"content": [], "structuredContent": {"sum": total}}

    return {"content": [{"type": "text", "text": f"Unknown tool: {name}"}], "isError": True}


def handle_message(message: dict) -> dict | None:
    """Handle an MCP message.

    Args:
        message: Incoming MCP message

    Returns:
        Response message, or None for notifications
    """
    method = message.get("method")
    if "id" not in message:
        return None

    if method == "initialize":
        result = {
            "protocolVersion": "2025-03-26",
            "serverInfo": {"name": "demo-tools", "version": "1.0.0"},
            "capabilities": {"tools": {}},
        }
    elif method == "tools/list":
        result = {"tools": TOOLS}
    elif method == "tools/call":
        params = message.get("params") or {}
        meta = params.get("_meta") or {}
        print(f"tools/call {params.get('name')} from session {meta.get('session_id')}", file=sys.stderr, flush=True)
        result = call_tool(params.get("name", ""), params.get("arguments") or {})
    else:
        return {
            "jsonrpc": "2.0",
            "id": message["id"],
            "error": {"code": -32601, "message": f"Method not found: {method}"},
        }

    return {"jsonrpc": "2.0", "id": message["id"], "result": result}


async def main() -> None:
    """Run the MCP stdio server."""
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, sys.stdin.readline)
        if not line:
            break

        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue

        response = handle_message(message)
        if response is not None:
            print(json.dumps(response), flush=True)


if __name__ == "__main__":
    asyncio.run(main())
