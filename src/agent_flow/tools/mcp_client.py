"""MCP (Model Context Protocol) client for agent-flow.

This module provides the JSON-RPC message model, the transport abstraction,
the stdio transport and the ToolClient that performs the MCP handshake, tool
listing and tool invocation on top of a transport.
"""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel

from ..config.schemas import MCPConfig
from ..errors import InvocationError, ToolConnectionError
from ..models import CallerContext, ToolDescriptor, ToolResult
from ..utils.logging import get_logger

logger = get_logger(__name__)

PROTOCOL_VERSION = "2025-03-26"
CLIENT_INFO = {"name": "agent-flow", "version": "0.1.0"}

# Per-line buffer for stdio responses; large tool outputs arrive as one JSON line
STDIO_READ_LIMIT = 16 * 1024 * 1024


class MCPMessage(BaseModel):
    """MCP protocol message.

    Attributes:
        jsonrpc: JSON-RPC version (always "2.0")
        id: Request ID
        method: Method name
        params: Method parameters
        result: Result (for responses)
        error: Error (for error responses)
    """

    jsonrpc: str = "2.0"
    id: str | int | None = None
    method: str | None = None
    params: dict[str, Any] | None = None
    result: Any | None = None
    error: dict[str, Any] | None = None

    @property
    def is_response(self) -> bool:
        return self.method is None and (self.result is not None or self.error is not None)


class MCPTransport(ABC):
    """Abstract base class for MCP transports.

    Transports raise InvocationError for every protocol or I/O failure.
    """

    def __init__(self, config: MCPConfig) -> None:
        self.config = config
        self._request_id = 0

    @property
    def server_name(self) -> str:
        return self.config.name

    def _next_id(self) -> int:
        self._request_id += 1
        return self._request_id

    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to MCP server."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to MCP server."""

    @abstractmethod
    async def send_message(self, message: MCPMessage) -> MCPMessage:
        """Send a request and receive its response.

        Args:
            message: Request to send; its id is assigned by the transport

        Returns:
            Response message
        """

    @abstractmethod
    async def send_notification(self, message: MCPMessage) -> None:
        """Send a notification (no response expected)."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Check if transport is connected."""


class MCPStdioTransport(MCPTransport):
    """MCP stdio transport using a subprocess.

    Messages are newline-delimited JSON on the child's stdin and stdout;
    stderr is drained into the debug log.
    """

    def __init__(self, config: MCPConfig) -> None:
        super().__init__(config)
        self.process: asyncio.subprocess.Process | None = None
        self._pending_requests: dict[int, asyncio.Future] = {}
        self._read_task: asyncio.Task | None = None
        self._stderr_task: asyncio.Task | None = None
        self._reader_failed = False

    async def connect(self) -> None:
        """Start the MCP server subprocess."""
        logger.info(f"Connecting to MCP server '{self.server_name}' via stdio")

        # Server-specific variables override the inherited environment
        env = dict(os.environ)
        env.update(self.config.envs)

        try:
            self.process = await asyncio.create_subprocess_exec(
                self.config.command,
                *self.config.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STDIO_READ_LIMIT,
                env=env,
            )
        except OSError as e:
            raise InvocationError(f"failed to start '{self.config.command}': {e}") from e

        self._read_task = asyncio.create_task(self._read_messages())
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    async def disconnect(self) -> None:
        """Stop the MCP server subprocess."""
        for task in (self._read_task, self._stderr_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._read_task = None
        self._stderr_task = None

        if self.process:
            if self.process.stdin and not self.process.stdin.is_closing():
                self.process.stdin.close()

            if self.process.returncode is None:
                try:
                    self.process.terminate()
                    await asyncio.wait_for(self.process.wait(), timeout=5.0)
                except asyncio.TimeoutError:
                    logger.warning(f"MCP server '{self.server_name}' did not exit, killing it")
                    self.process.kill()
                    await self.process.wait()
                except ProcessLookupError:
                    logger.debug(f"MCP server '{self.server_name}' already exited")
            self.process = None

        self._fail_pending(InvocationError(f"MCP server '{self.server_name}' disconnected"))

    async def send_message(self, message: MCPMessage) -> MCPMessage:
        """Send a request and wait for its response.

        Args:
            message: Request to send

        Returns:
            Response message

        Raises:
            InvocationError: If the process is gone, the pipe is broken or the request times out
        """
        request_id = self._next_id()
        message.id = request_id

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending_requests[request_id] = future

        try:
            await self._write(message)
            return await asyncio.wait_for(future, timeout=self.config.timeout)
        except asyncio.TimeoutError as e:
            raise InvocationError(
                f"MCP request '{message.method}' to '{self.server_name}' timed out "
                f"after {self.config.timeout}s"
            ) from e
        finally:
            self._pending_requests.pop(request_id, None)

    async def send_notification(self, message: MCPMessage) -> None:
        await self._write(message)

    def is_connected(self) -> bool:
        """Check if connected.

        Returns:
            True if the process is running and its output is still readable
        """
        return self.process is not None and self.process.returncode is None and not self._reader_failed

    async def _write(self, message: MCPMessage) -> None:
        if not self.is_connected() or not self.process.stdin:
            raise InvocationError(f"Not connected to MCP server '{self.server_name}'")

        data = message.model_dump_json(exclude_none=True)
        try:
            self.process.stdin.write((data + "\n").encode())
            await self.process.stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            raise InvocationError(f"connection to MCP server '{self.server_name}' lost: {e}") from e

    async def _read_messages(self) -> None:
        """Read responses from stdout and resolve pending requests.

        A read failure (for example a line over STDIO_READ_LIMIT) marks the
        transport disconnected and fails every pending request.
        """
        try:
            await self._read_loop()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Reading from MCP server '{self.server_name}' failed: {e}")
            self._reader_failed = True
            error = InvocationError(f"reading from MCP server '{self.server_name}' failed: {e}")
            error.__cause__ = e
            self._fail_pending(error)
            return

        logger.info(f"MCP server '{self.server_name}' closed its output")
        self._fail_pending(InvocationError(f"MCP server '{self.server_name}' closed the connection"))

    async def _read_loop(self) -> None:
        assert self.process and self.process.stdout

        while True:
            line = await self.process.stdout.readline()
            if not line:
                return

            try:
                message = MCPMessage(**json.loads(line.decode()))
            except (json.JSONDecodeError, UnicodeDecodeError, TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed line from '{self.server_name}': {e}")
                continue

            if not message.is_response:
                logger.debug(f"Ignoring server message from '{self.server_name}': {message.method}")
                continue

            future = self._pending_requests.get(message.id)  # type: ignore[arg-type]
            if future is not None and not future.done():
                future.set_result(message)

    async def _drain_stderr(self) -> None:
        assert self.process and self.process.stderr

        while True:
            line = await self.process.stderr.readline()
            if not line:
                break
            logger.debug(f"[{self.server_name}] {line.decode(errors='replace').rstrip()}")

    def _fail_pending(self, error: Exception) -> None:
        for future in self._pending_requests.values():
            if not future.done():
                future.set_exception(error)
        self._pending_requests.clear()


def create_mcp_transport(config: MCPConfig) -> MCPTransport:
    """Create MCP transport for a server configuration.

    Args:
        config: MCP server configuration

    Returns:
        MCP transport instance
    """
    if config.protocol == "stdio":
        return MCPStdioTransport(config)

    from .mcp_streamable_http import MCPStreamableHTTPTransport

    return MCPStreamableHTTPTransport(config)


class ToolClient:
    """One connected MCP server.

    A client is connected once and reused for the lifetime of its agent.
    A broken connection is not re-established: later calls fail with
    InvocationError.
    """

    def __init__(self, config: MCPConfig, transport: Optional[MCPTransport] = None) -> None:
        """Initialize the client.

        Args:
            config: MCP server configuration
            transport: Transport to use; built from the config when omitted
        """
        self.config = config
        self.transport = transport or create_mcp_transport(config)
        self.server_info: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self.config.name

    def is_connected(self) -> bool:
        return self.transport.is_connected()

    async def connect(self) -> "ToolClient":
        """Open the transport and perform the MCP handshake.

        Returns:
            This client

        Raises:
            ToolConnectionError: If the server cannot be reached or rejects initialize
        """
        try:
            await self.transport.connect()
            response = await self.transport.send_message(
                MCPMessage(
                    method="initialize",
                    params={
                        "protocolVersion": PROTOCOL_VERSION,
                        "capabilities": {},
                        "clientInfo": CLIENT_INFO,
                    },
                )
            )
            if response.error:
                raise InvocationError(response.error.get("message", "initialize rejected"))
            await self.transport.send_notification(MCPMessage(method="notifications/initialized"))
        except InvocationError as e:
            await self.transport.disconnect()
            raise ToolConnectionError(self.name, str(e)) from e

        self.server_info = (response.result or {}).get("serverInfo", {})
        logger.info(f"Connected to MCP server '{self.name}'", extra={"tool": self.name})
        return self

    async def list_tools(self) -> list[ToolDescriptor]:
        """List the server's tools, following pagination cursors.

        Returns:
            Tool descriptors in server order

        Raises:
            InvocationError: If the request fails
        """
        tools: list[ToolDescriptor] = []
        cursor: Optional[str] = None

        while True:
            params = {"cursor": cursor} if cursor else None
            response = await self.transport.send_message(MCPMessage(method="tools/list", params=params))
            if response.error:
                raise InvocationError(f"tools/list failed on '{self.name}': {response.error.get('message')}")

            result = response.result or {}
            for tool_def in result.get("tools", []):
                tools.append(
                    ToolDescriptor(
                        name=tool_def["name"],
                        description=tool_def.get("description") or "",
                        input_schema=tool_def.get("inputSchema") or {"type": "object", "properties": {}},
                        server=self.name,
                        original_name=tool_def["name"],
                    )
                )

            cursor = result.get("nextCursor")
            if not cursor:
                break

        logger.info(f"Discovered {len(tools)} tools from {self.name}")
        return tools

    async def invoke(self, tool_name: str, arguments_json: str, caller: CallerContext) -> ToolResult:
        """Call one tool.

        Args:
            tool_name: Tool name as known to the server
            arguments_json: JSON object text with the arguments
            caller: Caller identity, sent in ``_meta``

        Returns:
            Tool result; tool-reported failures have is_error set

        Raises:
            InvocationError: On invalid arguments, protocol errors or a lost connection
        """
        try:
            arguments = json.loads(arguments_json) if arguments_json.strip() else {}
        except json.JSONDecodeError as e:
            raise InvocationError(f"invalid arguments for tool '{tool_name}': {e}") from e
        if not isinstance(arguments, dict):
            raise InvocationError(f"arguments for tool '{tool_name}' must be a JSON object")

        logger.debug(
            f"Calling tool {tool_name} on {self.name}",
            extra={"tool": tool_name, "session_id": caller.session_id},
        )
        response = await self.transport.send_message(
            MCPMessage(
                method="tools/call",
                params={
                    "name": tool_name,
                    "arguments": arguments,
                    "_meta": caller.to_meta(),
                },
            )
        )

        if response.error:
            code = response.error.get("code")
            error_msg = response.error.get("message", "Unknown error")
            raise InvocationError(f"tool '{tool_name}' failed on '{self.name}': {error_msg} (code {code})")
        if not isinstance(response.result, dict):
            raise InvocationError(f"tool '{tool_name}' on '{self.name}' returned no result")

        result = ToolResult.from_mcp(response.result)
        if result.is_error:
            logger.warning(f"Tool {tool_name} on {self.name} reported an error", extra={"tool": tool_name})
        return result

    async def close(self) -> None:
        """Disconnect from the server."""
        await self.transport.disconnect()
        logger.debug(f"Closed MCP server '{self.name}'")
