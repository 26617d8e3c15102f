"""Streamable HTTP transport for the MCP client.

Every JSON-RPC message is POSTed to the server URL. The server answers with
either a plain JSON body or an SSE stream whose events carry the response,
and may assign a session id in the ``Mcp-Session-Id`` header which is echoed
on every later request.

Key features:
- Plain JSON and SSE streamed responses
- Session id management
- Optional retry with exponential backoff for timeouts and throttling
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

import aiohttp

from ..config.schemas import MCPConfig
from ..errors import InvocationError
from ..utils.logging import get_logger
from .mcp_client import MCPMessage, MCPTransport

logger = get_logger(__name__)

SESSION_HEADER = "Mcp-Session-Id"
RETRY_BASE_DELAY = 1.0
RETRYABLE_STATUS = frozenset({408, 429, 500, 502, 503, 504})


@dataclass
class SSEEvent:
    """A single Server-Sent Event.

    Attributes:
        event_type: Event type (message, end, error)
        data: Parsed JSON data from event
        timestamp: When event was received
    """

    event_type: str
    data: dict[str, Any]
    timestamp: datetime = field(default_factory=datetime.now)


class SSEEventAggregator:
    """Collects SSE events from a response into one JSON-RPC response.

    Events are separated by blank lines; multi-line ``data:`` fields are
    joined with newlines. The stream ends at EOF, at an ``end`` event or as
    soon as the response to the awaited request id arrives.
    """

    def __init__(self, stream_timeout: float = 120.0) -> None:
        """Initialize the aggregator.

        Args:
            stream_timeout: Maximum time to wait for stream completion in seconds
        """
        self.stream_timeout = stream_timeout

    async def aggregate_sse_stream(
        self,
        response: aiohttp.ClientResponse,
        request_id: Optional[int] = None,
    ) -> dict[str, Any]:
        """Aggregate SSE events from a streaming response.

        Args:
            response: aiohttp response object
            request_id: Id of the request whose response ends the stream

        Returns:
            Merged JSON-RPC response

        Raises:
            InvocationError: On stream timeout or an ``error`` event
        """
        try:
            events = await asyncio.wait_for(
                self._collect(response, request_id), timeout=self.stream_timeout
            )
        except asyncio.TimeoutError as e:
            raise InvocationError(f"SSE stream timeout after {self.stream_timeout} seconds") from e
        return self._merge_events(events)

    async def _collect(self, response: aiohttp.ClientResponse, request_id: Optional[int]) -> list[SSEEvent]:
        events: list[SSEEvent] = []
        event_type = "message"
        data_lines: list[str] = []

        def flush() -> Optional[SSEEvent]:
            nonlocal event_type, data_lines
            if not data_lines and event_type == "message":
                return None
            event = SSEEvent(event_type=event_type, data=self._parse_data("\n".join(data_lines)))
            event_type, data_lines = "message", []
            return event

        async for raw in response.content:
            line = raw.decode("utf-8", errors="ignore").rstrip("\r\n")

            if line:
                if line.startswith("event:"):
                    event_type = line[6:].strip()
                elif line.startswith("data:"):
                    data_lines.append(line[5:].lstrip())
                # id:, retry: and comments are not needed
                continue

            event = flush()
            if event is None:
                continue
            events.append(event)

            if event.event_type == "end":
                logger.debug("SSE end marker received")
                break
            if event.event_type == "error":
                raise InvocationError(f"SSE error event: {event.data.get('message', 'Unknown SSE error')}")
            if request_id is not None and event.data.get("id") == request_id:
                break

        pending = flush()
        if pending is not None:
            events.append(pending)
        return events

    @staticmethod
    def _parse_data(data_str: str) -> dict[str, Any]:
        if not data_str:
            return {}
        try:
            data = json.loads(data_str)
        except json.JSONDecodeError:
            return {"raw": data_str}
        return data if isinstance(data, dict) else {"raw": data}

    def _merge_events(self, events: list[SSEEvent]) -> dict[str, Any]:
        """Merge message events into a single response.

        Server notifications interleaved with the response are dropped. When
        several partial results arrive, their content arrays are concatenated.

        Args:
            events: List of SSE events

        Returns:
            Merged response dictionary
        """
        responses = [
            e.data
            for e in events
            if e.event_type == "message" and ("result" in e.data or "error" in e.data)
        ]
        if not responses:
            return {}
        if len(responses) == 1:
            return responses[0]

        for candidate in responses:
            if "error" in candidate:
                return candidate

        result = dict(responses[0])
        if isinstance(result.get("result"), dict):
            merged = dict(result["result"])
            content = list(merged.get("content") or [])
            for extra in responses[1:]:
                extra_content = (extra.get("result") or {}).get("content", [])
                if isinstance(extra_content, list):
                    content.extend(extra_content)
            merged["content"] = content
            result["result"] = merged
        return result


class MCPStreamableHTTPTransport(MCPTransport):
    """MCP Streamable HTTP transport implementation.

    Retries are disabled unless ``retry_max_attempts`` is set on the server
    configuration; authentication failures and expired sessions are never
    retried.
    """

    def __init__(self, config: MCPConfig) -> None:
        super().__init__(config)
        self.session: aiohttp.ClientSession | None = None
        self._current_session_id: str | None = None
        self._connected = False

    @property
    def session_id(self) -> Optional[str]:
        return self._current_session_id

    async def connect(self) -> None:
        """Open the HTTP session; the handshake is sent by the client."""
        logger.info(f"Connecting to MCP server '{self.server_name}' via Streamable HTTP at {self.config.url}")

        headers = {}
        if self.config.authorization_header:
            headers["Authorization"] = self.config.authorization_header
        self.session = aiohttp.ClientSession(headers=headers)
        self._connected = True

    async def disconnect(self) -> None:
        """Terminate the server session and close the HTTP session."""
        if self.session and not self.session.closed:
            if self._current_session_id:
                try:
                    async with self.session.delete(
                        self.config.url,
                        headers={SESSION_HEADER: self._current_session_id},
                        timeout=aiohttp.ClientTimeout(total=5.0),
                    ):
                        pass
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    logger.debug(f"Session termination on '{self.server_name}' failed: {e}")
            await self.session.close()

        self._current_session_id = None
        self._connected = False
        logger.info(f"Disconnected from '{self.server_name}'")

    def is_connected(self) -> bool:
        """Check if connected.

        Returns:
            True if session is active
        """
        return self._connected and self.session is not None and not self.session.closed

    async def send_notification(self, message: MCPMessage) -> None:
        try:
            await self._post(message)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise InvocationError(f"Notification '{message.method}' to '{self.server_name}' failed: {e}") from e

    async def send_message(self, message: MCPMessage) -> MCPMessage:
        """Send a request, retrying transient failures.

        Args:
            message: Message to send

        Returns:
            Response message

        Raises:
            InvocationError: If not connected, on HTTP errors or when retries are exhausted
        """
        if not self.is_connected():
            raise InvocationError(f"Not connected to MCP server '{self.server_name}'")

        message.id = self._next_id()
        max_attempts = self.config.retry_max_attempts + 1  # +1 for initial attempt

        for attempt in range(max_attempts):
            last_attempt = attempt == max_attempts - 1
            try:
                return await self._post(message)

            except asyncio.TimeoutError as e:
                if last_attempt:
                    raise InvocationError(
                        f"Request '{message.method}' to '{self.server_name}' timed out "
                        f"after {max_attempts} attempt(s)"
                    ) from e
                delay = self._backoff(attempt)
                logger.warning(
                    f"Request to '{self.server_name}' timed out (attempt {attempt + 1}/{max_attempts}), "
                    f"retrying in {delay}s..."
                )
                await asyncio.sleep(delay)

            except aiohttp.ClientResponseError as e:
                if e.status == 401:
                    raise InvocationError(f"Authentication failed for '{self.server_name}'") from e
                if e.status == 404 and self._current_session_id:
                    self._current_session_id = None
                    raise InvocationError(f"Session expired on '{self.server_name}'") from e
                if last_attempt or e.status not in RETRYABLE_STATUS:
                    raise InvocationError(f"HTTP error {e.status} for '{self.server_name}': {e.message}") from e
                delay = self._retry_after(e) or self._backoff(attempt)
                logger.warning(f"HTTP {e.status} from '{self.server_name}', retrying in {delay}s...")
                await asyncio.sleep(delay)

            except aiohttp.ClientError as e:
                raise InvocationError(f"Error sending to '{self.server_name}': {e}") from e

        raise InvocationError(f"Failed to send message to '{self.server_name}' after {max_attempts} attempts")

    async def _post(self, message: MCPMessage) -> MCPMessage:
        """POST one message and decode the response.

        Args:
            message: Message to send

        Returns:
            Response message (empty for accepted notifications)
        """
        if not self.session:
            raise InvocationError(f"Not connected to MCP server '{self.server_name}'")

        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if self._current_session_id:
            headers[SESSION_HEADER] = self._current_session_id

        data = message.model_dump_json(exclude_none=True)
        logger.debug(f"Sending to {self.config.url}: {data[:200]}")

        async with self.session.post(
            self.config.url,
            data=data,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.config.timeout),
        ) as response:
            response.raise_for_status()
            self._extract_session_id(response)

            if response.status == 202 or message.id is None:
                return MCPMessage()

            content_type = response.headers.get("Content-Type", "")
            if "text/event-stream" in content_type:
                aggregator = SSEEventAggregator(stream_timeout=self.config.timeout)
                result = await aggregator.aggregate_sse_stream(response, request_id=message.id)  # type: ignore[arg-type]
            else:
                result = await self._handle_simple_response(response)

        try:
            return MCPMessage(**result)
        except (TypeError, ValueError) as e:
            raise InvocationError(f"Malformed response from '{self.server_name}': {e}") from e

    async def _handle_simple_response(self, response: aiohttp.ClientResponse) -> dict[str, Any]:
        text = await response.text()
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise InvocationError(f"Invalid JSON from '{self.server_name}': {text[:200]}") from e
        if not isinstance(data, dict):
            raise InvocationError(f"Unexpected response from '{self.server_name}': {text[:200]}")
        return data

    def _extract_session_id(self, response: aiohttp.ClientResponse) -> None:
        session_id = response.headers.get(SESSION_HEADER)
        if session_id and session_id != self._current_session_id:
            self._current_session_id = session_id
            logger.debug(f"Received session ID: {session_id[:20]}...")

    @staticmethod
    def _backoff(attempt: int) -> float:
        return min(RETRY_BASE_DELAY * (2**attempt), 60.0)

    @staticmethod
    def _retry_after(error: aiohttp.ClientResponseError) -> Optional[float]:
        """Extract Retry-After delay from a throttling error.

        Args:
            error: ClientResponseError

        Returns:
            Retry delay in seconds, or None if not specified
        """
        headers = error.headers or {}
        retry_after = headers.get("Retry-After")
        if retry_after:
            try:
                return float(retry_after)
            except ValueError:
                return None
        return None
