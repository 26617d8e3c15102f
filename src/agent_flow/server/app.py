"""HTTP chat endpoint for agent-flow.

``POST /v1/chat`` takes ``{"content": ..., "session_id": ...}`` and runs one
turn, streaming its events as Server-Sent Events. Omitting the session id
starts a new session; its id is reported in the final ``complete`` event.
"""

import json
from typing import Optional

from aiohttp import web

from ..errors import AgentFlowError
from ..session import DEFAULT_MAX_LOOPS, AgentService
from ..streaming import CallbackObserver, StreamEvent
from ..utils.logging import get_logger

logger = get_logger(__name__)

SERVICE_KEY = web.AppKey("service", AgentService)
SETTINGS_KEY = web.AppKey("settings", dict)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


async def chat_handler(request: web.Request) -> web.StreamResponse:
    """Run one chat turn and stream its events."""
    try:
        body = await request.json()
    except json.JSONDecodeError:
        return web.json_response({"error": "invalid JSON body"}, status=400)
    if not isinstance(body, dict):
        return web.json_response({"error": "body must be a JSON object"}, status=400)

    content = body.get("content")
    if not isinstance(content, str) or not content.strip():
        return web.json_response({"error": "content is required"}, status=400)

    service = request.app[SERVICE_KEY]
    settings = request.app[SETTINGS_KEY]
    session_id: Optional[str] = body.get("session_id") or None
    user_id = body.get("user_id") or settings["default_user_id"]

    response = web.StreamResponse(headers=SSE_HEADERS)
    await response.prepare(request)

    async def write_event(event: StreamEvent) -> None:
        await response.write(event.to_sse().encode("utf-8"))

    try:
        manager = await service.get_or_create_session(
            user_id=user_id,
            agent_flow_id=settings["agent_flow_id"],
            session_id=session_id,
        )
        async with manager:
            await manager.run_turn(content, CallbackObserver(write_event), max_loops=settings["max_loops"])
    except AgentFlowError as e:
        logger.error(f"Chat turn failed: {e}", extra={"session_id": session_id})
        await write_event(StreamEvent.error(str(e), session_id=session_id))

    await response.write_eof()
    return response


async def health_handler(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def _close_service(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_app(
    service: AgentService,
    agent_flow_id: str,
    default_user_id: str = "anonymous",
    max_loops: int = DEFAULT_MAX_LOOPS,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        service: Agent service opening sessions
        agent_flow_id: Flow bound to new sessions
        default_user_id: User id when the request names none
        max_loops: Step ceiling per turn

    Returns:
        Configured application
    """
    app = web.Application()
    app[SERVICE_KEY] = service
    app[SETTINGS_KEY] = {
        "agent_flow_id": agent_flow_id,
        "default_user_id": default_user_id,
        "max_loops": max_loops,
    }
    app.router.add_post("/v1/chat", chat_handler)
    app.router.add_get("/health", health_handler)
    app.on_cleanup.append(_close_service)
    return app
