"""API endpoints for the chat backend."""

from collections.abc import AsyncIterator
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from mcpchat import __version__
from mcpchat.config import Settings
from mcpchat.engine import ConversationLoop
from mcpchat.models.conversation import ConversationRequest, HealthResponse, ToolListResponse
from mcpchat.models.messages import Message
from mcpchat.models.tools import ToolDescriptor, ToolHost
from mcpchat.services.router import ToolRouter, collect_catalog
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


def get_tool_host(request: Request) -> ToolHost:
    """Tool host shared by all conversations of this process."""
    return request.app.state.tool_host


def get_conversation_loop(request: Request, tool_host: ToolHost = Depends(get_tool_host)) -> ConversationLoop:
    """Build a fresh loop per request; only the transport and tool host are shared."""
    settings: Settings = request.app.state.settings
    return ConversationLoop(
        transport=request.app.state.transport,
        router=ToolRouter(tool_host),
        config=settings.loop,
    )


async def _catalog_for(request: ConversationRequest, tool_host: ToolHost) -> list[ToolDescriptor]:
    if request.tools is not None:
        return request.tools
    try:
        return await collect_catalog(tool_host)
    except Exception as e:
        logger.error(f"Failed to collect tool catalog, continuing without tools: {e}", exc_info=True)
        return []


@router.post("/conversation", tags=["Conversation"])
async def handle_conversation(
    request: ConversationRequest,
    loop: ConversationLoop = Depends(get_conversation_loop),
    tool_host: ToolHost = Depends(get_tool_host),
) -> StreamingResponse:
    """Submit a user message and stream conversation updates as NDJSON.

    Each line is one serialized ``ConversationUpdate``; the last line has kind ``done``.
    """
    try:
        user_message = Message.user(request.message, request.attachments)
        loop.validate_submission(request.history, user_message)
    except ValueError as e:
        logger.warning(f"Rejected submission: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    catalog = await _catalog_for(request, tool_host)
    logger.info(f"Processing message with {len(request.history)} prior messages: {request.message[:50]}...")

    async def stream_updates() -> AsyncIterator[str]:
        async for update in loop.submit(request.history, user_message, request.system_prompt, catalog):
            yield update.model_dump_json() + "\n"

    return StreamingResponse(stream_updates(), media_type="application/x-ndjson")


@router.get("/tools", response_model=ToolListResponse, tags=["Tools"])
async def list_tools(tool_host: ToolHost = Depends(get_tool_host)) -> ToolListResponse:
    """List the tools currently offered by connected servers."""
    return ToolListResponse(tools=await collect_catalog(tool_host))


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
