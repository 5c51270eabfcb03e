"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mcpchat import __version__
from mcpchat.api.endpoints import router
from mcpchat.clients import HttpToolHost, create_transport
from mcpchat.config import Settings
from mcpchat.utils.logging import LogConfig, get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the shared transport and tool host for the process."""
    settings = Settings.from_env()
    setup_logging(LogConfig(level=settings.log_level))

    app.state.settings = settings
    app.state.transport = create_transport(settings)
    app.state.tool_host = HttpToolHost(settings.mcp_servers)
    logger.info(
        f"Chat backend ready: provider={app.state.transport.provider}, "
        f"servers={list(settings.mcp_servers)}, max_rounds={settings.loop.max_rounds}"
    )
    try:
        yield
    finally:
        await app.state.tool_host.close()


app = FastAPI(
    title="MCP Chat",
    description=(
        "Local backend for a desktop chat client: streams language model answers "
        "and executes the tools they request on connected MCP servers."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Conversation",
            "description": "Submit messages and stream the resulting conversation updates.",
        },
        {
            "name": "Tools",
            "description": "Inspect the tool catalog of connected MCP servers.",
        },
        {
            "name": "Health",
            "description": "Service health monitoring and status checks.",
        },
    ],
)

# The desktop webview loads from a custom scheme
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)
