"""Tool router: resolves a tool call to a connected server and executes it."""

from collections.abc import Sequence

from mcpchat.models.tools import ToolCallRequest, ToolCallResult, ToolDescriptor, ToolHost
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)


class ToolRouter:
    """Dispatches tool calls to the first connected server that owns the tool.

    Servers are tried in the order the host reports them. When two servers
    expose the same tool name the first one wins.
    """

    def __init__(self, host: ToolHost):
        self.host = host

    async def route(self, request: ToolCallRequest, catalog: Sequence[ToolDescriptor]) -> ToolCallResult:
        """Execute a tool call.

        Args:
            request: Tool call parsed from the assistant text
            catalog: Tool catalog advertised to the model for this round

        Returns:
            The server's result, or a failure if the tool is unknown, owned by
            no connected server, or raised during execution
        """
        if not any(tool.name == request.name for tool in catalog):
            logger.warning(f"Model requested tool '{request.name}' which is not in the catalog")
            return ToolCallResult.failure(f"Tool '{request.name}' not found")

        try:
            servers = await self.host.list_connected_servers()
        except Exception as e:
            logger.error(f"Failed to list connected servers: {e}", exc_info=True)
            return ToolCallResult.failure(str(e) or "Unknown error")

        for server_id in servers:
            try:
                live_tools = await self.host.list_tools(server_id)
            except Exception as e:
                logger.warning(f"Skipping server '{server_id}': tool list query failed: {e}")
                continue

            if not any(tool.name == request.name for tool in live_tools):
                continue

            logger.info(f"Calling tool '{request.name}' on server '{server_id}'")
            try:
                result = await self.host.call_tool(server_id, request.name, request.arguments)
            except Exception as e:
                logger.error(f"Tool '{request.name}' failed on server '{server_id}': {e}", exc_info=True)
                return ToolCallResult.failure(str(e) or "Unknown error")

            logger.debug(f"Tool '{request.name}' returned: {result.serialize()[:100]}")
            return result

        logger.warning(f"Tool '{request.name}' is cataloged but no connected server offers it")
        return ToolCallResult.failure(f"Tool '{request.name}' not found on any connected server")


async def collect_catalog(host: ToolHost) -> list[ToolDescriptor]:
    """Gather the tool catalog across connected servers.

    Duplicate names keep the first server's descriptor, matching how the
    router resolves them. Servers that fail to answer are skipped.
    """
    catalog: dict[str, ToolDescriptor] = {}
    for server_id in await host.list_connected_servers():
        try:
            tools = await host.list_tools(server_id)
        except Exception as e:
            logger.warning(f"Could not list tools for server '{server_id}': {e}")
            continue

        for tool in tools:
            if tool.name in catalog:
                logger.warning(
                    f"Tool '{tool.name}' is offered by both '{catalog[tool.name].server_id}' and '{server_id}'; "
                    f"calls go to '{catalog[tool.name].server_id}'"
                )
                continue
            catalog[tool.name] = tool

    logger.info(f"Collected {len(catalog)} tools")
    return list(catalog.values())
