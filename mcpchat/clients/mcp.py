"""MCP tool host speaking JSON-RPC over HTTP to already-connected servers."""

import itertools
import json
from typing import Any

import httpx

from mcpchat.errors import ToolHostError
from mcpchat.models.tools import ToolCallResult, ToolDescriptor
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

_TIMEOUT = 30.0


class HttpToolHost:
    """Tool host backed by MCP servers reachable over streamable HTTP.

    Servers are kept in insertion order, which is the order the tool router
    tries them in. Connection setup and capability negotiation happen outside
    this class; a server is "connected" while it is registered here.
    """

    def __init__(
        self,
        servers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
        timeout: float = _TIMEOUT,
    ):
        """Initialize the tool host.

        Args:
            servers: Mapping of server id to MCP endpoint URL
            client: HTTP client to use (one is created if omitted)
            timeout: Request timeout in seconds
        """
        self._servers: dict[str, str] = dict(servers or {})
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._request_ids = itertools.count(1)

    def add_server(self, server_id: str, url: str) -> None:
        """Register a connected server."""
        self._servers[server_id] = url

    def remove_server(self, server_id: str) -> bool:
        """Forget a server, e.g. after it disconnected."""
        return self._servers.pop(server_id, None) is not None

    async def close(self) -> None:
        await self._client.aclose()

    async def list_connected_servers(self) -> list[str]:
        return list(self._servers)

    async def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        """Query a server's live tool list.

        Raises:
            ToolHostError: If the server is unknown or the query fails
        """
        result = await self._rpc(server_id, "tools/list", {})
        tools: list[ToolDescriptor] = []
        for raw in result.get("tools", []):
            if not isinstance(raw, dict) or not raw.get("name"):
                logger.warning(f"Skipping malformed tool entry from {server_id}: {raw!r}")
                continue
            tools.append(
                ToolDescriptor(
                    name=raw["name"],
                    description=raw.get("description") or "",
                    input_schema=raw.get("inputSchema") or {"type": "object", "properties": {}},
                    server_id=server_id,
                )
            )
        return tools

    async def call_tool(self, server_id: str, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        """Execute a tool on a server and convert the MCP result.

        Raises:
            ToolHostError: If the server is unknown or the request fails
        """
        logger.info(f"Calling tool '{name}' on server '{server_id}'")
        result = await self._rpc(server_id, "tools/call", {"name": name, "arguments": arguments})

        text = "\n".join(
            block.get("text", "")
            for block in result.get("content", [])
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if result.get("isError"):
            return ToolCallResult.failure(text or f"Tool '{name}' reported an error")
        if result.get("structuredContent") is not None:
            return ToolCallResult.ok(result["structuredContent"])
        return ToolCallResult.ok(text)

    async def _rpc(self, server_id: str, method: str, params: dict[str, Any]) -> dict[str, Any]:
        url = self._servers.get(server_id)
        if url is None:
            raise ToolHostError(f"Server '{server_id}' is not connected", server_id)

        payload = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        headers = {"Accept": "application/json, text/event-stream", "Content-Type": "application/json"}

        try:
            response = await self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ToolHostError(f"MCP request '{method}' to {server_id} failed: {e}", server_id) from e

        body = self._decode_body(response, server_id)
        if "error" in body:
            error = body["error"] or {}
            raise ToolHostError(f"MCP server {server_id} returned error: {error.get('message', error)}", server_id)

        result = body.get("result")
        if not isinstance(result, dict):
            raise ToolHostError(f"MCP server {server_id} returned no result for '{method}'", server_id)
        return result

    def _decode_body(self, response: httpx.Response, server_id: str) -> dict[str, Any]:
        """Decode a JSON or single-response SSE body."""
        ctype = response.headers.get("content-type", "")
        try:
            if "text/event-stream" in ctype:
                data_lines = [line[5:].strip() for line in response.text.splitlines() if line.startswith("data:")]
                if not data_lines:
                    raise ToolHostError(f"MCP server {server_id} sent an empty event stream", server_id)
                return json.loads(data_lines[-1])
            return response.json()
        except json.JSONDecodeError as e:
            raise ToolHostError(f"MCP server {server_id} returned invalid JSON ({ctype})", server_id) from e
