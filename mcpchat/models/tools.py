"""Tool catalog and tool call data models."""

import json
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


class ToolDescriptor(BaseModel):
    """A tool offered by some connected server."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str = Field(min_length=1)
    description: str = ""
    input_schema: dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    server_id: str | None = None


class ToolCallRequest(BaseModel):
    """A tool invocation parsed out of assistant text."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)
    explanation: str | None = None


class ToolCallResult(BaseModel):
    """Outcome of a tool call: a success payload or a typed failure."""

    success: bool
    result: Any = None
    error: str | None = None

    @classmethod
    def ok(cls, result: Any) -> "ToolCallResult":
        return cls(success=True, result=result)

    @classmethod
    def failure(cls, error: str) -> "ToolCallResult":
        return cls(success=False, error=error)

    def serialize(self) -> str:
        """Render the result as the content of a tool message.

        Failures become ``{"error": "..."}``. Successful string payloads are kept
        verbatim, ``None`` becomes an empty string and everything else is compact JSON.
        """
        if not self.success:
            return json.dumps({"error": self.error or "Unknown error"}, separators=(",", ":"), ensure_ascii=False)
        if self.result is None:
            return ""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, separators=(",", ":"), ensure_ascii=False, default=str)


class ToolHost(Protocol):
    """The subsystem that manages connected tool servers."""

    async def list_connected_servers(self) -> list[str]: ...

    async def list_tools(self, server_id: str) -> list[ToolDescriptor]: ...

    async def call_tool(self, server_id: str, name: str, arguments: dict[str, Any]) -> ToolCallResult: ...
