"""Scripted fakes for the model transport and the tool host."""

from collections import deque
from collections.abc import AsyncGenerator, Sequence
from typing import Any

from mcpchat.models.llm import Fragment
from mcpchat.models.messages import Message
from mcpchat.models.tools import ToolCallResult, ToolDescriptor

WEATHER_CALL = '{"tool_call":{"name":"weather","arguments":{"city":"Tokyo"}}}'


class FakeTransport:
    """Scripted model transport.

    Each turn is a list of items: strings become content fragments, Fragments
    are passed through and exceptions are raised at that point of the stream.
    """

    provider = "fake"

    def __init__(self, turns: Sequence[Sequence[Any]] = (), repeat: Sequence[Any] | None = None):
        self.turns = deque(turns)
        self.repeat = repeat
        self.calls: list[tuple[list[Message], str | None]] = []
        self.closed = 0

    async def stream(self, history: Sequence[Message], system_prompt: str | None) -> AsyncGenerator[Fragment, None]:
        self.calls.append(([message.snapshot() for message in history], system_prompt))
        if self.turns:
            turn = self.turns.popleft()
        elif self.repeat is not None:
            turn = self.repeat
        else:
            turn = ["(no scripted reply)"]

        try:
            for item in turn:
                if isinstance(item, Exception):
                    raise item
                yield item if isinstance(item, Fragment) else Fragment.content(item)
        finally:
            self.closed += 1


class FakeToolHost:
    """In-memory tool host.

    ``servers`` maps a server id to its tools (name -> outcome) or to an
    exception raised when its tool list is queried. Outcomes may be a
    ToolCallResult, an exception to raise, or any payload returned as success.
    """

    def __init__(self, servers: dict[str, dict[str, Any] | Exception]):
        self.servers = servers
        self.list_calls: list[str] = []
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    async def list_connected_servers(self) -> list[str]:
        return list(self.servers)

    async def list_tools(self, server_id: str) -> list[ToolDescriptor]:
        self.list_calls.append(server_id)
        tools = self.servers[server_id]
        if isinstance(tools, Exception):
            raise tools
        return [ToolDescriptor(name=name, description=f"The {name} tool", server_id=server_id) for name in tools]

    async def call_tool(self, server_id: str, name: str, arguments: dict[str, Any]) -> ToolCallResult:
        self.calls.append((server_id, name, arguments))
        outcome = self.servers[server_id][name]
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, ToolCallResult):
            return outcome
        return ToolCallResult.ok(outcome)
