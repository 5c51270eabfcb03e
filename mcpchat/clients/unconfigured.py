"""Placeholder transport used when no language model is configured."""

from collections.abc import AsyncIterator, Sequence

from mcpchat.errors import ModelTransportError
from mcpchat.models.llm import Fragment
from mcpchat.models.messages import Message


class UnconfiguredTransport:
    """Transport that fails every generation call.

    Keeps the chat usable without credentials: the stream generator turns the
    failure into an in-band error message instead of a crash.
    """

    provider = "unconfigured"

    def __init__(self, reason: str = "No language model is configured. Set ANTHROPIC_API_KEY."):
        self.reason = reason

    async def stream(self, history: Sequence[Message], system_prompt: str | None) -> AsyncIterator[Fragment]:
        raise ModelTransportError(self.reason, self.provider)
        yield  # makes this an async generator
