"""LLM-related data models and types (provider-agnostic)."""

from collections.abc import AsyncGenerator, Sequence
from typing import Literal, Protocol

from pydantic import BaseModel, ConfigDict, Field

from mcpchat.models.messages import Message


class Fragment(BaseModel):
    """One incremental piece of generated text."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["content", "thinking"] = "content"
    text: str = Field(min_length=1)

    @classmethod
    def content(cls, text: str) -> "Fragment":
        return cls(kind="content", text=text)

    @classmethod
    def thinking(cls, text: str) -> "Fragment":
        return cls(kind="thinking", text=text)


class ModelTransport(Protocol):
    """A language model that streams one assistant turn.

    Implementations may raise at any point; the stream generator converts
    failures into in-band error text.
    """

    provider: str

    def stream(self, history: Sequence[Message], system_prompt: str | None) -> AsyncGenerator[Fragment, None]: ...
