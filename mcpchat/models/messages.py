"""Message and conversation data models."""

from collections.abc import Sequence
from datetime import UTC, datetime
from enum import StrEnum
from typing import Self

from cuid2 import cuid_wrapper
from pydantic import BaseModel, ConfigDict, Field, model_validator

from mcpchat.errors import MessageFinalizedError

cuid = cuid_wrapper()

MAX_CONTENT_LENGTH = 100_000


class Role(StrEnum):
    """Closed set of conversation roles."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


class Attachment(BaseModel):
    """A file attached by the user at submission time."""

    model_config = ConfigDict(frozen=True)

    name: str
    content: str


class Message(BaseModel):
    """A message in a conversation.

    Messages are immutable once finalized. The single exception is the assistant
    message currently receiving fragments (``is_streaming``), which the
    conversation loop grows in place via ``append_fragment`` and closes with
    ``finalize``.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=cuid, frozen=True)
    role: Role = Field(frozen=True)
    content: str = ""
    thinking: str | None = None
    is_streaming: bool = False
    attachments: tuple[Attachment, ...] = Field(default=(), frozen=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)

    @model_validator(mode="after")
    def _check_contract(self) -> Self:
        if self.role in (Role.USER, Role.SYSTEM):
            if not self.content:
                raise ValueError(f"{self.role} message must have non-empty content")
            if len(self.content) > MAX_CONTENT_LENGTH:
                raise ValueError(f"Message content too long: {len(self.content)} > {MAX_CONTENT_LENGTH} characters")
        if self.is_streaming and self.role != Role.ASSISTANT:
            raise ValueError("Only assistant messages can stream")
        if self.attachments and self.role != Role.USER:
            raise ValueError("Only user messages can carry attachments")
        return self

    @classmethod
    def user(cls, content: str, attachments: Sequence[Attachment] = ()) -> "Message":
        """Create a user message."""
        return cls(role=Role.USER, content=content, attachments=tuple(attachments))

    @classmethod
    def system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role=Role.SYSTEM, content=content)

    @classmethod
    def assistant(cls, content: str) -> "Message":
        """Create a finalized assistant message, e.g. when restoring history."""
        return cls(role=Role.ASSISTANT, content=content)

    @classmethod
    def tool(cls, content: str) -> "Message":
        """Create a tool result message."""
        return cls(role=Role.TOOL, content=content)

    @classmethod
    def streaming_assistant(cls) -> "Message":
        """Create the empty in-flight assistant message for a generation round."""
        return cls(role=Role.ASSISTANT, content="", is_streaming=True)

    def append_fragment(self, text: str, thinking: bool = False) -> None:
        """Grow the streaming message by one fragment.

        Args:
            text: Fragment text
            thinking: Append to the auxiliary thinking text instead of the content

        Raises:
            MessageFinalizedError: If the message is no longer streaming
        """
        if not self.is_streaming:
            raise MessageFinalizedError(f"Message {self.id} is finalized and cannot receive fragments")
        if thinking:
            self.thinking = (self.thinking or "") + text
        else:
            self.content += text

    def finalize(self) -> None:
        """Close the streaming message and drop its thinking text."""
        if not self.is_streaming:
            raise MessageFinalizedError(f"Message {self.id} is already finalized")
        self.thinking = None
        self.is_streaming = False

    def snapshot(self) -> "Message":
        """Return a copy that later fragments will not touch."""
        return self.model_copy()
