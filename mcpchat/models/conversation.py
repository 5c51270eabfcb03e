"""Conversation loop updates and API request/response models."""

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from mcpchat.models.messages import Attachment, Message
from mcpchat.models.tools import ToolDescriptor


class LoopState(StrEnum):
    """States of the conversation loop."""

    GENERATING = "generating"
    DETECTING = "detecting"
    EXECUTING_TOOL = "executing_tool"
    DONE = "done"


UpdateKind = Literal["message_added", "message_delta", "message_finalized", "done"]


class ConversationUpdate(BaseModel):
    """One conversation-state update emitted while a submission is processed.

    ``message`` carries a snapshot for added and finalized messages; deltas only
    carry ``message_id`` and the fragment text.
    """

    kind: UpdateKind
    state: LoopState
    round: int
    message_id: str | None = None
    message: Message | None = None
    delta: str | None = None
    thinking: bool = False
    budget_exhausted: bool = False  # Set on the done update when the tool round budget ran out


class SubmitResult(BaseModel):
    """Messages appended by one submission and how the loop ended."""

    messages: list[Message]
    rounds: int
    tool_calls: int
    budget_exhausted: bool = False


class ConversationRequest(BaseModel):
    """Request model for the conversation endpoint."""

    message: str
    history: list[Message] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    system_prompt: str | None = None
    tools: list[ToolDescriptor] | None = None


class ToolListResponse(BaseModel):
    """Response model for the tool catalog endpoint."""

    tools: list[ToolDescriptor]


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
