"""Data models for the chat core."""

from mcpchat.models.conversation import ConversationUpdate, LoopState, SubmitResult
from mcpchat.models.llm import Fragment, ModelTransport
from mcpchat.models.messages import Attachment, Message, Role
from mcpchat.models.tools import ToolCallRequest, ToolCallResult, ToolDescriptor, ToolHost

__all__ = [
    "Attachment",
    "ConversationUpdate",
    "Fragment",
    "LoopState",
    "Message",
    "ModelTransport",
    "Role",
    "SubmitResult",
    "ToolCallRequest",
    "ToolCallResult",
    "ToolDescriptor",
    "ToolHost",
]
