"""Conversation loop state machine."""

from mcpchat.engine.conversation import ConversationLoop
from mcpchat.engine.state import RoundState

__all__ = ["ConversationLoop", "RoundState"]
