"""Conversation store interface and in-memory implementation."""

from typing import Protocol

from mcpchat.models.messages import Message


class ConversationStore(Protocol):
    """Receives finalized messages for persistence or display."""

    async def save(self, message: Message) -> None: ...


class InMemoryConversationStore:
    """Keeps finalized messages in a list, in the order they were saved."""

    def __init__(self) -> None:
        self.messages: list[Message] = []

    async def save(self, message: Message) -> None:
        self.messages.append(message.snapshot())

    def clear(self) -> None:
        self.messages.clear()
