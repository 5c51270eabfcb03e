"""Building blocks of the conversation loop."""

from mcpchat.services.detector import JsonToolCallDetector, ToolCallExtractor
from mcpchat.services.router import ToolRouter, collect_catalog
from mcpchat.services.store import ConversationStore, InMemoryConversationStore
from mcpchat.services.stream import StreamGenerator, build_system_prompt

__all__ = [
    "ConversationStore",
    "InMemoryConversationStore",
    "JsonToolCallDetector",
    "StreamGenerator",
    "ToolCallExtractor",
    "ToolRouter",
    "build_system_prompt",
    "collect_catalog",
]
