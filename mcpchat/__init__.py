"""Conversation orchestration engine for an MCP tool-using chat client."""

__version__ = "0.1.0"
