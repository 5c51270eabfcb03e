"""Clients for the language model and the MCP tool host."""

from mcpchat.clients.anthropic import AnthropicConfig, AnthropicTransport
from mcpchat.clients.mcp import HttpToolHost
from mcpchat.clients.unconfigured import UnconfiguredTransport
from mcpchat.config import Settings
from mcpchat.models.llm import ModelTransport
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)


def create_transport(settings: Settings) -> ModelTransport:
    """Create the model transport for the configured provider.

    Providers without a transport, and an Anthropic client that cannot be
    built, fall back to an ``UnconfiguredTransport`` so the conversation still
    terminates with readable error text.
    """
    match settings.provider:
        case "anthropic":
            config = AnthropicConfig(model=settings.model) if settings.model else AnthropicConfig()
            try:
                return AnthropicTransport(api_key=settings.anthropic_api_key, config=config)
            except ValueError as e:
                logger.error(f"Failed to create Anthropic transport: {e}. Using unconfigured transport.")
                return UnconfiguredTransport(str(e))
        case "none" | "":
            logger.info("No model provider configured. Using unconfigured transport.")
            return UnconfiguredTransport("No model provider configured")
        case _:
            logger.error(f"Unsupported model provider '{settings.provider}'. Using unconfigured transport.")
            return UnconfiguredTransport(f"Unsupported model provider: {settings.provider}")


__all__ = [
    "AnthropicConfig",
    "AnthropicTransport",
    "HttpToolHost",
    "UnconfiguredTransport",
    "create_transport",
]
