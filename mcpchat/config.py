"""Runtime configuration for the chat backend."""

import os
from dataclasses import dataclass, field

from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."


@dataclass
class LoopConfig:
    """Configuration for the conversation loop."""

    max_rounds: int = 5  # Tool-use rounds per user submission
    channel_size: int = 64  # Fragments buffered between transport and loop
    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT

    def __post_init__(self) -> None:
        if self.max_rounds < 1:
            raise ValueError(f"max_rounds must be at least 1, got {self.max_rounds}")
        if self.channel_size < 1:
            raise ValueError(f"channel_size must be at least 1, got {self.channel_size}")


@dataclass
class Settings:
    """Process-level settings read from the environment."""

    provider: str = "anthropic"
    anthropic_api_key: str | None = None
    model: str | None = None
    loop: LoopConfig = field(default_factory=LoopConfig)
    mcp_servers: dict[str, str] = field(default_factory=dict)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables.

        Recognised variables: MCPCHAT_PROVIDER (``anthropic`` or ``none``), ANTHROPIC_API_KEY, MCPCHAT_MODEL, MCPCHAT_MAX_ROUNDS,
        MCPCHAT_MCP_SERVERS (comma separated ``name=url`` pairs) and LOG_LEVEL.
        """
        max_rounds = int(os.getenv("MCPCHAT_MAX_ROUNDS", str(LoopConfig.max_rounds)))
        return cls(
            provider=os.getenv("MCPCHAT_PROVIDER", "anthropic").strip().lower(),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or None,
            model=os.getenv("MCPCHAT_MODEL") or None,
            loop=LoopConfig(max_rounds=max_rounds),
            mcp_servers=parse_server_list(os.getenv("MCPCHAT_MCP_SERVERS", "")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


def parse_server_list(raw: str) -> dict[str, str]:
    """Parse ``name=url,name=url`` into an ordered mapping.

    Order is preserved since the tool router tries servers in this order.
    """
    servers: dict[str, str] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        name, sep, url = entry.partition("=")
        if not sep or not name.strip() or not url.strip():
            logger.warning(f"Ignoring malformed MCP server entry: {entry!r}")
            continue
        servers[name.strip()] = url.strip()
    return servers
