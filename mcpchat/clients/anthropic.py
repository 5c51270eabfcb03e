"""Anthropic streaming transport with rate limiting and error handling."""

import asyncio
import os
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import tiktoken
from anthropic import APIConnectionError, APIStatusError, AsyncAnthropic
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from mcpchat.errors import ModelTransportError, UnsupportedRoleError
from mcpchat.models.llm import Fragment
from mcpchat.models.messages import Message, Role
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_RESULT_PREFIX = "Tool result:"

T = TypeVar("T")


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str


@dataclass
class AnthropicConfig:
    """Configuration for the Anthropic transport."""

    model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096
    temperature: float = 0.7
    max_retries: int = 3
    retry_delay: float = 1.0

    # Extended thinking; 0 disables it
    thinking_budget_tokens: int = 0

    # Token limits for truncation
    max_conversation_tokens: int = 200000
    token_headroom: int = 4096  # Reserve tokens for response


class AnthropicRateLimiter:
    """Moving-window rate limiter for requests and tokens."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the request and token windows."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_reset(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        if not self.limiter.hit(self.token_limit, token_identifier, cost=max(estimated_tokens, 1)):
            await self._wait_for_reset(self.token_limit, token_identifier, "Token")

    async def _wait_for_reset(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            wait_time = max(0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


class AnthropicTransport:
    """Streams assistant turns from the Anthropic Messages API.

    History roles map onto Anthropic's two-role format: system messages are
    folded into the system prompt, tool results are sent back as user turns
    and consecutive turns of the same role are merged.
    """

    provider = "anthropic"

    tokenizer: tiktoken.Encoding | None = None
    rate_limiter: AnthropicRateLimiter = AnthropicRateLimiter()

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize the transport.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Transport configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.client = AsyncAnthropic(api_key=anthropic_api_key)
        self.config = config or AnthropicConfig()

        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def stream(self, history: Sequence[Message], system_prompt: str | None) -> AsyncIterator[Fragment]:
        """Stream one assistant turn as fragments.

        Raises:
            ModelTransportError: If the request or the stream fails
        """
        messages, system = self.convert_history(history, system_prompt)
        messages = self.truncate_conversation(messages, system)
        if not messages:
            raise ModelTransportError("No user message to send to the model", self.provider)

        estimated_tokens = self._estimate_tokens(messages, system)
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "messages": [msg.model_dump() for msg in messages],
            "stream": True,
        }
        if system:
            request_params["system"] = system
        if self.config.thinking_budget_tokens > 0:
            # Extended thinking only accepts the default temperature
            request_params["thinking"] = {"type": "enabled", "budget_tokens": self.config.thinking_budget_tokens}
        else:
            request_params["temperature"] = self.config.temperature

        logger.debug(f"Streaming from {request_params['model']} with {len(messages)} messages")

        try:
            events = await self._request_with_retries(lambda: self.client.messages.create(**request_params))
            # Release the HTTP response even when the consumer stops early
            async with events:
                async for event in events:
                    fragment = self._to_fragment(event)
                    if fragment is not None:
                        yield fragment
        except APIStatusError as e:
            raise ModelTransportError(f"Anthropic streaming failed: {e.message}", self.provider, e.status_code) from e
        except APIConnectionError as e:
            raise ModelTransportError(f"Anthropic streaming failed: {e}", self.provider) from e

    async def _request_with_retries(self, call: Callable[[], Awaitable[T]]) -> T:
        """Execute an Anthropic API request with retry logic."""
        for attempt in range(self.config.max_retries):
            try:
                return await call()

            except APIStatusError as e:
                last_attempt = attempt >= self.config.max_retries - 1
                if e.status_code == 429 and not last_attempt:
                    retry_after = int(e.response.headers.get("retry-after", 60))
                    if retry_after < 120:
                        logger.warning(f"Rate limited by Anthropic, retrying in {retry_after}s")
                        await asyncio.sleep(retry_after)
                        continue

                elif e.status_code >= 500 and not last_attempt:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue

                raise

            except APIConnectionError:
                if attempt < self.config.max_retries - 1:
                    await asyncio.sleep(self.config.retry_delay * (2**attempt))
                    continue
                raise

        raise ModelTransportError(f"Failed to complete request after {self.config.max_retries} attempts", self.provider)

    def _to_fragment(self, event: Any) -> Fragment | None:
        """Convert a raw stream event into a fragment, skipping non-text events."""
        if getattr(event, "type", None) != "content_block_delta":
            return None

        delta = event.delta
        match delta.type:
            case "text_delta" if delta.text:
                return Fragment.content(delta.text)
            case "thinking_delta" if delta.thinking:
                return Fragment.thinking(delta.thinking)
            case _:
                return None

    def convert_history(
        self, history: Sequence[Message], system_prompt: str | None
    ) -> tuple[list[AnthropicMessage], str]:
        """Map conversation history onto Anthropic messages and a system prompt."""
        system_parts = [system_prompt] if system_prompt else []
        converted: list[AnthropicMessage] = []

        for message in history:
            match message.role:
                case Role.SYSTEM:
                    system_parts.append(message.content)
                    continue
                case Role.USER:
                    role, text = "user", self._user_text(message)
                case Role.ASSISTANT:
                    if not message.content:
                        continue
                    role, text = "assistant", message.content
                case Role.TOOL:
                    role, text = "user", f"{TOOL_RESULT_PREFIX}\n{message.content or '(empty result)'}"
                case _:
                    raise UnsupportedRoleError(message.role)

            if converted and converted[-1].role == role:
                converted[-1] = AnthropicMessage(role=role, content=f"{converted[-1].content}\n\n{text}")
            else:
                converted.append(AnthropicMessage(role=role, content=text))

        return converted, "\n\n".join(system_parts)

    def _user_text(self, message: Message) -> str:
        text = message.content
        for attachment in message.attachments:
            text += f"\n\n[Attachment: {attachment.name}]\n{attachment.content}"
        return text

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt + "".join(message.content for message in messages)
        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message.

        Args:
            message: Message content

        Returns:
            Estimated token count
        """
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4

    def truncate_conversation(self, messages: list[AnthropicMessage], system_prompt: str) -> list[AnthropicMessage]:
        """Truncate conversation from the beginning to fit within token limits.

        The result always starts with a user turn, as the Messages API requires.

        Args:
            messages: Conversation messages
            system_prompt: System prompt

        Returns:
            Truncated message list that fits within limits
        """
        if not messages:
            return messages

        available_tokens = self.config.max_conversation_tokens - self.config.token_headroom
        available_tokens -= self.estimate_message_tokens(system_prompt)

        truncated_messages: list[AnthropicMessage] = []
        current_tokens = 0

        for message in reversed(messages):
            message_tokens = self.estimate_message_tokens(message.content)
            if current_tokens + message_tokens > available_tokens:
                break
            truncated_messages.insert(0, message)
            current_tokens += message_tokens

        while truncated_messages and truncated_messages[0].role != "user":
            truncated_messages.pop(0)

        if len(truncated_messages) < len(messages):
            logger.warning(
                f"Truncated conversation from {len(messages)} to {len(truncated_messages)} messages "
                f"to fit within {available_tokens} token limit"
            )

        return truncated_messages
