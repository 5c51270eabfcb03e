"""Tests for the Anthropic transport: history mapping, truncation and streaming."""

import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest
from anthropic import APIConnectionError, APIStatusError

from mcpchat.clients.anthropic import AnthropicConfig, AnthropicMessage, AnthropicTransport
from mcpchat.errors import ModelTransportError
from mcpchat.models import Attachment, Fragment, Message
from mcpchat.services.stream import StreamGenerator


def text_event(text: str) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="text_delta", text=text))


def thinking_event(thinking: str) -> SimpleNamespace:
    return SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(type="thinking_delta", thinking=thinking))


def status_error(status_code: int, headers: dict | None = None) -> APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status_code, headers=headers, request=request)
    return APIStatusError(f"HTTP {status_code}", response=response, body=None)


class EventStream:
    """Stand-in for the SDK's AsyncStream: async iterable and async context manager."""

    def __init__(self, *events, endless: bool = False):
        self.events = list(events)
        self.endless = endless
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def close(self):
        self.closed = True

    async def __aiter__(self):
        for event in self.events:
            yield event
        while self.endless:
            yield text_event("more ")
            await asyncio.sleep(0)


def event_stream(*events) -> EventStream:
    return EventStream(*events)


@pytest.fixture
def transport():
    """Create AnthropicTransport for testing."""
    config = AnthropicConfig(max_conversation_tokens=10000, token_headroom=1000, retry_delay=0)
    with patch.dict("os.environ", {"ANTHROPIC_API_KEY": "test-key"}):
        transport = AnthropicTransport(config=config)
        # Mock tokenizer for consistent testing
        transport.tokenizer = Mock()
        transport.tokenizer.encode.return_value = ["token"] * 10
        transport.rate_limiter = Mock(check_rate_limit=AsyncMock())
        transport.client = Mock()
        return transport


async def collect(transport, history, system_prompt=None):
    return [fragment async for fragment in transport.stream(history, system_prompt)]


class TestTransportConstruction:
    """Tests for creating the transport."""

    def test_missing_api_key_raises(self):
        """Test that construction fails without an API key."""
        with patch.dict("os.environ", {}, clear=True):
            with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
                AnthropicTransport()

    def test_explicit_api_key(self):
        """Test that an explicit key overrides the environment."""
        with patch.dict("os.environ", {}, clear=True):
            transport = AnthropicTransport(api_key="explicit-key")

        assert transport.provider == "anthropic"
        assert transport.config.model == AnthropicConfig().model


class TestConvertHistory:
    """Tests for mapping conversation roles onto Anthropic messages."""

    def test_basic_exchange(self, transport):
        """Test a user and assistant exchange with a system prompt."""
        messages, system = transport.convert_history(
            [Message.user("Hi"), Message.assistant("Hello!"), Message.user("How are you?")], "Be brief."
        )

        assert messages == [
            AnthropicMessage(role="user", content="Hi"),
            AnthropicMessage(role="assistant", content="Hello!"),
            AnthropicMessage(role="user", content="How are you?"),
        ]
        assert system == "Be brief."

    def test_system_messages_fold_into_prompt(self, transport):
        """Test that system messages are appended to the system prompt."""
        messages, system = transport.convert_history(
            [Message.system("Answer in French."), Message.user("Hi")], "Be brief."
        )

        assert system == "Be brief.\n\nAnswer in French."
        assert messages == [AnthropicMessage(role="user", content="Hi")]

    def test_tool_results_become_user_turns(self, transport):
        """Test that tool messages are sent as user turns after the assistant call."""
        messages, _ = transport.convert_history(
            [
                Message.user("Weather?"),
                Message.assistant('{"tool_call":{"name":"weather","arguments":{}}}'),
                Message.tool('{"tempC":18}'),
            ],
            None,
        )

        assert [message.role for message in messages] == ["user", "assistant", "user"]
        assert messages[-1].content == 'Tool result:\n{"tempC":18}'

    def test_consecutive_roles_merge(self, transport):
        """Test that adjacent turns of the same role are merged."""
        messages, system = transport.convert_history([Message.user("First"), Message.user("Second")], None)

        assert messages == [AnthropicMessage(role="user", content="First\n\nSecond")]
        assert system == ""

    def test_empty_assistant_turns_skipped(self, transport):
        """Test that empty assistant turns are not sent."""
        messages, _ = transport.convert_history([Message.user("Hi"), Message.assistant(""), Message.user("Hello?")], None)

        assert messages == [AnthropicMessage(role="user", content="Hi\n\nHello?")]

    def test_attachments_inlined(self, transport):
        """Test that attachments are appended to the user text."""
        message = Message.user("Summarize", attachments=[Attachment(name="notes.txt", content="Buy milk")])

        messages, _ = transport.convert_history([message], None)

        assert messages[0].content == "Summarize\n\n[Attachment: notes.txt]\nBuy milk"


class TestConversationTruncation:
    """Tests for conversation truncation functionality."""

    def test_truncate_conversation_within_limit(self, transport):
        """Test that conversations within limits are not truncated."""
        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
        ]

        assert transport.truncate_conversation(messages, "System prompt") == messages

    def test_truncate_conversation_exceeds_limit(self, transport):
        """Test that the oldest messages are dropped first."""
        # 9000 available minus 10 for the system prompt leaves room for two messages
        transport.tokenizer.encode.side_effect = lambda text: ["token"] * (10 if text == "System prompt" else 4000)
        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
            AnthropicMessage(role="assistant", content="Response 2"),
            AnthropicMessage(role="user", content="Message 3"),
        ]

        result = transport.truncate_conversation(messages, "System prompt")

        # Two most recent fit, then the leading assistant turn is dropped
        assert result == [AnthropicMessage(role="user", content="Message 3")]

    def test_truncated_conversation_starts_with_user(self, transport):
        """Test that truncation never leaves an assistant turn first."""
        transport.tokenizer.encode.side_effect = lambda text: ["token"] * (10 if text == "System prompt" else 2000)
        messages = [
            AnthropicMessage(role="user", content="Message 1"),
            AnthropicMessage(role="assistant", content="Response 1"),
            AnthropicMessage(role="user", content="Message 2"),
            AnthropicMessage(role="assistant", content="Response 2"),
            AnthropicMessage(role="user", content="Message 3"),
        ]

        result = transport.truncate_conversation(messages, "System prompt")

        assert result[0].role == "user"
        assert result == messages[2:]

    def test_truncate_empty_conversation(self, transport):
        """Test that empty conversations are returned as-is."""
        assert transport.truncate_conversation([], "System prompt") == []

    def test_token_estimate_fallback_without_tokenizer(self, transport):
        """Test the character-based estimate when no tokenizer is available."""
        transport.tokenizer = None

        assert transport.estimate_message_tokens("a" * 400) == 100


class TestStreaming:
    """Tests for streaming fragments from the Messages API."""

    @pytest.mark.asyncio
    async def test_streams_text_and_thinking(self, transport):
        """Test that text and thinking deltas become fragments in order."""
        transport.client.messages.create = AsyncMock(
            return_value=event_stream(
                SimpleNamespace(type="message_start"),
                thinking_event("Adding"),
                text_event("2 + 2"),
                text_event(" = 4"),
                SimpleNamespace(type="message_stop"),
            )
        )

        fragments = await collect(transport, [Message.user("What's 2+2?")], "Be brief.")

        assert fragments == [Fragment.thinking("Adding"), Fragment.content("2 + 2"), Fragment.content(" = 4")]

    @pytest.mark.asyncio
    async def test_request_parameters(self, transport):
        """Test the parameters sent to the Messages API."""
        transport.client.messages.create = AsyncMock(return_value=event_stream())

        await collect(transport, [Message.user("Hi")], "Be brief.")

        kwargs = transport.client.messages.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["system"] == "Be brief."
        assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
        assert kwargs["temperature"] == 0.7
        assert "thinking" not in kwargs
        transport.rate_limiter.check_rate_limit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_thinking_budget_enables_thinking(self, transport):
        """Test that a thinking budget switches on extended thinking."""
        transport.config.thinking_budget_tokens = 2048
        transport.client.messages.create = AsyncMock(return_value=event_stream())

        await collect(transport, [Message.user("Hi")])

        kwargs = transport.client.messages.create.call_args.kwargs
        assert kwargs["thinking"] == {"type": "enabled", "budget_tokens": 2048}
        assert "temperature" not in kwargs
        assert "system" not in kwargs

    @pytest.mark.asyncio
    async def test_no_user_message_raises(self, transport):
        """Test that a history without user turns is rejected before any request."""
        transport.client.messages.create = AsyncMock()

        with pytest.raises(ModelTransportError, match="No user message"):
            await collect(transport, [Message.assistant("Hello")])
        transport.client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_server_error_retried(self, transport):
        """Test that 5xx responses are retried."""
        transport.client.messages.create = AsyncMock(side_effect=[status_error(500), event_stream(text_event("ok"))])

        fragments = await collect(transport, [Message.user("Hi")])

        assert fragments == [Fragment.content("ok")]
        assert transport.client.messages.create.await_count == 2

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, transport):
        """Test that 4xx responses fail immediately as transport errors."""
        transport.client.messages.create = AsyncMock(side_effect=status_error(400))

        with pytest.raises(ModelTransportError) as exc_info:
            await collect(transport, [Message.user("Hi")])

        assert exc_info.value.status_code == 400
        assert exc_info.value.provider == "anthropic"
        assert transport.client.messages.create.await_count == 1

    @pytest.mark.asyncio
    async def test_rate_limit_honors_retry_after(self, transport):
        """Test that 429 responses wait for the retry-after interval."""
        transport.client.messages.create = AsyncMock(
            side_effect=[status_error(429, {"retry-after": "3"}), event_stream(text_event("ok"))]
        )

        with patch("mcpchat.clients.anthropic.asyncio.sleep", new=AsyncMock()) as sleep:
            fragments = await collect(transport, [Message.user("Hi")])

        sleep.assert_awaited_once_with(3)
        assert fragments == [Fragment.content("ok")]

    @pytest.mark.asyncio
    async def test_connection_errors_exhaust_retries(self, transport):
        """Test that persistent connection errors surface as transport errors."""
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        transport.client.messages.create = AsyncMock(side_effect=APIConnectionError(request=request))

        with pytest.raises(ModelTransportError, match="Anthropic streaming failed"):
            await collect(transport, [Message.user("Hi")])

        assert transport.client.messages.create.await_count == transport.config.max_retries

    @pytest.mark.asyncio
    async def test_event_stream_closed_after_turn(self, transport):
        """Test that the response stream is closed once the turn is complete."""
        events = event_stream(text_event("ok"))
        transport.client.messages.create = AsyncMock(return_value=events)

        await collect(transport, [Message.user("Hi")])

        assert events.closed is True

    @pytest.mark.asyncio
    async def test_event_stream_closed_on_abandonment(self, transport):
        """Test that abandoning the turn mid-stream closes the response stream."""
        events = EventStream(text_event("Once upon a time "), endless=True)
        transport.client.messages.create = AsyncMock(return_value=events)
        stream = StreamGenerator(transport, [Message.user("Tell me a long story")], channel_size=2)

        async for fragment in stream:
            assert fragment.text == "Once upon a time "
            break
        await stream.aclose()

        assert events.closed is True
