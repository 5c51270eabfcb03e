"""Stream generator: one model call exposed as a lazy sequence of fragments."""

import asyncio
import contextlib
from collections.abc import AsyncGenerator, AsyncIterator, Sequence

from mcpchat.config import DEFAULT_SYSTEM_PROMPT
from mcpchat.errors import StreamConsumedError
from mcpchat.models.llm import Fragment, ModelTransport
from mcpchat.models.messages import Message
from mcpchat.models.tools import ToolDescriptor
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)

TOOL_CALL_INSTRUCTIONS = """To use a tool, respond with a JSON object in this format:
{
  "tool_call": {
    "name": "tool_name",
    "arguments": {
      "parameter": "value"
    }
  },
  "explanation": "Why you're using this tool"
}

Only one tool can be called per response. After using a tool, you will receive the result \
and can continue the conversation."""


def build_system_prompt(
    system_prompt: str | None,
    tools: Sequence[ToolDescriptor],
    default_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> str | None:
    """Augment the system prompt with the tool catalog and tool-call format.

    Without tools the prompt is returned unchanged.
    """
    if not tools:
        return system_prompt

    lines = [system_prompt or default_prompt, "", "You have access to the following tools:"]
    lines.extend(f"- {tool.name}: {tool.description}" for tool in tools)
    lines.extend(["", TOOL_CALL_INSTRUCTIONS])
    return "\n".join(lines)


class StreamGenerator:
    """Drives one generation call for a single assistant turn.

    A producer task pulls fragments from the transport into a bounded queue and
    the consumer pulls them one at a time, so pacing is set by the consumer.
    The sequence can be iterated once. Transport failures never escape: they
    end the sequence with a single ``Error: ...`` content fragment.

    Usage::

        stream = StreamGenerator(transport, history, system_prompt, tools)
        async for fragment in stream:
            ...
        text = stream.text
    """

    def __init__(
        self,
        transport: ModelTransport,
        history: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDescriptor] = (),
        channel_size: int = 64,
        default_system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        """Initialize the stream generator.

        Args:
            transport: Model transport to generate with
            history: Ordered message history, copied at construction
            system_prompt: Optional system prompt
            tools: Tool catalog advertised to the model for this round
            channel_size: Maximum fragments buffered ahead of the consumer
            default_system_prompt: Prompt to augment when tools exist but no prompt is given
        """
        self.transport = transport
        self.history = list(history)
        self.system_prompt = build_system_prompt(system_prompt, tools, default_system_prompt)
        self._queue: asyncio.Queue[Fragment | None] = asyncio.Queue(maxsize=channel_size)
        self._producer: asyncio.Task[None] | None = None
        self._iterator: AsyncGenerator[Fragment, None] | None = None
        self._parts: list[str] = []
        self._exhausted = False

    @property
    def text(self) -> str:
        """Content accumulated so far; complete once the sequence is exhausted."""
        return "".join(self._parts)

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def __aiter__(self) -> AsyncIterator[Fragment]:
        if self._iterator is not None:
            raise StreamConsumedError("A stream generator services exactly one round and cannot be restarted")
        self._iterator = self._consume()
        return self._iterator

    async def aclose(self) -> None:
        """Stop consuming: no further fragments are delivered and the producer is cancelled."""
        if self._iterator is not None:
            await self._iterator.aclose()
        await self._stop_producer()

    async def _consume(self) -> AsyncGenerator[Fragment, None]:
        self._producer = asyncio.create_task(self._produce())
        try:
            while True:
                fragment = await self._queue.get()
                if fragment is None:
                    break
                if fragment.kind == "content":
                    self._parts.append(fragment.text)
                yield fragment
            self._exhausted = True
        finally:
            await self._stop_producer()

    async def _produce(self) -> None:
        provider = getattr(self.transport, "provider", "unknown")
        try:
            async with contextlib.aclosing(self.transport.stream(self.history, self.system_prompt)) as fragments:
                async for fragment in fragments:
                    await self._queue.put(fragment)
        except Exception as e:
            logger.error(f"Model transport '{provider}' failed: {e}", exc_info=True)
            await self._queue.put(Fragment.content(f"Error: {str(e) or 'Unknown error'}"))
        await self._queue.put(None)

    async def _stop_producer(self) -> None:
        if self._producer is not None and not self._producer.done():
            self._producer.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._producer
