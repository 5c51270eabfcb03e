"""Conversation loop: the round state machine behind one user submission."""

from collections.abc import AsyncIterator, Sequence

from mcpchat.config import LoopConfig
from mcpchat.engine.edges import route_after_detection, route_after_tool
from mcpchat.engine.state import RoundState
from mcpchat.models.conversation import ConversationUpdate, LoopState, SubmitResult, UpdateKind
from mcpchat.models.llm import ModelTransport
from mcpchat.models.messages import Message, Role
from mcpchat.models.tools import ToolDescriptor
from mcpchat.services.detector import JsonToolCallDetector, ToolCallExtractor
from mcpchat.services.router import ToolRouter
from mcpchat.services.store import ConversationStore
from mcpchat.services.stream import StreamGenerator
from mcpchat.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationLoop:
    """Orchestrates generation, tool-call detection and tool execution.

    States: GENERATING -> DETECTING -> (EXECUTING_TOOL -> GENERATING) | DONE.

    One instance serves one conversation; independent conversations get their
    own loop and share only the read-only transport, tool host and catalog.
    """

    def __init__(
        self,
        transport: ModelTransport,
        router: ToolRouter,
        extractor: ToolCallExtractor | None = None,
        store: ConversationStore | None = None,
        config: LoopConfig | None = None,
    ):
        """Initialize the conversation loop.

        Args:
            transport: Language model transport
            router: Tool router bound to the tool host
            extractor: Tool-call extractor (defaults to JSON detection in free text)
            store: Optional store that receives every finalized message
            config: Loop configuration
        """
        self.transport = transport
        self.router = router
        self.extractor = extractor or JsonToolCallDetector()
        self.store = store
        self.config = config or LoopConfig()

    def validate_submission(self, history: Sequence[Message], new_user_message: Message) -> None:
        """Check a submission before any round starts.

        Raises:
            ValueError: If the new message is not a user message, an id repeats,
                or the history still holds a streaming message
        """
        if new_user_message.role is not Role.USER:
            raise ValueError(f"Submitted message must have role 'user', got '{new_user_message.role}'")

        seen: set[str] = set()
        for message in [*history, new_user_message]:
            if message.id in seen:
                raise ValueError(f"Duplicate message id in conversation: {message.id}")
            seen.add(message.id)
            if message.is_streaming:
                raise ValueError(f"Message {message.id} is still streaming; finalize or drop it before submitting")

    async def submit(
        self,
        history: Sequence[Message],
        new_user_message: Message,
        system_prompt: str | None = None,
        tool_catalog: Sequence[ToolDescriptor] = (),
    ) -> AsyncIterator[ConversationUpdate]:
        """Process one user submission, yielding conversation-state updates.

        The sequence ends with a ``done`` update once the loop reaches DONE.
        Closing it early leaves the in-flight assistant message streaming and
        never executes a tool for a round whose detection was not reached.

        Args:
            history: Prior messages, oldest first
            new_user_message: The message being submitted
            system_prompt: Optional system prompt
            tool_catalog: Tools advertised to the model for every round of this submission

        Raises:
            ValueError: If the submission fails ``validate_submission``
        """
        self.validate_submission(history, new_user_message)

        catalog = list(tool_catalog)
        state = RoundState(messages=list(history), max_rounds=self.config.max_rounds)
        logger.info(
            f"Starting submission with {len(history)} prior messages, {len(catalog)} tools, "
            f"max_rounds: {state.max_rounds}"
        )

        state.append(new_user_message)
        await self._save(new_user_message)
        yield self._update("message_added", state, new_user_message)

        while state.state is not LoopState.DONE:
            match state.state:
                case LoopState.GENERATING:
                    stream = StreamGenerator(
                        self.transport,
                        state.messages,
                        system_prompt,
                        catalog,
                        channel_size=self.config.channel_size,
                        default_system_prompt=self.config.default_system_prompt,
                    )
                    message = Message.streaming_assistant()
                    state.begin_round(message)
                    logger.debug(f"Round {state.round}: generating")
                    yield self._update("message_added", state, message)

                    try:
                        async for fragment in stream:
                            is_thinking = fragment.kind == "thinking"
                            message.append_fragment(fragment.text, thinking=is_thinking)
                            if not is_thinking:
                                state.buffer.append(fragment.text)
                            yield self._update(
                                "message_delta", state, delta=fragment.text, thinking=is_thinking, message_id=message.id
                            )
                    finally:
                        await stream.aclose()

                    state.state = LoopState.DETECTING

                case LoopState.DETECTING:
                    message = state.streaming
                    # Without a catalog there is nothing the model could call
                    state.pending_call = self.extractor.extract(state.text) if catalog else None

                    message.finalize()
                    state.streaming = None
                    await self._save(message)
                    yield self._update("message_finalized", state, message)

                    state.state = route_after_detection(state)

                case LoopState.EXECUTING_TOOL:
                    request = state.pending_call
                    logger.info(f"Round {state.round}: executing tool '{request.name}'")
                    result = await self.router.route(request, catalog)

                    tool_message = Message.tool(result.serialize())
                    state.append(tool_message)
                    state.pending_call = None
                    state.tool_rounds += 1
                    await self._save(tool_message)
                    yield self._update("message_added", state, tool_message)
                    yield self._update("message_finalized", state, tool_message)

                    state.state = route_after_tool(state)
                    state.budget_exhausted = state.state is LoopState.DONE

                case _:
                    raise RuntimeError(f"Unhandled loop state: {state.state}")

        logger.info(f"Submission finished after {state.round} rounds and {state.tool_rounds} tool calls")
        yield self._update("done", state, budget_exhausted=state.budget_exhausted)

    async def run(
        self,
        history: Sequence[Message],
        new_user_message: Message,
        system_prompt: str | None = None,
        tool_catalog: Sequence[ToolDescriptor] = (),
    ) -> SubmitResult:
        """Drive ``submit`` to completion and collect the appended messages."""
        appended: dict[str, Message] = {}
        rounds = 0
        budget_exhausted = False
        async for update in self.submit(history, new_user_message, system_prompt, tool_catalog):
            rounds = update.round
            budget_exhausted = update.budget_exhausted
            if update.message is not None:
                appended[update.message.id] = update.message

        messages = list(appended.values())
        tool_calls = sum(1 for message in messages if message.role is Role.TOOL)
        return SubmitResult(
            messages=messages,
            rounds=rounds,
            tool_calls=tool_calls,
            budget_exhausted=budget_exhausted,
        )

    async def _save(self, message: Message) -> None:
        if self.store is not None:
            await self.store.save(message)

    def _update(
        self,
        kind: UpdateKind,
        state: RoundState,
        message: Message | None = None,
        delta: str | None = None,
        thinking: bool = False,
        message_id: str | None = None,
        budget_exhausted: bool = False,
    ) -> ConversationUpdate:
        return ConversationUpdate(
            kind=kind,
            state=state.state,
            round=state.round,
            message_id=message.id if message is not None else message_id,
            message=message.snapshot() if message is not None else None,
            delta=delta,
            thinking=thinking,
            budget_exhausted=budget_exhausted,
        )
