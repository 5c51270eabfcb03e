"""Round state for one conversation submission."""

from dataclasses import dataclass, field

from mcpchat.models.conversation import LoopState
from mcpchat.models.messages import Message
from mcpchat.models.tools import ToolCallRequest


@dataclass
class RoundState:
    """Transient orchestration state, discarded when the loop reaches DONE.

    The loop owns ``messages`` and the streaming assistant message for the
    duration of the submission.
    """

    # Conversation so far, including everything appended by this submission
    messages: list[Message]
    max_rounds: int

    state: LoopState = LoopState.GENERATING
    round: int = 0  # Generation rounds started
    tool_rounds: int = 0  # Tool executions; bounded by max_rounds
    buffer: list[str] = field(default_factory=list)
    streaming: Message | None = None
    pending_call: ToolCallRequest | None = None
    budget_exhausted: bool = False

    @property
    def text(self) -> str:
        return "".join(self.buffer)

    def append(self, message: Message) -> None:
        self.messages.append(message)

    def begin_round(self, message: Message) -> None:
        """Enter GENERATING with a fresh buffer and a new streaming message."""
        self.round += 1
        self.buffer = []
        self.pending_call = None
        self.streaming = message
        self.append(message)
