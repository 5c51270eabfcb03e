"""Exception hierarchy for the chat core."""


class ChatCoreError(Exception):
    """Base class for all chat core errors."""


class UnsupportedRoleError(ChatCoreError):
    """Raised when role-dependent code meets a role it does not handle."""

    def __init__(self, role: object):
        super().__init__(f"Unsupported message role: {role!r}")
        self.role = role


class MessageFinalizedError(ChatCoreError):
    """Raised when a finalized (non-streaming) message is mutated."""


class StreamConsumedError(ChatCoreError):
    """Raised when a stream generator is iterated a second time."""


class ModelTransportError(ChatCoreError):
    """Raised by model transports when a generation call fails."""

    def __init__(self, message: str, provider: str = "unknown", status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ToolHostError(ChatCoreError):
    """Raised by tool hosts when a server cannot be queried or called."""

    def __init__(self, message: str, server_id: str | None = None):
        super().__init__(message)
        self.server_id = server_id
