"""Exception types raised by the conversation core."""


class ConversationError(Exception):
    """Base exception for conversation-model."""


class MalformedInputError(ConversationError):
    """Raised when backend output cannot be parsed into turns."""


class ExecutionError(ConversationError):
    """Raised by code runners when a code turn fails to run."""


class BackendError(ConversationError):
    """Raised when a backend fails to produce a response stream."""
