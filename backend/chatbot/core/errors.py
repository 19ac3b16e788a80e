class ChatError(Exception):
    """Base class for failures inside the chat pipeline."""


class MessageValidationError(ChatError):
    """The user message is empty or missing. Raised before any network activity."""


class ProviderError(ChatError):
    """The completion provider could not produce a response."""


class PartialStreamFault(ProviderError):
    """The provider failed after some fragments were already delivered."""

    def __init__(self, message: str, emitted: str = ""):
        super().__init__(message)
        self.emitted = emitted


class PersistenceError(ChatError):
    """The storage medium behind the conversation store failed."""
