"""Application-level exception types for Fractal."""

from __future__ import annotations


class FractalError(Exception):
    """Base exception for Fractal."""


class ConfigurationError(FractalError):
    """Base exception for configuration and startup validation errors."""


class WorkspaceNotFoundError(ConfigurationError):
    """Raised when the configured workspace path does not exist."""


class ApiKeyNotConfiguredError(ConfigurationError):
    """Raised when a model call is attempted without an API key."""


class StorageError(FractalError):
    """Raised when persisted state cannot be read or written."""


class ConversationNotFoundError(StorageError):
    """Raised when a conversation id has no stored file."""

    def __init__(self, conversation_id: str) -> None:
        super().__init__("Conversation not found")
        self.conversation_id = conversation_id


class RpcError(FractalError):
    """Raised on the calling side when a remote procedure fails."""


class RpcTimeoutError(RpcError):
    """Raised when no response arrives before the call deadline."""


class RpcClosedError(RpcError):
    """Raised for calls still pending when the client shuts down."""


class UnknownMethodError(RpcError):
    """Raised by the server for a method outside the procedure set."""

    def __init__(self, method: object) -> None:
        super().__init__(f"Unknown method: {method}")
        self.method = method


class MalformedEnvelopeError(RpcError):
    """Raised by the server for a request that does not parse."""


class ToolLoopExceededError(FractalError):
    """Raised when the model keeps requesting tools past the round limit."""

    def __init__(self, max_rounds: int) -> None:
        super().__init__(f"tool loop exceeded {max_rounds} rounds")
        self.max_rounds = max_rounds


class ModelTimeoutError(FractalError):
    """Raised when the model does not answer within the configured deadline."""

    def __init__(self, timeout_seconds: float | None) -> None:
        super().__init__(f"no response within {timeout_seconds}s")
        self.timeout_seconds = timeout_seconds


class ToolError(FractalError):
    """Raised by a tool handler; the message is reported back to the model."""
