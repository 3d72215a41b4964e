"""User-facing messages for failed turns."""

from __future__ import annotations

from fractal.errors import ConfigurationError, ModelTimeoutError, ToolLoopExceededError

API_KEY_GUIDANCE = """**API Key Required**

To use Fractal Tutor, configure your Anthropic API key:

1. Get an API key from https://console.anthropic.com/
2. Set `FRACTAL_API_KEY` (or `ANTHROPIC_API_KEY`) in your environment,
   or add it to the `.env` file of your workspace
3. Restart Fractal and try again"""

INVALID_KEY_MESSAGE = "Invalid API key. Please check your Fractal Tutor settings."
RATE_LIMIT_MESSAGE = "Rate limit reached. Please wait a moment and try again."
SERVICE_ERROR_MESSAGE = "Anthropic service is experiencing issues. Please try again in a moment."
OVERLOADED_MESSAGE = "Claude is overloaded right now. Please try again in a few seconds."
INTERRUPTED_TURN_MESSAGE = "The request was interrupted before Claude finished answering. Please try again."


def _status_of(exc: BaseException) -> int | None:
    for attribute in ("status_code", "status"):
        value = getattr(exc, attribute, None)
        if isinstance(value, int):
            return value
    return None


def format_model_error(exc: BaseException) -> str:
    """Classify a failed turn by cause and explain it to the user."""
    if isinstance(exc, ConfigurationError):
        return API_KEY_GUIDANCE
    if isinstance(exc, ToolLoopExceededError):
        return (
            f"Stopped after {exc.max_rounds} rounds of tool calls without a final answer. "
            "Try asking a narrower question."
        )
    if isinstance(exc, ModelTimeoutError):
        return f"Claude did not answer within {exc.timeout_seconds or 0:g} seconds. Please try again."

    status = _status_of(exc)
    message = str(exc)
    if status == 401:
        return INVALID_KEY_MESSAGE
    if status == 429:
        return RATE_LIMIT_MESSAGE
    if status is not None and status >= 500:
        if status == 529 or "overloaded" in message.lower():
            return OVERLOADED_MESSAGE
        return SERVICE_ERROR_MESSAGE
    if "overloaded" in message.lower():
        return OVERLOADED_MESSAGE
    return f"Error: {message or type(exc).__name__}"


def error_kind(exc: BaseException) -> str:
    if isinstance(exc, ConfigurationError):
        return "configuration"
    if isinstance(exc, ToolLoopExceededError):
        return "tool_loop_exceeded"
    if isinstance(exc, ModelTimeoutError):
        return "timeout"
    status = _status_of(exc)
    if status == 401:
        return "unauthorized"
    if status == 429:
        return "rate_limited"
    if (status is not None and status >= 500) or "overloaded" in str(exc).lower():
        return "service"
    return "other"
