"""Core conversation engine for Fractal."""

from fractal.core.error_format import format_model_error
from fractal.core.model_client import AnthropicModelClient, ModelClient, ModelRequest, ModelResponse, build_model_client
from fractal.core.orchestrator import ChatOutcome, ConversationOrchestrator
from fractal.core.prompt import DEFAULT_SYSTEM_PROMPT, load_system_prompt

__all__ = [
    "DEFAULT_SYSTEM_PROMPT",
    "AnthropicModelClient",
    "ChatOutcome",
    "ConversationOrchestrator",
    "ModelClient",
    "ModelRequest",
    "ModelResponse",
    "build_model_client",
    "format_model_error",
    "load_system_prompt",
]
