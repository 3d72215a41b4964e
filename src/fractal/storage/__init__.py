"""Persistence for conversations, UI state and transcripts."""

from fractal.storage.conversations import ConversationStore, conversation_label
from fractal.storage.models import Conversation, ConversationMetadata, Message, UIState
from fractal.storage.state import TranscriptWriter, UIStateStore

__all__ = [
    "Conversation",
    "ConversationMetadata",
    "ConversationStore",
    "Message",
    "TranscriptWriter",
    "UIState",
    "UIStateStore",
    "conversation_label",
]
