"""Chat handlers."""

from apps.chat.handlers.get_context import get_context
from apps.chat.handlers.get_conversation import get_conversation
from apps.chat.handlers.send_message import send_message

__all__ = [
    "send_message",
    "get_conversation",
    "get_context",
]
