"""Chat module - job copilot turns and conversation history."""

from apps.chat.chat_service import ChatService, ChatTurn, TurnState
from apps.chat.routes import router

__all__ = ["router", "ChatService", "ChatTurn", "TurnState"]
