"""Database module - async SQLAlchemy engine, tables and copilot stores."""

from db.conversations import (
    ConversationRecord,
    ConversationStore,
    MessageRecord,
    StoredMessage,
    content_hash,
)
from db.engine import Database
from db.models import Base

__all__ = [
    "Base",
    "ConversationRecord",
    "ConversationStore",
    "Database",
    "MessageRecord",
    "StoredMessage",
    "content_hash",
]
