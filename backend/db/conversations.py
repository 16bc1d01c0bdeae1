"""Conversation and message persistence.

Conversations are created once per (tenant, job, user) thread and touched
after every turn. Messages are append-only: written in user/assistant pairs,
never edited or deleted. History reads are ordered by creation time.
"""

import logging
from dataclasses import dataclass, replace

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError

from db.engine import Database
from db.models import Conversation, Message
from errors import ConsistencyError, ConversationNotFoundError
from utils import sha256_hex, utc_now_iso

logger = logging.getLogger(__name__)


def content_hash(content: str) -> str:
    """Deterministic audit hash of message content."""
    return sha256_hex(content)


@dataclass(frozen=True)
class ConversationRecord:
    """A conversation row. ``job_id`` never changes after creation."""

    id: str
    tenant_id: str
    job_id: str
    user_id: str
    updated_at: str | None = None


@dataclass(frozen=True)
class MessageRecord:
    """A message to append. ``content_hash`` is filled in by the store."""

    id: str
    conversation_id: str
    tenant_id: str
    job_id: str
    user_id: str | None
    role: str
    content: str
    source: str = "app"
    model: str | None = None
    prompt_version: str | None = None
    metadata_json: str | None = None
    content_hash: str = ""
    created_at: str | None = None


@dataclass(frozen=True)
class StoredMessage:
    """A message as read back for history and the conversation endpoint."""

    id: str
    role: str
    content: str
    created_at: str
    metadata_json: str | None
    content_hash: str


def _to_conversation(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        job_id=row.job_id,
        user_id=row.user_id,
        updated_at=row.updated_at,
    )


def _to_stored_message(row: Message) -> StoredMessage:
    return StoredMessage(
        id=row.id,
        role=row.role,
        content=row.content,
        created_at=row.created_at,
        metadata_json=row.metadata_json,
        content_hash=row.content_hash,
    )


class ConversationStore:
    """Durable conversation/message store on top of SQLAlchemy."""

    def __init__(self, database: Database) -> None:
        self.db = database

    async def find_conversation(
        self, tenant_id: str, job_id: str, user_id: str
    ) -> ConversationRecord | None:
        """Most recently active conversation for the (tenant, job, user) triple."""
        stmt = (
            select(Conversation)
            .where(
                Conversation.tenant_id == tenant_id,
                Conversation.job_id == job_id,
                Conversation.user_id == user_id,
            )
            .order_by(Conversation.updated_at.desc())
            .limit(1)
        )
        async with self.db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _to_conversation(row) if row else None

    async def find_conversation_by_id(
        self, tenant_id: str, conversation_id: str
    ) -> ConversationRecord | None:
        stmt = select(Conversation).where(
            Conversation.tenant_id == tenant_id,
            Conversation.id == conversation_id,
        )
        async with self.db.session() as session:
            row = (await session.execute(stmt)).scalars().first()
        return _to_conversation(row) if row else None

    async def ensure_conversation(self, record: ConversationRecord) -> bool:
        """Insert the conversation unless a row with its id already exists.

        Idempotent: repeated or concurrent calls with the same id leave exactly
        one row and do not raise.

        Returns:
            True if this call created the row, False if it already existed.

        Raises:
            ConversationNotFoundError: If the id is taken by another tenant.
            ConsistencyError: If the insert reports more than one affected row.
        """
        now = utc_now_iso()
        stmt = insert(Conversation).values(
            id=record.id,
            tenant_id=record.tenant_id,
            job_id=record.job_id,
            user_id=record.user_id,
            created_at=now,
            updated_at=now,
        )

        async with self.db.session() as session:
            try:
                result = await session.execute(stmt)
                if result.rowcount > 1:
                    await session.rollback()
                    raise ConsistencyError(
                        f"Unexpected insert behavior: {result.rowcount} rows affected"
                    )
                await session.commit()
            except IntegrityError:
                await session.rollback()
                owner = await session.scalar(
                    select(Conversation.tenant_id).where(Conversation.id == record.id)
                )
                if owner is None:
                    raise
                if owner != record.tenant_id:
                    raise ConversationNotFoundError(record.id) from None
                logger.debug("Conversation %s already exists", record.id)
                return False

        logger.info(
            "Created conversation %s for job %s (tenant %s)",
            record.id,
            record.job_id,
            record.tenant_id,
        )
        return True

    async def touch_conversation(self, conversation_id: str) -> None:
        """Bump the conversation's last-activity timestamp.

        Raises:
            ConversationNotFoundError: If no row was updated.
            ConsistencyError: If more than one row was updated.
        """
        stmt = (
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(updated_at=utc_now_iso())
        )
        async with self.db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                if result.rowcount == 0:
                    raise ConversationNotFoundError(conversation_id)
                raise ConsistencyError(
                    f"Touch updated {result.rowcount} rows for conversation {conversation_id}"
                )
            await session.commit()

    async def save_message(self, message: MessageRecord) -> MessageRecord:
        """Append a message, computing its content hash.

        Returns:
            The record as written, with ``content_hash`` and ``created_at`` set.
        """
        saved = replace(
            message,
            content_hash=content_hash(message.content),
            created_at=message.created_at or utc_now_iso(),
        )
        stmt = insert(Message).values(
            id=saved.id,
            conversation_id=saved.conversation_id,
            tenant_id=saved.tenant_id,
            job_id=saved.job_id,
            user_id=saved.user_id,
            role=saved.role,
            content=saved.content,
            source=saved.source,
            model=saved.model,
            prompt_version=saved.prompt_version,
            metadata_json=saved.metadata_json,
            content_hash=saved.content_hash,
            created_at=saved.created_at,
        )
        async with self.db.session() as session:
            result = await session.execute(stmt)
            if result.rowcount != 1:
                await session.rollback()
                raise ConsistencyError(
                    f"Message insert affected {result.rowcount} rows: {saved.id}"
                )
            await session.commit()

        logger.debug(
            "Saved %s message %s to conversation %s",
            saved.role,
            saved.id,
            saved.conversation_id,
        )
        return saved

    async def list_messages(
        self, tenant_id: str, conversation_id: str
    ) -> list[StoredMessage]:
        """All messages of a conversation, oldest first."""
        stmt = (
            select(Message)
            .where(
                Message.tenant_id == tenant_id,
                Message.conversation_id == conversation_id,
            )
            .order_by(Message.created_at.asc(), Message.seq.asc())
        )
        async with self.db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_stored_message(row) for row in rows]

    async def recent_history(
        self, tenant_id: str, conversation_id: str, limit: int
    ) -> list[StoredMessage]:
        """The most recent ``limit`` messages, returned in chronological order."""
        if limit <= 0:
            return []

        stmt = (
            select(Message)
            .where(
                Message.tenant_id == tenant_id,
                Message.conversation_id == conversation_id,
            )
            .order_by(Message.created_at.desc(), Message.seq.desc())
            .limit(limit)
        )
        async with self.db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_stored_message(row) for row in reversed(rows)]
