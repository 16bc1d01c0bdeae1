"""Tests for conversation and message persistence."""

import asyncio
import hashlib
from dataclasses import replace

import pytest
from sqlalchemy import func, select

from db.conversations import (
    ConversationRecord,
    ConversationStore,
    MessageRecord,
    content_hash,
)
from db.models import Conversation, Message
from errors import ConversationNotFoundError

TENANT_A = "tenant-a"
TENANT_B = "tenant-b"


def make_conversation(conversation_id="conv-1", tenant_id=TENANT_A, job_id="job-1"):
    return ConversationRecord(
        id=conversation_id, tenant_id=tenant_id, job_id=job_id, user_id="u-1"
    )


def make_message(message_id, content, role="user", conversation_id="conv-1"):
    return MessageRecord(
        id=message_id,
        conversation_id=conversation_id,
        tenant_id=TENANT_A,
        job_id="job-1",
        user_id="u-1",
        role=role,
        content=content,
        model="test-model",
        prompt_version="copilot.v1",
    )


async def count_conversations(database, conversation_id):
    async with database.session() as session:
        return await session.scalar(
            select(func.count())
            .select_from(Conversation)
            .where(Conversation.id == conversation_id)
        )


class TestContentHash:
    """Test message content hashing."""

    def test_sha256_of_utf8(self):
        """Test hash is the hex SHA-256 digest of the UTF-8 content."""
        expected = hashlib.sha256("Check the capacitor — 45µF".encode()).hexdigest()

        assert content_hash("Check the capacitor — 45µF") == expected

    def test_deterministic(self):
        assert content_hash("same") == content_hash("same")
        assert content_hash("same") != content_hash("different")


class TestEnsureConversation:
    """Test idempotent conversation creation."""

    @pytest.mark.asyncio
    async def test_creates_once(self, database):
        """Test the first call creates and later calls are no-ops."""
        store = ConversationStore(database)

        created = await store.ensure_conversation(make_conversation())
        again = await store.ensure_conversation(make_conversation())

        assert created is True
        assert again is False
        assert await count_conversations(database, "conv-1") == 1

    @pytest.mark.asyncio
    async def test_concurrent_calls_leave_one_row(self, database):
        """Test racing creators never raise and leave a single row."""
        store = ConversationStore(database)

        results = await asyncio.gather(
            *(store.ensure_conversation(make_conversation()) for _ in range(3))
        )

        assert sorted(results) == [False, False, True]
        assert await count_conversations(database, "conv-1") == 1

    @pytest.mark.asyncio
    async def test_id_owned_by_other_tenant(self, database):
        """Test reusing another tenant's conversation id is rejected."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())

        with pytest.raises(ConversationNotFoundError):
            await store.ensure_conversation(
                make_conversation(tenant_id=TENANT_B, job_id="job-b1")
            )


class TestFindConversation:
    """Test conversation lookups."""

    @pytest.mark.asyncio
    async def test_find_by_id_is_tenant_scoped(self, database):
        """Test lookups by id never cross tenants."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())

        found = await store.find_conversation_by_id(TENANT_A, "conv-1")
        hidden = await store.find_conversation_by_id(TENANT_B, "conv-1")

        assert found.job_id == "job-1"
        assert hidden is None

    @pytest.mark.asyncio
    async def test_find_returns_most_recently_active(self, database):
        """Test the latest touched conversation wins for the triple."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation("conv-old"))
        await store.ensure_conversation(make_conversation("conv-new"))
        await store.touch_conversation("conv-old")

        found = await store.find_conversation(TENANT_A, "job-1", "u-1")

        assert found.id == "conv-old"

    @pytest.mark.asyncio
    async def test_find_none(self, database):
        """Test no conversation yields None."""
        store = ConversationStore(database)

        assert await store.find_conversation(TENANT_A, "job-1", "u-1") is None


class TestTouchConversation:
    """Test last-activity updates."""

    @pytest.mark.asyncio
    async def test_bumps_updated_at(self, database):
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())
        before = await store.find_conversation_by_id(TENANT_A, "conv-1")

        await store.touch_conversation("conv-1")

        after = await store.find_conversation_by_id(TENANT_A, "conv-1")
        assert after.updated_at > before.updated_at

    @pytest.mark.asyncio
    async def test_unknown_conversation_raises(self, database):
        """Test touching a missing conversation fails."""
        store = ConversationStore(database)

        with pytest.raises(ConversationNotFoundError):
            await store.touch_conversation("conv-missing")


class TestMessages:
    """Test message append and history reads."""

    @pytest.mark.asyncio
    async def test_save_fills_hash_and_timestamp(self, database):
        """Test saved messages carry their content hash."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())

        saved = await store.save_message(make_message("m-1", "Is the unit on warranty?"))

        assert saved.content_hash == content_hash("Is the unit on warranty?")
        assert saved.created_at is not None
        async with database.session() as session:
            row = (
                await session.execute(select(Message).where(Message.id == "m-1"))
            ).scalar_one()
        assert row.content_hash == saved.content_hash
        assert row.model == "test-model"
        assert row.prompt_version == "copilot.v1"
        assert row.source == "app"

    @pytest.mark.asyncio
    async def test_list_messages_oldest_first(self, database):
        """Test messages are listed in creation order."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())
        await store.save_message(make_message("m-1", "first"))
        await store.save_message(make_message("m-2", "second", role="assistant"))
        await store.save_message(make_message("m-3", "third"))

        messages = await store.list_messages(TENANT_A, "conv-1")

        assert [m.content for m in messages] == ["first", "second", "third"]
        assert [m.role for m in messages] == ["user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_same_timestamp_keeps_insert_order(self, database):
        """Test messages sharing a timestamp keep their write order."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())
        stamp = "2024-06-01T16:00:00.000000Z"
        for message_id in ("m-b", "m-a", "m-c"):
            message = make_message(message_id, message_id)
            await store.save_message(replace(message, created_at=stamp))

        messages = await store.list_messages(TENANT_A, "conv-1")

        assert [m.id for m in messages] == ["m-b", "m-a", "m-c"]

    @pytest.mark.asyncio
    async def test_recent_history_is_bounded_and_chronological(self, database):
        """Test history returns the last N messages in chronological order."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())
        for i in range(5):
            await store.save_message(make_message(f"m-{i}", f"message {i}"))

        history = await store.recent_history(TENANT_A, "conv-1", limit=3)

        assert [m.content for m in history] == ["message 2", "message 3", "message 4"]

    @pytest.mark.asyncio
    async def test_recent_history_zero_limit(self, database):
        store = ConversationStore(database)

        assert await store.recent_history(TENANT_A, "conv-1", limit=0) == []

    @pytest.mark.asyncio
    async def test_messages_are_tenant_scoped(self, database):
        """Test another tenant cannot read the conversation's messages."""
        store = ConversationStore(database)
        await store.ensure_conversation(make_conversation())
        await store.save_message(make_message("m-1", "private"))

        assert await store.list_messages(TENANT_B, "conv-1") == []
        assert await store.recent_history(TENANT_B, "conv-1", limit=10) == []
