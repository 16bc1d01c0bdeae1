"""SQLAlchemy table definitions.

Jobs, clients, properties, equipment, job events, notes and users are owned
by other services and only read here. Conversations and messages are owned
by the copilot. Every table carries ``tenant_id``; timestamps are ISO-8601
UTC strings so lexical order equals chronological order.
"""

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from utils import utc_now_iso


class Base(DeclarativeBase):
    """Declarative base for all copilot tables."""


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    first_name: Mapped[str | None] = mapped_column(String(120), default=None)
    last_name: Mapped[str | None] = mapped_column(String(120), default=None)
    email: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(32), default="technician")


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    type: Mapped[str] = mapped_column(String(32), default="residential")
    primary_phone: Mapped[str | None] = mapped_column(String(64), default=None)
    email: Mapped[str | None] = mapped_column(String(255), default=None)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    client_id: Mapped[str] = mapped_column(String(64))
    address_line1: Mapped[str] = mapped_column(String(255))
    address_line2: Mapped[str | None] = mapped_column(String(255), default=None)
    city: Mapped[str] = mapped_column(String(120))
    state: Mapped[str] = mapped_column(String(32))
    zip: Mapped[str] = mapped_column(String(16))
    access_notes: Mapped[str | None] = mapped_column(Text, default=None)

    __table_args__ = (Index("idx_properties_tenant_client", "tenant_id", "client_id"),)


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    property_id: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(64))
    brand: Mapped[str | None] = mapped_column(String(120), default=None)
    model: Mapped[str | None] = mapped_column(String(120), default=None)
    serial: Mapped[str | None] = mapped_column(String(120), default=None)
    installed_at: Mapped[str | None] = mapped_column(String(32), default=None)
    warranty_expires_at: Mapped[str | None] = mapped_column(String(32), default=None)

    __table_args__ = (Index("idx_equipment_tenant_property", "tenant_id", "property_id"),)


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    property_id: Mapped[str] = mapped_column(String(64))
    client_id: Mapped[str] = mapped_column(String(64))
    job_type: Mapped[str] = mapped_column(String(64))
    scheduled_at: Mapped[str | None] = mapped_column(String(32), default=None)
    status: Mapped[str] = mapped_column(String(32), default="scheduled")
    assigned_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    summary: Mapped[str | None] = mapped_column(Text, default=None)

    __table_args__ = (
        Index("idx_jobs_tenant_property", "tenant_id", "property_id"),
        Index("idx_jobs_tenant_client", "tenant_id", "client_id"),
    )


class JobEvent(Base):
    __tablename__ = "job_events"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    job_id: Mapped[str] = mapped_column(String(64))
    property_id: Mapped[str] = mapped_column(String(64))
    client_id: Mapped[str] = mapped_column(String(64))
    equipment_id: Mapped[str | None] = mapped_column(String(64), default=None)
    event_type: Mapped[str] = mapped_column(String(64))
    issue: Mapped[str | None] = mapped_column(Text, default=None)
    resolution: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    __table_args__ = (
        Index("idx_job_events_tenant_job", "tenant_id", "job_id"),
        Index("idx_job_events_tenant_property", "tenant_id", "property_id"),
    )


class Note(Base):
    __tablename__ = "notes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    entity_type: Mapped[str] = mapped_column(String(16))  # job|property|client
    entity_id: Mapped[str] = mapped_column(String(64))
    note_type: Mapped[str] = mapped_column(String(32), default="tech")
    content: Mapped[str] = mapped_column(Text)
    author_user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    __table_args__ = (
        Index("idx_notes_tenant_entity", "tenant_id", "entity_type", "entity_id"),
    )


class Conversation(Base):
    __tablename__ = "copilot_conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tenant_id: Mapped[str] = mapped_column(String(64))
    job_id: Mapped[str] = mapped_column(String(64))
    user_id: Mapped[str] = mapped_column(String(64))
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    __table_args__ = (
        Index(
            "idx_copilot_conversations_scope",
            "tenant_id",
            "job_id",
            "user_id",
            "updated_at",
        ),
    )


class Message(Base):
    __tablename__ = "copilot_messages"

    # seq breaks ties between messages written within the same microsecond
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), unique=True)
    conversation_id: Mapped[str] = mapped_column(String(64))
    tenant_id: Mapped[str] = mapped_column(String(64))
    job_id: Mapped[str] = mapped_column(String(64))
    user_id: Mapped[str | None] = mapped_column(String(64), default=None)
    role: Mapped[str] = mapped_column(String(16))
    content: Mapped[str] = mapped_column(Text)
    source: Mapped[str] = mapped_column(String(32), default="app")
    model: Mapped[str | None] = mapped_column(String(120), default=None)
    prompt_version: Mapped[str | None] = mapped_column(String(64), default=None)
    metadata_json: Mapped[str | None] = mapped_column(Text, default=None)
    content_hash: Mapped[str] = mapped_column(String(64), default="")
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    __table_args__ = (
        Index("idx_copilot_messages_conversation", "conversation_id", "created_at"),
    )
