"""Shared types and dataclasses for services.

Provides typed alternatives to dict[str, Any] for better type safety.
Snapshot and evidence types are frozen: they are built fresh per request
and never mutated afterwards.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

EvidenceKind = Literal["job_event", "note"]
EvidenceScope = Literal["job", "property", "client"]


@dataclass(frozen=True)
class AssignedUser:
    id: str
    first_name: str | None
    last_name: str | None


@dataclass(frozen=True)
class JobInfo:
    id: str
    job_type: str
    scheduled_at: str | None
    status: str
    summary: str | None
    assigned_user: AssignedUser | None = None


@dataclass(frozen=True)
class ClientInfo:
    id: str
    name: str
    type: str
    primary_phone: str | None
    email: str | None


@dataclass(frozen=True)
class PropertyInfo:
    id: str
    address_line1: str
    address_line2: str | None
    city: str
    state: str
    zip: str
    access_notes: str | None


@dataclass(frozen=True)
class EquipmentInfo:
    id: str
    type: str
    brand: str | None
    model: str | None
    serial: str | None
    installed_at: str | None
    warranty_expires_at: str | None


@dataclass(frozen=True)
class JobEventInfo:
    id: str
    event_type: str
    issue: str | None
    resolution: str | None
    equipment_id: str | None
    created_at: str


@dataclass(frozen=True)
class JobContextSnapshot:
    """Point-in-time aggregation of a job with its client, property,
    equipment (install date descending) and recent events (newest first)."""

    job: JobInfo
    client: ClientInfo
    property: PropertyInfo
    equipment: tuple[EquipmentInfo, ...]
    recent_events: tuple[JobEventInfo, ...]
    generated_at: str

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation used in prompts and the context endpoint."""
        data = asdict(self)
        data["equipment"] = list(data["equipment"])
        data["recent_events"] = list(data["recent_events"])
        return data


@dataclass(frozen=True)
class JobScope:
    """Entity ids a job's evidence fans out to."""

    tenant_id: str
    job_id: str
    property_id: str
    client_id: str


@dataclass(frozen=True)
class EvidenceItem:
    """A structured note or job event read from the relational store."""

    doc_id: str
    kind: EvidenceKind
    scope: EvidenceScope
    date: str
    text: str
    author_name: str | None = None
    author_email: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "doc_id": self.doc_id,
            "date": self.date,
            "type": self.kind,
            "scope": self.scope,
            "text": self.text,
            "author_name": self.author_name,
            "author_email": self.author_email,
        }


@dataclass(frozen=True)
class EvidenceChunk:
    """A vector-index match converted for prompt formatting."""

    doc_id: str
    type: str
    date: str | None
    text: str
    score: float


@dataclass(frozen=True)
class RetrievalScope:
    tenant_id: str
    job_id: str


@dataclass(frozen=True)
class VectorMatch:
    """One raw match returned by the vector index."""

    id: str
    score: float
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "score": self.score, "metadata": self.metadata}


@dataclass
class VectorRetrievalDebug:
    """Advisory diagnostics for one retrieval. Never needed for correctness."""

    vector_enabled: bool = False
    vector_matches: int = 0
    vector_filter: dict[str, Any] | None = None
    vector_filter_used: dict[str, Any] | None = None
    vector_filter_errors: list[dict[str, Any]] = field(default_factory=list)
    vector_fallback_used: bool = False
    unfiltered_matches: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class VectorRetrievalResult:
    chunks: list[EvidenceChunk] = field(default_factory=list)
    debug: VectorRetrievalDebug = field(default_factory=VectorRetrievalDebug)
