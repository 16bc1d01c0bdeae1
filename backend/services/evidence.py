"""Structured evidence aggregation across job, property and client scopes.

Five facets are fetched concurrently, each in its own session:
job events, job notes, property events, property notes, client notes.
Every query filters by tenant id in addition to the entity id.
"""

import asyncio
import logging

from sqlalchemy import and_, select

from db.engine import Database
from db.models import JobEvent, Note, User
from services.job_context import require_job
from services.types import EvidenceItem, EvidenceScope, JobScope

logger = logging.getLogger(__name__)

EVENT_TEXT_SEPARATOR = " — "


def event_text(event_type: str | None, issue: str | None, resolution: str | None) -> str:
    """Join the non-empty parts of a job event into one line."""
    parts = [p for p in (event_type, issue, resolution) if p and p.strip()]
    return EVENT_TEXT_SEPARATOR.join(parts)


def author_name(first_name: str | None, last_name: str | None) -> str | None:
    name = f"{first_name or ''} {last_name or ''}".strip()
    return name or None


class EvidenceAggregator:
    """Gathers notes and job events that ground an answer about a job."""

    def __init__(self, database: Database) -> None:
        self.db = database

    async def gather(
        self, tenant_id: str, job_id: str, limit: int | None = None
    ) -> list[EvidenceItem]:
        """Collect evidence for a job, newest first.

        Args:
            tenant_id: Tenant owning the job.
            job_id: Job identifier.
            limit: Optional cap on the merged result (also bounds each facet).

        Returns:
            Merged evidence sorted by date descending.

        Raises:
            JobNotFoundError: If the job does not exist for the tenant.
        """
        async with self.db.session() as session:
            scope = await require_job(session, tenant_id, job_id)

        facets = await asyncio.gather(
            self._load_events(scope, "job", limit),
            self._load_notes(scope, "job", limit),
            self._load_events(scope, "property", limit),
            self._load_notes(scope, "property", limit),
            self._load_notes(scope, "client", limit),
        )

        evidence = [item for facet in facets for item in facet]
        # Stable sort keeps facet order for identical timestamps
        evidence.sort(key=lambda item: item.date, reverse=True)
        if limit is not None:
            evidence = evidence[:limit]

        logger.debug(
            "Gathered %d evidence items for job %s (tenant %s)",
            len(evidence),
            job_id,
            tenant_id,
        )
        return evidence

    async def _load_events(
        self, scope: JobScope, level: EvidenceScope, limit: int | None
    ) -> list[EvidenceItem]:
        if level == "job":
            entity_filter = JobEvent.job_id == scope.job_id
        else:
            entity_filter = JobEvent.property_id == scope.property_id

        stmt = (
            select(JobEvent)
            .where(JobEvent.tenant_id == scope.tenant_id, entity_filter)
            .order_by(JobEvent.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.db.session() as session:
            rows = (await session.execute(stmt)).scalars().all()

        return [
            EvidenceItem(
                doc_id=row.id,
                kind="job_event",
                scope=level,
                date=row.created_at,
                text=event_text(row.event_type, row.issue, row.resolution),
            )
            for row in rows
        ]

    async def _load_notes(
        self, scope: JobScope, level: EvidenceScope, limit: int | None
    ) -> list[EvidenceItem]:
        entity_id = {
            "job": scope.job_id,
            "property": scope.property_id,
            "client": scope.client_id,
        }[level]

        stmt = (
            select(
                Note.id,
                Note.content,
                Note.created_at,
                User.first_name,
                User.last_name,
                User.email,
            )
            .select_from(Note)
            .outerjoin(
                User,
                and_(User.id == Note.author_user_id, User.tenant_id == Note.tenant_id),
            )
            .where(
                Note.tenant_id == scope.tenant_id,
                Note.entity_type == level,
                Note.entity_id == entity_id,
            )
            .order_by(Note.created_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        async with self.db.session() as session:
            rows = (await session.execute(stmt)).all()

        return [
            EvidenceItem(
                doc_id=row.id,
                kind="note",
                scope=level,
                date=row.created_at,
                text=row.content,
                author_name=author_name(row.first_name, row.last_name),
                author_email=row.email,
            )
            for row in rows
        ]
