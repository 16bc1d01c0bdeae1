"""Job context snapshot builder.

Aggregates one job's structured context (job, client, property, assigned
user, equipment, recent events) for prompting. Every query is scoped by
tenant id; a job that does not exist for the tenant raises JobNotFoundError.
"""

import logging

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.engine import Database
from db.models import Client, Equipment, Job, JobEvent, Property, User
from errors import JobNotFoundError
from services.types import (
    AssignedUser,
    ClientInfo,
    EquipmentInfo,
    JobContextSnapshot,
    JobEventInfo,
    JobInfo,
    JobScope,
    PropertyInfo,
)
from utils import utc_now_iso

logger = logging.getLogger(__name__)

DEFAULT_RECENT_EVENT_LIMIT = 3


async def require_job(session: AsyncSession, tenant_id: str, job_id: str) -> JobScope:
    """Resolve a job's property/client ids, failing if it is not the tenant's.

    Raises:
        JobNotFoundError: If no job matches (tenant_id, job_id).
    """
    stmt = (
        select(Job.property_id, Job.client_id)
        .where(Job.tenant_id == tenant_id, Job.id == job_id)
        .limit(1)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        raise JobNotFoundError(tenant_id, job_id)
    return JobScope(
        tenant_id=tenant_id,
        job_id=job_id,
        property_id=row.property_id,
        client_id=row.client_id,
    )


class JobContextBuilder:
    """Builds immutable JobContextSnapshots from the relational store."""

    def __init__(self, database: Database) -> None:
        self.db = database

    async def build(
        self,
        tenant_id: str,
        job_id: str,
        recent_event_limit: int = DEFAULT_RECENT_EVENT_LIMIT,
    ) -> JobContextSnapshot:
        """Build a fresh snapshot of the job.

        Args:
            tenant_id: Tenant owning the job.
            job_id: Job identifier.
            recent_event_limit: Max recent job events to include.

        Returns:
            JobContextSnapshot with equipment sorted by install date descending
            and at most ``recent_event_limit`` events, newest first.

        Raises:
            JobNotFoundError: If the job does not exist for the tenant.
        """
        job_stmt = (
            select(Job, Client, Property, User)
            .join(
                Client,
                and_(Client.id == Job.client_id, Client.tenant_id == Job.tenant_id),
            )
            .join(
                Property,
                and_(Property.id == Job.property_id, Property.tenant_id == Job.tenant_id),
            )
            .outerjoin(
                User,
                and_(User.id == Job.assigned_user_id, User.tenant_id == Job.tenant_id),
            )
            .where(Job.id == job_id, Job.tenant_id == tenant_id)
            .limit(1)
        )

        async with self.db.session() as session:
            row = (await session.execute(job_stmt)).first()
            if row is None:
                raise JobNotFoundError(tenant_id, job_id)
            job, client, prop, assigned = row

            equipment_rows = (
                await session.execute(
                    select(Equipment)
                    .where(
                        Equipment.tenant_id == tenant_id,
                        Equipment.property_id == prop.id,
                    )
                    .order_by(Equipment.installed_at.desc().nulls_last(), Equipment.id)
                )
            ).scalars().all()

            event_rows = []
            if recent_event_limit > 0:
                event_rows = (
                    await session.execute(
                        select(JobEvent)
                        .where(JobEvent.tenant_id == tenant_id, JobEvent.job_id == job_id)
                        .order_by(JobEvent.created_at.desc())
                        .limit(recent_event_limit)
                    )
                ).scalars().all()

        assigned_user = None
        if job.assigned_user_id:
            assigned_user = AssignedUser(
                id=job.assigned_user_id,
                first_name=assigned.first_name if assigned else None,
                last_name=assigned.last_name if assigned else None,
            )

        snapshot = JobContextSnapshot(
            job=JobInfo(
                id=job.id,
                job_type=job.job_type,
                scheduled_at=job.scheduled_at,
                status=job.status,
                summary=job.summary,
                assigned_user=assigned_user,
            ),
            client=ClientInfo(
                id=client.id,
                name=client.name,
                type=client.type,
                primary_phone=client.primary_phone,
                email=client.email,
            ),
            property=PropertyInfo(
                id=prop.id,
                address_line1=prop.address_line1,
                address_line2=prop.address_line2,
                city=prop.city,
                state=prop.state,
                zip=prop.zip,
                access_notes=prop.access_notes,
            ),
            equipment=tuple(
                EquipmentInfo(
                    id=e.id,
                    type=e.type,
                    brand=e.brand,
                    model=e.model,
                    serial=e.serial,
                    installed_at=e.installed_at,
                    warranty_expires_at=e.warranty_expires_at,
                )
                for e in equipment_rows
            ),
            recent_events=tuple(
                JobEventInfo(
                    id=ev.id,
                    event_type=ev.event_type,
                    issue=ev.issue,
                    resolution=ev.resolution,
                    equipment_id=ev.equipment_id,
                    created_at=ev.created_at,
                )
                for ev in event_rows
            ),
            generated_at=utc_now_iso(),
        )

        logger.debug(
            "Built context for job %s: %d equipment, %d events",
            job_id,
            len(snapshot.equipment),
            len(snapshot.recent_events),
        )
        return snapshot
