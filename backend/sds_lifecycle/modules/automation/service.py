from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.clock import utcnow
from sds_lifecycle.modules.automation.models import RUNNING, SyncRun


@dataclass
class RunCounts:
    found: int = 0
    applied: int = 0
    queued: int = 0
    discarded: int = 0
    failed: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


async def create_sync_run(
    db: AsyncSession, tenant_id: uuid.UUID, job: str, started_at: datetime
) -> SyncRun:
    """Create a new sync run record."""
    run = SyncRun(tenant_id=tenant_id, job=job, started_at=started_at, status=RUNNING)
    db.add(run)
    await db.flush()
    await db.refresh(run)
    return run


async def finish_sync_run(
    db: AsyncSession,
    run_id: int,
    status: str,
    counts: RunCounts | None = None,
    error_message: str | None = None,
    metadata: dict | None = None,
) -> None:
    """Update a sync run with final status and counts."""
    result = await db.execute(select(SyncRun).where(SyncRun.id == run_id))
    run = result.scalar_one_or_none()
    if run:
        counts = counts or RunCounts()
        run.finished_at = utcnow()
        run.status = status
        run.found = counts.found
        run.applied = counts.applied
        run.queued = counts.queued
        run.discarded = counts.discarded
        run.failed = counts.failed
        run.error_message = error_message
        if metadata:
            run.metadata_ = metadata
        await db.flush()


async def list_sync_runs(
    db: AsyncSession,
    tenant_id: uuid.UUID | None = None,
    job: str | None = None,
    status: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[SyncRun], int]:
    base = select(SyncRun)
    if tenant_id is not None:
        base = base.where(SyncRun.tenant_id == tenant_id)
    if job:
        base = base.where(SyncRun.job == job)
    if status:
        base = base.where(SyncRun.status == status)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    result = await db.execute(
        base.order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def get_sync_run(db: AsyncSession, run_id: int) -> SyncRun | None:
    result = await db.execute(select(SyncRun).where(SyncRun.id == run_id))
    return result.scalar_one_or_none()
