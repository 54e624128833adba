from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic_core import to_jsonable_python
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.modules.audit.models import AUTO_APPLY, AuditEntry
from sds_lifecycle.modules.tenants.scope import TenantScope


async def append_entry(
    db: AsyncSession,
    scope: TenantScope,
    *,
    action: str,
    source: str,
    record_id: int | None = None,
    suggestion_id: int | None = None,
    sync_run_id: int | None = None,
    confidence: float | None = None,
    changes: dict | None = None,
    extraction_hash: str | None = None,
    origin_id: str | None = None,
) -> AuditEntry:
    """Append one provenance entry for the scope's tenant."""
    entry = AuditEntry(
        tenant_id=scope.tenant_id,
        action=action,
        source=source,
        record_id=record_id,
        suggestion_id=suggestion_id,
        sync_run_id=sync_run_id,
        confidence=confidence,
        changes=to_jsonable_python(changes or {}),
        extraction_hash=extraction_hash,
        origin_id=origin_id,
    )
    db.add(entry)
    await db.flush()
    return entry


async def applied_hash_exists(
    db: AsyncSession,
    tenant_id: UUID,
    record_id: int,
    extraction_hash: str,
    since: datetime,
) -> bool:
    """True if the same extraction was auto-applied to the record since *since*."""
    result = await db.execute(
        select(func.count())
        .select_from(AuditEntry)
        .where(
            AuditEntry.tenant_id == tenant_id,
            AuditEntry.record_id == record_id,
            AuditEntry.action == AUTO_APPLY,
            AuditEntry.extraction_hash == extraction_hash,
            AuditEntry.created_at >= since,
        )
    )
    return result.scalar_one() > 0


async def list_entries(
    db: AsyncSession,
    tenant_id: UUID,
    record_id: int | None = None,
    action: str | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[AuditEntry], int]:
    """List a tenant's audit trail, newest first."""
    base = select(AuditEntry).where(AuditEntry.tenant_id == tenant_id)
    if record_id is not None:
        base = base.where(AuditEntry.record_id == record_id)
    if action:
        base = base.where(AuditEntry.action == action)

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    result = await db.execute(
        base.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
