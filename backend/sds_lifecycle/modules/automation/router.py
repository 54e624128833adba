from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.config import settings
from sds_lifecycle.core.database import get_db
from sds_lifecycle.modules.audit import service as audit_service
from sds_lifecycle.modules.audit.schemas import AuditEntryList, AuditEntryOut
from sds_lifecycle.modules.automation import service
from sds_lifecycle.modules.automation.schemas import (
    JobName,
    PaginatedSuggestionsResponse,
    PaginatedSyncRunsResponse,
    SdsSuggestionOut,
    SyncRunOut,
)
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.registry.schemas import AlternativesOut
from sds_lifecycle.modules.registry.substitution import (
    StaticAlternativesProvider,
    get_alternatives,
)
from sds_lifecycle.modules.tenants.scope import TenantScope

router = APIRouter(prefix="/tenants/{tenant_id}", tags=["sds-automation"])


def _pages(total: int, page_size: int) -> int:
    return (total + page_size - 1) // page_size if total > 0 else 0


@router.get("/sync-runs", response_model=PaginatedSyncRunsResponse)
async def list_sync_runs(
    tenant_id: UUID,
    job: JobName | None = Query(None),
    status: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> PaginatedSyncRunsResponse:
    items, total = await service.list_sync_runs(
        db,
        tenant_id=tenant_id,
        job=job.value if job else None,
        status=status,
        page=page,
        page_size=page_size,
    )
    return PaginatedSyncRunsResponse(
        items=[SyncRunOut.model_validate(r) for r in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=_pages(total, page_size),
    )


@router.get("/sync-runs/{run_id}", response_model=SyncRunOut)
async def get_sync_run(
    tenant_id: UUID,
    run_id: int,
    db: AsyncSession = Depends(get_db),
) -> SyncRunOut:
    run = await service.get_sync_run(db, run_id)
    if not run or run.tenant_id != tenant_id:
        raise HTTPException(status_code=404, detail="Sync run not found")
    return SyncRunOut.model_validate(run)


@router.get("/audit", response_model=AuditEntryList)
async def list_audit_entries(
    tenant_id: UUID,
    record_id: int | None = Query(None),
    action: str | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> AuditEntryList:
    items, total = await audit_service.list_entries(
        db, tenant_id, record_id=record_id, action=action, page=page, page_size=page_size
    )
    return AuditEntryList(
        items=[AuditEntryOut.model_validate(e) for e in items],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/suggestions", response_model=PaginatedSuggestionsResponse)
async def list_suggestions(
    tenant_id: UUID,
    status: str = Query("PENDING"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> PaginatedSuggestionsResponse:
    items, total = await chemicals_service.list_suggestions(
        db, tenant_id, status=status, page=page, page_size=page_size
    )
    return PaginatedSuggestionsResponse(
        items=[SdsSuggestionOut.model_validate(s) for s in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=_pages(total, page_size),
    )


@router.get("/records/{record_id}/alternatives", response_model=AlternativesOut)
async def get_record_alternatives(
    tenant_id: UUID,
    record_id: int,
    db: AsyncSession = Depends(get_db),
) -> AlternativesOut:
    """Safer alternatives for a record.

    Not strictly read-only: a missing or expired cache entry is regenerated
    and stored, so the first GET after the cooldown writes a
    SubstitutionSuggestion row.
    """
    record = await chemicals_service.get_record(db, tenant_id, record_id)
    if not record:
        raise HTTPException(status_code=404, detail="Record not found")
    row, cached = await get_alternatives(
        db,
        TenantScope(tenant_id),
        record,
        StaticAlternativesProvider(),
        cooldown_days=settings.substitution_cooldown_days,
    )
    return AlternativesOut(
        record_id=record.id,
        alternatives=list(row.alternatives),
        generated_at=row.generated_at.isoformat(),
        cached=cached,
    )
