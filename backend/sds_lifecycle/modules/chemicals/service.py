from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import and_, func, not_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.exceptions import DataIntegrityViolation
from sds_lifecycle.modules.chemicals.models import (
    ChemicalRecord,
    SdsUpdateSuggestion,
    SubstitutionSuggestion,
)
from sds_lifecycle.modules.tenants.scope import TenantScope

ACTIVE = "ACTIVE"

RISK_TIERS = ("CRITICAL", "HIGH", "MEDIUM", "LOW")


# --- Records ---


async def get_record(
    db: AsyncSession, tenant_id: uuid.UUID, record_id: int
) -> ChemicalRecord | None:
    result = await db.execute(
        select(ChemicalRecord).where(
            ChemicalRecord.id == record_id,
            ChemicalRecord.tenant_id == tenant_id,
        )
    )
    return result.scalar_one_or_none()


async def list_records(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    cmr_only: bool = False,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[ChemicalRecord], int]:
    base = select(ChemicalRecord).where(
        ChemicalRecord.tenant_id == tenant_id,
        ChemicalRecord.status == ACTIVE,
    )
    if cmr_only:
        base = base.where(ChemicalRecord.is_cmr == True)  # noqa: E712

    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    result = await db.execute(
        base.order_by(ChemicalRecord.product_name.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


async def find_by_cas(
    db: AsyncSession, tenant_id: uuid.UUID, cas_number: str
) -> list[ChemicalRecord]:
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            func.trim(ChemicalRecord.cas_number) == cas_number,
        )
        .order_by(ChemicalRecord.id.asc())
    )
    return list(result.scalars().all())


async def find_by_catalog(
    db: AsyncSession, tenant_id: uuid.UUID, catalog_number: str
) -> list[ChemicalRecord]:
    """Records with this catalog number; supplier narrowing happens in matching."""
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            func.upper(func.replace(ChemicalRecord.catalog_number, " ", "")) == catalog_number,
        )
        .order_by(ChemicalRecord.id.asc())
    )
    return list(result.scalars().all())


def risk_tier_clause(tier: str):
    """SQL condition for a supplier-check risk tier.

    CMR or SVHC is CRITICAL, hazard level 3+ HIGH, 1-2 MEDIUM, anything else LOW.
    """
    critical = or_(ChemicalRecord.is_cmr == True, ChemicalRecord.is_svhc == True)  # noqa: E712
    if tier == "CRITICAL":
        return critical
    if tier == "HIGH":
        return and_(not_(critical), ChemicalRecord.hazard_level >= 3)
    if tier == "MEDIUM":
        return and_(not_(critical), ChemicalRecord.hazard_level.between(1, 2))
    if tier == "LOW":
        return and_(not_(critical), ChemicalRecord.hazard_level < 1)
    raise ValueError(f"Unknown risk tier: {tier}")


async def records_due_for_supplier_sync(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    stale_before: datetime,
    limit: int,
    stale_before_by_tier: dict[str, datetime] | None = None,
) -> list[ChemicalRecord]:
    """ACTIVE records with supplier + catalog whose SDS sync is older than *stale_before*.

    *stale_before_by_tier* overrides the cutoff per risk tier. Never-synced
    records come first, then the stalest.
    """
    if stale_before_by_tier:
        stale = or_(
            *(
                and_(
                    risk_tier_clause(tier),
                    ChemicalRecord.last_synced_at < stale_before_by_tier.get(tier, stale_before),
                )
                for tier in RISK_TIERS
            )
        )
    else:
        stale = ChemicalRecord.last_synced_at < stale_before
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            ChemicalRecord.supplier.is_not(None),
            ChemicalRecord.catalog_number.is_not(None),
            or_(ChemicalRecord.last_synced_at.is_(None), stale),
        )
        .order_by(ChemicalRecord.last_synced_at.asc().nulls_first(), ChemicalRecord.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def records_due_for_registry_sync(
    db: AsyncSession, tenant_id: uuid.UUID, stale_before: datetime, limit: int
) -> list[ChemicalRecord]:
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            ChemicalRecord.cas_number.is_not(None),
            or_(
                ChemicalRecord.last_registry_sync_at.is_(None),
                ChemicalRecord.last_registry_sync_at < stale_before,
            ),
        )
        .order_by(
            ChemicalRecord.last_registry_sync_at.asc().nulls_first(), ChemicalRecord.id.asc()
        )
        .limit(limit)
    )
    return list(result.scalars().all())


async def records_due_for_review(
    db: AsyncSession, tenant_id: uuid.UUID, review_before: date, sds_older_than: date
) -> list[ChemicalRecord]:
    """Records whose review date is near or whose SDS has outlived the review interval."""
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            or_(
                ChemicalRecord.next_review_date <= review_before,
                ChemicalRecord.sds_date < sds_older_than,
            ),
        )
        .order_by(ChemicalRecord.id.asc())
    )
    return list(result.scalars().all())


async def records_needing_supplier_update(
    db: AsyncSession, tenant_id: uuid.UUID, sds_older_than: date, limit: int
) -> list[ChemicalRecord]:
    """Records with a supplier whose SDS is older than *sds_older_than*, oldest first."""
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            ChemicalRecord.supplier.is_not(None),
            ChemicalRecord.sds_date < sds_older_than,
        )
        .order_by(ChemicalRecord.sds_date.asc(), ChemicalRecord.id.asc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def records_for_substitution(
    db: AsyncSession, tenant_id: uuid.UUID
) -> list[ChemicalRecord]:
    result = await db.execute(
        select(ChemicalRecord)
        .where(
            ChemicalRecord.tenant_id == tenant_id,
            ChemicalRecord.status == ACTIVE,
            or_(ChemicalRecord.is_cmr == True, ChemicalRecord.is_svhc == True),  # noqa: E712
        )
        .order_by(ChemicalRecord.id.asc())
    )
    return list(result.scalars().all())


async def merge_record_fields(
    db: AsyncSession, scope: TenantScope, record_id: int, values: dict[str, Any]
) -> None:
    """Write *values* onto one record as a single tenant-guarded UPDATE.

    Only the columns present in *values* are touched, so concurrent edits to
    other fields survive. Zero or several affected rows means the record is
    not the scope's tenant's, which is an isolation failure.
    """
    if not values:
        return
    result = await db.execute(
        update(ChemicalRecord)
        .where(
            ChemicalRecord.id == record_id,
            ChemicalRecord.tenant_id == scope.tenant_id,
        )
        .values(**values)
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise DataIntegrityViolation(
            f"Record {record_id} update affected {result.rowcount} rows",
            tenant_id=scope.tenant_id,
        )


async def touch_synced(
    db: AsyncSession, scope: TenantScope, record_id: int, at: datetime
) -> None:
    await merge_record_fields(db, scope, record_id, {"last_synced_at": at})


async def touch_registry_synced(
    db: AsyncSession, scope: TenantScope, record_id: int, at: datetime
) -> None:
    await merge_record_fields(db, scope, record_id, {"last_registry_sync_at": at})


# --- Review queue ---


async def create_suggestion(db: AsyncSession, scope: TenantScope, **data: Any) -> SdsUpdateSuggestion:
    if data.get("storage_key"):
        scope.check_key(data["storage_key"])
    suggestion = SdsUpdateSuggestion(tenant_id=scope.tenant_id, **data)
    db.add(suggestion)
    await db.flush()
    await db.refresh(suggestion)
    return suggestion


async def pending_suggestion_exists(
    db: AsyncSession, tenant_id: uuid.UUID, extraction_hash: str, record_id: int | None
) -> bool:
    query = (
        select(func.count())
        .select_from(SdsUpdateSuggestion)
        .where(
            SdsUpdateSuggestion.tenant_id == tenant_id,
            SdsUpdateSuggestion.extraction_hash == extraction_hash,
            SdsUpdateSuggestion.status == "PENDING",
        )
    )
    if record_id is None:
        query = query.where(SdsUpdateSuggestion.record_id.is_(None))
    else:
        query = query.where(SdsUpdateSuggestion.record_id == record_id)
    return (await db.execute(query)).scalar_one() > 0


async def list_suggestions(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    status: str = "PENDING",
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[SdsUpdateSuggestion], int]:
    base = select(SdsUpdateSuggestion).where(
        SdsUpdateSuggestion.tenant_id == tenant_id,
        SdsUpdateSuggestion.status == status,
    )
    total = (await db.execute(select(func.count()).select_from(base.subquery()))).scalar_one()
    result = await db.execute(
        base.order_by(SdsUpdateSuggestion.created_at.desc(), SdsUpdateSuggestion.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total


# --- Substitution cache ---


async def get_substitution(
    db: AsyncSession, tenant_id: uuid.UUID, record_id: int
) -> SubstitutionSuggestion | None:
    result = await db.execute(
        select(SubstitutionSuggestion).where(
            SubstitutionSuggestion.tenant_id == tenant_id,
            SubstitutionSuggestion.record_id == record_id,
        )
    )
    return result.scalar_one_or_none()


async def save_substitution(
    db: AsyncSession,
    scope: TenantScope,
    record_id: int,
    alternatives: list[str],
    generated_at: datetime,
) -> SubstitutionSuggestion:
    existing = await get_substitution(db, scope.tenant_id, record_id)
    if existing:
        existing.alternatives = alternatives
        existing.generated_at = generated_at
        await db.flush()
        return existing
    row = SubstitutionSuggestion(
        tenant_id=scope.tenant_id,
        record_id=record_id,
        alternatives=alternatives,
        generated_at=generated_at,
    )
    db.add(row)
    await db.flush()
    return row
