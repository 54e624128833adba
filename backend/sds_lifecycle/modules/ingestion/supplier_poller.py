from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.exceptions import TransientExternalError
from sds_lifecycle.core.resilience import RateLimiter, call_with_retry
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.ingestion.base import IngestionAdapter
from sds_lifecycle.modules.ingestion.schemas import (
    CandidateDocument,
    CandidateSource,
    CandidateState,
)
from sds_lifecycle.modules.suppliers.registry import SupplierRegistry
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()


class SupplierCatalogPoller(IngestionAdapter):
    """Checks stale records against their supplier's catalog for a newer SDS."""

    name = "supplier"

    def __init__(
        self,
        suppliers: SupplierRegistry,
        limiter: RateLimiter,
        refresh_days: int = 7,
        batch_cap: int = 10,
        retry_delay_s: float = 0.0,
        risk_refresh_days: dict[str, int] | None = None,
    ) -> None:
        super().__init__()
        self.suppliers = suppliers
        self.limiter = limiter
        self.refresh_days = refresh_days
        self.risk_refresh_days = dict(risk_refresh_days or {})
        self.batch_cap = batch_cap
        self.retry_delay_s = retry_delay_s
        self.checked = 0
        self.up_to_date = 0

    async def candidates(
        self, db: AsyncSession, scope: TenantScope, now: datetime
    ) -> AsyncIterator[CandidateDocument]:
        by_tier = {tier: now - timedelta(days=days) for tier, days in self.risk_refresh_days.items()}
        records = await chemicals_service.records_due_for_supplier_sync(
            db,
            scope.tenant_id,
            now - timedelta(days=self.refresh_days),
            self.batch_cap,
            stale_before_by_tier=by_tier,
        )
        # Plain values: the caller may roll back between candidates, which expires ORM rows
        targets = [
            (r.id, r.supplier, r.catalog_number, r.sds_date)
            for r in scope.check_all_owned(records, "ChemicalRecord")
        ]

        for record_id, supplier, catalog, known_date in targets:
            client = self.suppliers.resolve(supplier)
            if client is None:
                self.skipped += 1
                logger.debug("supplier_not_supported", record_id=record_id, supplier=supplier)
                continue

            self.checked += 1
            try:
                await self.limiter.wait()
                check = await call_with_retry(
                    lambda: client.check_for_update(catalog, known_date),
                    delay_s=self.retry_delay_s,
                    label="supplier_check",
                )
                if not check.has_update:
                    self.up_to_date += 1
                    await chemicals_service.touch_synced(db, scope, record_id, now)
                    continue

                await self.limiter.wait()
                content = await call_with_retry(
                    lambda: client.download_sds(catalog, check.download_url),
                    delay_s=self.retry_delay_s,
                    label="supplier_download",
                )
            except TransientExternalError as exc:
                self.deferred += 1
                logger.warning(
                    "supplier_check_deferred",
                    record_id=record_id,
                    supplier=client.name,
                    catalog_number=catalog,
                    error=str(exc),
                )
                continue

            if not content:
                self.up_to_date += 1
                logger.warning("supplier_sds_unavailable", record_id=record_id, supplier=client.name)
                await chemicals_service.touch_synced(db, scope, record_id, now)
                continue

            yield CandidateDocument(
                tenant_id=scope.tenant_id,
                source=CandidateSource.SUPPLIER_API,
                content=content,
                origin_id=f"{client.name}:{catalog}",
                document_name=f"{catalog}.pdf",
                target_record_id=record_id,
                supplier_version=check.version,
                supplier_revision_date=check.revision_date,
            )

    async def finalize(
        self, db: AsyncSession, scope: TenantScope, candidate: CandidateDocument, now: datetime
    ) -> None:
        # AUTO_APPLY already set last_synced_at; queued/discarded documents
        # were still checked, so the record is not re-polled until it is stale.
        if candidate.target_record_id is None:
            return
        if candidate.state in (CandidateState.QUEUED, CandidateState.DISCARDED):
            await chemicals_service.touch_synced(db, scope, candidate.target_record_id, now)

    async def aclose(self) -> None:
        await self.suppliers.aclose()
