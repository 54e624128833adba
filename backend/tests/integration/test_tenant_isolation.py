"""Isolation failures halt the job; the audit log cannot be rewritten."""

from __future__ import annotations

import pytest
from fakes import (
    FakeExtractionClient,
    FakeRegistry,
    MemoryDocumentStorage,
    RecordingDigestSender,
    add_record,
    add_tenant,
    context_for,
    count_rows,
    make_orchestrator,
)
from sqlalchemy import delete, select, update

from sds_lifecycle.core.exceptions import DataIntegrityViolation
from sds_lifecycle.core.resilience import RateLimiter, StopSignal
from sds_lifecycle.modules.audit import service as audit_service
from sds_lifecycle.modules.audit.models import AUTO_APPLY, AuditEntry
from sds_lifecycle.modules.automation.models import ABORTED, DEFERRED, SyncRun
from sds_lifecycle.modules.automation.orchestrator import SdsAutomationOrchestrator
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.decisions.service import DecisionService
from sds_lifecycle.modules.ingestion.base import IngestionAdapter
from sds_lifecycle.modules.ingestion.schemas import CandidateDocument, CandidateSource
from sds_lifecycle.modules.registry.service import HazardSync
from sds_lifecycle.modules.tenants.scope import TenantScope


class LeakyAdapter(IngestionAdapter):
    """Hands over a candidate that belongs to another tenant."""

    name = "leaky"

    def __init__(self, foreign_tenant_id) -> None:
        super().__init__()
        self.foreign_tenant_id = foreign_tenant_id
        self.closed = False

    async def candidates(self, db, scope, now):
        yield CandidateDocument(
            tenant_id=self.foreign_tenant_id,
            source=CandidateSource.EMAIL,
            content=b"%PDF-1.7 someone else's SDS",
            origin_id="msg-foreign",
        )

    async def finalize(self, db, scope, candidate, now) -> None:
        return None

    async def aclose(self) -> None:
        self.closed = True


async def test_foreign_candidate_aborts_and_halts_the_job(db, session_factory, test_settings):
    tenant_a = await add_tenant(db, "tenant-a")
    tenant_b = await add_tenant(db, "tenant-b")
    extraction_client = FakeExtractionClient()
    adapters: list[LeakyAdapter] = []

    def leaky_factory(context):
        adapters.append(LeakyAdapter(tenant_b.id))
        return adapters[-1]

    limiter = RateLimiter(0)
    orchestrator = SdsAutomationOrchestrator(
        session_factory,
        test_settings,
        decisions=DecisionService(extraction_client, MemoryDocumentStorage(), limiter),
        hazard_sync=HazardSync(FakeRegistry(), limiter),
        digest_sender=RecordingDigestSender(),
        email_adapter_factory=leaky_factory,
        supplier_adapter_factory=leaky_factory,
    )

    summary = await orchestrator.run_email_monitoring([context_for(tenant_a), context_for(tenant_b)])

    assert summary.halted is True
    assert [t.status for t in summary.tenants] == [ABORTED]
    assert "belongs to tenant" in summary.tenants[0].error
    assert extraction_client.calls == []
    assert adapters[0].closed is True

    async with session_factory() as s:
        runs = (await s.execute(select(SyncRun))).scalars().all()
    assert [(r.tenant_id, r.status) for r in runs] == [(tenant_a.id, ABORTED)]


async def test_stop_request_defers_remaining_tenants(db, session_factory, test_settings):
    tenant_a = await add_tenant(db, "tenant-a")
    tenant_b = await add_tenant(db, "tenant-b")
    stop = StopSignal()
    stop.request_stop()
    orchestrator = make_orchestrator(
        session_factory, test_settings, extraction_client=FakeExtractionClient(), stop_signal=stop
    )

    summary = await orchestrator.run_registry_sync([context_for(tenant_a), context_for(tenant_b)])

    assert [t.status for t in summary.tenants] == [DEFERRED, DEFERRED]
    async with session_factory() as s:
        runs = (await s.execute(select(SyncRun))).scalars().all()
    assert {r.status for r in runs} == {DEFERRED}
    assert {r.error_message for r in runs} == {"stop requested"}


async def test_exhausted_budget_defers_tenants(db, session_factory, test_settings):
    tenant = await add_tenant(db, "tenant-a")
    await add_record(db, tenant.id, cas_number="67-64-1")
    registry = FakeRegistry()
    orchestrator = make_orchestrator(
        session_factory,
        test_settings.model_copy(update={"job_budget_s": 0.0}),
        extraction_client=FakeExtractionClient(),
        registry=registry,
    )

    summary = await orchestrator.run_registry_sync([context_for(tenant)])

    assert [t.status for t in summary.tenants] == [DEFERRED]
    assert registry.lookups == []


async def test_record_update_is_scoped_to_tenant(db):
    tenant_a = await add_tenant(db, "tenant-a")
    tenant_b = await add_tenant(db, "tenant-b")
    record = await add_record(db, tenant_b.id)

    with pytest.raises(DataIntegrityViolation):
        await chemicals_service.merge_record_fields(
            db, TenantScope(tenant_a.id), record.id, {"product_name": "Renamed"}
        )


async def _entry(db, tenant_id) -> AuditEntry:
    entry = await audit_service.append_entry(
        db,
        TenantScope(tenant_id),
        action=AUTO_APPLY,
        source="EMAIL",
        changes={"sds_version": {"old": "1.0", "new": "2.0"}},
        extraction_hash="a" * 64,
    )
    await db.commit()
    return entry


async def test_audit_entries_cannot_be_modified(db, session_factory):
    tenant = await add_tenant(db, "acme")
    entry = await _entry(db, tenant.id)

    entry.changes = {}
    with pytest.raises(DataIntegrityViolation):
        await db.flush()
    await db.rollback()

    async with session_factory() as s:
        stored = await s.get(AuditEntry, entry.id)
    assert stored.changes == {"sds_version": {"old": "1.0", "new": "2.0"}}


async def test_audit_entries_cannot_be_deleted(db, session_factory):
    tenant = await add_tenant(db, "acme")
    entry = await _entry(db, tenant.id)

    await db.delete(entry)
    with pytest.raises(DataIntegrityViolation):
        await db.flush()
    await db.rollback()

    assert await count_rows(session_factory, AuditEntry) == 1


async def test_bulk_audit_statements_are_rejected(db, session_factory):
    tenant = await add_tenant(db, "acme")
    await _entry(db, tenant.id)

    with pytest.raises(DataIntegrityViolation):
        await db.execute(delete(AuditEntry).where(AuditEntry.tenant_id == tenant.id))
    with pytest.raises(DataIntegrityViolation):
        await db.execute(update(AuditEntry).values(confidence=1.0))

    assert await count_rows(session_factory, AuditEntry) == 1
