"""Registry sync job: hazard re-classification plus review and substitution reminders."""

from __future__ import annotations

from datetime import timedelta

from fakes import (
    FakeExtractionClient,
    FakeRegistry,
    RecordingDigestSender,
    add_record,
    add_tenant,
    context_for,
    count_rows,
    make_orchestrator,
)
from sqlalchemy import select

from sds_lifecycle.core.clock import add_years, utcnow
from sds_lifecycle.core.exceptions import TransientExternalError
from sds_lifecycle.modules.audit.models import REGISTRY_SYNC, AuditEntry
from sds_lifecycle.modules.automation.models import COMPLETED
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.notifications import service as notifications_service
from sds_lifecycle.modules.notifications.models import (
    HAZARD_RECLASSIFIED,
    SDS_REVIEW_DUE,
    SUBSTITUTION_REMINDER,
    SUPPLIER_UPDATE_REQUEST,
    Notification,
)
from sds_lifecycle.modules.registry.schemas import RegistrySubstance

ACRYLONITRILE = RegistrySubstance(
    cas_number="107-13-1",
    name="Acrylonitrile",
    ec_number="203-466-5",
    is_svhc=False,
    reach_status="REGISTERED",
    hazard_codes=["H225", "H350", "H331"],
)


def registry_orchestrator(session_factory, settings, registry, digests=None, **overrides):
    if overrides:
        settings = settings.model_copy(update=overrides)
    return make_orchestrator(
        session_factory,
        settings,
        extraction_client=FakeExtractionClient(),
        registry=registry,
        digest_sender=digests or RecordingDigestSender(),
    )


async def test_registry_cmr_classification_reclassifies_record(db, session_factory, test_settings):
    tenant = await add_tenant(db, "acme", members=(("ADMIN", "admin"), ("HMS", "hms")))
    record = await add_record(
        db,
        tenant.id,
        product_name="Acrylonitrile",
        cas_number="107-13-1",
        hazard_statements=["H225 Highly flammable liquid and vapour"],
        hazard_level=4,
        sds_date=utcnow().date(),
    )
    digests = RecordingDigestSender()
    orchestrator = registry_orchestrator(
        session_factory, test_settings, FakeRegistry({"107-13-1": ACRYLONITRILE}), digests,
        substitution_reminder_weekday=(utcnow().weekday() + 1) % 7,
    )

    summary = await orchestrator.run_registry_sync([context_for(tenant)])

    result = summary.tenants[0]
    assert result.status == COMPLETED
    assert (result.counts.found, result.counts.applied) == (1, 1)

    async with session_factory() as s:
        stored = await s.get(ChemicalRecord, record.id)
        assert stored.is_cmr is True
        assert stored.hazard_level == 5
        assert stored.substitution_priority == "HIGH"
        assert stored.ec_number == "203-466-5"
        assert stored.reach_status == "REGISTERED"
        # SDS statements are kept; registry codes only fill an empty list
        assert stored.hazard_statements == ["H225 Highly flammable liquid and vapour"]
        assert stored.registry_hazard_codes == ["H225", "H350", "H331"]
        assert stored.last_registry_sync_at is not None

        entry = (await s.execute(select(AuditEntry))).scalar_one()
        assert entry.action == REGISTRY_SYNC
        assert entry.source == "REGISTRY"
        assert entry.changes["is_cmr"] == {"old": False, "new": True}
        assert entry.sync_run_id == result.sync_run_id

        notifications = await notifications_service.list_notifications(s, tenant.id)
    assert [n.reason for n in notifications] == [HAZARD_RECLASSIFIED, HAZARD_RECLASSIFIED]
    assert len(digests.sent) == 2
    assert "Hazard classification changed (1)" in digests.sent[0]["text"]


async def test_registry_fills_missing_hazard_statements(db, session_factory, test_settings):
    tenant = await add_tenant(db, "acme")
    record = await add_record(db, tenant.id, product_name="Acrylonitrile", cas_number="107-13-1")
    orchestrator = registry_orchestrator(
        session_factory, test_settings, FakeRegistry({"107-13-1": ACRYLONITRILE})
    )

    await orchestrator.run_registry_sync([context_for(tenant)])

    async with session_factory() as s:
        stored = await s.get(ChemicalRecord, record.id)
    assert stored.hazard_statements == ["H225", "H350", "H331"]
    assert stored.is_cmr is True


async def test_unknown_and_invalid_cas_numbers_are_marked_synced(db, session_factory, test_settings):
    tenant = await add_tenant(db, "acme")
    unknown = await add_record(db, tenant.id, product_name="Ethanol", cas_number="64-17-5")
    invalid = await add_record(db, tenant.id, product_name="Typo", cas_number="123-45-6")
    registry = FakeRegistry()
    orchestrator = registry_orchestrator(session_factory, test_settings, registry)

    summary = await orchestrator.run_registry_sync([context_for(tenant)])

    assert (summary.totals.found, summary.totals.discarded, summary.totals.applied) == (2, 2, 0)
    assert registry.lookups == ["64-17-5"]
    assert await count_rows(session_factory, AuditEntry) == 0
    async with session_factory() as s:
        assert (await s.get(ChemicalRecord, unknown.id)).last_registry_sync_at is not None
        assert (await s.get(ChemicalRecord, invalid.id)).last_registry_sync_at is not None


async def test_unchanged_classification_writes_no_audit_entry(db, session_factory, test_settings):
    tenant = await add_tenant(db, "acme")
    await add_record(
        db, tenant.id, product_name="Ethanol", cas_number="64-17-5",
        hazard_statements=["H225"], registry_hazard_codes=["H225"], hazard_level=4,
        substitution_priority="HIGH", ec_number="200-578-6",
    )
    registry = FakeRegistry(
        {"64-17-5": RegistrySubstance(cas_number="64-17-5", ec_number="200-578-6", hazard_codes=["H225"])}
    )
    orchestrator = registry_orchestrator(session_factory, test_settings, registry)

    summary = await orchestrator.run_registry_sync([context_for(tenant)])

    assert (summary.totals.found, summary.totals.applied, summary.totals.discarded) == (1, 0, 0)
    assert await count_rows(session_factory, AuditEntry) == 0


async def test_registry_outage_defers_record(db, session_factory, test_settings):
    tenant = await add_tenant(db, "acme")
    record = await add_record(db, tenant.id, product_name="Acrylonitrile", cas_number="107-13-1")
    registry = FakeRegistry({"107-13-1": TransientExternalError("hazard_registry", "HTTP 503")})
    orchestrator = registry_orchestrator(session_factory, test_settings, registry)

    summary = await orchestrator.run_registry_sync([context_for(tenant)])

    assert summary.tenants[0].status == COMPLETED
    assert (summary.totals.found, summary.totals.failed) == (1, 1)
    assert registry.lookups == ["107-13-1", "107-13-1"]
    async with session_factory() as s:
        assert (await s.get(ChemicalRecord, record.id)).last_registry_sync_at is None


async def test_review_due_reminders(db, session_factory, test_settings):
    today = utcnow().date()
    tenant = await add_tenant(db, "acme")
    outdated = await add_record(db, tenant.id, product_name="Toluene", sds_date=add_years(today, -4))
    due_soon = await add_record(
        db, tenant.id, product_name="Xylene", sds_date=add_years(today, -2),
        next_review_date=today + timedelta(days=10),
    )
    await add_record(db, tenant.id, product_name="Heptane", sds_date=today - timedelta(days=200))
    digests = RecordingDigestSender()
    orchestrator = registry_orchestrator(
        session_factory, test_settings, FakeRegistry(), digests,
        substitution_reminder_weekday=(today.weekday() + 1) % 7,
    )

    await orchestrator.run_registry_sync([context_for(tenant)])

    async with session_factory() as s:
        notifications = await notifications_service.list_notifications(s, tenant.id, reason=SDS_REVIEW_DUE)
    assert sorted(n.record_id for n in notifications) == [outdated.id, due_soon.id]
    assert len(digests.sent) == 1
    assert "SDS review due (2)" in digests.sent[0]["text"]
    assert f"review due {add_years(outdated.sds_date, 3).isoformat()}" in digests.sent[0]["text"]


async def test_substitution_reminders_only_on_configured_weekday(db, session_factory, test_settings):
    today = utcnow().date()
    tenant = await add_tenant(db, "acme")
    cmr = await add_record(
        db, tenant.id, product_name="Dichloromethane", is_cmr=True, substitution_priority="HIGH",
        sds_date=today,
    )
    await add_record(db, tenant.id, product_name="Acetone", sds_date=today)

    off_day = registry_orchestrator(
        session_factory, test_settings, FakeRegistry(),
        substitution_reminder_weekday=(today.weekday() + 1) % 7,
    )
    await off_day.run_registry_sync([context_for(tenant)])
    assert await count_rows(session_factory, Notification) == 0

    digests = RecordingDigestSender()
    reminder_day = registry_orchestrator(
        session_factory, test_settings, FakeRegistry(), digests,
        substitution_reminder_weekday=today.weekday(),
    )
    await reminder_day.run_registry_sync([context_for(tenant)])

    async with session_factory() as s:
        notifications = await notifications_service.list_notifications(s, tenant.id)
    assert [(n.reason, n.record_id) for n in notifications] == [(SUBSTITUTION_REMINDER, cmr.id)]
    assert "Substitution candidates (CMR/SVHC) (1)" in digests.sent[0]["text"]


async def test_second_registry_run_is_a_no_op(db, session_factory, test_settings):
    today = utcnow().date()
    tenant = await add_tenant(db, "acme")
    await add_record(db, tenant.id, product_name="Acrylonitrile", cas_number="107-13-1", sds_date=today)
    await add_record(db, tenant.id, product_name="Toluene", sds_date=add_years(today, -4))
    digests = RecordingDigestSender()
    registry = FakeRegistry({"107-13-1": ACRYLONITRILE})
    orchestrator = registry_orchestrator(
        session_factory, test_settings, registry, digests, substitution_reminder_weekday=today.weekday()
    )

    await orchestrator.run_registry_sync([context_for(tenant)])
    audit_before = await count_rows(session_factory, AuditEntry)
    notifications_before = await count_rows(session_factory, Notification)
    second = await orchestrator.run_registry_sync([context_for(tenant)])

    assert second.totals.found == 0
    assert registry.lookups == ["107-13-1"]
    assert await count_rows(session_factory, AuditEntry) == audit_before == 1
    # Reclassified, review due, substitution reminder
    assert await count_rows(session_factory, Notification) == notifications_before == 3
    assert len(digests.sent) == 1


async def test_ageing_sds_prompts_a_monthly_supplier_update_request(db, session_factory, test_settings):
    today = utcnow().date()
    tenant = await add_tenant(db, "acme")
    ageing = await add_record(
        db, tenant.id, product_name="Toluene", supplier="VWR", sds_date=add_years(today, -1)
    )
    await add_record(db, tenant.id, product_name="Acetone", supplier="VWR", sds_date=today - timedelta(days=30))
    await add_record(db, tenant.id, product_name="Buffer", sds_date=add_years(today, -1))
    digests = RecordingDigestSender()
    orchestrator = registry_orchestrator(
        session_factory, test_settings, FakeRegistry(), digests,
        substitution_reminder_weekday=(today.weekday() + 1) % 7,
    )

    await orchestrator.run_registry_sync([context_for(tenant)])
    await orchestrator.run_registry_sync([context_for(tenant)])

    async with session_factory() as s:
        notifications = await notifications_service.list_notifications(s, tenant.id)
    assert [(n.reason, n.record_id) for n in notifications] == [(SUPPLIER_UPDATE_REQUEST, ageing.id)]
    assert len(digests.sent) == 1
    assert "Request an updated SDS from the supplier (1)" in digests.sent[0]["text"]
