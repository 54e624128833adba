"""Scheduled jobs: run one job over every tenant, each in its own session.

A tenant's failure is recorded on its ``SyncRun`` and the job moves on. The
one exception is a tenant-isolation violation, which rolls back, alerts and
halts the whole job.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import assert_never
from uuid import UUID

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sds_lifecycle.core.clock import add_months, add_years, utcnow
from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import (
    ConfigurationError,
    DataIntegrityViolation,
    TransientExternalError,
)
from sds_lifecycle.core.resilience import JobBudget, StopSignal
from sds_lifecycle.modules.automation import service as automation_service
from sds_lifecycle.modules.automation.models import (
    ABORTED,
    COMPLETED,
    DEFERRED,
    EMAIL_MONITORING,
    FAILED,
    REGISTRY_SYNC,
    SKIPPED,
    SUPPLIER_POLLING,
)
from sds_lifecycle.modules.automation.service import RunCounts
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.decisions.schemas import Applied, Decision, Discarded, Queued
from sds_lifecycle.modules.decisions.service import DecisionService
from sds_lifecycle.modules.ingestion.base import IngestionAdapter
from sds_lifecycle.modules.ingestion.schemas import CandidateDocument
from sds_lifecycle.modules.notifications.digest import DigestSender
from sds_lifecycle.modules.notifications.dispatcher import NotificationDispatcher
from sds_lifecycle.modules.registry.service import HazardSync, RegistryOutcome
from sds_lifecycle.modules.tenants.schemas import TenantContext
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()

AdapterFactory = Callable[[TenantContext], IngestionAdapter]
TenantJob = Callable[
    [AsyncSession, TenantScope, TenantContext, int, RunCounts, JobBudget],
    Awaitable[bool],
]


@dataclass
class TenantRunResult:
    tenant_id: UUID
    sync_run_id: int | None
    status: str
    counts: RunCounts = field(default_factory=RunCounts)
    error: str | None = None


@dataclass
class JobSummary:
    job: str
    started_at: datetime
    finished_at: datetime | None = None
    tenants: list[TenantRunResult] = field(default_factory=list)
    halted: bool = False

    def count(self, status: str) -> int:
        return sum(1 for t in self.tenants if t.status == status)

    @property
    def totals(self) -> RunCounts:
        totals = RunCounts()
        for result in self.tenants:
            for name, value in result.counts.as_dict().items():
                setattr(totals, name, getattr(totals, name) + value)
        return totals


class SdsAutomationOrchestrator:
    """Runs the three scheduled jobs across a list of resolved tenants.

    Adapters are built per tenant by the injected factories, which raise
    ``ConfigurationError`` when the tenant lacks credentials; that tenant's
    run is then recorded as skipped.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings,
        *,
        decisions: DecisionService | None,
        hazard_sync: HazardSync,
        digest_sender: DigestSender,
        email_adapter_factory: AdapterFactory,
        supplier_adapter_factory: AdapterFactory,
        clock: Callable[[], datetime] = utcnow,
        stop_signal: StopSignal | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.settings = settings
        self.decisions = decisions
        self.hazard_sync = hazard_sync
        self.digest_sender = digest_sender
        self.email_adapter_factory = email_adapter_factory
        self.supplier_adapter_factory = supplier_adapter_factory
        self.clock = clock
        self.stop_signal = stop_signal or StopSignal()

    # --- Jobs ---

    async def run_email_monitoring(self, tenants: list[TenantContext]) -> JobSummary:
        async def per_tenant(db, scope, context, run_id, counts, budget):
            if context.mailbox is None:
                raise ConfigurationError("No mailbox configured")
            adapter = self.email_adapter_factory(context)
            return await self._ingest(db, scope, context, adapter, EMAIL_MONITORING, run_id, counts, budget)

        return await self._run_job(EMAIL_MONITORING, tenants, per_tenant)

    async def run_supplier_polling(self, tenants: list[TenantContext]) -> JobSummary:
        async def per_tenant(db, scope, context, run_id, counts, budget):
            adapter = self.supplier_adapter_factory(context)
            return await self._ingest(db, scope, context, adapter, SUPPLIER_POLLING, run_id, counts, budget)

        return await self._run_job(SUPPLIER_POLLING, tenants, per_tenant)

    async def run_registry_sync(self, tenants: list[TenantContext]) -> JobSummary:
        return await self._run_job(REGISTRY_SYNC, tenants, self._registry_tenant)

    # --- Job loop ---

    async def _run_job(self, job: str, tenants: list[TenantContext], per_tenant: TenantJob) -> JobSummary:
        budget = JobBudget(self.settings.job_budget_s)
        summary = JobSummary(job=job, started_at=self.clock())
        logger.info("job_started", job=job, tenants=len(tenants))

        for index, context in enumerate(tenants):
            if self.stop_signal.requested or budget.exhausted:
                reason = "stop requested" if self.stop_signal.requested else "job budget exhausted"
                for remaining in tenants[index:]:
                    summary.tenants.append(await self._defer_tenant(job, remaining, reason))
                logger.warning("job_cut_short", job=job, reason=reason, deferred=len(tenants) - index)
                break
            if index > 0 and self.settings.tenant_delay_s > 0:
                await asyncio.sleep(self.settings.tenant_delay_s)

            with structlog.contextvars.bound_contextvars(
                job=job, tenant_id=str(context.tenant_id), tenant=context.slug
            ):
                result = await self._run_tenant(job, context, per_tenant, budget)
            summary.tenants.append(result)
            if result.status == ABORTED:
                summary.halted = True
                break

        summary.finished_at = self.clock()
        logger.info(
            "job_finished",
            job=job,
            tenants_completed=summary.count(COMPLETED),
            tenants_skipped=summary.count(SKIPPED),
            tenants_failed=summary.count(FAILED),
            tenants_deferred=summary.count(DEFERRED),
            halted=summary.halted,
            **summary.totals.as_dict(),
        )
        return summary

    async def _run_tenant(
        self, job: str, context: TenantContext, per_tenant: TenantJob, budget: JobBudget
    ) -> TenantRunResult:
        scope = TenantScope(context.tenant_id)
        counts = RunCounts()
        error: str | None = None

        async with self.session_factory() as db:
            run = await automation_service.create_sync_run(db, context.tenant_id, job, self.clock())
            run_id = run.id
            await db.commit()

            with structlog.contextvars.bound_contextvars(run_id=run_id):
                try:
                    finished = await per_tenant(db, scope, context, run_id, counts, budget)
                    await db.commit()
                    status = COMPLETED if finished else DEFERRED
                    if not finished:
                        error = "job budget exhausted"
                except ConfigurationError as exc:
                    await db.rollback()
                    status, error = SKIPPED, str(exc)
                    logger.debug("tenant_not_configured", reason=error)
                except DataIntegrityViolation as exc:
                    await db.rollback()
                    status, error = ABORTED, str(exc)
                    await self._report_isolation_violation(job, context, run_id, exc)
                except Exception as exc:
                    await db.rollback()
                    status, error = FAILED, f"{type(exc).__name__}: {exc}"
                    logger.error("tenant_run_failed", error=error, exc_info=True)

                await automation_service.finish_sync_run(db, run_id, status, counts, error)
                await db.commit()
                logger.info("tenant_run_finished", status=status, **counts.as_dict())

        return TenantRunResult(context.tenant_id, run_id, status, counts, error)

    async def _defer_tenant(self, job: str, context: TenantContext, reason: str) -> TenantRunResult:
        async with self.session_factory() as db:
            run = await automation_service.create_sync_run(db, context.tenant_id, job, self.clock())
            await automation_service.finish_sync_run(db, run.id, DEFERRED, error_message=reason)
            await db.commit()
            return TenantRunResult(context.tenant_id, run.id, DEFERRED, error=reason)

    async def _report_isolation_violation(
        self, job: str, context: TenantContext, run_id: int, exc: DataIntegrityViolation
    ) -> None:
        logger.critical(
            "tenant_isolation_violation",
            error=str(exc),
            offending_tenant_id=str(exc.tenant_id) if exc.tenant_id else None,
        )
        url = self.settings.ops_alert_webhook_url
        if not url:
            return
        payload = {
            "event": "tenant_isolation_violation",
            "job": job,
            "tenant_id": str(context.tenant_id),
            "sync_run_id": run_id,
            "error": str(exc),
        }
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as alert_exc:
            logger.error("ops_alert_failed", error=str(alert_exc))

    # --- Per-tenant work ---

    async def _ingest(
        self,
        db: AsyncSession,
        scope: TenantScope,
        context: TenantContext,
        adapter: IngestionAdapter,
        job: str,
        run_id: int,
        counts: RunCounts,
        budget: JobBudget,
    ) -> bool:
        """Feed every candidate from *adapter* through the decision service.

        Each candidate is committed on its own. Returns False when the job
        budget ran out before the adapter was drained.
        """
        if self.decisions is None:
            await adapter.aclose()
            raise ConfigurationError("No extraction service configured")
        now = self.clock()
        dispatcher = await NotificationDispatcher.for_tenant(
            db,
            scope,
            self.digest_sender,
            tenant_name=context.name,
            job=job,
            dashboard_base_url=self.settings.dashboard_base_url,
        )
        finished = True
        try:
            async for candidate in adapter.candidates(db, scope, now):
                # Persist the adapter's own bookkeeping before the candidate can fail
                await db.commit()
                counts.found += 1
                await self._process_candidate(db, scope, adapter, dispatcher, candidate, now, run_id, counts)
                if budget.exhausted:
                    finished = False
                    logger.warning("job_budget_exhausted", remaining_s=budget.remaining_s)
                    break
        finally:
            await adapter.aclose()

        counts.failed += adapter.deferred
        await db.commit()
        await dispatcher.send_digest()
        return finished

    async def _process_candidate(
        self,
        db: AsyncSession,
        scope: TenantScope,
        adapter: IngestionAdapter,
        dispatcher: NotificationDispatcher,
        candidate: CandidateDocument,
        now: datetime,
        run_id: int,
        counts: RunCounts,
    ) -> None:
        log = logger.bind(source=candidate.source.value, origin_id=candidate.origin_id)
        try:
            decision = await self.decisions.process(db, scope, candidate, now, run_id)
            await adapter.finalize(db, scope, candidate, now)
            await self._notify(db, scope, dispatcher, decision, now, counts)
            await db.commit()
        except DataIntegrityViolation:
            raise
        except TransientExternalError as exc:
            await db.rollback()
            counts.failed += 1
            log.warning("candidate_deferred", service=exc.service, error=str(exc))
        except Exception as exc:
            await db.rollback()
            counts.failed += 1
            log.error("candidate_failed", error=f"{type(exc).__name__}: {exc}", exc_info=True)

    async def _notify(
        self,
        db: AsyncSession,
        scope: TenantScope,
        dispatcher: NotificationDispatcher,
        decision: Decision,
        now: datetime,
        counts: RunCounts,
    ) -> None:
        match decision:
            case Applied():
                counts.applied += 1
                await dispatcher.record_applied(
                    decision.record_id,
                    decision.product_name,
                    decision.extraction_hash,
                    sorted(decision.changes),
                )
                if decision.became_cmr:
                    record = await chemicals_service.get_record(db, scope.tenant_id, decision.record_id)
                    if record is not None:
                        await db.refresh(record)
                        await dispatcher.record_reclassified(record, now.date())
            case Queued():
                counts.queued += 1
                await dispatcher.record_queued(
                    decision.record_id,
                    decision.product_name,
                    decision.reason.value,
                    decision.extraction_hash,
                )
            case Discarded():
                counts.discarded += 1
            case _:
                assert_never(decision)

    async def _registry_tenant(
        self,
        db: AsyncSession,
        scope: TenantScope,
        context: TenantContext,
        run_id: int,
        counts: RunCounts,
        budget: JobBudget,
    ) -> bool:
        """Hazard re-sync for stale records, then review, supplier and substitution reminders."""
        now = self.clock()
        today = now.date()
        settings = self.settings
        dispatcher = await NotificationDispatcher.for_tenant(
            db,
            scope,
            self.digest_sender,
            tenant_name=context.name,
            job=REGISTRY_SYNC,
            dashboard_base_url=settings.dashboard_base_url,
        )

        due = await chemicals_service.records_due_for_registry_sync(
            db,
            scope.tenant_id,
            now - timedelta(days=settings.registry_resync_days),
            settings.registry_batch_cap,
        )
        record_ids = [r.id for r in scope.check_all_owned(due, "ChemicalRecord")]
        finished = True

        for record_id in record_ids:
            if budget.exhausted:
                finished = False
                logger.warning("job_budget_exhausted", remaining_s=budget.remaining_s)
                break
            record = await chemicals_service.get_record(db, scope.tenant_id, record_id)
            if record is None:
                continue
            counts.found += 1
            try:
                result = await self.hazard_sync.sync_record(db, scope, record, dispatcher, now, run_id)
                await db.commit()
            except DataIntegrityViolation:
                raise
            except TransientExternalError as exc:
                await db.rollback()
                counts.failed += 1
                logger.warning("registry_sync_deferred", record_id=record_id, error=str(exc))
                continue
            except Exception as exc:
                await db.rollback()
                counts.failed += 1
                logger.error(
                    "registry_sync_failed",
                    record_id=record_id,
                    error=f"{type(exc).__name__}: {exc}",
                    exc_info=True,
                )
                continue

            if result.outcome is RegistryOutcome.UPDATED:
                counts.applied += 1
            elif result.outcome is RegistryOutcome.NOT_FOUND:
                counts.discarded += 1

        interval = settings.sds_review_interval_years
        for record in await chemicals_service.records_due_for_review(
            db,
            scope.tenant_id,
            today + timedelta(days=settings.review_due_horizon_days),
            add_years(today, -interval),
        ):
            review_date = record.next_review_date or (
                add_years(record.sds_date, interval) if record.sds_date else None
            )
            if review_date is not None:
                await dispatcher.record_review_due(record, review_date)

        for record in await chemicals_service.records_needing_supplier_update(
            db,
            scope.tenant_id,
            add_months(today, -settings.supplier_update_request_months),
            settings.supplier_update_request_cap,
        ):
            await dispatcher.record_supplier_update_request(record, today)

        await dispatcher.send_substitution_reminders(
            await chemicals_service.records_for_substitution(db, scope.tenant_id),
            today,
            settings.substitution_reminder_weekday,
        )
        await db.commit()
        await dispatcher.send_digest()
        return finished
