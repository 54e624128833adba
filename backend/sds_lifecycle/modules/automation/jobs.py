"""Wires the production clients into the orchestrator.

Tenant contexts are resolved here, once per invocation, and passed down
explicitly; adapters never read tenant credentials from global settings.
"""

from __future__ import annotations

from collections.abc import Callable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import ConfigurationError
from sds_lifecycle.core.resilience import RateLimiter, StopSignal
from sds_lifecycle.modules.automation.models import (
    EMAIL_MONITORING,
    REGISTRY_SYNC,
    SUPPLIER_POLLING,
)
from sds_lifecycle.modules.automation.orchestrator import JobSummary, SdsAutomationOrchestrator
from sds_lifecycle.modules.decisions.service import DecisionService
from sds_lifecycle.modules.extraction.client import LLMExtractionClient
from sds_lifecycle.modules.ingestion.base import IngestionAdapter
from sds_lifecycle.modules.ingestion.email_watcher import EmailSdsWatcher
from sds_lifecycle.modules.ingestion.mailbox import GraphMailboxClient
from sds_lifecycle.modules.ingestion.storage import LocalDocumentStorage
from sds_lifecycle.modules.ingestion.supplier_poller import SupplierCatalogPoller
from sds_lifecycle.modules.notifications.digest import ResendDigestSender
from sds_lifecycle.modules.registry.client import PubChemRegistryClient
from sds_lifecycle.modules.registry.service import HazardSync
from sds_lifecycle.modules.suppliers.registry import SupplierRegistry
from sds_lifecycle.modules.tenants.schemas import TenantContext
from sds_lifecycle.modules.tenants.service import resolve_tenant_contexts

logger = structlog.get_logger()

JOBS = (EMAIL_MONITORING, SUPPLIER_POLLING, REGISTRY_SYNC)


def email_adapter_factory(settings: Settings) -> Callable[[TenantContext], IngestionAdapter]:
    def build(context: TenantContext) -> IngestionAdapter:
        if context.mailbox is None:
            raise ConfigurationError(f"Tenant {context.slug} has no mailbox configured")
        return EmailSdsWatcher(
            GraphMailboxClient(context.mailbox),
            RateLimiter(settings.external_call_delay_s),
            lookback_days=settings.email_lookback_days,
            retry_delay_s=settings.external_call_delay_s,
        )

    return build


def supplier_adapter_factory(settings: Settings) -> Callable[[TenantContext], IngestionAdapter]:
    def build(context: TenantContext) -> IngestionAdapter:
        suppliers = SupplierRegistry.from_credentials(context.suppliers)
        if not len(suppliers):
            raise ConfigurationError(f"Tenant {context.slug} has no supplier API credentials")
        return SupplierCatalogPoller(
            suppliers,
            RateLimiter(settings.external_call_delay_s),
            refresh_days=settings.supplier_refresh_days,
            batch_cap=settings.supplier_batch_cap,
            retry_delay_s=settings.external_call_delay_s,
            risk_refresh_days=settings.supplier_risk_refresh_days,
        )

    return build


def build_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    registry: PubChemRegistryClient,
    stop_signal: StopSignal | None = None,
    with_extraction: bool = True,
) -> SdsAutomationOrchestrator:
    """Orchestrator with the production extraction, storage and digest clients.

    The registry job never extracts documents, so it can run without an
    LLM key by passing ``with_extraction=False``.
    """
    limiter = RateLimiter(settings.external_call_delay_s)
    decisions = None
    if with_extraction:
        decisions = DecisionService.from_settings(
            settings,
            LLMExtractionClient.from_settings(settings),
            LocalDocumentStorage(settings.storage_root),
            limiter,
        )
    return SdsAutomationOrchestrator(
        session_factory,
        settings,
        decisions=decisions,
        hazard_sync=HazardSync(registry, limiter, retry_delay_s=settings.external_call_delay_s),
        digest_sender=ResendDigestSender(settings.resend_api_key, settings.digest_from_address),
        email_adapter_factory=email_adapter_factory(settings),
        supplier_adapter_factory=supplier_adapter_factory(settings),
        stop_signal=stop_signal,
    )


async def run_job(
    job: str,
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    stop_signal: StopSignal | None = None,
) -> JobSummary:
    """Resolve active tenants, then run *job* across them."""
    if job not in JOBS:
        raise ValueError(f"Unknown job {job!r}; expected one of {', '.join(JOBS)}")

    async with session_factory() as db:
        tenants = await resolve_tenant_contexts(db, settings)
    logger.info("tenants_resolved", job=job, count=len(tenants))

    registry = PubChemRegistryClient(settings.registry_base_url, settings.registry_timeout_s)
    try:
        orchestrator = build_orchestrator(
            session_factory, settings, registry, stop_signal, with_extraction=job != REGISTRY_SYNC
        )
        if job == EMAIL_MONITORING:
            return await orchestrator.run_email_monitoring(tenants)
        if job == SUPPLIER_POLLING:
            return await orchestrator.run_supplier_polling(tenants)
        return await orchestrator.run_registry_sync(tenants)
    finally:
        await registry.aclose()
