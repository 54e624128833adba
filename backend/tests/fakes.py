"""In-memory stand-ins for the external services, plus seed helpers.

Every fake implements the same abstract interface as its production
counterpart, so the orchestrator and adapters run unchanged against them.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import PermanentExtractionError
from sds_lifecycle.core.resilience import RateLimiter
from sds_lifecycle.modules.automation.orchestrator import SdsAutomationOrchestrator
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.decisions.service import DecisionService
from sds_lifecycle.modules.extraction.client import ExtractionClient
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction
from sds_lifecycle.modules.ingestion.email_watcher import EmailSdsWatcher
from sds_lifecycle.modules.ingestion.mailbox import MailAttachment, MailboxClient, MailMessage
from sds_lifecycle.modules.ingestion.storage import DocumentStorage
from sds_lifecycle.modules.ingestion.supplier_poller import SupplierCatalogPoller
from sds_lifecycle.modules.notifications.digest import DigestSender
from sds_lifecycle.modules.registry.client import HazardRegistryClient
from sds_lifecycle.modules.registry.schemas import RegistrySubstance
from sds_lifecycle.modules.registry.service import HazardSync
from sds_lifecycle.modules.suppliers.base import SupplierCatalogClient
from sds_lifecycle.modules.suppliers.registry import SupplierRegistry
from sds_lifecycle.modules.suppliers.schemas import SupplierProduct, SupplierSDSInfo
from sds_lifecycle.modules.tenants.models import Tenant, User, UserTenant
from sds_lifecycle.modules.tenants.schemas import MailboxCredentials, TenantContext
from sds_lifecycle.modules.tenants.scope import TenantScope

# ---------------------------------------------------------------------------
# External service fakes
# ---------------------------------------------------------------------------


class FakeExtractionClient(ExtractionClient):
    """Maps document bytes to a canned extraction or an exception to raise."""

    def __init__(self, results: dict[bytes, StructuredExtraction | Exception] | None = None) -> None:
        self.results = dict(results or {})
        self.calls: list[bytes] = []

    async def extract(self, document: bytes) -> StructuredExtraction:
        self.calls.append(document)
        result = self.results.get(document)
        if result is None:
            raise PermanentExtractionError("Document has no text layer")
        if isinstance(result, Exception):
            raise result
        return result


class MemoryDocumentStorage(DocumentStorage):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    async def _write(self, key: str, data: bytes) -> None:
        self.objects[key] = data

    async def get(self, scope: TenantScope, key: str) -> bytes:
        return self.objects[scope.check_key(key)]


class FakeMailbox(MailboxClient):
    def __init__(
        self,
        messages: list[MailMessage] | None = None,
        contents: dict[tuple[str, str], bytes | Exception] | None = None,
        list_error: Exception | None = None,
    ) -> None:
        self.messages = list(messages or [])
        self.contents = dict(contents or {})
        self.list_error = list_error
        self.downloads: list[tuple[str, str]] = []
        self.closed = False

    def add(self, message_id: str, subject: str, name: str, content: bytes | Exception) -> None:
        attachment = MailAttachment(id=f"{message_id}-att", name=name, content_type="application/pdf")
        self.messages.append(MailMessage(message_id, subject, "supplier@example.com", None, [attachment]))
        self.contents[(message_id, attachment.id)] = content

    async def list_messages(self, since: datetime) -> list[MailMessage]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.messages)

    async def download_attachment(self, message_id: str, attachment_id: str) -> bytes:
        self.downloads.append((message_id, attachment_id))
        content = self.contents[(message_id, attachment_id)]
        if isinstance(content, Exception):
            raise content
        return content

    async def aclose(self) -> None:
        self.closed = True


class FakeSupplierClient(SupplierCatalogClient):
    def __init__(
        self,
        name: str = "vwr",
        infos: dict[str, SupplierSDSInfo | Exception] | None = None,
        documents: dict[str, bytes | Exception] | None = None,
    ) -> None:
        self.name = name
        self.infos = dict(infos or {})
        self.documents = dict(documents or {})
        self.info_calls: list[str] = []

    def publish(self, catalog_number: str, revision_date: date, content: bytes, version: str = "2.0") -> None:
        self.infos[catalog_number] = SupplierSDSInfo(
            product=SupplierProduct(catalog_number=catalog_number, product_name=catalog_number),
            sds_available=True,
            sds_version=version,
            revision_date=revision_date,
            download_url=f"https://{self.name}.example.com/sds/{catalog_number}.pdf",
        )
        self.documents[catalog_number] = content

    async def search_product(self, catalog_number: str) -> SupplierProduct | None:
        info = await self.get_sds_info(catalog_number)
        return info.product if info else None

    async def get_sds_info(self, catalog_number: str) -> SupplierSDSInfo | None:
        self.info_calls.append(catalog_number)
        info = self.infos.get(catalog_number)
        if isinstance(info, Exception):
            raise info
        return info

    async def download_sds(self, catalog_number: str, download_url: str | None = None) -> bytes | None:
        content = self.documents.get(catalog_number)
        if isinstance(content, Exception):
            raise content
        return content


class FakeRegistry(HazardRegistryClient):
    def __init__(self, substances: dict[str, RegistrySubstance | Exception] | None = None) -> None:
        self.substances = dict(substances or {})
        self.lookups: list[str] = []

    async def lookup(self, cas_number: str) -> RegistrySubstance | None:
        self.lookups.append(cas_number)
        result = self.substances.get(cas_number)
        if isinstance(result, Exception):
            raise result
        return result


class RecordingDigestSender(DigestSender):
    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []

    async def send(self, to: str, subject: str, html: str, text: str) -> bool:
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------


def extraction(confidence: float, **data: Any) -> StructuredExtraction:
    return StructuredExtraction(data=data, confidence=confidence, provider="fake", model="fake-1")


async def add_tenant(
    db: AsyncSession,
    slug: str,
    *,
    mailbox_email: str | None = "sds@example.com",
    members: tuple[tuple[str, str], ...] = (("ADMIN", "admin"),),
) -> Tenant:
    """Create a tenant plus one user per ``(role, name)`` member."""
    tenant = Tenant(name=slug.replace("-", " ").title(), slug=slug, mailbox_email=mailbox_email)
    db.add(tenant)
    await db.flush()
    for role, name in members:
        user = User(email=f"{name}@{slug}.example.com", name=name)
        db.add(user)
        await db.flush()
        db.add(UserTenant(user_id=user.id, tenant_id=tenant.id, role=role))
    await db.commit()
    return tenant


async def add_record(db: AsyncSession, tenant_id: uuid.UUID, **fields: Any) -> ChemicalRecord:
    fields.setdefault("product_name", "Acetone")
    record = ChemicalRecord(tenant_id=tenant_id, **fields)
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


def context_for(tenant: Tenant, *, with_mailbox: bool = True) -> TenantContext:
    mailbox = None
    if with_mailbox:
        mailbox = MailboxCredentials(
            directory_id="directory",
            client_id="client",
            client_secret="secret",
            mailbox_email=tenant.mailbox_email or "sds@example.com",
        )
    return TenantContext(tenant_id=tenant.id, name=tenant.name, slug=tenant.slug, mailbox=mailbox)


def make_orchestrator(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Settings,
    *,
    extraction_client: FakeExtractionClient,
    storage: DocumentStorage | None = None,
    mailboxes: dict[uuid.UUID, FakeMailbox] | None = None,
    suppliers: dict[uuid.UUID, list[SupplierCatalogClient]] | None = None,
    registry: HazardRegistryClient | None = None,
    digest_sender: DigestSender | None = None,
    **kwargs: Any,
) -> SdsAutomationOrchestrator:
    """Orchestrator wired to fakes, with adapters injected per tenant."""
    limiter = RateLimiter(0)
    mailboxes = mailboxes or {}
    suppliers = suppliers or {}

    def email_factory(context: TenantContext) -> EmailSdsWatcher:
        return EmailSdsWatcher(mailboxes.get(context.tenant_id) or FakeMailbox(), limiter)

    def supplier_factory(context: TenantContext) -> SupplierCatalogPoller:
        return SupplierCatalogPoller(
            SupplierRegistry({c.name: c for c in suppliers.get(context.tenant_id, [])}),
            limiter,
            refresh_days=settings.supplier_refresh_days,
            batch_cap=settings.supplier_batch_cap,
            risk_refresh_days=settings.supplier_risk_refresh_days,
        )

    return SdsAutomationOrchestrator(
        session_factory,
        settings,
        decisions=DecisionService.from_settings(
            settings, extraction_client, storage or MemoryDocumentStorage(), limiter
        ),
        hazard_sync=HazardSync(registry or FakeRegistry(), limiter),
        digest_sender=digest_sender or RecordingDigestSender(),
        email_adapter_factory=email_factory,
        supplier_adapter_factory=supplier_factory,
        **kwargs,
    )


async def count_rows(session_factory: async_sessionmaker[AsyncSession], model: type, *criteria: Any) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    async with session_factory() as s:
        return (await s.execute(query)).scalar_one()
