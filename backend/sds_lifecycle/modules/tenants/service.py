from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.config import Settings
from sds_lifecycle.modules.tenants.models import NOTIFIED_ROLES, Tenant, User, UserTenant
from sds_lifecycle.modules.tenants.schemas import (
    MailboxCredentials,
    SupplierCredentials,
    TenantContext,
)


@dataclass(frozen=True)
class Recipient:
    user_id: UUID
    tenant_id: UUID
    email: str
    name: str | None
    role: str
    notify_by_email: bool


async def list_active_tenants(db: AsyncSession) -> list[Tenant]:
    result = await db.execute(
        select(Tenant).where(Tenant.status == "ACTIVE").order_by(Tenant.slug.asc())
    )
    return list(result.scalars().all())


def resolve_tenant_context(settings: Settings, tenant: Tenant) -> TenantContext:
    """Build the explicit per-tenant configuration passed to every adapter.

    Tenant-specific entries in ``settings.tenant_credentials`` win over the
    global defaults. Mailbox monitoring needs a mailbox address plus a full
    set of Graph credentials; otherwise ``mailbox`` stays None.
    """
    overrides = settings.tenant_credentials.get(str(tenant.id), {})

    def pick(name: str) -> str:
        return overrides.get(name) or getattr(settings, name)

    mailbox: MailboxCredentials | None = None
    directory_id = pick("graph_tenant_id")
    client_id = pick("graph_client_id")
    client_secret = pick("graph_client_secret")
    if tenant.mailbox_email and directory_id and client_id and client_secret:
        mailbox = MailboxCredentials(
            directory_id=directory_id,
            client_id=client_id,
            client_secret=client_secret,
            mailbox_email=tenant.mailbox_email,
        )

    suppliers = SupplierCredentials(
        vwr_api_key=pick("vwr_api_key"),
        vwr_region=pick("vwr_region"),
        sigma_aldrich_api_key=pick("sigma_aldrich_api_key"),
        fisher_scientific_api_key=pick("fisher_scientific_api_key"),
    )

    return TenantContext(
        tenant_id=tenant.id,
        name=tenant.name,
        slug=tenant.slug,
        mailbox=mailbox,
        suppliers=suppliers,
    )


async def resolve_tenant_contexts(db: AsyncSession, settings: Settings) -> list[TenantContext]:
    tenants = await list_active_tenants(db)
    return [resolve_tenant_context(settings, t) for t in tenants]


async def list_notification_recipients(db: AsyncSession, tenant_id: UUID) -> list[Recipient]:
    """ADMIN/HMS members of the tenant who opted into notifications."""
    result = await db.execute(
        select(User, UserTenant)
        .join(UserTenant, UserTenant.user_id == User.id)
        .where(UserTenant.tenant_id == tenant_id)
        .where(UserTenant.role.in_(NOTIFIED_ROLES))
        .where(UserTenant.notifications_enabled == True)  # noqa: E712
        .order_by(User.email.asc())
    )
    return [
        Recipient(
            user_id=user.id,
            tenant_id=membership.tenant_id,
            email=user.email,
            name=user.name,
            role=membership.role,
            notify_by_email=membership.notify_by_email,
        )
        for user, membership in result.all()
    ]
