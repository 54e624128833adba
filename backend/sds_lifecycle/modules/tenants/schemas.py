from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class MailboxCredentials(BaseModel):
    """Microsoft Graph app credentials for one tenant's SDS inbox."""

    directory_id: str
    client_id: str
    client_secret: str
    mailbox_email: str

    model_config = {"frozen": True}


class SupplierCredentials(BaseModel):
    vwr_api_key: str = ""
    vwr_region: str = "eu"
    sigma_aldrich_api_key: str = ""
    fisher_scientific_api_key: str = ""

    model_config = {"frozen": True}


class TenantContext(BaseModel):
    """Per-tenant configuration resolved once by the scheduler.

    Adapters receive this value explicitly; nothing below the orchestrator
    reads tenant secrets from global settings.
    """

    tenant_id: UUID
    name: str
    slug: str
    mailbox: MailboxCredentials | None = None
    suppliers: SupplierCredentials = SupplierCredentials()

    model_config = {"frozen": True}
