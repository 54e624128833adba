from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class AuditEntryOut(BaseModel):
    id: int
    tenant_id: UUID
    action: str
    record_id: int | None = None
    suggestion_id: int | None = None
    sync_run_id: int | None = None
    confidence: float | None = None
    changes: dict = {}
    extraction_hash: str | None = None
    source: str
    origin_id: str | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditEntryList(BaseModel):
    items: list[AuditEntryOut]
    total: int
    page: int
    page_size: int
