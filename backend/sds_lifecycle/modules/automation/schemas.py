from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel


class JobName(str, Enum):
    email_monitoring = "email_monitoring"
    supplier_polling = "supplier_polling"
    registry_sync = "registry_sync"


class SyncRunOut(BaseModel):
    id: int
    tenant_id: UUID
    job: str
    started_at: datetime
    finished_at: datetime | None = None
    status: str
    found: int = 0
    applied: int = 0
    queued: int = 0
    discarded: int = 0
    failed: int = 0
    error_message: str | None = None

    model_config = {"from_attributes": True}


class PaginatedSyncRunsResponse(BaseModel):
    items: list[SyncRunOut]
    total: int
    page: int
    page_size: int
    pages: int


class SdsSuggestionOut(BaseModel):
    id: int
    tenant_id: UUID
    record_id: int | None = None
    source: str
    origin_id: str
    document_name: str | None = None
    storage_key: str | None = None
    extracted_fields: dict
    confidence: float
    extraction_hash: str
    reason: str
    status: str
    created_at: datetime

    model_config = {"from_attributes": True}


class PaginatedSuggestionsResponse(BaseModel):
    items: list[SdsSuggestionOut]
    total: int
    page: int
    page_size: int
    pages: int
