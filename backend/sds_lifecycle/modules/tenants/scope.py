"""Tenant isolation guard.

Every storage key, record write and notification produced inside a tenant's
run goes through a ``TenantScope``. Keys are only ever built here, so the
tenant id is structurally the first path segment, and any object that shows
up carrying a different tenant id raises ``DataIntegrityViolation``.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from sds_lifecycle.core.clock import utcnow
from sds_lifecycle.core.exceptions import DataIntegrityViolation

SDS_KEY_ROOT = "sds"
UNMATCHED_SEGMENT = "unmatched"


class TenantScope:
    def __init__(self, tenant_id: UUID) -> None:
        if not isinstance(tenant_id, UUID):
            raise DataIntegrityViolation(f"Tenant scope requires a UUID, got {tenant_id!r}")
        self.tenant_id = tenant_id

    @property
    def key_prefix(self) -> str:
        return f"{SDS_KEY_ROOT}/{self.tenant_id}/"

    def document_key(self, record_id: int | None, at: datetime | None = None) -> str:
        """Return ``sds/{tenant_id}/{record_id}-{timestamp}.pdf``."""
        stamp = int((at or utcnow()).timestamp() * 1000)
        owner = str(record_id) if record_id is not None else UNMATCHED_SEGMENT
        return f"{self.key_prefix}{owner}-{stamp}.pdf"

    def check_key(self, key: str) -> str:
        if not key.startswith(self.key_prefix) or ".." in key.split("/"):
            raise DataIntegrityViolation(
                f"Storage key {key!r} is outside tenant prefix", tenant_id=self.tenant_id
            )
        return key

    def check_owned(self, obj: Any, what: str = "object") -> Any:
        """Raise unless ``obj.tenant_id`` is this scope's tenant."""
        owner = getattr(obj, "tenant_id", None)
        if owner != self.tenant_id:
            raise DataIntegrityViolation(
                f"{what} belongs to tenant {owner}, expected {self.tenant_id}",
                tenant_id=self.tenant_id,
            )
        return obj

    def check_all_owned(self, objs: Iterable[Any], what: str = "object") -> list[Any]:
        return [self.check_owned(obj, what) for obj in objs]

    def __repr__(self) -> str:
        return f"TenantScope({self.tenant_id})"
