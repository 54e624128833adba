"""Unit tests for the tenant isolation guard and document storage keys."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from sds_lifecycle.core.exceptions import DataIntegrityViolation
from sds_lifecycle.modules.ingestion.storage import LocalDocumentStorage
from sds_lifecycle.modules.tenants.scope import TenantScope

TENANT = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER = uuid.UUID("22222222-2222-2222-2222-222222222222")


def test_document_key_is_prefixed_by_tenant() -> None:
    at = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    scope = TenantScope(TENANT)
    stamp = int(at.timestamp() * 1000)

    assert scope.document_key(42, at) == f"sds/{TENANT}/42-{stamp}.pdf"
    assert scope.document_key(None, at) == f"sds/{TENANT}/unmatched-{stamp}.pdf"


@pytest.mark.parametrize(
    "key",
    [
        f"sds/{OTHER}/42-1.pdf",
        f"sds/{TENANT}/../{OTHER}/42-1.pdf",
        "42-1.pdf",
        f"sds/{TENANT}",
    ],
)
def test_check_key_rejects_foreign_keys(key: str) -> None:
    with pytest.raises(DataIntegrityViolation):
        TenantScope(TENANT).check_key(key)


def test_check_owned() -> None:
    scope = TenantScope(TENANT)
    mine = SimpleNamespace(tenant_id=TENANT)
    assert scope.check_owned(mine) is mine
    with pytest.raises(DataIntegrityViolation):
        scope.check_owned(SimpleNamespace(tenant_id=OTHER), "ChemicalRecord")
    with pytest.raises(DataIntegrityViolation):
        scope.check_all_owned([mine, SimpleNamespace()])


def test_scope_requires_uuid() -> None:
    with pytest.raises(DataIntegrityViolation):
        TenantScope(str(TENANT))  # type: ignore[arg-type]


async def test_local_storage_writes_under_tenant_prefix(tmp_path) -> None:
    storage = LocalDocumentStorage(tmp_path)
    scope = TenantScope(TENANT)

    key = await storage.put(scope, 7, b"%PDF-1.7 body")

    assert key.startswith(f"sds/{TENANT}/7-")
    assert (tmp_path / "sds" / str(TENANT) / key.rsplit("/", 1)[1]).read_bytes() == b"%PDF-1.7 body"
    assert await storage.get(scope, key) == b"%PDF-1.7 body"
    with pytest.raises(DataIntegrityViolation):
        await storage.get(TenantScope(OTHER), key)
