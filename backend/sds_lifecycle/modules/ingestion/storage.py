from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path

import structlog

from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()


class DocumentStorage(ABC):
    """Stores SDS bytes. Keys always come from ``TenantScope.document_key``."""

    async def put(self, scope: TenantScope, record_id: int | None, data: bytes) -> str:
        key = scope.check_key(scope.document_key(record_id))
        await self._write(key, data)
        logger.info("sds_document_stored", key=key, size=len(data))
        return key

    @abstractmethod
    async def _write(self, key: str, data: bytes) -> None:
        ...

    @abstractmethod
    async def get(self, scope: TenantScope, key: str) -> bytes:
        ...


class LocalDocumentStorage(DocumentStorage):
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        return self.root.joinpath(*key.split("/"))

    async def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)

        def write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(write)

    async def get(self, scope: TenantScope, key: str) -> bytes:
        return await asyncio.to_thread(self._path(scope.check_key(key)).read_bytes)
