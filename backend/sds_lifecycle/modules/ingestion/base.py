from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.modules.ingestion.schemas import CandidateDocument
from sds_lifecycle.modules.tenants.scope import TenantScope


class IngestionAdapter(ABC):
    """Produces candidate documents for one tenant, in discovery order.

    ``deferred`` counts items that hit a transient error and were left for
    the next run; ``skipped`` counts items the adapter could not handle
    (unknown supplier, non-SDS attachment).
    """

    name: str

    def __init__(self) -> None:
        self.deferred = 0
        self.skipped = 0

    @abstractmethod
    def candidates(
        self, db: AsyncSession, scope: TenantScope, now: datetime
    ) -> AsyncIterator[CandidateDocument]:
        ...

    @abstractmethod
    async def finalize(
        self, db: AsyncSession, scope: TenantScope, candidate: CandidateDocument, now: datetime
    ) -> None:
        """Bookkeeping once a candidate has reached a terminal state."""
        ...

    async def aclose(self) -> None:
        """Release clients held by the adapter."""
