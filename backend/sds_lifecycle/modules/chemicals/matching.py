"""Candidate-to-record resolution.

Key order: explicit target (supplier poll) → CAS number → supplier +
catalog number. A single hit is unique; several hits are ambiguous and are
never auto-applied.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.chemicals.normalize import (
    normalize_cas,
    normalize_catalog,
    normalize_supplier,
)
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction


class MatchKind(str, Enum):
    UNIQUE = "unique"
    AMBIGUOUS = "ambiguous"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    kind: MatchKind
    record: ChemicalRecord | None = None
    candidates: tuple[int, ...] = field(default_factory=tuple)
    matched_on: str | None = None

    @property
    def is_unique(self) -> bool:
        return self.kind is MatchKind.UNIQUE


NO_MATCH = MatchResult(MatchKind.NONE)


def _from_hits(hits: list[ChemicalRecord], matched_on: str) -> MatchResult:
    if not hits:
        return NO_MATCH
    if len(hits) == 1:
        return MatchResult(MatchKind.UNIQUE, hits[0], (hits[0].id,), matched_on)
    return MatchResult(MatchKind.AMBIGUOUS, None, tuple(r.id for r in hits), matched_on)


def _narrow_by_supplier(hits: list[ChemicalRecord], supplier: str | None) -> list[ChemicalRecord]:
    wanted = normalize_supplier(supplier)
    if not wanted or len(hits) < 2:
        return hits
    narrowed = [r for r in hits if normalize_supplier(r.supplier) == wanted]
    return narrowed or hits


async def resolve_target(
    db: AsyncSession,
    tenant_id: UUID,
    extraction: StructuredExtraction,
    target_record_id: int | None = None,
) -> MatchResult:
    data = extraction.data
    cas = normalize_cas(data.get("cas_number"))

    if target_record_id is not None:
        record = await chemicals_service.get_record(db, tenant_id, target_record_id)
        if record is None:
            return NO_MATCH
        record_cas = normalize_cas(record.cas_number)
        if cas and record_cas and cas != record_cas:
            # The downloaded document describes a different substance
            return MatchResult(MatchKind.AMBIGUOUS, None, (record.id,), "target_cas_mismatch")
        return MatchResult(MatchKind.UNIQUE, record, (record.id,), "target")

    if cas:
        hits = await chemicals_service.find_by_cas(db, tenant_id, cas)
        if hits:
            return _from_hits(_narrow_by_supplier(hits, data.get("supplier")), "cas_number")

    catalog = normalize_catalog(data.get("catalog_number"))
    supplier = normalize_supplier(data.get("supplier"))
    if catalog and supplier:
        hits = [
            r
            for r in await chemicals_service.find_by_catalog(db, tenant_id, catalog)
            if normalize_supplier(r.supplier) == supplier
        ]
        return _from_hits(hits, "supplier_catalog")

    return NO_MATCH
