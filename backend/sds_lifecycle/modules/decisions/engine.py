"""Confidence-gated decision policy and the field-level merge plan.

Both functions are pure: the service layer gathers the inputs (match result,
duplicate check, current record) and carries out the verdict.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from sds_lifecycle.core.clock import add_years
from sds_lifecycle.modules.chemicals.matching import MatchKind, MatchResult
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.decisions.schemas import DecisionAction, DecisionReason, PolicyVerdict
from sds_lifecycle.modules.extraction.schemas import SDS_FIELDS, StructuredExtraction
from sds_lifecycle.modules.registry.service import classification_values, diff_values, merge_hazard_codes

# Set from the document itself, with supplier/today fallbacks, not merged verbatim
_DATED_FIELDS = {"sds_date", "sds_version"}


@dataclass(frozen=True)
class PolicyThresholds:
    auto_apply: float = 0.8
    review: float = 0.3

    def __post_init__(self) -> None:
        if not 0.0 <= self.review <= self.auto_apply <= 1.0:
            raise ValueError(
                f"Thresholds must satisfy 0 <= review ({self.review}) <= auto_apply ({self.auto_apply}) <= 1"
            )


def decide(
    extraction: StructuredExtraction,
    match: MatchResult,
    *,
    duplicate: bool,
    thresholds: PolicyThresholds,
    older_revision: bool = False,
) -> PolicyVerdict:
    """Apply the policy rules in order; the first rule that fires wins.

    *older_revision* means the document predates the SDS the matched record
    already holds; such a document is only ever queued.
    """
    c = extraction.confidence
    if not extraction.has_identity:
        return PolicyVerdict(DecisionAction.DISCARD, DecisionReason.MISSING_IDENTITY)
    if c < thresholds.review:
        return PolicyVerdict(DecisionAction.DISCARD, DecisionReason.LOW_CONFIDENCE)
    if duplicate:
        return PolicyVerdict(DecisionAction.DISCARD, DecisionReason.DUPLICATE)
    if match.kind is MatchKind.AMBIGUOUS:
        return PolicyVerdict(DecisionAction.QUEUE_FOR_REVIEW, DecisionReason.AMBIGUOUS_MATCH)
    if match.kind is MatchKind.NONE:
        return PolicyVerdict(DecisionAction.QUEUE_FOR_REVIEW, DecisionReason.NO_MATCH)
    if older_revision:
        return PolicyVerdict(DecisionAction.QUEUE_FOR_REVIEW, DecisionReason.OLDER_REVISION)
    if c >= thresholds.auto_apply:
        return PolicyVerdict(DecisionAction.AUTO_APPLY, DecisionReason.HIGH_CONFIDENCE)
    return PolicyVerdict(DecisionAction.QUEUE_FOR_REVIEW, DecisionReason.MID_CONFIDENCE)


@dataclass(frozen=True)
class MergePlan:
    values: dict[str, Any]
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def changed_fields(self) -> list[str]:
        return sorted(self.changes)


def _as_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def document_sds_date(
    extraction: StructuredExtraction, supplier_revision_date: date | None = None
) -> date | None:
    """Revision date the document claims, else the one its supplier published."""
    return _as_date(extraction.data.get("sds_date")) or supplier_revision_date


def is_older_revision(
    record: ChemicalRecord | None,
    extraction: StructuredExtraction,
    supplier_revision_date: date | None = None,
) -> bool:
    if record is None or record.sds_date is None:
        return False
    revision = document_sds_date(extraction, supplier_revision_date)
    return revision is not None and revision < record.sds_date


def plan_merge(
    record: ChemicalRecord,
    extraction: StructuredExtraction,
    *,
    storage_key: str,
    now: datetime,
    review_interval_years: int = 3,
    supplier_revision_date: date | None = None,
    supplier_version: str | None = None,
) -> MergePlan:
    """Values for the single UPDATE that applies *extraction* to *record*.

    Only non-empty extracted fields are written, so nothing is ever nulled
    out. The SDS date falls back to the supplier's revision date; a document
    with neither keeps the record's dates, and only a record without any is
    anchored to today. The review date follows from the SDS date. When the
    document carries hazard statements the classification is recomputed from
    them together with the registry's codes, keeping the registry-owned SVHC
    flag and any CMR flag.
    """
    extracted = extraction.non_empty_fields()
    proposed: dict[str, Any] = {
        name: value for name, value in extracted.items() if name in SDS_FIELDS and name not in _DATED_FIELDS
    }

    sds_date = document_sds_date(extraction, supplier_revision_date)
    if sds_date is None and record.sds_date is None:
        sds_date = now.date()
    if sds_date is not None:
        proposed["sds_date"] = sds_date
        proposed["next_review_date"] = add_years(sds_date, review_interval_years)
    sds_version = extracted.get("sds_version") or supplier_version
    if sds_version:
        proposed["sds_version"] = str(sds_version)
    proposed["sds_key"] = storage_key

    if "hazard_statements" in proposed:
        # Registry codes still count, and an SDS never clears a CMR flag
        codes = merge_hazard_codes(proposed["hazard_statements"], record.registry_hazard_codes)
        proposed.update(classification_values(codes, record.is_svhc, known_cmr=record.is_cmr))

    changes = diff_values(record, proposed)
    values = {name: change["new"] for name, change in changes.items()}
    values["last_synced_at"] = now
    return MergePlan(values=values, changes=changes)
