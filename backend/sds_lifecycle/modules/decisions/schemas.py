from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class DecisionAction(str, Enum):
    AUTO_APPLY = "AUTO_APPLY"
    QUEUE_FOR_REVIEW = "QUEUE_FOR_REVIEW"
    DISCARD = "DISCARD"


class DecisionReason(str, Enum):
    # DISCARD
    MISSING_IDENTITY = "missing_identity"
    LOW_CONFIDENCE = "low_confidence"
    DUPLICATE = "duplicate"
    EXTRACTION_FAILED = "extraction_failed"
    # QUEUE_FOR_REVIEW
    MID_CONFIDENCE = "mid_confidence"
    AMBIGUOUS_MATCH = "ambiguous_match"
    NO_MATCH = "no_match"
    OLDER_REVISION = "older_revision"
    # AUTO_APPLY
    HIGH_CONFIDENCE = "high_confidence"


@dataclass(frozen=True)
class PolicyVerdict:
    """Output of the pure policy: what to do and why."""

    action: DecisionAction
    reason: DecisionReason


@dataclass(frozen=True)
class Applied:
    record_id: int
    product_name: str
    confidence: float
    extraction_hash: str
    storage_key: str
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    became_cmr: bool = False


@dataclass(frozen=True)
class Queued:
    suggestion_id: int
    record_id: int | None
    product_name: str
    confidence: float
    extraction_hash: str
    reason: DecisionReason


@dataclass(frozen=True)
class Discarded:
    reason: DecisionReason
    confidence: float | None = None
    detail: str | None = None


Decision = Applied | Queued | Discarded
