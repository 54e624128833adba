from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from sds_lifecycle.core.exceptions import IllegalTransitionError
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction


class CandidateSource(str, Enum):
    EMAIL = "EMAIL"
    SUPPLIER_API = "SUPPLIER_API"


class CandidateState(str, Enum):
    NEW = "NEW"
    EXTRACTED = "EXTRACTED"
    APPLIED = "APPLIED"
    QUEUED = "QUEUED"
    DISCARDED = "DISCARDED"


TERMINAL_STATES = frozenset({CandidateState.APPLIED, CandidateState.QUEUED, CandidateState.DISCARDED})

_TRANSITIONS: dict[CandidateState, frozenset[CandidateState]] = {
    # NEW → DISCARDED covers permanent extraction failures
    CandidateState.NEW: frozenset({CandidateState.EXTRACTED, CandidateState.DISCARDED}),
    CandidateState.EXTRACTED: TERMINAL_STATES,
}


@dataclass
class CandidateDocument:
    """An unvalidated incoming SDS awaiting extraction and decision."""

    tenant_id: UUID
    source: CandidateSource
    content: bytes = field(repr=False)
    origin_id: str
    document_name: str | None = None
    subject: str | None = None
    target_record_id: int | None = None
    supplier_version: str | None = None
    supplier_revision_date: date | None = None
    state: CandidateState = CandidateState.NEW
    extraction: StructuredExtraction | None = None

    @property
    def content_hash(self) -> str:
        return hashlib.sha256(self.content).hexdigest()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def advance(self, new_state: CandidateState) -> None:
        allowed = _TRANSITIONS.get(self.state, frozenset())
        if new_state not in allowed:
            raise IllegalTransitionError(
                f"Candidate {self.origin_id}: {self.state.value} → {new_state.value} is not allowed"
            )
        self.state = new_state

    def mark_extracted(self, extraction: StructuredExtraction) -> None:
        self.advance(CandidateState.EXTRACTED)
        self.extraction = extraction
