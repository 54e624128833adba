"""Unit tests for the candidate document state machine."""

from __future__ import annotations

import hashlib
import uuid

import pytest

from sds_lifecycle.core.exceptions import IllegalTransitionError
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction
from sds_lifecycle.modules.ingestion.schemas import (
    CandidateDocument,
    CandidateSource,
    CandidateState,
)


def _candidate() -> CandidateDocument:
    return CandidateDocument(
        tenant_id=uuid.uuid4(), source=CandidateSource.EMAIL, content=b"%PDF", origin_id="msg-1"
    )


def test_happy_path() -> None:
    candidate = _candidate()
    candidate.mark_extracted(StructuredExtraction(data={"product_name": "X"}, confidence=0.9))
    candidate.advance(CandidateState.APPLIED)
    assert candidate.is_terminal
    assert candidate.extraction is not None


def test_permanent_failure_discards_straight_from_new() -> None:
    candidate = _candidate()
    candidate.advance(CandidateState.DISCARDED)
    assert candidate.state is CandidateState.DISCARDED


@pytest.mark.parametrize("target", [CandidateState.APPLIED, CandidateState.QUEUED])
def test_new_cannot_skip_extraction(target: CandidateState) -> None:
    with pytest.raises(IllegalTransitionError):
        _candidate().advance(target)


@pytest.mark.parametrize("target", list(CandidateState))
def test_terminal_states_are_final(target: CandidateState) -> None:
    candidate = _candidate()
    candidate.advance(CandidateState.DISCARDED)
    with pytest.raises(IllegalTransitionError):
        candidate.advance(target)


def test_content_hash() -> None:
    assert _candidate().content_hash == hashlib.sha256(b"%PDF").hexdigest()
