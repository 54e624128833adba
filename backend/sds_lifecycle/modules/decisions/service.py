from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import structlog
from pydantic_core import to_jsonable_python
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.config import Settings
from sds_lifecycle.core.exceptions import PermanentExtractionError
from sds_lifecycle.core.resilience import RateLimiter, call_with_retry
from sds_lifecycle.modules.audit import service as audit_service
from sds_lifecycle.modules.audit.models import AUTO_APPLY, QUEUE_FOR_REVIEW
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.chemicals.matching import MatchResult, resolve_target
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.decisions.engine import (
    PolicyThresholds,
    decide,
    is_older_revision,
    plan_merge,
)
from sds_lifecycle.modules.decisions.schemas import (
    Applied,
    DecisionAction,
    DecisionReason,
    Discarded,
    PolicyVerdict,
    Queued,
)
from sds_lifecycle.modules.extraction.client import ExtractionClient
from sds_lifecycle.modules.extraction.schemas import StructuredExtraction
from sds_lifecycle.modules.ingestion.schemas import CandidateDocument, CandidateState
from sds_lifecycle.modules.ingestion.storage import DocumentStorage
from sds_lifecycle.modules.registry.service import diff_values
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()


class DecisionService:
    """Extract → match → decide → carry out, for one candidate at a time.

    Each call leaves the candidate in a terminal state, except when the
    extraction service fails transiently: that ``TransientExternalError``
    propagates with the candidate still NEW so the caller can defer it.
    """

    def __init__(
        self,
        extraction: ExtractionClient,
        storage: DocumentStorage,
        limiter: RateLimiter,
        *,
        thresholds: PolicyThresholds | None = None,
        review_interval_years: int = 3,
        idempotence_window_days: int = 7,
        retry_delay_s: float = 0.0,
    ) -> None:
        self.extraction = extraction
        self.storage = storage
        self.limiter = limiter
        self.thresholds = thresholds or PolicyThresholds()
        self.review_interval_years = review_interval_years
        self.idempotence_window = timedelta(days=idempotence_window_days)
        self.retry_delay_s = retry_delay_s

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        extraction: ExtractionClient,
        storage: DocumentStorage,
        limiter: RateLimiter,
    ) -> DecisionService:
        return cls(
            extraction,
            storage,
            limiter,
            thresholds=PolicyThresholds(
                auto_apply=settings.auto_apply_threshold,
                review=settings.review_threshold,
            ),
            review_interval_years=settings.sds_review_interval_years,
            idempotence_window_days=settings.idempotence_window_days,
            retry_delay_s=settings.external_call_delay_s,
        )

    async def process(
        self,
        db: AsyncSession,
        scope: TenantScope,
        candidate: CandidateDocument,
        now: datetime,
        sync_run_id: int | None = None,
    ) -> Applied | Queued | Discarded:
        scope.check_owned(candidate, "CandidateDocument")
        log = logger.bind(source=candidate.source.value, origin_id=candidate.origin_id)

        try:
            await self.limiter.wait()
            extraction = await call_with_retry(
                lambda: self.extraction.extract(candidate.content),
                delay_s=self.retry_delay_s,
                label="sds_extraction",
            )
        except PermanentExtractionError as exc:
            candidate.advance(CandidateState.DISCARDED)
            log.warning("candidate_discarded", reason=DecisionReason.EXTRACTION_FAILED.value, error=str(exc))
            return Discarded(DecisionReason.EXTRACTION_FAILED, detail=str(exc))
        candidate.mark_extracted(extraction)

        match = await resolve_target(db, scope.tenant_id, extraction, candidate.target_record_id)
        if match.record is not None:
            scope.check_owned(match.record, "ChemicalRecord")

        duplicate = await self._is_duplicate(db, scope, extraction, match, now)
        older = match.is_unique and is_older_revision(
            match.record, extraction, candidate.supplier_revision_date
        )
        verdict = decide(
            extraction,
            match,
            duplicate=duplicate,
            thresholds=self.thresholds,
            older_revision=older,
        )

        if verdict.action is DecisionAction.AUTO_APPLY:
            return await self._apply(db, scope, candidate, extraction, match.record, now, sync_run_id)
        if verdict.action is DecisionAction.QUEUE_FOR_REVIEW:
            return await self._queue(db, scope, candidate, extraction, match, verdict, sync_run_id)

        candidate.advance(CandidateState.DISCARDED)
        log.info(
            "candidate_discarded",
            reason=verdict.reason.value,
            confidence=extraction.confidence,
            extraction_hash=extraction.content_hash,
        )
        return Discarded(verdict.reason, confidence=extraction.confidence)

    async def _is_duplicate(
        self,
        db: AsyncSession,
        scope: TenantScope,
        extraction: StructuredExtraction,
        match: MatchResult,
        now: datetime,
    ) -> bool:
        record_id = match.record.id if match.is_unique else None
        digest = extraction.content_hash
        if record_id is not None and await audit_service.applied_hash_exists(
            db, scope.tenant_id, record_id, digest, now - self.idempotence_window
        ):
            return True
        return await chemicals_service.pending_suggestion_exists(db, scope.tenant_id, digest, record_id)

    async def _apply(
        self,
        db: AsyncSession,
        scope: TenantScope,
        candidate: CandidateDocument,
        extraction: StructuredExtraction,
        record: ChemicalRecord,
        now: datetime,
        sync_run_id: int | None,
    ) -> Applied:
        storage_key = await self.storage.put(scope, record.id, candidate.content)
        plan = plan_merge(
            record,
            extraction,
            storage_key=storage_key,
            now=now,
            review_interval_years=self.review_interval_years,
            supplier_revision_date=candidate.supplier_revision_date,
            supplier_version=candidate.supplier_version,
        )
        was_cmr = record.is_cmr
        await chemicals_service.merge_record_fields(db, scope, record.id, plan.values)
        await audit_service.append_entry(
            db,
            scope,
            action=AUTO_APPLY,
            source=candidate.source.value,
            record_id=record.id,
            sync_run_id=sync_run_id,
            confidence=extraction.confidence,
            changes=plan.changes,
            extraction_hash=extraction.content_hash,
            origin_id=candidate.origin_id,
        )
        candidate.advance(CandidateState.APPLIED)

        became_cmr = bool(plan.values.get("is_cmr")) and not was_cmr
        logger.info(
            "sds_auto_applied",
            record_id=record.id,
            confidence=extraction.confidence,
            fields=plan.changed_fields,
            became_cmr=became_cmr,
        )
        return Applied(
            record_id=record.id,
            product_name=plan.values.get("product_name") or record.product_name,
            confidence=extraction.confidence,
            extraction_hash=extraction.content_hash,
            storage_key=storage_key,
            changes=plan.changes,
            became_cmr=became_cmr,
        )

    async def _queue(
        self,
        db: AsyncSession,
        scope: TenantScope,
        candidate: CandidateDocument,
        extraction: StructuredExtraction,
        match: MatchResult,
        verdict: PolicyVerdict,
        sync_run_id: int | None,
    ) -> Queued:
        record = match.record if match.is_unique else None
        record_id = record.id if record is not None else None
        storage_key = await self.storage.put(scope, record_id, candidate.content)

        proposed: dict[str, Any] = extraction.non_empty_fields()
        if record is not None:
            changes = diff_values(record, proposed)
        else:
            changes = {name: {"old": None, "new": value} for name, value in proposed.items()}

        suggestion = await chemicals_service.create_suggestion(
            db,
            scope,
            record_id=record_id,
            source=candidate.source.value,
            origin_id=candidate.origin_id,
            document_name=candidate.document_name,
            storage_key=storage_key,
            extracted_fields=to_jsonable_python(extraction.data),
            confidence=extraction.confidence,
            extraction_hash=extraction.content_hash,
            reason=verdict.reason.value,
        )
        await audit_service.append_entry(
            db,
            scope,
            action=QUEUE_FOR_REVIEW,
            source=candidate.source.value,
            record_id=record_id,
            suggestion_id=suggestion.id,
            sync_run_id=sync_run_id,
            confidence=extraction.confidence,
            changes=changes,
            extraction_hash=extraction.content_hash,
            origin_id=candidate.origin_id,
        )
        candidate.advance(CandidateState.QUEUED)

        product_name = proposed.get("product_name") or (record.product_name if record else None)
        logger.info(
            "sds_queued_for_review",
            suggestion_id=suggestion.id,
            record_id=record_id,
            reason=verdict.reason.value,
            confidence=extraction.confidence,
        )
        return Queued(
            suggestion_id=suggestion.id,
            record_id=record_id,
            product_name=product_name or candidate.document_name or "Unknown product",
            confidence=extraction.confidence,
            extraction_hash=extraction.content_hash,
            reason=verdict.reason,
        )
