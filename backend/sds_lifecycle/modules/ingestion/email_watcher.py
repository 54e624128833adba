from __future__ import annotations

import hashlib
from collections.abc import AsyncIterator
from datetime import datetime, timedelta
from uuid import UUID

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.exceptions import TransientExternalError
from sds_lifecycle.core.resilience import RateLimiter, call_with_retry
from sds_lifecycle.modules.chemicals.models import ProcessedAttachment
from sds_lifecycle.modules.ingestion.base import IngestionAdapter
from sds_lifecycle.modules.ingestion.mailbox import MailAttachment, MailboxClient
from sds_lifecycle.modules.ingestion.schemas import CandidateDocument, CandidateSource
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()

SDS_KEYWORDS = (
    "sds",
    "msds",
    "safety data sheet",
    "safety_data_sheet",
    "sikkerhetsdatablad",
    "sicherheitsdatenblatt",
)


def _mentions_sds(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(keyword in lowered for keyword in SDS_KEYWORDS)


def is_sds_attachment(attachment: MailAttachment, subject: str | None) -> bool:
    """A PDF whose file name or message subject mentions an SDS keyword."""
    is_pdf = attachment.content_type.lower() == "application/pdf" or attachment.name.lower().endswith(".pdf")
    return is_pdf and (_mentions_sds(attachment.name) or _mentions_sds(subject))


async def is_processed(
    db: AsyncSession, tenant_id: UUID, message_id: str, attachment_hash: str
) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(ProcessedAttachment)
        .where(
            ProcessedAttachment.tenant_id == tenant_id,
            ProcessedAttachment.message_id == message_id,
            ProcessedAttachment.attachment_hash == attachment_hash,
        )
    )
    return result.scalar_one() > 0


class EmailSdsWatcher(IngestionAdapter):
    name = "email"

    def __init__(
        self,
        mailbox: MailboxClient,
        limiter: RateLimiter,
        lookback_days: int = 7,
        retry_delay_s: float = 0.0,
    ) -> None:
        super().__init__()
        self.mailbox = mailbox
        self.limiter = limiter
        self.lookback_days = lookback_days
        self.retry_delay_s = retry_delay_s

    async def candidates(
        self, db: AsyncSession, scope: TenantScope, now: datetime
    ) -> AsyncIterator[CandidateDocument]:
        since = now - timedelta(days=self.lookback_days)
        # A listing failure is a mailbox failure; it propagates to the tenant run
        messages = await call_with_retry(
            lambda: self.mailbox.list_messages(since),
            delay_s=self.retry_delay_s,
            label="mailbox_list",
        )

        for message in messages:
            for attachment in message.attachments:
                if not is_sds_attachment(attachment, message.subject):
                    continue

                await self.limiter.wait()
                try:
                    content = await call_with_retry(
                        lambda: self.mailbox.download_attachment(message.id, attachment.id),
                        delay_s=self.retry_delay_s,
                        label="mailbox_download",
                    )
                except TransientExternalError as exc:
                    self.deferred += 1
                    logger.warning(
                        "attachment_download_deferred",
                        message_id=message.id,
                        attachment=attachment.name,
                        error=str(exc),
                    )
                    continue

                if not content:
                    self.skipped += 1
                    continue
                digest = hashlib.sha256(content).hexdigest()
                if await is_processed(db, scope.tenant_id, message.id, digest):
                    logger.debug("attachment_already_processed", message_id=message.id, attachment=attachment.name)
                    continue

                yield CandidateDocument(
                    tenant_id=scope.tenant_id,
                    source=CandidateSource.EMAIL,
                    content=content,
                    origin_id=message.id,
                    document_name=attachment.name,
                    subject=message.subject,
                )

    async def finalize(
        self, db: AsyncSession, scope: TenantScope, candidate: CandidateDocument, now: datetime
    ) -> None:
        if not candidate.is_terminal:
            return
        scope.check_owned(candidate, "CandidateDocument")
        db.add(
            ProcessedAttachment(
                tenant_id=scope.tenant_id,
                message_id=candidate.origin_id,
                attachment_hash=candidate.content_hash,
                outcome=candidate.state.value,
                processed_at=now,
            )
        )
        await db.flush()

    async def aclose(self) -> None:
        await self.mailbox.aclose()
