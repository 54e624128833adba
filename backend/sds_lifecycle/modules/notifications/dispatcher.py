"""Turns decision and sync outcomes into in-app notifications and one digest per run."""

from __future__ import annotations

from datetime import date

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.notifications import service as notifications_service
from sds_lifecycle.modules.notifications.digest import (
    DigestItem,
    DigestSender,
    RunDigest,
    render_digest,
)
from sds_lifecycle.modules.notifications.models import (
    HAZARD_RECLASSIFIED,
    SDS_AUTO_APPLIED,
    SDS_REVIEW_DUE,
    SDS_REVIEW_PENDING,
    SUBSTITUTION_REMINDER,
    SUPPLIER_UPDATE_REQUEST,
)
from sds_lifecycle.modules.tenants import service as tenants_service
from sds_lifecycle.modules.tenants.scope import TenantScope
from sds_lifecycle.modules.tenants.service import Recipient

logger = structlog.get_logger()


class NotificationDispatcher:
    """Per tenant, per job run.

    Every in-app notification goes to each opted-in ADMIN/HMS member and is
    deduplicated on (tenant, user, dedup key). Digest items accumulate until
    ``send_digest`` is called once at the end of the run.
    """

    def __init__(
        self,
        db: AsyncSession,
        scope: TenantScope,
        recipients: list[Recipient],
        digest_sender: DigestSender,
        *,
        tenant_name: str,
        job: str,
        dashboard_base_url: str,
    ) -> None:
        self.db = db
        self.scope = scope
        self.recipients = scope.check_all_owned(recipients, "Recipient")
        self.digest_sender = digest_sender
        self.dashboard_base_url = dashboard_base_url.rstrip("/")
        self.digest = RunDigest(tenant_name=tenant_name, job=job)
        self.created = 0

    @classmethod
    async def for_tenant(
        cls,
        db: AsyncSession,
        scope: TenantScope,
        digest_sender: DigestSender,
        *,
        tenant_name: str,
        job: str,
        dashboard_base_url: str,
    ) -> NotificationDispatcher:
        recipients = await tenants_service.list_notification_recipients(db, scope.tenant_id)
        return cls(
            db,
            scope,
            recipients,
            digest_sender,
            tenant_name=tenant_name,
            job=job,
            dashboard_base_url=dashboard_base_url,
        )

    def _record_link(self, record_id: int | None) -> str:
        if record_id is None:
            return f"{self.dashboard_base_url}/dashboard/chemicals"
        return f"{self.dashboard_base_url}/dashboard/chemicals/{record_id}"

    async def _fan_out(
        self,
        item: DigestItem,
        items: list[DigestItem],
        *,
        reason: str,
        title: str,
        message: str,
        dedup_key: str,
        record_id: int | None,
    ) -> int:
        created = 0
        for recipient in self.recipients:
            row = await notifications_service.create_notification(
                self.db,
                self.scope,
                recipient,
                reason=reason,
                title=title,
                message=message,
                dedup_key=dedup_key,
                record_id=record_id,
                link=self._record_link(record_id),
            )
            if row is not None:
                created += 1
        self.created += created
        if created:
            items.append(item)
        return created

    async def record_applied(
        self, record_id: int, product_name: str, extraction_hash: str, changed_fields: list[str]
    ) -> int:
        detail = "updated " + ", ".join(changed_fields) if changed_fields else "new SDS stored"
        return await self._fan_out(
            DigestItem(record_id, product_name, detail),
            self.digest.applied,
            reason=SDS_AUTO_APPLIED,
            title=f"SDS updated: {product_name}",
            message=f"A new safety data sheet was applied automatically ({detail}).",
            dedup_key=f"applied:{record_id}:{extraction_hash}",
            record_id=record_id,
        )

    async def record_queued(
        self,
        record_id: int | None,
        product_name: str,
        reason: str,
        extraction_hash: str,
    ) -> int:
        owner = record_id if record_id is not None else "unmatched"
        return await self._fan_out(
            DigestItem(record_id, product_name, reason.replace("_", " ")),
            self.digest.queued,
            reason=SDS_REVIEW_PENDING,
            title=f"SDS needs review: {product_name}",
            message=f"An incoming safety data sheet could not be applied automatically ({reason}).",
            dedup_key=f"queued:{owner}:{extraction_hash}",
            record_id=record_id,
        )

    async def record_reclassified(self, record: ChemicalRecord, today: date) -> int:
        self.scope.check_owned(record, "ChemicalRecord")
        detail = f"now CMR, substitution priority {record.substitution_priority}"
        return await self._fan_out(
            DigestItem(record.id, record.product_name, detail),
            self.digest.reclassified,
            reason=HAZARD_RECLASSIFIED,
            title=f"Reclassified as CMR: {record.product_name}",
            message=(
                f"{record.product_name} ({record.cas_number}) is now classified as "
                "carcinogenic, mutagenic or reprotoxic. Review exposure and substitution."
            ),
            dedup_key=f"reclassified:{record.id}:{today.isoformat()}",
            record_id=record.id,
        )

    async def record_review_due(self, record: ChemicalRecord, due: date) -> int:
        self.scope.check_owned(record, "ChemicalRecord")
        return await self._fan_out(
            DigestItem(record.id, record.product_name, f"review due {due.isoformat()}"),
            self.digest.review_due,
            reason=SDS_REVIEW_DUE,
            title=f"SDS review due: {record.product_name}",
            message=f"The safety data sheet for {record.product_name} is due for review on {due.isoformat()}.",
            dedup_key=f"review_due:{record.id}:{due.isoformat()}",
            record_id=record.id,
        )

    async def record_supplier_update_request(self, record: ChemicalRecord, today: date) -> int:
        """Ask HMS to confirm an ageing SDS with the supplier, at most once a month."""
        self.scope.check_owned(record, "ChemicalRecord")
        sds_date = record.sds_date.isoformat() if record.sds_date else "unknown"
        return await self._fan_out(
            DigestItem(record.id, record.product_name, f"{record.supplier}, SDS dated {sds_date}"),
            self.digest.supplier_requests,
            reason=SUPPLIER_UPDATE_REQUEST,
            title=f"Check SDS with supplier: {record.product_name}",
            message=(
                f"The safety data sheet for {record.product_name} is dated {sds_date}. "
                f"Ask {record.supplier} to confirm it is current or send a newer revision."
            ),
            dedup_key=f"supplier_update:{record.id}:{today:%Y-%m}",
            record_id=record.id,
        )

    async def send_substitution_reminders(
        self, records: list[ChemicalRecord], today: date, weekday: int
    ) -> int:
        """CMR/SVHC reminders, only on the configured weekday (0 = Monday)."""
        if today.weekday() != weekday:
            return 0
        created = 0
        for record in self.scope.check_all_owned(records, "ChemicalRecord"):
            flags = [name for name, on in (("CMR", record.is_cmr), ("SVHC", record.is_svhc)) if on]
            detail = f"{'/'.join(flags)}, priority {record.substitution_priority}"
            created += await self._fan_out(
                DigestItem(record.id, record.product_name, detail),
                self.digest.substitution,
                reason=SUBSTITUTION_REMINDER,
                title=f"Consider substituting {record.product_name}",
                message=f"{record.product_name} is {' and '.join(flags)}. Evaluate a safer alternative.",
                dedup_key=f"substitution:{record.id}:{today.isoformat()}",
                record_id=record.id,
            )
        return created

    async def send_digest(self) -> int:
        """Email the run digest to each recipient with ``notify_by_email``. Returns emails sent."""
        if self.digest.is_empty:
            return 0
        subject, html, text = render_digest(self.digest, self.dashboard_base_url)
        sent = 0
        for recipient in self.recipients:
            if not recipient.notify_by_email:
                continue
            if await self.digest_sender.send(recipient.email, subject, html, text):
                sent += 1
        logger.info(
            "digest_dispatched",
            job=self.digest.job,
            items=self.digest.total,
            recipients=len(self.recipients),
            sent=sent,
        )
        return sent
