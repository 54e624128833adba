from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.core.resilience import RateLimiter, call_with_retry
from sds_lifecycle.modules.audit import service as audit_service
from sds_lifecycle.modules.audit.models import REGISTRY_SYNC
from sds_lifecycle.modules.chemicals import service as chemicals_service
from sds_lifecycle.modules.chemicals.models import ChemicalRecord
from sds_lifecycle.modules.chemicals.normalize import normalize_cas, parse_hazard_codes
from sds_lifecycle.modules.notifications.dispatcher import NotificationDispatcher
from sds_lifecycle.modules.registry.client import HazardRegistryClient
from sds_lifecycle.modules.registry.hazard import classify
from sds_lifecycle.modules.tenants.scope import TenantScope

logger = structlog.get_logger()

REGISTRY_SOURCE = "REGISTRY"


def diff_values(record: ChemicalRecord, values: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """``{field: {"old": ..., "new": ...}}`` for every value that differs from the record."""
    changes: dict[str, dict[str, Any]] = {}
    for name, new in values.items():
        old = getattr(record, name)
        if old != new:
            changes[name] = {"old": old, "new": new}
    return changes


def classification_values(
    hazard_statements: list[str] | None, is_svhc: bool, known_cmr: bool = False
) -> dict[str, Any]:
    return classify(hazard_statements, is_svhc=is_svhc, known_cmr=known_cmr).as_record_values()


def merge_hazard_codes(*groups: list[str] | str | None) -> list[str]:
    """Union of several hazard code lists, first-seen order."""
    merged: list[str] = []
    for group in groups:
        merged += [c for c in parse_hazard_codes(group) if c not in merged]
    return merged


class RegistryOutcome(str, Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"


@dataclass
class RegistrySyncResult:
    outcome: RegistryOutcome
    changes: dict[str, dict[str, Any]] = field(default_factory=dict)
    became_cmr: bool = False


class HazardSync:
    """Reconciles one record's hazard data with the registry."""

    def __init__(
        self,
        registry: HazardRegistryClient,
        limiter: RateLimiter,
        retry_delay_s: float = 0.0,
    ) -> None:
        self.registry = registry
        self.limiter = limiter
        self.retry_delay_s = retry_delay_s

    async def sync_record(
        self,
        db: AsyncSession,
        scope: TenantScope,
        record: ChemicalRecord,
        dispatcher: NotificationDispatcher,
        now: datetime,
        sync_run_id: int | None = None,
    ) -> RegistrySyncResult:
        scope.check_owned(record, "ChemicalRecord")
        cas = normalize_cas(record.cas_number)
        if cas is None:
            logger.info("registry_sync_invalid_cas", record_id=record.id, cas_number=record.cas_number)
            await chemicals_service.touch_registry_synced(db, scope, record.id, now)
            return RegistrySyncResult(RegistryOutcome.NOT_FOUND)

        async def lookup():
            await self.limiter.wait()
            return await self.registry.lookup(cas)

        substance = await call_with_retry(
            lookup, delay_s=self.retry_delay_s, label="registry_lookup"
        )
        if substance is None:
            await chemicals_service.touch_registry_synced(db, scope, record.id, now)
            return RegistrySyncResult(RegistryOutcome.NOT_FOUND)

        # Codes stated on the SDS and codes from the registry both count
        combined = merge_hazard_codes(record.hazard_statements, substance.hazard_codes)

        values: dict[str, Any] = classification_values(combined, substance.is_svhc)
        values["registry_hazard_codes"] = list(substance.hazard_codes)
        if substance.ec_number:
            values["ec_number"] = substance.ec_number
        if substance.reach_status:
            values["reach_status"] = substance.reach_status
        if not record.hazard_statements and substance.hazard_codes:
            values["hazard_statements"] = list(substance.hazard_codes)

        changes = diff_values(record, values)
        was_cmr = record.is_cmr
        await chemicals_service.merge_record_fields(
            db,
            scope,
            record.id,
            {name: change["new"] for name, change in changes.items()} | {"last_registry_sync_at": now},
        )
        if not changes:
            return RegistrySyncResult(RegistryOutcome.UNCHANGED)

        await audit_service.append_entry(
            db,
            scope,
            action=REGISTRY_SYNC,
            source=REGISTRY_SOURCE,
            record_id=record.id,
            sync_run_id=sync_run_id,
            changes=changes,
            origin_id=cas,
        )
        await db.refresh(record)

        became_cmr = record.is_cmr and not was_cmr
        if became_cmr:
            logger.warning(
                "hazard_reclassified_cmr",
                record_id=record.id,
                cas_number=cas,
                substitution_priority=record.substitution_priority,
            )
            await dispatcher.record_reclassified(record, now.date())
        logger.info("registry_sync_updated", record_id=record.id, fields=sorted(changes))
        return RegistrySyncResult(RegistryOutcome.UPDATED, changes, became_cmr)
