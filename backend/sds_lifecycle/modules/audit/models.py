"""Append-only provenance log."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    event,
    func,
)
from sqlalchemy.orm import Mapped, Session, mapped_column

from sds_lifecycle.core.database import Base, JSONType
from sds_lifecycle.core.exceptions import DataIntegrityViolation

# Action codes
AUTO_APPLY = "AUTO_APPLY"
QUEUE_FOR_REVIEW = "QUEUE_FOR_REVIEW"
REGISTRY_SYNC = "REGISTRY_SYNC"


class AuditEntry(Base):
    __tablename__ = "audit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    record_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("chemical_records.id")
    )
    suggestion_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("sds_update_suggestions.id")
    )
    sync_run_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("sync_runs.id"))

    confidence: Mapped[Optional[float]] = mapped_column(Float)
    # {field: {"old": ..., "new": ...}}
    changes: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    extraction_hash: Mapped[Optional[str]] = mapped_column(String(64))
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    origin_id: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_audit_entries_tenant_created", "tenant_id", "created_at"),
        Index("idx_audit_entries_record_hash", "tenant_id", "record_id", "extraction_hash"),
    )


@event.listens_for(AuditEntry, "before_update")
def _reject_update(mapper, connection, target: AuditEntry) -> None:
    raise DataIntegrityViolation(
        f"Audit entry {target.id} is immutable", tenant_id=target.tenant_id
    )


@event.listens_for(AuditEntry, "before_delete")
def _reject_delete(mapper, connection, target: AuditEntry) -> None:
    raise DataIntegrityViolation(
        f"Audit entry {target.id} cannot be deleted", tenant_id=target.tenant_id
    )


@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_writes(state) -> None:
    """Bulk ``update()``/``delete()`` statements skip the mapper events above."""
    if not (state.is_update or state.is_delete):
        return
    if any(m.class_ is AuditEntry for m in state.all_mappers):
        raise DataIntegrityViolation("Audit entries are append-only")
