"""Chemical register persistence: records, the review queue and the dedup ledger."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from sds_lifecycle.core.database import Base, JSONType


class ChemicalRecord(Base):
    __tablename__ = "chemical_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE")

    # Product identity
    product_name: Mapped[str] = mapped_column(Text, nullable=False)
    supplier: Mapped[Optional[str]] = mapped_column(String(200))
    catalog_number: Mapped[Optional[str]] = mapped_column(String(100))
    cas_number: Mapped[Optional[str]] = mapped_column(String(20))
    ec_number: Mapped[Optional[str]] = mapped_column(String(20))

    # Hazard fields
    hazard_statements: Mapped[Optional[list[str]]] = mapped_column(JSONType, default=list)
    # Codes last reported by the hazard registry, kept apart from the SDS statements
    registry_hazard_codes: Mapped[Optional[list[str]]] = mapped_column(JSONType, default=list)
    precautionary_statements: Mapped[Optional[list[str]]] = mapped_column(JSONType, default=list)
    pictograms: Mapped[Optional[list[str]]] = mapped_column(JSONType, default=list)
    signal_word: Mapped[Optional[str]] = mapped_column(String(20))
    is_cmr: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_svhc: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    reach_status: Mapped[Optional[str]] = mapped_column(String(100))
    hazard_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    substitution_priority: Mapped[str] = mapped_column(String(10), nullable=False, default="LOW")

    # SDS pointer
    sds_key: Mapped[Optional[str]] = mapped_column(Text)
    sds_version: Mapped[Optional[str]] = mapped_column(String(50))
    sds_date: Mapped[Optional[date]] = mapped_column(Date)
    next_review_date: Mapped[Optional[date]] = mapped_column(Date)

    # Sync bookkeeping
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_registry_sync_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("idx_chemical_records_tenant", "tenant_id"),
        Index("idx_chemical_records_tenant_cas", "tenant_id", "cas_number"),
        Index("idx_chemical_records_tenant_catalog", "tenant_id", "supplier", "catalog_number"),
    )


class SdsUpdateSuggestion(Base):
    """An extraction parked for human review (QUEUE_FOR_REVIEW)."""

    __tablename__ = "sds_update_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    record_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("chemical_records.id")
    )
    source: Mapped[str] = mapped_column(String(20), nullable=False)
    origin_id: Mapped[str] = mapped_column(Text, nullable=False)
    document_name: Mapped[Optional[str]] = mapped_column(Text)
    storage_key: Mapped[Optional[str]] = mapped_column(Text)
    extracted_fields: Mapped[dict] = mapped_column(JSONType, nullable=False)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    extraction_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index("idx_sds_suggestions_tenant_status", "tenant_id", "status"),
        Index("idx_sds_suggestions_hash", "tenant_id", "extraction_hash"),
    )


class SubstitutionSuggestion(Base):
    """Cached safer-alternative list for one record."""

    __tablename__ = "substitution_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    record_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("chemical_records.id"), unique=True, nullable=False
    )
    alternatives: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ProcessedAttachment(Base):
    """Email watcher dedup ledger: one row per (message, attachment bytes)."""

    __tablename__ = "processed_attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    message_id: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index(
            "uq_processed_attachments_tenant_message_hash",
            "tenant_id",
            "message_id",
            "attachment_hash",
            unique=True,
        ),
    )
