from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from sds_lifecycle.core.database import Base

# Reason codes
SDS_AUTO_APPLIED = "SDS_AUTO_APPLIED"
SDS_REVIEW_PENDING = "SDS_REVIEW_PENDING"
HAZARD_RECLASSIFIED = "HAZARD_RECLASSIFIED"
SUBSTITUTION_REMINDER = "SUBSTITUTION_REMINDER"
SDS_REVIEW_DUE = "SDS_REVIEW_DUE"
SUPPLIER_UPDATE_REQUEST = "SUPPLIER_UPDATE_REQUEST"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenants.id"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    record_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("chemical_records.id")
    )
    reason: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[Optional[str]] = mapped_column(Text)
    dedup_key: Mapped[str] = mapped_column(String(200), nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        Index(
            "uq_notifications_tenant_user_dedup",
            "tenant_id",
            "user_id",
            "dedup_key",
            unique=True,
        ),
        Index("idx_notifications_tenant_user_created", "tenant_id", "user_id", "created_at"),
    )
