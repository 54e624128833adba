from __future__ import annotations

import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sds_lifecycle.modules.notifications.models import Notification
from sds_lifecycle.modules.tenants.scope import TenantScope
from sds_lifecycle.modules.tenants.service import Recipient


async def notification_exists(
    db: AsyncSession, tenant_id: uuid.UUID, user_id: uuid.UUID, dedup_key: str
) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(Notification)
        .where(
            Notification.tenant_id == tenant_id,
            Notification.user_id == user_id,
            Notification.dedup_key == dedup_key,
        )
    )
    return result.scalar_one() > 0


async def create_notification(
    db: AsyncSession,
    scope: TenantScope,
    recipient: Recipient,
    *,
    reason: str,
    title: str,
    message: str,
    dedup_key: str,
    record_id: int | None = None,
    link: str | None = None,
) -> Notification | None:
    """Insert one in-app notification; None if this user already got it."""
    scope.check_owned(recipient, "Recipient")
    if await notification_exists(db, scope.tenant_id, recipient.user_id, dedup_key):
        return None
    row = Notification(
        tenant_id=scope.tenant_id,
        user_id=recipient.user_id,
        record_id=record_id,
        reason=reason,
        title=title,
        message=message,
        link=link,
        dedup_key=dedup_key,
    )
    db.add(row)
    await db.flush()
    return row


async def list_notifications(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    user_id: uuid.UUID | None = None,
    reason: str | None = None,
) -> list[Notification]:
    query = select(Notification).where(Notification.tenant_id == tenant_id)
    if user_id is not None:
        query = query.where(Notification.user_id == user_id)
    if reason:
        query = query.where(Notification.reason == reason)
    result = await db.execute(query.order_by(Notification.created_at.desc(), Notification.id.desc()))
    return list(result.scalars().all())
