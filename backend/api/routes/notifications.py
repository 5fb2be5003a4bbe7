"""
Notification inbox endpoints for the current user.

GET    /v1/notifications               — List (unread filter, paging), newest first.
GET    /v1/notifications/unread-count  — Unread badge count.
PUT    /v1/notifications/read-all      — Mark every notification read.
PUT    /v1/notifications/{id}/read     — Mark one notification read.
DELETE /v1/notifications/{id}          — Soft delete.
"""
from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound
from shared.models.domain import NotificationOut
from shared.models.orm import NotificationORM, utcnow
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import PermissionContext, get_permission_context
from api.dependencies import get_db

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


def _visible(user_id: uuid.UUID) -> list[Any]:
    return [
        NotificationORM.user_id == user_id,
        NotificationORM.alive(),
        or_(NotificationORM.expires_at.is_(None), NotificationORM.expires_at > utcnow()),
    ]


async def _load_own(session: AsyncSession, user_id: uuid.UUID, notification_id: uuid.UUID) -> NotificationORM:
    row = (
        await session.execute(
            select(NotificationORM).where(NotificationORM.id == notification_id, *_visible(user_id))
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFound("Notification not found")
    return row


@router.get("")
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    conditions = _visible(ctx.user_id)
    if unread_only:
        conditions.append(NotificationORM.is_read.is_(False))
    async with db.read_session() as session:
        total = (
            await session.execute(select(func.count()).select_from(NotificationORM).where(*conditions))
        ).scalar() or 0
        rows = (
            await session.execute(
                select(NotificationORM)
                .where(*conditions)
                .order_by(NotificationORM.created_at.desc())
                .limit(limit)
                .offset(offset)
            )
        ).scalars().all()
        notifications = [NotificationOut.model_validate(n) for n in rows]
    return {"notifications": notifications, "total": total, "limit": limit, "offset": offset}


@router.get("/unread-count")
async def unread_count(
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, int]:
    async with db.read_session() as session:
        count = (
            await session.execute(
                select(func.count())
                .select_from(NotificationORM)
                .where(*_visible(ctx.user_id), NotificationORM.is_read.is_(False))
            )
        ).scalar() or 0
    return {"unread_count": count}


@router.put("/read-all")
async def mark_all_read(
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        result = await session.execute(
            update(NotificationORM)
            .where(*_visible(ctx.user_id), NotificationORM.is_read.is_(False))
            .values(is_read=True)
            .execution_options(synchronize_session=False)
        )
    return {"message": "All notifications marked as read", "updated": result.rowcount}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: uuid.UUID,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        row = await _load_own(session, ctx.user_id, notification_id)
        row.is_read = True
        await session.flush()
        out = NotificationOut.model_validate(row)
    return {"message": "Notification marked as read", "notification": out}


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: uuid.UUID,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, str]:
    async with db.write_session() as session:
        row = await _load_own(session, ctx.user_id, notification_id)
        row.soft_delete()
    logger.info("notification_deleted", notification_id=str(notification_id), user_id=str(ctx.user_id))
    return {"message": "Notification deleted successfully"}
