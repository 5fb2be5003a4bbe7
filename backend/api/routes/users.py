"""
User administration routes (admin only).

GET  /v1/users             — List active users with their role names.
POST /v1/users/{id}/roles  — Grant a role to a user.
"""
from __future__ import annotations

import uuid
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select

from shared.errors import InvalidArgument, NotFound
from shared.models.domain import RoleGrantRequest
from shared.models.enums import RoleName
from shared.models.orm import UserORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import PermissionContext, grant_role, require_roles
from api.dependencies import get_db
from api.routes.auth import user_out

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/users", tags=["users"])

VALID_ROLE_NAMES = [r.value for r in RoleName]


@router.get("")
async def list_users(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    ctx: PermissionContext = Depends(require_roles(RoleName.ADMIN)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.read_session() as session:
        rows = (
            await session.execute(
                select(UserORM).where(UserORM.alive()).order_by(UserORM.created_at).limit(limit).offset(offset)
            )
        ).scalars().all()
        users = [await user_out(session, u) for u in rows]
    return {"users": users, "limit": limit, "offset": offset}


@router.post("/{user_id}/roles")
async def add_role(
    user_id: uuid.UUID,
    req: RoleGrantRequest,
    ctx: PermissionContext = Depends(require_roles(RoleName.ADMIN)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """Grant a role. Granting a role the user already holds is a no-op."""
    try:
        role = RoleName(req.role)
    except ValueError:
        raise InvalidArgument("Invalid role", valid_roles=VALID_ROLE_NAMES) from None

    async with db.write_session() as session:
        user = await session.get(UserORM, user_id)
        if user is None or user.deleted_at is not None:
            raise NotFound("User not found")
        granted = await grant_role(session, user_id, role)
        out = await user_out(session, user)

    if granted:
        logger.info("role_granted", user_id=str(user_id), role=role.value, granted_by=str(ctx.user_id))
    return {"message": "Role granted" if granted else "Role already held", "user": out}
