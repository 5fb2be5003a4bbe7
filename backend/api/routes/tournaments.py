"""
Tournament REST endpoints.

GET    /v1/tournaments        — List tournaments (status filter, paging).
GET    /v1/tournaments/{id}   — Tournament detail.
POST   /v1/tournaments        — Create (organizer or admin; caller becomes organizer).
PUT    /v1/tournaments/{id}   — Update (its organizer or admin).
DELETE /v1/tournaments/{id}   — Soft delete (its organizer or admin).
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Forbidden, InvalidArgument, NotFound
from shared.models.domain import TournamentCreate, TournamentOut, TournamentUpdate
from shared.models.enums import RoleName, TournamentStatus
from shared.models.orm import TournamentORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import PermissionContext, require_roles
from api.dependencies import get_db

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/tournaments", tags=["tournaments"])


async def load_tournament(session: AsyncSession, tournament_id: uuid.UUID) -> TournamentORM:
    row = (
        await session.execute(
            select(TournamentORM).where(TournamentORM.id == tournament_id, TournamentORM.alive())
        )
    ).scalar_one_or_none()
    if row is None:
        raise NotFound("Tournament not found")
    return row


def _ensure_organizer(ctx: PermissionContext, tournament: TournamentORM) -> None:
    if not ctx.is_admin and tournament.organizer_id != ctx.user_id:
        raise Forbidden("Only the tournament organizer can modify this tournament")


@router.get("")
async def list_tournaments(
    status_filter: Optional[TournamentStatus] = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    stmt = select(TournamentORM).where(TournamentORM.alive())
    if status_filter is not None:
        stmt = stmt.where(TournamentORM.status == status_filter.value)
    stmt = stmt.order_by(TournamentORM.start_date.desc()).limit(limit).offset(offset)
    async with db.read_session() as session:
        rows = (await session.execute(stmt)).scalars().all()
        tournaments = [TournamentOut.model_validate(t) for t in rows]
    return {"tournaments": tournaments, "limit": limit, "offset": offset}


@router.get("/{tournament_id}", response_model=TournamentOut)
async def get_tournament(tournament_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> TournamentOut:
    async with db.read_session() as session:
        return TournamentOut.model_validate(await load_tournament(session, tournament_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_tournament(
    req: TournamentCreate,
    ctx: PermissionContext = Depends(require_roles(RoleName.ORGANIZER)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        tournament = TournamentORM(
            **req.model_dump(exclude={"format"}),
            format=req.format.value,
            status=TournamentStatus.DRAFT.value,
            organizer_id=ctx.user_id,
        )
        session.add(tournament)
        await session.flush()
        out = TournamentOut.model_validate(tournament)

    logger.info("tournament_created", tournament_id=str(out.id), organizer_id=str(ctx.user_id))
    return {"message": "Tournament created successfully", "tournament": out}


@router.put("/{tournament_id}")
async def update_tournament(
    tournament_id: uuid.UUID,
    req: TournamentUpdate,
    ctx: PermissionContext = Depends(require_roles(RoleName.ORGANIZER)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    async with db.write_session() as session:
        tournament = await load_tournament(session, tournament_id)
        _ensure_organizer(ctx, tournament)
        for name, value in changes.items():
            if name in ("format", "status") and value is not None:
                value = value.value
            setattr(tournament, name, value)
        if tournament.end_date < tournament.start_date:
            raise InvalidArgument("end_date must not be before start_date")
        if tournament.min_teams > tournament.max_teams:
            raise InvalidArgument("min_teams must not exceed max_teams")
        await session.flush()
        out = TournamentOut.model_validate(tournament)

    logger.info("tournament_updated", tournament_id=str(tournament_id), fields=sorted(changes))
    return {"message": "Tournament updated successfully", "tournament": out}


@router.delete("/{tournament_id}")
async def delete_tournament(
    tournament_id: uuid.UUID,
    ctx: PermissionContext = Depends(require_roles(RoleName.ORGANIZER)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, str]:
    async with db.write_session() as session:
        tournament = await load_tournament(session, tournament_id)
        _ensure_organizer(ctx, tournament)
        tournament.soft_delete()

    logger.info("tournament_deleted", tournament_id=str(tournament_id))
    return {"message": "Tournament deleted successfully"}
