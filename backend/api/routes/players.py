"""
Player REST endpoints.

GET    /v1/players        — List players (team filter, paging).
GET    /v1/players/{id}   — Player detail.
POST   /v1/players        — Add a player to a team (team leader or admin).
PUT    /v1/players/{id}   — Update (team leader or admin).
DELETE /v1/players/{id}   — Soft delete (team leader or admin).
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Conflict, NotFound
from shared.models.domain import PlayerCreate, PlayerOut, PlayerUpdate
from shared.models.orm import PlayerORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import PermissionContext, get_permission_context
from api.dependencies import get_db
from api.routes.teams import ensure_team_manager, load_team

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/players", tags=["players"])


async def load_player(session: AsyncSession, player_id: uuid.UUID) -> PlayerORM:
    player = (
        await session.execute(select(PlayerORM).where(PlayerORM.id == player_id, PlayerORM.alive()))
    ).scalar_one_or_none()
    if player is None:
        raise NotFound("Player not found")
    return player


async def _ensure_jersey_free(
    session: AsyncSession,
    team_id: uuid.UUID,
    jersey_number: Optional[int],
    exclude_id: Optional[uuid.UUID] = None,
) -> None:
    if jersey_number is None:
        return
    stmt = select(PlayerORM.id).where(
        PlayerORM.team_id == team_id,
        PlayerORM.jersey_number == jersey_number,
        PlayerORM.alive(),
    )
    if exclude_id is not None:
        stmt = stmt.where(PlayerORM.id != exclude_id)
    if (await session.execute(stmt)).first() is not None:
        raise Conflict("Jersey number already taken in this team", jersey_number=jersey_number)


@router.get("")
async def list_players(
    team_id: Optional[uuid.UUID] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    stmt = select(PlayerORM).where(PlayerORM.alive())
    if team_id is not None:
        stmt = stmt.where(PlayerORM.team_id == team_id)
    stmt = stmt.order_by(PlayerORM.last_name, PlayerORM.first_name).limit(limit).offset(offset)
    async with db.read_session() as session:
        players = [PlayerOut.model_validate(p) for p in (await session.execute(stmt)).scalars().all()]
    return {"players": players, "limit": limit, "offset": offset}


@router.get("/{player_id}", response_model=PlayerOut)
async def get_player(player_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> PlayerOut:
    async with db.read_session() as session:
        return PlayerOut.model_validate(await load_player(session, player_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_player(
    req: PlayerCreate,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        team = await load_team(session, req.team_id)
        ensure_team_manager(ctx, team)
        await _ensure_jersey_free(session, team.id, req.jersey_number)
        player = PlayerORM(**req.model_dump())
        session.add(player)
        await session.flush()
        out = PlayerOut.model_validate(player)

    logger.info("player_created", player_id=str(out.id), team_id=str(req.team_id))
    return {"message": "Player created successfully", "player": out}


@router.put("/{player_id}")
async def update_player(
    player_id: uuid.UUID,
    req: PlayerUpdate,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    async with db.write_session() as session:
        player = await load_player(session, player_id)
        if player.team_id is not None:
            ensure_team_manager(ctx, await load_team(session, player.team_id))
            if "jersey_number" in changes:
                await _ensure_jersey_free(session, player.team_id, changes["jersey_number"], exclude_id=player.id)
        elif not ctx.is_admin:
            raise NotFound("Player not found")
        for name, value in changes.items():
            setattr(player, name, value)
        await session.flush()
        out = PlayerOut.model_validate(player)

    logger.info("player_updated", player_id=str(player_id), fields=sorted(changes))
    return {"message": "Player updated successfully", "player": out}


@router.delete("/{player_id}")
async def delete_player(
    player_id: uuid.UUID,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, str]:
    async with db.write_session() as session:
        player = await load_player(session, player_id)
        if player.team_id is not None:
            ensure_team_manager(ctx, await load_team(session, player.team_id))
        elif not ctx.is_admin:
            raise NotFound("Player not found")
        player.soft_delete()

    logger.info("player_deleted", player_id=str(player_id))
    return {"message": "Player deleted successfully"}
