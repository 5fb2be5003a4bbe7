"""
Team REST endpoints.

GET    /v1/teams                — List active teams (name search, paging).
GET    /v1/teams/{id}           — Team detail.
GET    /v1/teams/{id}/players   — Active roster.
GET    /v1/teams/{id}/matches   — Matches the team plays in.
POST   /v1/teams                — Create; the caller becomes leader (team_leader role).
PUT    /v1/teams/{id}           — Update (leader or admin).
DELETE /v1/teams/{id}           — Soft delete (leader or admin).
"""
from __future__ import annotations

import secrets
import uuid
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import Forbidden, NotFound
from shared.models.domain import MatchOut, PlayerOut, TeamCreate, TeamOut, TeamUpdate
from shared.models.enums import RoleName
from shared.models.orm import MatchORM, PlayerORM, TeamORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

from api.auth import PermissionContext, get_permission_context, grant_role
from api.dependencies import get_db

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/teams", tags=["teams"])


async def load_team(session: AsyncSession, team_id: uuid.UUID) -> TeamORM:
    team = (
        await session.execute(select(TeamORM).where(TeamORM.id == team_id, TeamORM.alive()))
    ).scalar_one_or_none()
    if team is None:
        raise NotFound("Team not found")
    return team


def ensure_team_manager(ctx: PermissionContext, team: TeamORM) -> None:
    """Only the team's leader (or an admin) manages a team and its roster."""
    if not ctx.is_admin and team.leader_id != ctx.user_id:
        raise Forbidden("Only the team leader can manage this team")


async def _unused_invite_code(session: AsyncSession) -> str:
    while True:
        code = secrets.token_hex(4).upper()
        taken = (await session.execute(select(TeamORM.id).where(TeamORM.invite_code == code))).first()
        if taken is None:
            return code


@router.get("")
async def list_teams(
    search: Optional[str] = Query(None, min_length=1, max_length=100),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    stmt = select(TeamORM).where(TeamORM.alive())
    if search:
        stmt = stmt.where(TeamORM.name.ilike(f"%{search}%"))
    stmt = stmt.order_by(TeamORM.name).limit(limit).offset(offset)
    async with db.read_session() as session:
        teams = [TeamOut.model_validate(t) for t in (await session.execute(stmt)).scalars().all()]
    return {"teams": teams, "limit": limit, "offset": offset}


@router.get("/{team_id}", response_model=TeamOut)
async def get_team(team_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> TeamOut:
    async with db.read_session() as session:
        return TeamOut.model_validate(await load_team(session, team_id))


@router.get("/{team_id}/players")
async def get_team_players(team_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> dict[str, Any]:
    async with db.read_session() as session:
        await load_team(session, team_id)
        rows = (
            await session.execute(
                select(PlayerORM)
                .where(PlayerORM.team_id == team_id, PlayerORM.alive())
                .order_by(PlayerORM.jersey_number, PlayerORM.last_name)
            )
        ).scalars().all()
        players = [PlayerOut.model_validate(p) for p in rows]
    return {"players": players}


@router.get("/{team_id}/matches")
async def get_team_matches(team_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> dict[str, Any]:
    async with db.read_session() as session:
        await load_team(session, team_id)
        rows = (
            await session.execute(
                select(MatchORM)
                .where(
                    or_(MatchORM.home_team_id == team_id, MatchORM.away_team_id == team_id),
                    MatchORM.alive(),
                )
                .order_by(MatchORM.scheduled_date)
            )
        ).scalars().all()
        matches = [MatchOut.model_validate(m) for m in rows]
    return {"matches": matches}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_team(
    req: TeamCreate,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        team = TeamORM(
            **req.model_dump(),
            leader_id=ctx.user_id,
            invite_code=await _unused_invite_code(session),
        )
        session.add(team)
        await session.flush()
        await grant_role(session, ctx.user_id, RoleName.TEAM_LEADER)
        out = TeamOut.model_validate(team)

    logger.info("team_created", team_id=str(out.id), leader_id=str(ctx.user_id))
    return {"message": "Team created successfully", "team": out}


@router.put("/{team_id}")
async def update_team(
    team_id: uuid.UUID,
    req: TeamUpdate,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    async with db.write_session() as session:
        team = await load_team(session, team_id)
        ensure_team_manager(ctx, team)
        for name, value in changes.items():
            setattr(team, name, value)
        await session.flush()
        out = TeamOut.model_validate(team)

    logger.info("team_updated", team_id=str(team_id), fields=sorted(changes))
    return {"message": "Team updated successfully", "team": out}


@router.delete("/{team_id}")
async def delete_team(
    team_id: uuid.UUID,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, str]:
    async with db.write_session() as session:
        team = await load_team(session, team_id)
        ensure_team_manager(ctx, team)
        team.soft_delete()

    logger.info("team_deleted", team_id=str(team_id))
    return {"message": "Team deleted successfully"}
