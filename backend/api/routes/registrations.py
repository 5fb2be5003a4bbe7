"""
Tournament team registration and standings.

GET    /v1/tournaments/{id}/teams             — Registrations (status/group filters, paging).
POST   /v1/tournaments/{id}/teams/{team_id}   — Register a team (its leader or admin).
PUT    /v1/tournaments/{id}/teams/{team_id}   — Approve, reject, group (organizer or admin).
DELETE /v1/tournaments/{id}/teams/{team_id}   — Withdraw (team leader, organizer or admin).
GET    /v1/tournaments/{id}/standings         — Table built from confirmed results.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.errors import Conflict, Forbidden, NotFound
from shared.models.domain import RegistrationCreate, RegistrationOut, RegistrationUpdate, StandingOut
from shared.models.enums import RegistrationStatus
from shared.models.orm import MatchORM, TeamORM, TeamTournamentORM, TournamentORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import REGISTRATION_DECISIONS
from shared.workflow.tournaments import (
    StandingRow,
    compute_standings,
    ensure_accepting_registrations,
    ensure_capacity,
    ensure_withdrawable,
    parse_registration_status,
)

from api.auth import PermissionContext, get_permission_context
from api.dependencies import get_db, get_notifier
from api.notifications import NotificationDispatcher, registration_requests
from api.routes.matches import queue_notifications
from api.routes.teams import load_team
from api.routes.tournaments import load_tournament

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/tournaments/{tournament_id}", tags=["registrations"])


async def _find_registration(
    session: AsyncSession, tournament_id: uuid.UUID, team_id: uuid.UUID
) -> Optional[TeamTournamentORM]:
    return (
        await session.execute(
            select(TeamTournamentORM).where(
                TeamTournamentORM.tournament_id == tournament_id,
                TeamTournamentORM.team_id == team_id,
            )
        )
    ).scalar_one_or_none()


async def load_registration(
    session: AsyncSession, tournament_id: uuid.UUID, team_id: uuid.UUID
) -> TeamTournamentORM:
    registration = await _find_registration(session, tournament_id, team_id)
    if registration is None:
        raise NotFound("Team registration not found")
    return registration


async def approved_count(session: AsyncSession, tournament_id: uuid.UUID) -> int:
    stmt = (
        select(func.count())
        .select_from(TeamTournamentORM)
        .where(
            TeamTournamentORM.tournament_id == tournament_id,
            TeamTournamentORM.status == RegistrationStatus.APPROVED.value,
        )
    )
    return (await session.execute(stmt)).scalar() or 0


def _ensure_organizer(ctx: PermissionContext, tournament: TournamentORM) -> None:
    if not ctx.is_admin and tournament.organizer_id != ctx.user_id:
        raise Forbidden("Only the tournament organizer can update team registrations")


@router.get("/teams")
async def list_registrations(
    tournament_id: uuid.UUID,
    status_filter: Optional[str] = Query(None, alias="status"),
    group: Optional[str] = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    conditions = [TeamTournamentORM.tournament_id == tournament_id]
    if status_filter is not None:
        conditions.append(TeamTournamentORM.status == parse_registration_status(status_filter).value)
    if group is not None:
        conditions.append(TeamTournamentORM.group == group)

    async with db.read_session() as session:
        await load_tournament(session, tournament_id)
        count = (
            await session.execute(select(func.count()).select_from(TeamTournamentORM).where(*conditions))
        ).scalar() or 0
        rows = (
            await session.execute(
                select(TeamTournamentORM)
                .options(selectinload(TeamTournamentORM.team))
                .where(*conditions)
                .order_by(TeamTournamentORM.registration_date.desc())
                .limit(limit)
                .offset(offset)
            )
        ).scalars().all()
        registrations = [
            {**RegistrationOut.model_validate(r).model_dump(), "team_name": r.team.name} for r in rows
        ]
    return {"registrations": registrations, "count": count, "limit": limit, "offset": offset}


@router.post("/teams/{team_id}", status_code=status.HTTP_201_CREATED)
async def register_team(
    tournament_id: uuid.UUID,
    team_id: uuid.UUID,
    req: RegistrationCreate,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """A withdrawn team may register again; any other existing entry is a conflict."""
    async with db.write_session() as session:
        tournament = await load_tournament(session, tournament_id)
        ensure_accepting_registrations(tournament)
        team = await load_team(session, team_id)
        if not ctx.is_admin and team.leader_id != ctx.user_id:
            raise Forbidden("Only the team leader can register the team")
        ensure_capacity(tournament, await approved_count(session, tournament_id))

        registration = await _find_registration(session, tournament_id, team_id)
        if registration is not None and registration.status != RegistrationStatus.WITHDRAWN.value:
            raise Conflict("Team is already registered for this tournament", status=registration.status)
        if registration is None:
            registration = TeamTournamentORM(team_id=team_id, tournament_id=tournament_id)
            session.add(registration)
        registration.status = RegistrationStatus.PENDING.value
        registration.notes = req.notes
        await session.flush()
        out = RegistrationOut.model_validate(registration)

    logger.info("team_registered", tournament_id=str(tournament_id), team_id=str(team_id))
    return {"message": "Team registered successfully", "registration": out}


@router.put("/teams/{team_id}")
async def update_registration(
    tournament_id: uuid.UUID,
    team_id: uuid.UUID,
    req: RegistrationUpdate,
    background_tasks: BackgroundTasks,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> dict[str, Any]:
    changes = req.model_dump(exclude_unset=True)
    new_status = parse_registration_status(changes["status"]) if changes.get("status") else None

    async with db.write_session() as session:
        tournament = await load_tournament(session, tournament_id)
        _ensure_organizer(ctx, tournament)
        registration = await load_registration(session, tournament_id, team_id)
        previous = RegistrationStatus(registration.status)

        if new_status == RegistrationStatus.APPROVED and previous != RegistrationStatus.APPROVED:
            ensure_capacity(tournament, await approved_count(session, tournament_id))
        if new_status is not None:
            registration.status = new_status.value
        if "group" in changes:
            registration.group = changes["group"]
        if "notes" in changes:
            registration.notes = changes["notes"]
        await session.flush()
        out = RegistrationOut.model_validate(registration)

        requests = []
        if new_status is not None and new_status != previous:
            team = await session.get(TeamORM, team_id)
            requests = registration_requests(
                team.leader_id,
                team.name,
                tournament.name,
                new_status,
                {
                    "team_id": str(team_id),
                    "team_name": team.name,
                    "tournament_id": str(tournament_id),
                    "tournament_name": tournament.name,
                    "status": new_status.value,
                    "group": registration.group,
                },
            )

    if new_status is not None and new_status != previous:
        REGISTRATION_DECISIONS.labels(status=new_status.value).inc()
        logger.info(
            "registration_status_updated",
            tournament_id=str(tournament_id),
            team_id=str(team_id),
            previous=previous.value,
            status=new_status.value,
            user_id=str(ctx.user_id),
        )
    queue_notifications(background_tasks, notifier, requests)
    return {"message": "Team registration updated successfully", "registration": out}


@router.delete("/teams/{team_id}")
async def withdraw_team(
    tournament_id: uuid.UUID,
    team_id: uuid.UUID,
    ctx: PermissionContext = Depends(get_permission_context),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        tournament = await load_tournament(session, tournament_id)
        team = await load_team(session, team_id)
        if not (ctx.is_admin or team.leader_id == ctx.user_id or tournament.organizer_id == ctx.user_id):
            raise Forbidden("Only the team leader or tournament organizer can withdraw a team")
        registration = await load_registration(session, tournament_id, team_id)
        ensure_withdrawable(tournament)
        registration.status = RegistrationStatus.WITHDRAWN.value
        await session.flush()
        out = RegistrationOut.model_validate(registration)

    logger.info("team_withdrawn", tournament_id=str(tournament_id), team_id=str(team_id))
    return {"message": "Team withdrawn successfully", "registration": out}


@router.get("/standings")
async def tournament_standings(
    tournament_id: uuid.UUID,
    group: Optional[str] = None,
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """Approved teams ranked on fully confirmed results (3 points a win, 1 a draw)."""
    async with db.read_session() as session:
        tournament = await load_tournament(session, tournament_id)
        conditions = [
            TeamTournamentORM.tournament_id == tournament_id,
            TeamTournamentORM.status == RegistrationStatus.APPROVED.value,
        ]
        if group is not None:
            conditions.append(TeamTournamentORM.group == group)
        registrations = (
            await session.execute(
                select(TeamTournamentORM).options(selectinload(TeamTournamentORM.team)).where(*conditions)
            )
        ).scalars().all()
        matches = (
            await session.execute(
                select(MatchORM).where(
                    MatchORM.tournament_id == tournament_id,
                    MatchORM.alive(),
                    MatchORM.is_result_confirmed.is_(True),
                )
            )
        ).scalars().all()

        rows = [
            StandingRow(team_id=r.team_id, team_name=r.team.name, team_logo=r.team.logo_url, group=r.group)
            for r in registrations
        ]
        standings = [StandingOut.model_validate(row) for row in compute_standings(rows, matches)]

    return {"standings": standings, "format": tournament.format}
