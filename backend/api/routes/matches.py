"""
Match REST endpoints.

GET    /v1/matches               — List matches (tournament/status/team/date filters, paging).
GET    /v1/matches/{id}          — Match detail with its event ledger.
POST   /v1/matches               — Schedule a match (organizer or admin).
PUT    /v1/matches/{id}          — Edit fixture details (organizer or admin).
DELETE /v1/matches/{id}          — Soft delete (organizer or admin).
PUT    /v1/matches/{id}/status   — Status transition (organizer, referee or admin).
PUT    /v1/matches/{id}/result   — Record scores (organizer, referee or admin).
POST   /v1/matches/{id}/confirm  — Confirm the result for a role.

Notifications are queued as background tasks, so they only run once the
handler's write session has committed.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from shared.errors import Forbidden, InvalidArgument, InvalidOperation, NotFound
from shared.models.domain import (
    ConfirmRequest,
    MatchCreate,
    MatchEventOut,
    MatchOut,
    MatchScoreUpdate,
    MatchStatusUpdate,
    MatchUpdate,
)
from shared.models.enums import ConfirmationRole, MatchStatus, RegistrationStatus, RoleName
from shared.models.orm import MatchEventORM, MatchORM, TeamORM, TeamTournamentORM, TournamentORM, UserORM, utcnow
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import (
    MATCH_CONFIRMATION_RESETS,
    MATCH_CONFIRMATIONS,
    MATCH_RESULTS_FINALIZED,
    MATCH_STATUS_TRANSITIONS,
)
from shared.workflow.results import apply_score_update, confirm, parse_role
from shared.workflow.status import parse_status, transition_status

from api.auth import PermissionContext, require_roles
from api.dependencies import get_db, get_notifier
from api.notifications import (
    MatchSummary,
    NotificationDispatcher,
    NotificationRequest,
    confirmation_requests,
    finalized_requests,
    match_result_requests,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/matches", tags=["matches"])

MATCH_ADMINS = (RoleName.ORGANIZER,)
MATCH_OFFICIALS = (RoleName.ORGANIZER, RoleName.REFEREE)
MATCH_CONFIRMERS = (RoleName.ORGANIZER, RoleName.REFEREE, RoleName.TEAM_LEADER)


# ── Loading helpers ─────────────────────────────────────────────────────
async def load_match(session: AsyncSession, match_id: uuid.UUID) -> MatchORM:
    """Load a live match with its tournament and both teams."""
    stmt = (
        select(MatchORM)
        .options(
            selectinload(MatchORM.tournament),
            selectinload(MatchORM.home_team),
            selectinload(MatchORM.away_team),
        )
        .where(MatchORM.id == match_id, MatchORM.alive())
    )
    match = (await session.execute(stmt)).scalar_one_or_none()
    if match is None:
        raise NotFound("Match not found")
    return match


def match_summary(match: MatchORM) -> MatchSummary:
    return MatchSummary(
        match_id=match.id,
        home_team_name=match.home_team.name,
        away_team_name=match.away_team.name,
        home_score=match.home_score,
        away_score=match.away_score,
        tournament_name=match.tournament.name,
        home_leader_id=match.home_team.leader_id,
        away_leader_id=match.away_team.leader_id,
        organizer_id=match.tournament.organizer_id,
    )


def queue_notifications(
    background_tasks: BackgroundTasks,
    notifier: NotificationDispatcher,
    requests: list[NotificationRequest],
) -> None:
    if requests:
        background_tasks.add_task(notifier.dispatch, requests)


async def _require_team(session: AsyncSession, team_id: uuid.UUID) -> TeamORM:
    team = (
        await session.execute(select(TeamORM).where(TeamORM.id == team_id, TeamORM.alive()))
    ).scalar_one_or_none()
    if team is None:
        raise NotFound("Team not found", team_id=str(team_id))
    return team


async def _require_approved(session: AsyncSession, tournament_id: uuid.UUID, *team_ids: uuid.UUID) -> None:
    approved = set(
        (
            await session.execute(
                select(TeamTournamentORM.team_id).where(
                    TeamTournamentORM.tournament_id == tournament_id,
                    TeamTournamentORM.team_id.in_(team_ids),
                    TeamTournamentORM.status == RegistrationStatus.APPROVED.value,
                )
            )
        ).scalars().all()
    )
    missing = [str(t) for t in team_ids if t not in approved]
    if missing:
        raise InvalidOperation("Both teams must be approved for the tournament", team_ids=missing)


async def _require_referee(session: AsyncSession, referee_id: uuid.UUID) -> None:
    referee = await session.get(UserORM, referee_id)
    if referee is None or referee.deleted_at is not None:
        raise NotFound("Referee not found", referee_id=str(referee_id))


def _ensure_tournament_organizer(ctx: PermissionContext, tournament: TournamentORM) -> None:
    if not ctx.is_admin and tournament.organizer_id != ctx.user_id:
        raise Forbidden("Only the tournament organizer can manage its matches")


def authorize_confirmation(ctx: PermissionContext, match: MatchORM, role: ConfirmationRole) -> None:
    """Role-specific checks on top of the route-level role gate."""
    if ctx.is_admin:
        return
    if role == ConfirmationRole.HOME and not ctx.leads_team(match.home_team_id):
        raise Forbidden("You are not authorized to confirm for the home team")
    if role == ConfirmationRole.AWAY and not ctx.leads_team(match.away_team_id):
        raise Forbidden("You are not authorized to confirm for the away team")
    if role == ConfirmationRole.REFEREE and not (
        ctx.has_any(RoleName.REFEREE) or match.referee_id == ctx.user_id
    ):
        raise Forbidden("You are not authorized to confirm as referee")
    if role == ConfirmationRole.ORGANIZER and match.tournament.organizer_id != ctx.user_id:
        raise Forbidden("You are not authorized to confirm as organizer")


# ── Read ────────────────────────────────────────────────────────────────
@router.get("")
async def list_matches(
    tournament_id: Optional[uuid.UUID] = None,
    team_id: Optional[uuid.UUID] = None,
    status_filter: Optional[str] = Query(None, alias="status"),
    upcoming: bool = False,
    past: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """List matches ordered by kickoff; `upcoming`/`past` split on the current time."""
    conditions = [MatchORM.alive()]
    if tournament_id is not None:
        conditions.append(MatchORM.tournament_id == tournament_id)
    if team_id is not None:
        conditions.append(or_(MatchORM.home_team_id == team_id, MatchORM.away_team_id == team_id))
    if status_filter is not None:
        conditions.append(MatchORM.status == parse_status(status_filter).value)
    if upcoming and past:
        raise InvalidArgument("upcoming and past are mutually exclusive")
    now = utcnow()
    if upcoming:
        conditions.append(MatchORM.scheduled_date >= now)
    if past:
        conditions.append(MatchORM.scheduled_date < now)

    async with db.read_session() as session:
        total = (await session.execute(select(func.count()).select_from(MatchORM).where(*conditions))).scalar() or 0
        rows = (
            await session.execute(
                select(MatchORM)
                .where(*conditions)
                .order_by(MatchORM.scheduled_date.desc() if past else MatchORM.scheduled_date)
                .limit(limit)
                .offset(offset)
            )
        ).scalars().all()
        matches = [MatchOut.model_validate(m) for m in rows]

    return {"matches": matches, "total": total, "limit": limit, "offset": offset}


@router.get("/{match_id}")
async def get_match(match_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> dict[str, Any]:
    async with db.read_session() as session:
        match = await load_match(session, match_id)
        events = (
            await session.execute(
                select(MatchEventORM)
                .where(MatchEventORM.match_id == match_id, MatchEventORM.alive())
                .order_by(MatchEventORM.half, MatchEventORM.minute, MatchEventORM.added_time)
            )
        ).scalars().all()
        return {
            "match": MatchOut.model_validate(match),
            "home_team_name": match.home_team.name,
            "away_team_name": match.away_team.name,
            "tournament_name": match.tournament.name,
            "events": [MatchEventOut.model_validate(e) for e in events],
        }


# ── Fixture management ──────────────────────────────────────────────────
@router.post("", status_code=status.HTTP_201_CREATED)
async def create_match(
    req: MatchCreate,
    ctx: PermissionContext = Depends(require_roles(*MATCH_ADMINS)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        tournament = (
            await session.execute(
                select(TournamentORM).where(TournamentORM.id == req.tournament_id, TournamentORM.alive())
            )
        ).scalar_one_or_none()
        if tournament is None:
            raise NotFound("Tournament not found")
        _ensure_tournament_organizer(ctx, tournament)
        await _require_team(session, req.home_team_id)
        await _require_team(session, req.away_team_id)
        await _require_approved(session, tournament.id, req.home_team_id, req.away_team_id)
        if req.referee_id is not None:
            await _require_referee(session, req.referee_id)

        match = MatchORM(**req.model_dump(), status=MatchStatus.SCHEDULED.value)
        session.add(match)
        await session.flush()
        out = MatchOut.model_validate(match)

    logger.info("match_created", match_id=str(out.id), tournament_id=str(req.tournament_id))
    return {"message": "Match created successfully", "match": out}


@router.put("/{match_id}")
async def update_match(
    match_id: uuid.UUID,
    req: MatchUpdate,
    ctx: PermissionContext = Depends(require_roles(*MATCH_ADMINS)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    """Edit fixture details. Status and scores have their own endpoints."""
    changes = req.model_dump(exclude_unset=True)
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        _ensure_tournament_organizer(ctx, match.tournament)
        if match.status == MatchStatus.COMPLETED.value:
            raise InvalidOperation("Cannot update a completed match")

        home_id = changes.get("home_team_id", match.home_team_id)
        away_id = changes.get("away_team_id", match.away_team_id)
        if (home_id, away_id) != (match.home_team_id, match.away_team_id):
            if home_id == away_id:
                raise InvalidArgument("home_team_id and away_team_id must differ")
            has_events = (
                await session.execute(
                    select(MatchEventORM.id)
                    .where(MatchEventORM.match_id == match_id, MatchEventORM.alive())
                    .limit(1)
                )
            ).first()
            if has_events is not None:
                raise InvalidOperation("Cannot change the teams of a match that has events")
            await _require_team(session, home_id)
            await _require_team(session, away_id)
            await _require_approved(session, match.tournament_id, home_id, away_id)
        if changes.get("referee_id") is not None:
            await _require_referee(session, changes["referee_id"])

        for name, value in changes.items():
            setattr(match, name, value)
        await session.flush()
        out = MatchOut.model_validate(match)

    logger.info("match_updated", match_id=str(match_id), fields=sorted(changes))
    return {"message": "Match updated successfully", "match": out}


@router.delete("/{match_id}")
async def delete_match(
    match_id: uuid.UUID,
    ctx: PermissionContext = Depends(require_roles(*MATCH_ADMINS)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, str]:
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        _ensure_tournament_organizer(ctx, match.tournament)
        if match.status in (MatchStatus.IN_PROGRESS.value, MatchStatus.COMPLETED.value):
            raise InvalidOperation("Cannot delete a match that is in progress or completed")
        match.soft_delete()

    logger.info("match_deleted", match_id=str(match_id))
    return {"message": "Match deleted successfully"}


# ── Workflow ────────────────────────────────────────────────────────────
@router.put("/{match_id}/status")
async def update_match_status(
    match_id: uuid.UUID,
    req: MatchStatusUpdate,
    background_tasks: BackgroundTasks,
    ctx: PermissionContext = Depends(require_roles(*MATCH_OFFICIALS)),
    db: DatabaseManager = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> dict[str, Any]:
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        change = transition_status(match, req.status)
        await session.flush()
        out = MatchOut.model_validate(match)
        summary = match_summary(match)

    if change.changed:
        MATCH_STATUS_TRANSITIONS.labels(
            from_status=change.previous.value, to_status=change.current.value
        ).inc()
        logger.info(
            "match_status_updated",
            match_id=str(match_id),
            previous=change.previous.value,
            status=change.current.value,
            user_id=str(ctx.user_id),
        )
    if change.became_completed:
        queue_notifications(background_tasks, notifier, match_result_requests(summary))

    return {"message": "Match status updated successfully", "match": out}


@router.put("/{match_id}/result")
async def update_match_score(
    match_id: uuid.UUID,
    req: MatchScoreUpdate,
    background_tasks: BackgroundTasks,
    ctx: PermissionContext = Depends(require_roles(*MATCH_OFFICIALS)),
    db: DatabaseManager = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> dict[str, Any]:
    """Record scores; any real change clears every result confirmation."""
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        change = apply_score_update(match, req.model_dump(exclude_unset=True))
        await session.flush()
        out = MatchOut.model_validate(match)
        summary = match_summary(match)

    if change.confirmation_reset:
        MATCH_CONFIRMATION_RESETS.labels(source="score").inc()
        logger.info(
            "match_score_updated",
            match_id=str(match_id),
            fields=sorted(change.changed_fields),
            user_id=str(ctx.user_id),
        )
    if change.score_changed:
        queue_notifications(background_tasks, notifier, match_result_requests(summary))

    return {
        "message": "Match score updated successfully",
        "match": out,
        "confirmation_reset": change.confirmation_reset,
    }


@router.post("/{match_id}/confirm")
async def confirm_match_result(
    match_id: uuid.UUID,
    req: ConfirmRequest,
    background_tasks: BackgroundTasks,
    ctx: PermissionContext = Depends(require_roles(*MATCH_CONFIRMERS)),
    db: DatabaseManager = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> dict[str, Any]:
    role = parse_role(req.role)
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        authorize_confirmation(ctx, match, role)
        outcome = confirm(match, role)
        await session.flush()
        out = MatchOut.model_validate(match)
        summary = match_summary(match)

    MATCH_CONFIRMATIONS.labels(role=role.value).inc()
    logger.info(
        "match_result_confirmed",
        match_id=str(match_id),
        role=role.value,
        newly_confirmed=sorted(p.value for p in outcome.newly_confirmed),
        finalized=outcome.finalized,
        user_id=str(ctx.user_id),
    )

    requests = confirmation_requests(summary, role, out.is_result_confirmed)
    if outcome.finalized:
        MATCH_RESULTS_FINALIZED.inc()
        requests += finalized_requests(summary)
    queue_notifications(background_tasks, notifier, requests)

    return {
        "message": "Match result confirmed successfully",
        "match": out,
        "is_fully_confirmed": out.is_result_confirmed,
    }
