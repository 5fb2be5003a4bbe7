"""
Match event ledger endpoints.

GET    /v1/matches/{id}/events             — Events of a match in match order.
GET    /v1/matches/{id}/events/{event_id}  — One event.
POST   /v1/matches/{id}/events             — Record an event (organizer, referee or admin).
PUT    /v1/matches/{id}/events/{event_id}  — Edit an event, re-crediting the score.
DELETE /v1/matches/{id}/events/{event_id}  — Soft delete, taking back any goal it credited.
"""
from __future__ import annotations

import uuid
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shared.errors import NotFound
from shared.models.domain import MatchEventCreate, MatchEventOut, MatchEventUpdate, MatchOut
from shared.models.enums import MatchEventType, RoleName
from shared.models.orm import MatchEventORM, MatchORM, PlayerORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import MATCH_CONFIRMATION_RESETS, MATCH_EVENT_OPERATIONS
from shared.workflow.ledger import (
    LedgerChange,
    apply_event_added,
    apply_event_changed,
    apply_event_removed,
    ensure_can_add,
    ensure_can_modify,
    parse_event_type,
    side_of,
    validate_players,
)

from api.auth import PermissionContext, require_roles
from api.dependencies import get_db, get_notifier
from api.notifications import NotificationDispatcher, match_event_requests
from api.routes.matches import MATCH_OFFICIALS, load_match, match_summary, queue_notifications

logger = get_logger(__name__)
router = APIRouter(prefix="/v1/matches/{match_id}/events", tags=["match-events"])

# Columns that may not be cleared by an update
_REQUIRED_FIELDS = frozenset({"event_type", "team_id", "minute", "added_time", "half"})


async def load_event(session: AsyncSession, match_id: uuid.UUID, event_id: uuid.UUID) -> MatchEventORM:
    event = (
        await session.execute(
            select(MatchEventORM).where(
                MatchEventORM.id == event_id,
                MatchEventORM.match_id == match_id,
                MatchEventORM.alive(),
            )
        )
    ).scalar_one_or_none()
    if event is None:
        raise NotFound("Match event not found")
    return event


async def _load_player(session: AsyncSession, player_id: Optional[uuid.UUID]) -> Optional[PlayerORM]:
    if player_id is None:
        return None
    player = (
        await session.execute(select(PlayerORM).where(PlayerORM.id == player_id, PlayerORM.alive()))
    ).scalar_one_or_none()
    if player is None:
        raise NotFound("Player not found", player_id=str(player_id))
    return player


def _record_ledger_metrics(operation: str, event_type: MatchEventType, change: LedgerChange) -> None:
    MATCH_EVENT_OPERATIONS.labels(operation=operation, event_type=event_type.value).inc()
    if change.confirmation_reset:
        MATCH_CONFIRMATION_RESETS.labels(source="event").inc()


def _team_name(match: MatchORM, team_id: uuid.UUID) -> str:
    return match.home_team.name if team_id == match.home_team_id else match.away_team.name


@router.get("")
async def list_match_events(match_id: uuid.UUID, db: DatabaseManager = Depends(get_db)) -> dict[str, Any]:
    async with db.read_session() as session:
        await load_match(session, match_id)
        rows = (
            await session.execute(
                select(MatchEventORM)
                .where(MatchEventORM.match_id == match_id, MatchEventORM.alive())
                .order_by(MatchEventORM.half, MatchEventORM.minute, MatchEventORM.added_time)
            )
        ).scalars().all()
        events = [MatchEventOut.model_validate(e) for e in rows]
    return {"events": events}


@router.get("/{event_id}", response_model=MatchEventOut)
async def get_match_event(
    match_id: uuid.UUID,
    event_id: uuid.UUID,
    db: DatabaseManager = Depends(get_db),
) -> MatchEventOut:
    async with db.read_session() as session:
        return MatchEventOut.model_validate(await load_event(session, match_id, event_id))


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_match_event(
    match_id: uuid.UUID,
    req: MatchEventCreate,
    background_tasks: BackgroundTasks,
    ctx: PermissionContext = Depends(require_roles(*MATCH_OFFICIALS)),
    db: DatabaseManager = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> dict[str, Any]:
    event_type = parse_event_type(req.event_type)
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        ensure_can_add(match)
        side_of(match, req.team_id)
        player = await _load_player(session, req.player_id)
        secondary = await _load_player(session, req.secondary_player_id)
        validate_players(event_type, req.team_id, player, secondary)

        event = MatchEventORM(
            match_id=match_id,
            event_type=event_type.value,
            team_id=req.team_id,
            player_id=req.player_id,
            secondary_player_id=req.secondary_player_id,
            minute=req.minute,
            added_time=req.added_time,
            half=req.half,
            description=req.description,
            video_url=req.video_url,
            coordinates=req.coordinates.model_dump() if req.coordinates else None,
        )
        session.add(event)
        change = apply_event_added(match, event_type, req.team_id)
        await session.flush()
        event_out = MatchEventOut.model_validate(event)
        match_out = MatchOut.model_validate(match)
        notifications = match_event_requests(
            match_summary(match),
            event_type,
            _team_name(match, req.team_id),
            f"{player.first_name} {player.last_name}" if player else None,
            req.minute,
            req.added_time,
            req.half,
        )

    _record_ledger_metrics("add", event_type, change)
    logger.info(
        "match_event_added",
        match_id=str(match_id),
        event_id=str(event_out.id),
        event_type=event_type.value,
        score_changed=change.score_changed,
        user_id=str(ctx.user_id),
    )
    queue_notifications(background_tasks, notifier, notifications)

    return {
        "message": "Match event created successfully",
        "event": event_out,
        "match": match_out,
        "confirmation_reset": change.confirmation_reset,
    }


@router.put("/{event_id}")
async def update_match_event(
    match_id: uuid.UUID,
    event_id: uuid.UUID,
    req: MatchEventUpdate,
    ctx: PermissionContext = Depends(require_roles(*MATCH_OFFICIALS)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    changes = {
        name: value
        for name, value in req.model_dump(exclude_unset=True).items()
        if not (name in _REQUIRED_FIELDS and value is None)
    }
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        ensure_can_modify(match)
        event = await load_event(session, match_id, event_id)

        old_type = MatchEventType(event.event_type)
        old_team = event.team_id
        new_type = parse_event_type(changes["event_type"]) if "event_type" in changes else old_type
        new_team = changes.get("team_id", old_team)
        side_of(match, new_team)

        player = await _load_player(session, changes.get("player_id", event.player_id))
        secondary = await _load_player(session, changes.get("secondary_player_id", event.secondary_player_id))
        validate_players(new_type, new_team, player, secondary)

        change = apply_event_changed(match, old_type, old_team, new_type, new_team)
        for name, value in changes.items():
            if name == "event_type":
                value = new_type.value
            setattr(event, name, value)
        await session.flush()
        event_out = MatchEventOut.model_validate(event)
        match_out = MatchOut.model_validate(match)

    _record_ledger_metrics("update", new_type, change)
    logger.info(
        "match_event_updated",
        match_id=str(match_id),
        event_id=str(event_id),
        previous_type=old_type.value,
        event_type=new_type.value,
        score_changed=change.score_changed,
        user_id=str(ctx.user_id),
    )
    return {
        "message": "Match event updated successfully",
        "event": event_out,
        "match": match_out,
        "confirmation_reset": change.confirmation_reset,
    }


@router.delete("/{event_id}")
async def delete_match_event(
    match_id: uuid.UUID,
    event_id: uuid.UUID,
    ctx: PermissionContext = Depends(require_roles(*MATCH_OFFICIALS)),
    db: DatabaseManager = Depends(get_db),
) -> dict[str, Any]:
    async with db.write_session() as session:
        match = await load_match(session, match_id)
        ensure_can_modify(match)
        event = await load_event(session, match_id, event_id)
        event_type = MatchEventType(event.event_type)
        change = apply_event_removed(match, event_type, event.team_id)
        event.soft_delete()
        await session.flush()
        match_out = MatchOut.model_validate(match)

    _record_ledger_metrics("delete", event_type, change)
    logger.info(
        "match_event_deleted",
        match_id=str(match_id),
        event_id=str(event_id),
        event_type=event_type.value,
        score_changed=change.score_changed,
        user_id=str(ctx.user_id),
    )
    return {
        "message": "Match event deleted successfully",
        "match": match_out,
        "confirmation_reset": change.confirmation_reset,
    }
