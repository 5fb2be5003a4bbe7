"""
Shared fixtures: an in-memory SQLite database, an API client wired to it,
and a small tournament world (users, roles, teams, players) to act in.
"""
from __future__ import annotations

import os

os.environ["VZ_ENVIRONMENT"] = "test"
os.environ["VZ_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["VZ_REDIS_ENABLED"] = "false"
os.environ["VZ_METRICS_ENABLED"] = "false"
os.environ["VZ_RATE_LIMIT_RPM"] = "0"

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Callable, Optional

import httpx
import pytest
import pytest_asyncio

from shared.config import get_settings
from shared.models.enums import MatchStatus, RegistrationStatus, RoleName, TournamentFormat
from shared.models.orm import MatchORM, PlayerORM, TeamORM, TeamTournamentORM, TournamentORM, UserORM
from shared.utils.database import DatabaseManager

from api.auth import create_token, grant_role, hash_password
from api.dependencies import init_dependencies
from api.notifications import NotificationDispatcher

get_settings.cache_clear()


# ── Unit-level helpers ──────────────────────────────────────────────────
@pytest.fixture
def match_factory() -> Callable[..., MatchORM]:
    """Build a detached MatchORM with every flag set (column defaults only apply on insert)."""

    def _make(**overrides: Any) -> MatchORM:
        values: dict[str, Any] = {
            "id": uuid.uuid4(),
            "tournament_id": uuid.uuid4(),
            "home_team_id": uuid.uuid4(),
            "away_team_id": uuid.uuid4(),
            "scheduled_date": datetime.now(timezone.utc),
            "status": MatchStatus.SCHEDULED.value,
            "home_score": None,
            "away_score": None,
            "half_time_home_score": None,
            "half_time_away_score": None,
            "has_penalties": False,
            "home_penalty_score": None,
            "away_penalty_score": None,
            "home_confirmed": False,
            "home_confirmed_at": None,
            "away_confirmed": False,
            "away_confirmed_at": None,
            "referee_confirmed": False,
            "referee_confirmed_at": None,
            "is_result_confirmed": False,
            "result_confirmed_at": None,
        }
        values.update(overrides)
        return MatchORM(**values)

    return _make


# ── Database / client ───────────────────────────────────────────────────
@pytest_asyncio.fixture
async def db() -> AsyncIterator[DatabaseManager]:
    manager = DatabaseManager(get_settings())
    await manager.connect()
    await manager.create_all()
    yield manager
    await manager.disconnect()


@pytest_asyncio.fixture
async def client(db: DatabaseManager) -> AsyncIterator[httpx.AsyncClient]:
    """API client with lifespan disabled; dependencies point at the test database."""
    from api.app import create_app

    app = create_app(use_lifespan=False)
    init_dependencies(db, None, NotificationDispatcher(db, None, get_settings()))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ── Tournament world ────────────────────────────────────────────────────
@dataclass
class Actor:
    id: uuid.UUID
    email: str
    token: str

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@dataclass
class World:
    admin: Actor
    organizer: Actor
    referee: Actor
    home_leader: Actor
    away_leader: Actor
    outsider: Actor
    tournament_id: uuid.UUID
    home_team_id: uuid.UUID
    away_team_id: uuid.UUID
    home_player_ids: list[uuid.UUID] = field(default_factory=list)
    away_player_ids: list[uuid.UUID] = field(default_factory=list)


async def _make_actor(db: DatabaseManager, email: str, *roles: RoleName) -> Actor:
    async with db.write_session() as session:
        user = UserORM(
            email=email,
            password_hash=hash_password("secret123"),
            first_name=email.split("@")[0].title(),
            last_name="Test",
        )
        session.add(user)
        await session.flush()
        for role in (RoleName.PLAYER, *roles):
            await grant_role(session, user.id, role)
        user_id = user.id
    return Actor(id=user_id, email=email, token=create_token(str(user_id), email))


@pytest_asyncio.fixture
async def world(db: DatabaseManager) -> World:
    admin = await _make_actor(db, "admin@example.com", RoleName.ADMIN)
    organizer = await _make_actor(db, "organizer@example.com", RoleName.ORGANIZER)
    referee = await _make_actor(db, "referee@example.com", RoleName.REFEREE)
    home_leader = await _make_actor(db, "home@example.com", RoleName.TEAM_LEADER)
    away_leader = await _make_actor(db, "away@example.com", RoleName.TEAM_LEADER)
    outsider = await _make_actor(db, "fan@example.com")

    now = datetime.now(timezone.utc)
    async with db.write_session() as session:
        tournament = TournamentORM(
            name="Spring Cup",
            start_date=now,
            end_date=now + timedelta(days=30),
            format=TournamentFormat.FIVE_A_SIDE.value,
            status="published",
            max_teams=8,
            min_teams=2,
            organizer_id=organizer.id,
        )
        home = TeamORM(name="Lions", leader_id=home_leader.id, invite_code="LIONS001")
        away = TeamORM(name="Tigers", leader_id=away_leader.id, invite_code="TIGERS01")
        session.add_all([tournament, home, away])
        await session.flush()
        for team in (home, away):
            session.add(
                TeamTournamentORM(
                    team_id=team.id,
                    tournament_id=tournament.id,
                    status=RegistrationStatus.APPROVED.value,
                )
            )

        players: dict[uuid.UUID, list[uuid.UUID]] = {home.id: [], away.id: []}
        for team in (home, away):
            for number in (9, 10):
                player = PlayerORM(
                    team_id=team.id,
                    first_name=f"{team.name[:-1]}",
                    last_name=f"No{number}",
                    jersey_number=number,
                )
                session.add(player)
                await session.flush()
                players[team.id].append(player.id)

        result = World(
            admin=admin,
            organizer=organizer,
            referee=referee,
            home_leader=home_leader,
            away_leader=away_leader,
            outsider=outsider,
            tournament_id=tournament.id,
            home_team_id=home.id,
            away_team_id=away.id,
            home_player_ids=players[home.id],
            away_player_ids=players[away.id],
        )
    return result


@pytest_asyncio.fixture
async def scheduled_match(client: httpx.AsyncClient, world: World) -> dict[str, Any]:
    """A match created through the API by the tournament organizer."""
    r = await client.post(
        "/v1/matches",
        json={
            "tournament_id": str(world.tournament_id),
            "home_team_id": str(world.home_team_id),
            "away_team_id": str(world.away_team_id),
            "referee_id": str(world.referee.id),
            "scheduled_date": datetime.now(timezone.utc).isoformat(),
            "location": "Main pitch",
        },
        headers=world.organizer.headers,
    )
    assert r.status_code == 201, r.text
    return r.json()["match"]


async def set_status(client: httpx.AsyncClient, world: World, match_id: str, status: str) -> httpx.Response:
    return await client.put(
        f"/v1/matches/{match_id}/status", json={"status": status}, headers=world.referee.headers
    )


async def set_score(
    client: httpx.AsyncClient, world: World, match_id: str, actor: Optional[Actor] = None, **scores: Any
) -> httpx.Response:
    return await client.put(
        f"/v1/matches/{match_id}/result", json=scores, headers=(actor or world.referee).headers
    )


async def confirm_as(client: httpx.AsyncClient, actor: Actor, match_id: str, role: str) -> httpx.Response:
    return await client.post(f"/v1/matches/{match_id}/confirm", json={"role": role}, headers=actor.headers)
