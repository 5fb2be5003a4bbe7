"""HTTP tests for the match event ledger and the score it maintains."""
from __future__ import annotations

import uuid
from typing import Any, Optional

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from shared.models.orm import NotificationORM

from conftest import confirm_as, set_score, set_status

pytestmark = pytest.mark.asyncio


async def _add_event(
    client: httpx.AsyncClient,
    world,
    match_id: str,
    event_type: str,
    team_id: uuid.UUID,
    player_id: Optional[uuid.UUID] = None,
    **extra: Any,
) -> httpx.Response:
    body: dict[str, Any] = {"event_type": event_type, "team_id": str(team_id), "minute": 12, **extra}
    if player_id is not None:
        body["player_id"] = str(player_id)
    return await client.post(f"/v1/matches/{match_id}/events", json=body, headers=world.referee.headers)


@pytest_asyncio.fixture
async def live_match(client, world, scheduled_match) -> str:
    r = await set_status(client, world, scheduled_match["id"], "in-progress")
    assert r.status_code == 200
    return scheduled_match["id"]


def _score(body: dict[str, Any]) -> tuple[int, int]:
    return body["match"]["home_score"], body["match"]["away_score"]


async def test_goal_credits_scoring_team(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "goal", world.home_team_id, world.home_player_ids[0])
    assert r.status_code == 201
    assert _score(r.json()) == (1, 0)
    assert r.json()["event"]["player_id"] == str(world.home_player_ids[0])


async def test_own_goal_credits_opponent(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "own-goal", world.home_team_id)
    assert _score(r.json()) == (0, 1)


async def test_cards_leave_score_alone(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "yellow-card", world.away_team_id, world.away_player_ids[0])
    assert r.status_code == 201
    assert _score(r.json()) == (0, 0)
    assert r.json()["confirmation_reset"] is False


async def test_changing_goal_team_moves_credit(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "goal", world.home_team_id)
    event_id = r.json()["event"]["id"]

    r = await client.put(
        f"/v1/matches/{live_match}/events/{event_id}",
        json={"team_id": str(world.away_team_id)},
        headers=world.referee.headers,
    )
    assert r.status_code == 200
    assert _score(r.json()) == (0, 1)
    assert r.json()["event"]["team_id"] == str(world.away_team_id)


async def test_retyping_goal_as_card_takes_it_back(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "goal", world.home_team_id)
    event_id = r.json()["event"]["id"]
    r = await client.put(
        f"/v1/matches/{live_match}/events/{event_id}",
        json={"event_type": "yellow-card", "minute": 30},
        headers=world.referee.headers,
    )
    assert _score(r.json()) == (0, 0)
    assert r.json()["event"]["minute"] == 30


async def test_deleting_goal_decrements_and_hides_event(client, world, live_match) -> None:
    first = (await _add_event(client, world, live_match, "goal", world.home_team_id)).json()["event"]["id"]
    await _add_event(client, world, live_match, "penalty-goal", world.home_team_id)

    r = await client.delete(f"/v1/matches/{live_match}/events/{first}", headers=world.referee.headers)
    assert r.status_code == 200
    assert _score(r.json()) == (1, 0)

    listed = (await client.get(f"/v1/matches/{live_match}/events")).json()["events"]
    assert [e["event_type"] for e in listed] == ["penalty-goal"]
    r = await client.get(f"/v1/matches/{live_match}/events/{first}")
    assert r.status_code == 404


async def test_team_outside_match_rejected(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "goal", uuid.uuid4())
    assert r.status_code == 400
    assert r.json()["message"] == "Team must be home or away team for this match"


async def test_player_from_other_team_rejected(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "goal", world.home_team_id, world.away_player_ids[0])
    assert r.status_code == 400
    assert r.json()["message"] == "Player must belong to the specified team"


async def test_substitution_players_share_a_team(client, world, live_match) -> None:
    r = await _add_event(
        client,
        world,
        live_match,
        "substitution-in",
        world.home_team_id,
        world.home_player_ids[0],
        secondary_player_id=str(world.away_player_ids[0]),
    )
    assert r.status_code == 400


async def test_unknown_event_type(client, world, live_match) -> None:
    r = await _add_event(client, world, live_match, "offside", world.home_team_id)
    assert r.status_code == 400
    assert "goal" in r.json()["valid_event_types"]


async def test_events_need_a_started_match(client, world, scheduled_match) -> None:
    r = await _add_event(client, world, scheduled_match["id"], "goal", world.home_team_id)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_operation"


async def test_confirmed_result_freezes_ledger(client, world, live_match) -> None:
    event_id = (await _add_event(client, world, live_match, "goal", world.home_team_id)).json()["event"]["id"]
    await set_status(client, world, live_match, "completed")
    r = await confirm_as(client, world.organizer, live_match, "organizer")
    assert r.json()["is_fully_confirmed"] is True

    r = await _add_event(client, world, live_match, "goal", world.away_team_id)
    assert r.status_code == 400
    r = await client.delete(f"/v1/matches/{live_match}/events/{event_id}", headers=world.referee.headers)
    assert r.status_code == 400

    # a score correction reopens the ledger
    assert (await set_score(client, world, live_match, away_score=1)).json()["confirmation_reset"] is True
    r = await _add_event(client, world, live_match, "goal", world.away_team_id)
    assert r.status_code == 201
    assert _score(r.json()) == (1, 2)


async def test_goal_after_partial_confirmation_resets_it(client, world, live_match) -> None:
    await set_status(client, world, live_match, "completed")
    await confirm_as(client, world.home_leader, live_match, "home")

    r = await _add_event(client, world, live_match, "goal", world.away_team_id)
    assert r.status_code == 201
    assert r.json()["confirmation_reset"] is True
    assert r.json()["match"]["home_confirmed"] is False


async def test_goal_notifies_stakeholders(client, world, db, live_match) -> None:
    await _add_event(
        client, world, live_match, "goal", world.home_team_id, world.home_player_ids[0], minute=43, added_time=2
    )
    async with db.read_session() as session:
        rows = (
            await session.execute(select(NotificationORM).where(NotificationORM.type == "match_goal"))
        ).scalars().all()
    assert {n.user_id for n in rows} == {world.home_leader.id, world.away_leader.id, world.organizer.id}
    assert rows[0].message == "Lion No9 (Lions) scored a goal at 43+2' in the match Lions vs Tigers"


async def test_only_officials_record_events(client, world, live_match) -> None:
    r = await client.post(
        f"/v1/matches/{live_match}/events",
        json={"event_type": "goal", "team_id": str(world.home_team_id), "minute": 5},
        headers=world.home_leader.headers,
    )
    assert r.status_code == 403
