"""
End-to-end tests for the match workflow over HTTP: status machine, score
recording, multi-party confirmation and the notifications they trigger.
"""
from __future__ import annotations

import uuid

import httpx
import pytest
from sqlalchemy import select

from shared.models.orm import NotificationORM

from conftest import confirm_as, set_score, set_status

pytestmark = pytest.mark.asyncio


async def _notifications(db, type_: str) -> list[NotificationORM]:
    async with db.read_session() as session:
        rows = await session.execute(select(NotificationORM).where(NotificationORM.type == type_))
        return list(rows.scalars().all())


async def _completed_match(client, world, match, home: int = 2, away: int = 1) -> str:
    match_id = match["id"]
    assert (await set_status(client, world, match_id, "in-progress")).status_code == 200
    assert (await set_score(client, world, match_id, home_score=home, away_score=away)).status_code == 200
    assert (await set_status(client, world, match_id, "completed")).status_code == 200
    return match_id


# ── Fixture management ──────────────────────────────────────────────────

async def test_created_match_is_scheduled_without_scores(scheduled_match) -> None:
    assert scheduled_match["status"] == "scheduled"
    assert scheduled_match["home_score"] is None and scheduled_match["away_score"] is None
    assert scheduled_match["is_result_confirmed"] is False
    assert scheduled_match["version"] == 1


async def test_only_organizers_create_matches(client: httpx.AsyncClient, world) -> None:
    body = {
        "tournament_id": str(world.tournament_id),
        "home_team_id": str(world.home_team_id),
        "away_team_id": str(world.away_team_id),
        "scheduled_date": "2026-06-01T18:00:00+00:00",
    }
    r = await client.post("/v1/matches", json=body, headers=world.home_leader.headers)
    assert r.status_code == 403


async def test_same_team_twice_rejected(client: httpx.AsyncClient, world) -> None:
    body = {
        "tournament_id": str(world.tournament_id),
        "home_team_id": str(world.home_team_id),
        "away_team_id": str(world.home_team_id),
        "scheduled_date": "2026-06-01T18:00:00+00:00",
    }
    r = await client.post("/v1/matches", json=body, headers=world.organizer.headers)
    assert r.status_code == 400


async def test_get_list_and_delete(client: httpx.AsyncClient, world, scheduled_match) -> None:
    match_id = scheduled_match["id"]
    r = await client.get(f"/v1/matches/{match_id}")
    assert r.status_code == 200
    assert r.json()["home_team_name"] == "Lions"
    assert r.json()["events"] == []

    r = await client.get("/v1/matches", params={"tournament_id": str(world.tournament_id), "status": "scheduled"})
    assert r.json()["total"] == 1

    r = await client.delete(f"/v1/matches/{match_id}", headers=world.organizer.headers)
    assert r.status_code == 200
    assert (await client.get(f"/v1/matches/{match_id}")).status_code == 404


async def test_cannot_delete_completed_match(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await client.delete(f"/v1/matches/{match_id}", headers=world.organizer.headers)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_operation"


async def test_unknown_match_is_not_found(client, world) -> None:
    r = await set_status(client, world, str(uuid.uuid4()), "in-progress")
    assert r.status_code == 404
    assert r.json()["message"] == "Match not found"


# ── Status machine ──────────────────────────────────────────────────────

async def test_kickoff_initializes_scores(client, world, scheduled_match) -> None:
    r = await set_status(client, world, scheduled_match["id"], "in-progress")
    assert r.status_code == 200
    match = r.json()["match"]
    assert (match["status"], match["home_score"], match["away_score"]) == ("in-progress", 0, 0)
    assert match["version"] == 2


async def test_completed_match_is_frozen(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await set_status(client, world, match_id, "in-progress")
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_transition"
    assert (await set_status(client, world, match_id, "completed")).status_code == 200


async def test_cancelled_match_only_reopens(client, world, scheduled_match) -> None:
    match_id = scheduled_match["id"]
    assert (await set_status(client, world, match_id, "cancelled")).status_code == 200
    assert (await set_status(client, world, match_id, "in-progress")).status_code == 400
    assert (await set_status(client, world, match_id, "scheduled")).status_code == 200


async def test_invalid_status_lists_valid_values(client, world, scheduled_match) -> None:
    r = await set_status(client, world, scheduled_match["id"], "abandoned")
    assert r.status_code == 400
    assert r.json()["valid_statuses"] == ["scheduled", "in-progress", "completed", "cancelled", "postponed"]


async def test_completion_notifies_leaders_and_organizer(client, world, db, scheduled_match) -> None:
    await _completed_match(client, world, scheduled_match)
    results = await _notifications(db, "match_result")
    completion = [n for n in results if n.extra["home_score"] == 2 and n.extra["away_score"] == 1]
    assert {n.user_id for n in completion} == {world.home_leader.id, world.away_leader.id, world.organizer.id}
    assert all(n.message == "Match result: Lions 2 - 1 Tigers" for n in completion)


# ── Score recording ─────────────────────────────────────────────────────

async def test_scoring_a_scheduled_match_is_rejected(client, world, scheduled_match) -> None:
    r = await set_score(client, world, scheduled_match["id"], home_score=1)
    assert r.status_code == 400
    assert r.json()["error"] == "invalid_operation"


async def test_resubmitting_identical_score_keeps_confirmations(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    assert (await confirm_as(client, world.home_leader, match_id, "home")).status_code == 200

    r = await set_score(client, world, match_id, home_score=2, away_score=1)
    assert r.status_code == 200
    assert r.json()["confirmation_reset"] is False
    assert r.json()["match"]["home_confirmed"] is True


async def test_players_cannot_record_scores(client, world, scheduled_match) -> None:
    await set_status(client, world, scheduled_match["id"], "in-progress")
    r = await set_score(client, world, scheduled_match["id"], actor=world.outsider, home_score=5)
    assert r.status_code == 403


# ── Confirmation ────────────────────────────────────────────────────────

async def test_confirmation_sequence_finalizes_result(client, world, db, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)

    r = await confirm_as(client, world.home_leader, match_id, "home")
    assert r.status_code == 200 and r.json()["is_fully_confirmed"] is False
    r = await confirm_as(client, world.away_leader, match_id, "away")
    assert r.json()["is_fully_confirmed"] is False
    r = await confirm_as(client, world.referee, match_id, "referee")
    assert r.status_code == 200
    assert r.json()["is_fully_confirmed"] is True
    assert r.json()["match"]["result_confirmed_at"] is not None

    final = await _notifications(db, "match_result_final")
    assert {n.user_id for n in final} == {world.home_leader.id, world.away_leader.id, world.organizer.id}
    assert all(n.priority == "high" and n.email_sent for n in final)

    confirmations = await _notifications(db, "match_confirmation")
    assert len(confirmations) == 2 + 2 + 3


async def test_score_change_after_full_confirmation_resets(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await confirm_as(client, world.organizer, match_id, "organizer")
    assert r.json()["is_fully_confirmed"] is True

    r = await set_score(client, world, match_id, actor=world.organizer, home_score=3)
    assert r.status_code == 200
    body = r.json()
    assert body["confirmation_reset"] is True
    match = body["match"]
    assert match["home_score"] == 3
    assert not any(match[k] for k in ("home_confirmed", "away_confirmed", "referee_confirmed", "is_result_confirmed"))

    r = await confirm_as(client, world.referee, match_id, "referee")
    assert r.status_code == 200
    assert r.json()["match"]["referee_confirmed"] is True


async def test_confirming_twice_is_idempotent(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    first = (await confirm_as(client, world.away_leader, match_id, "away")).json()["match"]
    second = (await confirm_as(client, world.away_leader, match_id, "away")).json()["match"]
    assert first == second


async def test_confirm_requires_completed_match(client, world, scheduled_match) -> None:
    await set_status(client, world, scheduled_match["id"], "in-progress")
    r = await confirm_as(client, world.referee, scheduled_match["id"], "referee")
    assert r.status_code == 400
    assert r.json()["message"] == "Can only confirm completed matches"


async def test_invalid_confirmation_role(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await confirm_as(client, world.referee, match_id, "captain")
    assert r.status_code == 400
    assert r.json()["valid_roles"] == ["home", "away", "referee", "organizer"]


@pytest.mark.parametrize(
    "actor_name, role",
    [
        ("away_leader", "home"),
        ("home_leader", "away"),
        ("home_leader", "referee"),
        ("referee", "organizer"),
    ],
)
async def test_confirmation_is_role_specific(client, world, scheduled_match, actor_name, role) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await confirm_as(client, getattr(world, actor_name), match_id, role)
    assert r.status_code == 403
    assert r.json()["error"] == "forbidden"


async def test_admin_may_confirm_any_role(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    for role in ("home", "away", "referee"):
        r = await confirm_as(client, world.admin, match_id, role)
        assert r.status_code == 200
    assert r.json()["is_fully_confirmed"] is True


async def test_outsider_cannot_confirm(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    r = await confirm_as(client, world.outsider, match_id, "home")
    assert r.status_code == 403


@pytest.mark.parametrize("body", [{"scheduled_date": None}, {"home_team_id": None}, {"away_team_id": None}])
async def test_match_required_fields_cannot_be_nulled(client, world, scheduled_match, body) -> None:
    r = await client.put(f"/v1/matches/{scheduled_match['id']}", json=body, headers=world.organizer.headers)
    assert r.status_code == 400
    assert r.json()["error"] == "validation_error"


async def test_match_optional_fields_can_be_cleared(client, world, scheduled_match) -> None:
    r = await client.put(
        f"/v1/matches/{scheduled_match['id']}", json={"location": None}, headers=world.organizer.headers
    )
    assert r.status_code == 200
    assert r.json()["match"]["location"] is None


async def test_timestamps_read_back_identically(client, world, scheduled_match) -> None:
    match_id = await _completed_match(client, world, scheduled_match)
    confirmed = (await confirm_as(client, world.home_leader, match_id, "home")).json()["match"]
    stored = (await client.get(f"/v1/matches/{match_id}")).json()["match"]
    assert confirmed["home_confirmed_at"] == stored["home_confirmed_at"]
    assert confirmed["scheduled_date"] == stored["scheduled_date"]
    assert stored["home_confirmed_at"].endswith("Z") or stored["home_confirmed_at"].endswith("+00:00")
