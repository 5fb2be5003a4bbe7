"""Tests for the notification dispatcher and the match message builders."""
from __future__ import annotations

import json
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select

from shared.config import get_settings
from shared.models.enums import ConfirmationRole, MatchEventType, NotificationPriority, NotificationType
from shared.models.orm import NotificationORM

from api.notifications import (
    MatchSummary,
    NotificationDispatcher,
    NotificationRequest,
    confirmation_requests,
    finalized_requests,
    match_event_requests,
    match_result_requests,
)


@pytest.fixture
def summary() -> MatchSummary:
    return MatchSummary(
        match_id=uuid.uuid4(),
        home_team_name="Lions",
        away_team_name="Tigers",
        home_score=2,
        away_score=1,
        tournament_name="Spring Cup",
        home_leader_id=uuid.uuid4(),
        away_leader_id=uuid.uuid4(),
        organizer_id=uuid.uuid4(),
    )


# ── Dispatcher ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_notify_persists_row_and_publishes(db, world) -> None:
    redis = MagicMock()
    redis.publish_notification = AsyncMock(return_value=1)
    dispatcher = NotificationDispatcher(db, redis, get_settings())

    notification_id = await dispatcher.notify(
        NotificationRequest(
            user_id=world.organizer.id,
            type=NotificationType.MATCH_RESULT_FINAL,
            title="Match Result Finalized",
            message="done",
            metadata={"home_score": 2},
            priority=NotificationPriority.HIGH,
            send_email=True,
        )
    )

    async with db.read_session() as session:
        row = await session.get(NotificationORM, notification_id)
    assert row is not None
    assert row.priority == "high"
    assert row.email_sent is True
    assert row.extra == {"home_score": 2}

    redis.publish_notification.assert_awaited_once()
    user_id, payload = redis.publish_notification.await_args.args
    assert user_id == str(world.organizer.id)
    assert json.loads(payload)["type"] == "match_result_final"


@pytest.mark.asyncio
async def test_publish_failure_does_not_lose_the_notification(db, world) -> None:
    redis = MagicMock()
    redis.publish_notification = AsyncMock(side_effect=ConnectionError("redis gone"))
    dispatcher = NotificationDispatcher(db, redis, get_settings())

    delivered = await dispatcher.dispatch([
        NotificationRequest(user_id=world.home_leader.id, type=NotificationType.SYSTEM, title="t", message="m"),
    ])

    assert delivered == 1
    async with db.read_session() as session:
        rows = (await session.execute(select(NotificationORM))).scalars().all()
    assert len(rows) == 1
    assert rows[0].email_sent is False


@pytest.mark.asyncio
async def test_dispatch_swallows_storage_errors() -> None:
    broken_db = MagicMock()
    broken_db.write_session.side_effect = RuntimeError("database unavailable")
    dispatcher = NotificationDispatcher(broken_db, None, get_settings())

    requests = [
        NotificationRequest(user_id=uuid.uuid4(), type=NotificationType.MATCH_RESULT, title="t", message="m")
        for _ in range(3)
    ]
    assert await dispatcher.dispatch(requests) == 0
    assert broken_db.write_session.call_count == 3


# ── Builders ────────────────────────────────────────────────────────────

class TestMatchResultRequests:

    def test_message_and_recipients(self, summary) -> None:
        requests = match_result_requests(summary)
        assert [r.user_id for r in requests] == [summary.home_leader_id, summary.away_leader_id, summary.organizer_id]
        assert requests[0].message == "Match result: Lions 2 - 1 Tigers"
        assert requests[0].metadata["tournament_name"] == "Spring Cup"

    def test_without_organizer(self, summary) -> None:
        assert len(match_result_requests(summary, include_organizer=False)) == 2

    def test_duplicate_recipients_collapse(self, summary) -> None:
        summary.organizer_id = summary.home_leader_id
        assert len(match_result_requests(summary)) == 2

    def test_missing_leader_skipped(self, summary) -> None:
        summary.away_leader_id = None
        assert summary.away_leader_id not in [r.user_id for r in match_result_requests(summary)]


class TestConfirmationRequests:

    def test_home_confirmation_goes_to_away_and_organizer(self, summary) -> None:
        requests = confirmation_requests(summary, ConfirmationRole.HOME, fully_confirmed=False)
        assert {r.user_id for r in requests} == {summary.away_leader_id, summary.organizer_id}
        assert requests[0].message.startswith("Lions has confirmed")
        assert requests[0].metadata["is_fully_confirmed"] is False

    def test_referee_confirmation_goes_to_everyone(self, summary) -> None:
        requests = confirmation_requests(summary, ConfirmationRole.REFEREE, fully_confirmed=True)
        assert len(requests) == 3

    def test_organizer_override_goes_to_both_leaders(self, summary) -> None:
        requests = confirmation_requests(summary, ConfirmationRole.ORGANIZER, fully_confirmed=True)
        assert {r.user_id for r in requests} == {summary.home_leader_id, summary.away_leader_id}

    def test_finalized_is_high_priority_with_email(self, summary) -> None:
        requests = finalized_requests(summary)
        assert len(requests) == 3
        assert all(r.priority == NotificationPriority.HIGH and r.send_email for r in requests)
        assert all(r.type == NotificationType.MATCH_RESULT_FINAL for r in requests)


class TestMatchEventRequests:

    def test_goal(self, summary) -> None:
        requests = match_event_requests(summary, MatchEventType.GOAL, "Lions", "Leo No9", 43, 2, 1)
        assert requests[0].type == NotificationType.MATCH_GOAL
        assert requests[0].message == "Leo No9 (Lions) scored a goal at 43+2' in the match Lions vs Tigers"

    def test_second_yellow_is_a_sending_off(self, summary) -> None:
        requests = match_event_requests(summary, MatchEventType.SECOND_YELLOW, "Tigers", None, 70, 0, 2)
        assert requests[0].type == NotificationType.MATCH_RED_CARD
        assert requests[0].priority == NotificationPriority.HIGH
        assert "Tigers was sent off at 70'" in requests[0].message

    def test_yellow_card_is_silent(self, summary) -> None:
        assert match_event_requests(summary, MatchEventType.YELLOW_CARD, "Lions", None, 10, 0, 1) == []
