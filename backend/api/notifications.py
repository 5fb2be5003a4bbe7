"""
Notification dispatcher and the match-workflow message builders.

Dispatch is best-effort: handlers queue requests as background tasks after
their own transaction has committed, and any failure here is logged and
counted, never raised back to the request that caused it.
"""
from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.enums import (
    ConfirmationRole,
    MatchEventType,
    NotificationPriority,
    NotificationType,
    RegistrationStatus,
)
from shared.models.orm import NotificationORM, UserORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger
from shared.utils.metrics import NOTIFICATIONS_DISPATCHED
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


@dataclass
class NotificationRequest:
    user_id: uuid.UUID
    type: NotificationType
    title: str
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.NORMAL
    send_email: bool = False


class NotificationDispatcher:
    """Persists notifications, stubs email delivery and fans out over Redis."""

    def __init__(
        self,
        db: DatabaseManager,
        redis: Optional[RedisManager] = None,
        settings: Settings | None = None,
    ) -> None:
        self._db = db
        self._redis = redis
        self._settings = settings or get_settings()

    async def notify(self, req: NotificationRequest) -> uuid.UUID:
        """Store one notification and deliver it. Raises on storage failure."""
        async with self._db.write_session() as session:
            row = NotificationORM(
                user_id=req.user_id,
                type=req.type.value,
                title=req.title,
                message=req.message,
                extra=req.metadata,
                priority=req.priority.value,
            )
            session.add(row)
            if req.send_email and self._settings.email_enabled:
                user = await session.get(UserORM, req.user_id)
                if user is not None and user.email:
                    self._send_email(user.email, req.title, req.message)
                    row.email_sent = True
            await session.flush()
            notification_id = row.id

        if self._redis is not None:
            payload = json.dumps({
                "id": str(notification_id),
                "type": req.type.value,
                "title": req.title,
                "message": req.message,
                "metadata": req.metadata,
                "priority": req.priority.value,
            }, default=str)
            try:
                await self._redis.publish_notification(str(req.user_id), payload)
            except Exception as exc:
                logger.warning("notification_publish_failed", user_id=str(req.user_id), error=str(exc))
        return notification_id

    async def dispatch(self, requests: Iterable[NotificationRequest]) -> int:
        """Deliver each request independently; returns how many were stored."""
        delivered = 0
        for req in requests:
            try:
                await self.notify(req)
            except Exception as exc:
                NOTIFICATIONS_DISPATCHED.labels(type=req.type.value, status="error").inc()
                logger.error(
                    "notification_failed",
                    user_id=str(req.user_id),
                    type=req.type.value,
                    error=str(exc),
                    exc_info=True,
                )
                continue
            NOTIFICATIONS_DISPATCHED.labels(type=req.type.value, status="ok").inc()
            delivered += 1
        return delivered

    def _send_email(self, email: str, subject: str, message: str) -> None:
        # Delivery goes through an external mail relay; only the hand-off is logged here.
        logger.info("email_notification_logged", to=email, sender=self._settings.email_from, subject=subject)


# ── Match message builders ──────────────────────────────────────────────
@dataclass
class MatchSummary:
    """Names, score and stakeholders of a match, captured after commit."""
    match_id: uuid.UUID
    home_team_name: str
    away_team_name: str
    home_score: Optional[int]
    away_score: Optional[int]
    tournament_name: str
    home_leader_id: Optional[uuid.UUID] = None
    away_leader_id: Optional[uuid.UUID] = None
    organizer_id: Optional[uuid.UUID] = None

    @property
    def fixture(self) -> str:
        return f"{self.home_team_name} vs {self.away_team_name}"

    @property
    def result_metadata(self) -> dict[str, Any]:
        return {
            "match_id": str(self.match_id),
            "home_team_name": self.home_team_name,
            "home_score": self.home_score,
            "away_team_name": self.away_team_name,
            "away_score": self.away_score,
            "tournament_name": self.tournament_name,
        }


def _unique(ids: Iterable[Optional[uuid.UUID]]) -> list[uuid.UUID]:
    seen: list[uuid.UUID] = []
    for i in ids:
        if i is not None and i not in seen:
            seen.append(i)
    return seen


def match_result_requests(summary: MatchSummary, include_organizer: bool = True) -> list[NotificationRequest]:
    recipients = [summary.home_leader_id, summary.away_leader_id]
    if include_organizer:
        recipients.append(summary.organizer_id)
    message = (
        f"Match result: {summary.home_team_name} {summary.home_score} - "
        f"{summary.away_score} {summary.away_team_name}"
    )
    return [
        NotificationRequest(
            user_id=uid,
            type=NotificationType.MATCH_RESULT,
            title="Match Result",
            message=message,
            metadata=summary.result_metadata,
        )
        for uid in _unique(recipients)
    ]


_CONFIRMER_LABELS: dict[ConfirmationRole, str] = {
    ConfirmationRole.HOME: "home team",
    ConfirmationRole.AWAY: "away team",
    ConfirmationRole.REFEREE: "referee",
    ConfirmationRole.ORGANIZER: "tournament organizer",
}


def confirmation_requests(
    summary: MatchSummary,
    role: ConfirmationRole,
    fully_confirmed: bool,
) -> list[NotificationRequest]:
    """Tell the parties who did not act that a confirmation was recorded."""
    if role == ConfirmationRole.HOME:
        confirmer = summary.home_team_name
        recipients = [summary.away_leader_id, summary.organizer_id]
    elif role == ConfirmationRole.AWAY:
        confirmer = summary.away_team_name
        recipients = [summary.home_leader_id, summary.organizer_id]
    elif role == ConfirmationRole.REFEREE:
        confirmer = "The referee"
        recipients = [summary.home_leader_id, summary.away_leader_id, summary.organizer_id]
    else:
        confirmer = "The tournament organizer"
        recipients = [summary.home_leader_id, summary.away_leader_id]

    message = (
        f"{confirmer} has confirmed the result of the match {summary.fixture} "
        f"as {_CONFIRMER_LABELS[role]}."
    )
    metadata = {
        **summary.result_metadata,
        "confirmer_role": role.value,
        "is_fully_confirmed": fully_confirmed,
    }
    return [
        NotificationRequest(
            user_id=uid,
            type=NotificationType.MATCH_CONFIRMATION,
            title="Match Result Confirmation",
            message=message,
            metadata=metadata,
        )
        for uid in _unique(recipients)
    ]


def finalized_requests(summary: MatchSummary) -> list[NotificationRequest]:
    message = (
        f"The result of {summary.fixture} ({summary.home_score}-{summary.away_score}) "
        "has been finalized."
    )
    return [
        NotificationRequest(
            user_id=uid,
            type=NotificationType.MATCH_RESULT_FINAL,
            title="Match Result Finalized",
            message=message,
            metadata=summary.result_metadata,
            priority=NotificationPriority.HIGH,
            send_email=True,
        )
        for uid in _unique([summary.home_leader_id, summary.away_leader_id, summary.organizer_id])
    ]


def match_event_requests(
    summary: MatchSummary,
    event_type: MatchEventType,
    team_name: str,
    player_name: Optional[str],
    minute: int,
    added_time: int,
    half: int,
) -> list[NotificationRequest]:
    """Goals and sendings-off are announced; other events are silent."""
    clock = f"{minute}+{added_time}" if added_time else f"{minute}"
    who = f"{player_name} ({team_name})" if player_name else team_name
    if event_type in (MatchEventType.GOAL, MatchEventType.PENALTY_GOAL):
        ntype, title, priority = NotificationType.MATCH_GOAL, "Goal Scored", NotificationPriority.NORMAL
        message = f"{who} scored a goal at {clock}' in the match {summary.fixture}"
    elif event_type == MatchEventType.OWN_GOAL:
        ntype, title, priority = NotificationType.MATCH_GOAL, "Own Goal", NotificationPriority.NORMAL
        message = f"{who} scored an own goal at {clock}' in the match {summary.fixture}"
    elif event_type.is_sending_off:
        ntype, title, priority = NotificationType.MATCH_RED_CARD, "Red Card", NotificationPriority.HIGH
        message = f"{who} was sent off at {clock}' in the match {summary.fixture}"
    else:
        return []

    metadata = {
        "match_id": str(summary.match_id),
        "event_type": event_type.value,
        "team_name": team_name,
        "player_name": player_name,
        "minute": minute,
        "added_time": added_time,
        "half": half,
        "home_team_name": summary.home_team_name,
        "away_team_name": summary.away_team_name,
    }
    return [
        NotificationRequest(user_id=uid, type=ntype, title=title, message=message, metadata=metadata, priority=priority)
        for uid in _unique([summary.home_leader_id, summary.away_leader_id, summary.organizer_id])
    ]


def registration_requests(
    leader_id: uuid.UUID,
    team_name: str,
    tournament_name: str,
    status: RegistrationStatus,
    metadata: dict[str, Any],
) -> list[NotificationRequest]:
    """Approval and rejection are announced to the team leader; other states are silent."""
    if status == RegistrationStatus.APPROVED:
        title, priority = "Registration Approved", NotificationPriority.NORMAL
        message = f'Your team "{team_name}" has been approved for "{tournament_name}"'
    elif status == RegistrationStatus.REJECTED:
        title, priority = "Registration Rejected", NotificationPriority.HIGH
        message = f'Your team "{team_name}" registration for "{tournament_name}" has been rejected'
    else:
        return []
    return [
        NotificationRequest(
            user_id=leader_id,
            type=NotificationType.REGISTRATION_STATUS,
            title=title,
            message=message,
            metadata=metadata,
            priority=priority,
            send_email=True,
        )
    ]
