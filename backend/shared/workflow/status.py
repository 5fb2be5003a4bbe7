"""
Match status state machine.

completed is frozen (only completed -> completed); cancelled may only be
reopened to scheduled; every other move between known statuses is allowed.
"""
from __future__ import annotations

from dataclasses import dataclass

from shared.errors import InvalidArgument, InvalidTransition
from shared.models.enums import MatchStatus
from shared.models.orm import MatchORM

VALID_STATUSES: list[str] = [s.value for s in MatchStatus]


@dataclass
class StatusChange:
    previous: MatchStatus
    current: MatchStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.current

    @property
    def became_completed(self) -> bool:
        return self.current == MatchStatus.COMPLETED and self.previous != MatchStatus.COMPLETED


def parse_status(raw: str) -> MatchStatus:
    try:
        return MatchStatus(raw)
    except ValueError:
        raise InvalidArgument("Invalid status", valid_statuses=VALID_STATUSES) from None


def check_transition(current: MatchStatus, target: MatchStatus) -> None:
    """Raise InvalidTransition when `current -> target` is not allowed."""
    if current == MatchStatus.COMPLETED and target != MatchStatus.COMPLETED:
        raise InvalidTransition("Cannot change status of a completed match")
    if current == MatchStatus.CANCELLED and target != MatchStatus.SCHEDULED:
        raise InvalidTransition("Cancelled match can only be changed to scheduled")


def transition_status(match: MatchORM, raw_status: str) -> StatusChange:
    """Validate and apply a status change to the match row."""
    target = parse_status(raw_status)
    previous = MatchStatus(match.status)
    check_transition(previous, target)

    match.status = target.value
    if previous == MatchStatus.SCHEDULED and target in (MatchStatus.IN_PROGRESS, MatchStatus.COMPLETED):
        # Scores come into existence when the match first kicks off
        if match.home_score is None:
            match.home_score = 0
        if match.away_score is None:
            match.away_score = 0
    return StatusChange(previous=previous, current=target)
