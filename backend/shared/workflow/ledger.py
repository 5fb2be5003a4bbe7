"""
Match event ledger: validation and score bookkeeping for match events.

Each event credits at most one side of the match. goal and penalty-goal
credit the event's team, own-goal credits the opponent. Adding, removing
or editing an event moves exactly the difference in credit, so the
running score always equals the credited events still on the ledger.
"""
from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass
from typing import Optional

from shared.errors import InvalidArgument, InvalidOperation
from shared.models.enums import MatchEventType, MatchStatus
from shared.models.orm import MatchORM, PlayerORM
from shared.workflow.results import reset_confirmation

VALID_EVENT_TYPES: list[str] = [t.value for t in MatchEventType]


class Side(str, enum.Enum):
    HOME = "home"
    AWAY = "away"


@dataclass
class LedgerChange:
    """Score movement caused by one ledger operation."""
    decremented: Optional[Side] = None
    incremented: Optional[Side] = None
    confirmation_reset: bool = False

    @property
    def score_changed(self) -> bool:
        return self.decremented is not None or self.incremented is not None


def parse_event_type(raw: str) -> MatchEventType:
    try:
        return MatchEventType(raw)
    except ValueError:
        raise InvalidArgument("Invalid event type", valid_event_types=VALID_EVENT_TYPES) from None


def side_of(match: MatchORM, team_id: uuid.UUID) -> Side:
    if team_id == match.home_team_id:
        return Side.HOME
    if team_id == match.away_team_id:
        return Side.AWAY
    raise InvalidArgument("Team must be home or away team for this match")


def credited_side(match: MatchORM, event_type: MatchEventType, team_id: uuid.UUID) -> Optional[Side]:
    side = side_of(match, team_id)
    if event_type.credits_own_team:
        return side
    if event_type.credits_opponent:
        return Side.AWAY if side == Side.HOME else Side.HOME
    return None


# ── Preconditions ───────────────────────────────────────────────────────
def ensure_can_add(match: MatchORM) -> None:
    if match.status in (MatchStatus.SCHEDULED.value, MatchStatus.CANCELLED.value):
        raise InvalidOperation("Cannot add events to a scheduled or cancelled match")
    if match.is_result_confirmed:
        raise InvalidOperation("Cannot add events to a match with confirmed result")


def ensure_can_modify(match: MatchORM) -> None:
    if match.status == MatchStatus.CANCELLED.value:
        raise InvalidOperation("Cannot modify events of a cancelled match")
    if match.is_result_confirmed:
        raise InvalidOperation("Cannot modify events of a match with confirmed result")


def validate_players(
    event_type: MatchEventType,
    team_id: uuid.UUID,
    player: Optional[PlayerORM],
    secondary_player: Optional[PlayerORM],
) -> None:
    """
    The primary player always belongs to the event's team. The secondary
    player is only tied to the team for substitutions (an assist or a
    foul victim may come from anywhere).
    """
    if player is not None and player.team_id != team_id:
        raise InvalidArgument("Player must belong to the specified team")
    if secondary_player is not None and event_type.is_substitution and secondary_player.team_id != team_id:
        raise InvalidArgument("For substitutions, both players must belong to the same team")


# ── Score bookkeeping ───────────────────────────────────────────────────
def _bump(match: MatchORM, side: Side, delta: int) -> None:
    attr = "home_score" if side == Side.HOME else "away_score"
    current = getattr(match, attr) or 0
    setattr(match, attr, max(current + delta, 0))


def _move_credit(match: MatchORM, old: Optional[Side], new: Optional[Side]) -> LedgerChange:
    change = LedgerChange()
    if old == new:
        return change
    if old is not None:
        _bump(match, old, -1)
        change.decremented = old
    if new is not None:
        _bump(match, new, +1)
        change.incremented = new
    reset_confirmation(match)
    change.confirmation_reset = True
    return change


def apply_event_added(match: MatchORM, event_type: MatchEventType, team_id: uuid.UUID) -> LedgerChange:
    return _move_credit(match, None, credited_side(match, event_type, team_id))


def apply_event_removed(match: MatchORM, event_type: MatchEventType, team_id: uuid.UUID) -> LedgerChange:
    return _move_credit(match, credited_side(match, event_type, team_id), None)


def apply_event_changed(
    match: MatchORM,
    old_type: MatchEventType,
    old_team_id: uuid.UUID,
    new_type: MatchEventType,
    new_team_id: uuid.UUID,
) -> LedgerChange:
    """
    Re-credit an edited event.

    A goal that stops being a goal is taken off its team, a non-goal that
    becomes one is added, and a goal moved to the other team does both.
    """
    return _move_credit(
        match,
        credited_side(match, old_type, old_team_id),
        credited_side(match, new_type, new_team_id),
    )
