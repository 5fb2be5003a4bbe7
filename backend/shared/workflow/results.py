"""
Result recording and multi-party confirmation.

The three confirming parties (home, away, referee) are handled as a set;
the four boolean/timestamp column pairs on MatchORM are its storage.
`is_result_confirmed` is sticky: only a real score change clears it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from shared.errors import InvalidArgument, InvalidOperation
from shared.models.enums import ConfirmationRole, ConfirmingParty, MatchStatus
from shared.models.orm import MatchORM, utcnow

VALID_ROLES: list[str] = [r.value for r in ConfirmationRole]

SCORE_FIELDS: tuple[str, ...] = (
    "home_score",
    "away_score",
    "half_time_home_score",
    "half_time_away_score",
    "home_penalty_score",
    "away_penalty_score",
    "has_penalties",
)

_PARTY_COLUMNS: dict[ConfirmingParty, tuple[str, str]] = {
    ConfirmingParty.HOME: ("home_confirmed", "home_confirmed_at"),
    ConfirmingParty.AWAY: ("away_confirmed", "away_confirmed_at"),
    ConfirmingParty.REFEREE: ("referee_confirmed", "referee_confirmed_at"),
}

ALL_PARTIES: frozenset[ConfirmingParty] = frozenset(ConfirmingParty)

_ROLE_PARTIES: dict[ConfirmationRole, frozenset[ConfirmingParty]] = {
    ConfirmationRole.HOME: frozenset({ConfirmingParty.HOME}),
    ConfirmationRole.AWAY: frozenset({ConfirmingParty.AWAY}),
    ConfirmationRole.REFEREE: frozenset({ConfirmingParty.REFEREE}),
    ConfirmationRole.ORGANIZER: ALL_PARTIES,
}


# ── Confirmation set ────────────────────────────────────────────────────
def confirmed_parties(match: MatchORM) -> frozenset[ConfirmingParty]:
    return frozenset(p for p, (flag, _) in _PARTY_COLUMNS.items() if getattr(match, flag))


def reset_confirmation(match: MatchORM) -> None:
    """Clear every party confirmation and the aggregate flag."""
    for flag, stamp in _PARTY_COLUMNS.values():
        setattr(match, flag, False)
        setattr(match, stamp, None)
    match.is_result_confirmed = False
    match.result_confirmed_at = None


def parse_role(raw: str) -> ConfirmationRole:
    try:
        return ConfirmationRole(raw)
    except ValueError:
        raise InvalidArgument("Invalid role", valid_roles=VALID_ROLES) from None


@dataclass
class ConfirmationOutcome:
    role: ConfirmationRole
    newly_confirmed: frozenset[ConfirmingParty]
    finalized: bool


def confirm(match: MatchORM, role: ConfirmationRole, now: Optional[datetime] = None) -> ConfirmationOutcome:
    """
    Record a confirmation for `role` and promote the match to fully
    confirmed once home, away and referee have all agreed.

    Authorization is the caller's concern. Re-confirming an already
    confirmed party leaves its timestamp untouched.
    """
    if match.status != MatchStatus.COMPLETED.value:
        raise InvalidOperation("Can only confirm completed matches")

    now = now or utcnow()
    before = confirmed_parties(match)
    newly = _ROLE_PARTIES[role] - before
    for party in newly:
        flag, stamp = _PARTY_COLUMNS[party]
        setattr(match, flag, True)
        setattr(match, stamp, now)

    finalized = False
    if confirmed_parties(match) == ALL_PARTIES and not match.is_result_confirmed:
        match.is_result_confirmed = True
        match.result_confirmed_at = now
        finalized = True
    return ConfirmationOutcome(role=role, newly_confirmed=newly, finalized=finalized)


# ── Score recording ─────────────────────────────────────────────────────
@dataclass
class ScoreChange:
    changed_fields: dict[str, tuple[Any, Any]] = field(default_factory=dict)
    confirmation_reset: bool = False

    @property
    def score_changed(self) -> bool:
        return "home_score" in self.changed_fields or "away_score" in self.changed_fields


def ensure_scorable(match: MatchORM) -> None:
    if match.status == MatchStatus.SCHEDULED.value:
        raise InvalidOperation("Cannot update score for a scheduled match")
    if match.status == MatchStatus.CANCELLED.value:
        raise InvalidOperation("Cannot update score for a cancelled match")


def apply_score_update(match: MatchORM, supplied: dict[str, Any]) -> ScoreChange:
    """
    Write the supplied score fields onto the match.

    Fields equal to the stored value are ignored; if anything differs the
    whole confirmation set is cleared in the same update.
    """
    ensure_scorable(match)
    unknown = set(supplied) - set(SCORE_FIELDS)
    if unknown:
        raise InvalidArgument("Unknown score fields", fields=sorted(unknown))
    for name in ("home_score", "away_score"):
        if name in supplied and supplied[name] is None:
            raise InvalidArgument(f"{name} cannot be cleared once the match has started")

    change = ScoreChange()
    for name in SCORE_FIELDS:
        if name not in supplied:
            continue
        old, new = getattr(match, name), supplied[name]
        if name == "has_penalties" and new is None:
            new = False
        if old != new:
            change.changed_fields[name] = (old, new)
            setattr(match, name, new)

    if change.changed_fields:
        reset_confirmation(match)
        change.confirmation_reset = True
    return change
