"""
Tournament entry rules and the standings table.

Standings are derived on read from fully confirmed results only; nothing
is cached on the registration rows, so a score correction (which clears
confirmation) drops that match from the table until it is re-confirmed.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Iterable, Optional

from shared.errors import InvalidArgument, InvalidOperation
from shared.models.enums import RegistrationStatus, TournamentStatus
from shared.models.orm import MatchORM, TournamentORM

VALID_REGISTRATION_STATUSES: list[str] = [s.value for s in RegistrationStatus]

OPEN_FOR_REGISTRATION = frozenset({
    TournamentStatus.DRAFT.value,
    TournamentStatus.PUBLISHED.value,
    TournamentStatus.REGISTRATION_OPEN.value,
})
STARTED = frozenset({TournamentStatus.IN_PROGRESS.value, TournamentStatus.COMPLETED.value})

POINTS_WIN = 3
POINTS_DRAW = 1


def parse_registration_status(raw: str) -> RegistrationStatus:
    try:
        return RegistrationStatus(raw)
    except ValueError:
        raise InvalidArgument("Invalid status", valid_statuses=VALID_REGISTRATION_STATUSES) from None


def ensure_accepting_registrations(tournament: TournamentORM) -> None:
    if tournament.status not in OPEN_FOR_REGISTRATION:
        raise InvalidOperation("Tournament is not accepting registrations")


def ensure_capacity(tournament: TournamentORM, approved_count: int) -> None:
    if approved_count >= tournament.max_teams:
        raise InvalidOperation("Tournament has reached maximum team limit", max_teams=tournament.max_teams)


def ensure_withdrawable(tournament: TournamentORM) -> None:
    if tournament.status in STARTED:
        raise InvalidOperation("Cannot withdraw from a tournament that has already started or completed")


# ── Standings ───────────────────────────────────────────────────────────
@dataclass
class StandingRow:
    team_id: uuid.UUID
    team_name: str
    team_logo: Optional[str] = None
    group: Optional[str] = None
    played: int = 0
    won: int = 0
    drawn: int = 0
    lost: int = 0
    goals_for: int = 0
    goals_against: int = 0
    points: int = 0

    @property
    def goal_difference(self) -> int:
        return self.goals_for - self.goals_against

    def record(self, scored: int, conceded: int) -> None:
        self.played += 1
        self.goals_for += scored
        self.goals_against += conceded
        if scored > conceded:
            self.won += 1
            self.points += POINTS_WIN
        elif scored == conceded:
            self.drawn += 1
            self.points += POINTS_DRAW
        else:
            self.lost += 1


def compute_standings(rows: Iterable[StandingRow], matches: Iterable[MatchORM]) -> list[StandingRow]:
    """
    Fold confirmed results into the table and sort it.

    Matches that are not fully confirmed, or that involve a team absent
    from `rows`, only count for the teams that are present. Order is
    group, points, goal difference, goals scored, then name.
    """
    table = {row.team_id: row for row in rows}
    for match in matches:
        if not match.is_result_confirmed or match.home_score is None or match.away_score is None:
            continue
        home = table.get(match.home_team_id)
        away = table.get(match.away_team_id)
        if home is not None:
            home.record(match.home_score, match.away_score)
        if away is not None:
            away.record(match.away_score, match.home_score)

    return sorted(
        table.values(),
        key=lambda r: (r.group or "", -r.points, -r.goal_difference, -r.goals_for, r.team_name.lower()),
    )
