"""
Pydantic v2 request/response models for the Verzot API.
These are the wire representations, NOT ORM models.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Annotated, Any, ClassVar, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from shared.models.enums import TournamentFormat, TournamentStatus


# ── Base ────────────────────────────────────────────────────────────────
def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Naive values are taken as UTC; every timestamp leaves the API in UTC.
UtcDatetime = Annotated[datetime, AfterValidator(_as_utc)]


class DomainModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class PartialUpdate(DomainModel):
    """PUT body where omitted fields stay untouched; NON_NULLABLE fields may be omitted but not nulled."""

    NON_NULLABLE: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_null_required(self) -> "PartialUpdate":
        nulled = [name for name in self.NON_NULLABLE if name in self.model_fields_set and getattr(self, name) is None]
        if nulled:
            raise ValueError(f"{', '.join(nulled)} cannot be null")
        return self


# ── Accounts ────────────────────────────────────────────────────────────
class SignupRequest(DomainModel):
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    password: str = Field(..., min_length=6, max_length=128)
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    birth_date: Optional[date] = None
    preferred_language: str = "en"


class LoginRequest(DomainModel):
    email: str
    password: str


class RoleGrantRequest(DomainModel):
    role: str


class UserOut(DomainModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    preferred_language: str
    is_active: bool
    roles: list[str] = Field(default_factory=list)
    created_at: Optional[UtcDatetime] = None


class AuthResponse(DomainModel):
    token: str
    user: UserOut


# ── Tournaments ─────────────────────────────────────────────────────────
class TournamentCreate(DomainModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: UtcDatetime
    end_date: UtcDatetime
    location: Optional[str] = None
    format: TournamentFormat
    max_teams: int = Field(..., ge=2)
    min_teams: int = Field(2, ge=2)

    @model_validator(mode="after")
    def check_dates(self) -> "TournamentCreate":
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.min_teams > self.max_teams:
            raise ValueError("min_teams must not exceed max_teams")
        return self


class TournamentUpdate(PartialUpdate):
    NON_NULLABLE: ClassVar[tuple[str, ...]] = (
        "name", "start_date", "end_date", "format", "status", "max_teams", "min_teams",
    )

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    start_date: Optional[UtcDatetime] = None
    end_date: Optional[UtcDatetime] = None
    location: Optional[str] = None
    format: Optional[TournamentFormat] = None
    status: Optional[TournamentStatus] = None
    max_teams: Optional[int] = Field(None, ge=2)
    min_teams: Optional[int] = Field(None, ge=2)


class TournamentOut(DomainModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    start_date: UtcDatetime
    end_date: UtcDatetime
    location: Optional[str] = None
    format: str
    status: str
    max_teams: int
    min_teams: int
    organizer_id: uuid.UUID


# ── Teams / players ─────────────────────────────────────────────────────
class TeamCreate(DomainModel):
    name: str = Field(..., min_length=1, max_length=200)
    logo_url: Optional[str] = None
    description: Optional[str] = None
    colors: Optional[dict[str, str]] = None
    home_location: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1800, le=2100)


class TeamUpdate(PartialUpdate):
    NON_NULLABLE: ClassVar[tuple[str, ...]] = ("name", "is_active")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    logo_url: Optional[str] = None
    description: Optional[str] = None
    colors: Optional[dict[str, str]] = None
    home_location: Optional[str] = None
    founded_year: Optional[int] = Field(None, ge=1800, le=2100)
    is_active: Optional[bool] = None


class TeamOut(DomainModel):
    id: uuid.UUID
    name: str
    logo_url: Optional[str] = None
    leader_id: uuid.UUID
    invite_code: str
    description: Optional[str] = None
    colors: Optional[dict[str, Any]] = None
    home_location: Optional[str] = None
    founded_year: Optional[int] = None
    is_active: bool


class PlayerCreate(DomainModel):
    team_id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    jersey_number: Optional[int] = Field(None, ge=0, le=99)
    position: Optional[str] = None
    birth_date: Optional[date] = None


class PlayerUpdate(PartialUpdate):
    NON_NULLABLE: ClassVar[tuple[str, ...]] = ("first_name", "last_name", "is_active")

    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    jersey_number: Optional[int] = Field(None, ge=0, le=99)
    position: Optional[str] = None
    birth_date: Optional[date] = None
    is_active: Optional[bool] = None


class PlayerOut(DomainModel):
    id: uuid.UUID
    team_id: Optional[uuid.UUID] = None
    user_id: Optional[uuid.UUID] = None
    first_name: str
    last_name: str
    jersey_number: Optional[int] = None
    position: Optional[str] = None
    birth_date: Optional[date] = None
    is_active: bool


# ── Tournament registrations ────────────────────────────────────────────
class RegistrationCreate(DomainModel):
    notes: Optional[str] = None


class RegistrationUpdate(DomainModel):
    status: Optional[str] = None
    group: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = None


class RegistrationOut(DomainModel):
    id: uuid.UUID
    team_id: uuid.UUID
    tournament_id: uuid.UUID
    status: str
    registration_date: UtcDatetime
    group: Optional[str] = None
    notes: Optional[str] = None


class StandingOut(DomainModel):
    team_id: uuid.UUID
    team_name: str
    team_logo: Optional[str] = None
    group: Optional[str] = None
    played: int
    won: int
    drawn: int
    lost: int
    goals_for: int
    goals_against: int
    goal_difference: int
    points: int


# ── Matches ─────────────────────────────────────────────────────────────
class MatchCreate(DomainModel):
    tournament_id: uuid.UUID
    home_team_id: uuid.UUID
    away_team_id: uuid.UUID
    referee_id: Optional[uuid.UUID] = None
    scheduled_date: UtcDatetime
    location: Optional[str] = None
    field: Optional[str] = None
    phase: Optional[str] = None
    group: Optional[str] = None
    round: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_teams(self) -> "MatchCreate":
        if self.home_team_id == self.away_team_id:
            raise ValueError("home_team_id and away_team_id must differ")
        return self


class MatchUpdate(PartialUpdate):
    NON_NULLABLE: ClassVar[tuple[str, ...]] = ("home_team_id", "away_team_id", "scheduled_date")

    home_team_id: Optional[uuid.UUID] = None
    away_team_id: Optional[uuid.UUID] = None
    referee_id: Optional[uuid.UUID] = None
    scheduled_date: Optional[UtcDatetime] = None
    location: Optional[str] = None
    field: Optional[str] = None
    phase: Optional[str] = None
    group: Optional[str] = None
    round: Optional[int] = Field(None, ge=1)
    notes: Optional[str] = None


class MatchStatusUpdate(DomainModel):
    status: str


class MatchScoreUpdate(DomainModel):
    home_score: Optional[int] = Field(None, ge=0)
    away_score: Optional[int] = Field(None, ge=0)
    half_time_home_score: Optional[int] = Field(None, ge=0)
    half_time_away_score: Optional[int] = Field(None, ge=0)
    home_penalty_score: Optional[int] = Field(None, ge=0)
    away_penalty_score: Optional[int] = Field(None, ge=0)
    has_penalties: Optional[bool] = None


class ConfirmRequest(DomainModel):
    role: str


class MatchOut(DomainModel):
    id: uuid.UUID
    tournament_id: uuid.UUID
    home_team_id: uuid.UUID
    away_team_id: uuid.UUID
    referee_id: Optional[uuid.UUID] = None
    scheduled_date: UtcDatetime
    location: Optional[str] = None
    field: Optional[str] = None
    phase: Optional[str] = None
    group: Optional[str] = None
    round: Optional[int] = None
    status: str
    notes: Optional[str] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    half_time_home_score: Optional[int] = None
    half_time_away_score: Optional[int] = None
    has_penalties: bool
    home_penalty_score: Optional[int] = None
    away_penalty_score: Optional[int] = None
    home_confirmed: bool
    home_confirmed_at: Optional[UtcDatetime] = None
    away_confirmed: bool
    away_confirmed_at: Optional[UtcDatetime] = None
    referee_confirmed: bool
    referee_confirmed_at: Optional[UtcDatetime] = None
    is_result_confirmed: bool
    result_confirmed_at: Optional[UtcDatetime] = None
    version: int


# ── Match events ────────────────────────────────────────────────────────
class Coordinates(DomainModel):
    x: float
    y: float


class MatchEventCreate(DomainModel):
    event_type: str
    team_id: uuid.UUID
    player_id: Optional[uuid.UUID] = None
    secondary_player_id: Optional[uuid.UUID] = None
    minute: int = Field(..., ge=0)
    added_time: int = Field(0, ge=0)
    half: int = Field(1, ge=1, le=4)
    description: Optional[str] = None
    video_url: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class MatchEventUpdate(DomainModel):
    event_type: Optional[str] = None
    team_id: Optional[uuid.UUID] = None
    player_id: Optional[uuid.UUID] = None
    secondary_player_id: Optional[uuid.UUID] = None
    minute: Optional[int] = Field(None, ge=0)
    added_time: Optional[int] = Field(None, ge=0)
    half: Optional[int] = Field(None, ge=1, le=4)
    description: Optional[str] = None
    video_url: Optional[str] = None
    coordinates: Optional[Coordinates] = None


class MatchEventOut(DomainModel):
    id: uuid.UUID
    match_id: uuid.UUID
    event_type: str
    team_id: uuid.UUID
    player_id: Optional[uuid.UUID] = None
    secondary_player_id: Optional[uuid.UUID] = None
    minute: int
    added_time: int
    half: int
    description: Optional[str] = None
    video_url: Optional[str] = None
    coordinates: Optional[dict[str, Any]] = None
    created_at: Optional[UtcDatetime] = None


# ── Notifications ───────────────────────────────────────────────────────
class NotificationOut(DomainModel):
    id: uuid.UUID
    type: str
    title: str
    message: str
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="extra")
    priority: str
    is_read: bool
    email_sent: bool
    created_at: UtcDatetime
