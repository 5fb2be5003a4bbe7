"""
SQLAlchemy 2.0 ORM models for Verzot.

Column types are the generic Uuid/JSON variants so the schema runs on
PostgreSQL (JSONB) in production and on SQLite in tests. Entities with a
`deleted_at` column are soft-deleted and must be filtered with `.alive()`.
"""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql.elements import ColumnElement

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always comes back in UTC, on SQLite too."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: Optional[datetime], dialect: Any) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class Base(DeclarativeBase):
    pass


class SoftDeleteMixin:
    deleted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    @classmethod
    def alive(cls) -> ColumnElement[bool]:
        return cls.deleted_at.is_(None)

    def soft_delete(self) -> None:
        self.deleted_at = utcnow()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow, onupdate=utcnow)


# ── Accounts ────────────────────────────────────────────────────────────
class RoleORM(Base):
    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)


class UserRoleORM(Base):
    __tablename__ = "user_roles"
    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)

    role: Mapped["RoleORM"] = relationship()


class UserORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    birth_date: Mapped[Optional[date]] = mapped_column(Date)
    preferred_language: Mapped[str] = mapped_column(String(10), nullable=False, default="en")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    roles: Mapped[list["UserRoleORM"]] = relationship(cascade="all, delete-orphan")


# ── Competition ─────────────────────────────────────────────────────────
class TournamentORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "tournaments"
    __table_args__ = (
        CheckConstraint("max_teams >= 2", name="chk_tournament_max_teams"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    start_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    end_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200))
    format: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(30), nullable=False, default="draft")
    max_teams: Mapped[int] = mapped_column(Integer, nullable=False)
    min_teams: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    organizer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)

    organizer: Mapped["UserORM"] = relationship()


class TeamORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "teams"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    logo_url: Mapped[Optional[str]] = mapped_column(Text)
    leader_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    invite_code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    colors: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    home_location: Mapped[Optional[str]] = mapped_column(String(200))
    founded_year: Mapped[Optional[int]] = mapped_column(SmallInteger)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    players: Mapped[list["PlayerORM"]] = relationship(back_populates="team")


class PlayerORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "players"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("teams.id"))
    user_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    jersey_number: Mapped[Optional[int]] = mapped_column(SmallInteger)
    position: Mapped[Optional[str]] = mapped_column(String(50))
    birth_date: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    team: Mapped[Optional["TeamORM"]] = relationship(back_populates="players")


class TeamTournamentORM(TimestampMixin, Base):
    """A team's registration in a tournament; one row per (team, tournament)."""

    __tablename__ = "team_tournaments"
    __table_args__ = (
        UniqueConstraint("team_id", "tournament_id", name="uq_team_tournament"),
        Index("ix_team_tournaments_tournament_status", "tournament_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    tournament_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tournaments.id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    registration_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=utcnow)
    group: Mapped[Optional[str]] = mapped_column(String(20))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    team: Mapped["TeamORM"] = relationship()


class MatchORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("home_team_id != away_team_id", name="chk_different_teams"),
        Index("ix_matches_tournament", "tournament_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    tournament_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tournaments.id"), nullable=False)
    home_team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    away_team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    referee_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("users.id"))
    scheduled_date: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    location: Mapped[Optional[str]] = mapped_column(String(200))
    field: Mapped[Optional[str]] = mapped_column(String(100))
    phase: Mapped[Optional[str]] = mapped_column(String(50))
    group: Mapped[Optional[str]] = mapped_column(String(20))
    round: Mapped[Optional[int]] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="scheduled")
    notes: Mapped[Optional[str]] = mapped_column(Text)

    home_score: Mapped[Optional[int]] = mapped_column(Integer)
    away_score: Mapped[Optional[int]] = mapped_column(Integer)
    half_time_home_score: Mapped[Optional[int]] = mapped_column(Integer)
    half_time_away_score: Mapped[Optional[int]] = mapped_column(Integer)
    has_penalties: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    home_penalty_score: Mapped[Optional[int]] = mapped_column(Integer)
    away_penalty_score: Mapped[Optional[int]] = mapped_column(Integer)

    home_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    home_confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    away_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    away_confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    referee_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    referee_confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    is_result_confirmed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    result_confirmed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    tournament: Mapped["TournamentORM"] = relationship()
    home_team: Mapped["TeamORM"] = relationship(foreign_keys=[home_team_id])
    away_team: Mapped["TeamORM"] = relationship(foreign_keys=[away_team_id])

    __mapper_args__ = {"version_id_col": version}


class MatchEventORM(TimestampMixin, SoftDeleteMixin, Base):
    __tablename__ = "match_events"
    __table_args__ = (
        CheckConstraint("minute >= 0", name="chk_event_minute"),
        CheckConstraint("added_time >= 0", name="chk_event_added_time"),
        CheckConstraint("half BETWEEN 1 AND 4", name="chk_event_half"),
        Index("ix_match_events_match", "match_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    match_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("matches.id"), nullable=False)
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    player_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("players.id"))
    secondary_player_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("players.id"))
    team_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("teams.id"), nullable=False)
    minute: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    added_time: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=0)
    half: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=1)
    description: Mapped[Optional[str]] = mapped_column(Text)
    video_url: Mapped[Optional[str]] = mapped_column(Text)
    coordinates: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)


# ── Notifications ───────────────────────────────────────────────────────
class NotificationORM(SoftDeleteMixin, Base):
    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user", "user_id"),
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    extra: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False, default=dict)
    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), default=utcnow)
