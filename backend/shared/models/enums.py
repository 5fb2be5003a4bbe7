"""Domain enumerations for the Verzot platform."""
from __future__ import annotations

from enum import Enum


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    POSTPONED = "postponed"


class MatchEventType(str, Enum):
    GOAL = "goal"
    OWN_GOAL = "own-goal"
    YELLOW_CARD = "yellow-card"
    RED_CARD = "red-card"
    SECOND_YELLOW = "second-yellow"
    PENALTY_GOAL = "penalty-goal"
    PENALTY_MISSED = "penalty-missed"
    PENALTY_SAVED = "penalty-saved"
    SUBSTITUTION_IN = "substitution-in"
    SUBSTITUTION_OUT = "substitution-out"
    INJURY = "injury"

    @property
    def credits_own_team(self) -> bool:
        return self in (MatchEventType.GOAL, MatchEventType.PENALTY_GOAL)

    @property
    def credits_opponent(self) -> bool:
        return self == MatchEventType.OWN_GOAL

    @property
    def is_substitution(self) -> bool:
        return self in (MatchEventType.SUBSTITUTION_IN, MatchEventType.SUBSTITUTION_OUT)

    @property
    def is_sending_off(self) -> bool:
        return self in (MatchEventType.RED_CARD, MatchEventType.SECOND_YELLOW)


class ConfirmationRole(str, Enum):
    """Who is submitting a result confirmation."""
    HOME = "home"
    AWAY = "away"
    REFEREE = "referee"
    ORGANIZER = "organizer"


class ConfirmingParty(str, Enum):
    """Parties whose agreement is required for a fully confirmed result."""
    HOME = "home"
    AWAY = "away"
    REFEREE = "referee"


class RoleName(str, Enum):
    ADMIN = "admin"
    ORGANIZER = "organizer"
    REFEREE = "referee"
    TEAM_LEADER = "team_leader"
    PLAYER = "player"


class TournamentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    REGISTRATION_OPEN = "registration-open"
    REGISTRATION_CLOSED = "registration-closed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RegistrationStatus(str, Enum):
    """A team's entry in a tournament."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class TournamentFormat(str, Enum):
    ELEVEN_A_SIDE = "11-a-side"
    EIGHT_A_SIDE = "8-a-side"
    SEVEN_A_SIDE = "7-a-side"
    FIVE_A_SIDE = "5-a-side"
    PENALTY_SHOOTOUT = "penalty-shootout"


class NotificationType(str, Enum):
    MATCH_RESULT = "match_result"
    MATCH_RESULT_FINAL = "match_result_final"
    MATCH_CONFIRMATION = "match_confirmation"
    MATCH_GOAL = "match_goal"
    MATCH_RED_CARD = "match_red_card"
    MATCH_SCHEDULED = "match_scheduled"
    REGISTRATION_STATUS = "registration_status"
    SYSTEM = "system"


class NotificationPriority(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"
