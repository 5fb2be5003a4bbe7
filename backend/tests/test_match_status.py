"""Unit tests for the match status state machine."""
from __future__ import annotations

import itertools

import pytest

from shared.errors import InvalidArgument, InvalidOperation, InvalidTransition
from shared.models.enums import MatchStatus
from shared.workflow.status import VALID_STATUSES, check_transition, parse_status, transition_status


ALL = list(MatchStatus)


# ── check_transition ────────────────────────────────────────────────────

class TestCheckTransition:

    def test_completed_is_frozen(self) -> None:
        for target in ALL:
            if target == MatchStatus.COMPLETED:
                check_transition(MatchStatus.COMPLETED, target)
            else:
                with pytest.raises(InvalidTransition):
                    check_transition(MatchStatus.COMPLETED, target)

    def test_cancelled_only_reopens_to_scheduled(self) -> None:
        check_transition(MatchStatus.CANCELLED, MatchStatus.SCHEDULED)
        for target in ALL:
            if target != MatchStatus.SCHEDULED:
                with pytest.raises(InvalidTransition):
                    check_transition(MatchStatus.CANCELLED, target)

    def test_everything_else_is_allowed(self) -> None:
        restricted = {MatchStatus.COMPLETED, MatchStatus.CANCELLED}
        for current, target in itertools.product(ALL, ALL):
            if current in restricted:
                continue
            check_transition(current, target)

    def test_invalid_transition_is_an_invalid_operation(self) -> None:
        """Handlers map both to 400, so the subclass relationship matters."""
        assert issubclass(InvalidTransition, InvalidOperation)


# ── parse_status ────────────────────────────────────────────────────────

class TestParseStatus:

    def test_known_values(self) -> None:
        assert parse_status("in-progress") == MatchStatus.IN_PROGRESS
        assert parse_status("postponed") == MatchStatus.POSTPONED

    def test_unknown_value_lists_valid_statuses(self) -> None:
        with pytest.raises(InvalidArgument) as exc_info:
            parse_status("finished")
        assert exc_info.value.details["valid_statuses"] == VALID_STATUSES
        assert exc_info.value.status_code == 400


# ── transition_status ───────────────────────────────────────────────────

class TestTransitionStatus:

    def test_kickoff_initializes_scores(self, match_factory) -> None:
        match = match_factory()
        change = transition_status(match, "in-progress")
        assert change.changed
        assert not change.became_completed
        assert (match.home_score, match.away_score) == (0, 0)
        assert match.status == "in-progress"

    def test_straight_to_completed_initializes_scores(self, match_factory) -> None:
        match = match_factory()
        change = transition_status(match, "completed")
        assert change.became_completed
        assert (match.home_score, match.away_score) == (0, 0)

    def test_postponing_keeps_scores_null(self, match_factory) -> None:
        match = match_factory()
        transition_status(match, "postponed")
        assert match.home_score is None and match.away_score is None

    def test_existing_scores_survive(self, match_factory) -> None:
        match = match_factory(status="postponed", home_score=1, away_score=2)
        transition_status(match, "in-progress")
        assert (match.home_score, match.away_score) == (1, 2)

    def test_completed_to_completed_is_not_a_new_completion(self, match_factory) -> None:
        match = match_factory(status="completed", home_score=2, away_score=1)
        change = transition_status(match, "completed")
        assert not change.changed
        assert not change.became_completed

    def test_rejected_transition_leaves_match_untouched(self, match_factory) -> None:
        match = match_factory(status="completed", home_score=2, away_score=1)
        with pytest.raises(InvalidTransition):
            transition_status(match, "in-progress")
        assert match.status == "completed"

    def test_reopening_cancelled_match(self, match_factory) -> None:
        match = match_factory(status="cancelled")
        change = transition_status(match, "scheduled")
        assert change.previous == MatchStatus.CANCELLED
        assert match.status == "scheduled"

    def test_no_sequence_escapes_completed(self, match_factory) -> None:
        match = match_factory()
        for target in ["in-progress", "postponed", "in-progress", "completed"]:
            transition_status(match, target)
        for target in VALID_STATUSES:
            try:
                transition_status(match, target)
            except InvalidTransition:
                pass
            assert match.status == "completed"
