"""Tests for the content lifecycle state machine.

Validates:
- The transition table matches the documented lifecycle
- require_transition raises InvalidStateError for every illegal pair
- PUBLISHED and CANCELLED have no way out
- sources_for lists every status that can reach a target
"""

import itertools

import pytest

from command_center.exceptions import InvalidStateError
from command_center.models import ContentStatus
from command_center.scheduling.state_machine import (
    INITIAL_STATUS,
    REVIEW_TRANSITIONS,
    TRANSITIONS,
    can_transition,
    require_transition,
    sources_for,
)

S = ContentStatus

ALLOWED = {
    (S.DRAFT, S.REVIEW),
    (S.DRAFT, S.SCHEDULED),
    (S.DRAFT, S.PUBLISHING),
    (S.REVIEW, S.APPROVED),
    (S.REVIEW, S.DRAFT),
    (S.REVIEW, S.FAILED),
    (S.APPROVED, S.SCHEDULED),
    (S.APPROVED, S.PUBLISHING),
    (S.SCHEDULED, S.PUBLISHING),
    (S.SCHEDULED, S.CANCELLED),
    (S.SCHEDULED, S.SCHEDULED),
    (S.PUBLISHING, S.PUBLISHED),
    (S.PUBLISHING, S.FAILED),
    (S.FAILED, S.SCHEDULED),
    (S.FAILED, S.PUBLISHING),
}


# =============================================================================
# Transition table
# =============================================================================


class TestTransitionTable:
    """The table covers every status and nothing else."""

    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(ContentStatus)

    def test_initial_status_is_draft(self):
        assert INITIAL_STATUS is S.DRAFT

    def test_allowed_pairs_match_lifecycle(self):
        actual = {
            (source, target)
            for source, targets in TRANSITIONS.items()
            for target in targets
        }
        assert actual == ALLOWED

    @pytest.mark.parametrize("status", [S.PUBLISHED, S.CANCELLED])
    def test_final_statuses_have_no_exit(self, status):
        assert TRANSITIONS[status] == frozenset()

    def test_review_transitions_are_a_subset(self):
        assert REVIEW_TRANSITIONS <= ALLOWED


# =============================================================================
# can_transition / require_transition
# =============================================================================


class TestRequireTransition:
    """require_transition is the single gate for status writes."""

    @pytest.mark.parametrize(
        "source,target",
        sorted(ALLOWED, key=lambda pair: (pair[0].value, pair[1].value)),
    )
    def test_allowed_pairs_pass(self, source, target):
        assert can_transition(source, target) is True
        require_transition("item-1", source, target)

    @pytest.mark.parametrize(
        "source,target",
        [
            pair
            for pair in itertools.product(ContentStatus, ContentStatus)
            if pair not in ALLOWED
        ],
    )
    def test_illegal_pairs_raise(self, source, target):
        assert can_transition(source, target) is False
        with pytest.raises(InvalidStateError) as exc_info:
            require_transition("item-1", source, target)
        assert exc_info.value.item_id == "item-1"
        assert exc_info.value.current == source.value
        assert exc_info.value.target == target.value

    def test_cancelled_can_never_be_rescheduled(self):
        with pytest.raises(InvalidStateError, match="cancelled"):
            require_transition("item-9", S.CANCELLED, S.SCHEDULED)


# =============================================================================
# sources_for
# =============================================================================


class TestSourcesFor:
    def test_sources_for_publishing(self):
        assert set(sources_for(S.PUBLISHING)) == {
            S.DRAFT, S.APPROVED, S.SCHEDULED, S.FAILED,
        }

    def test_sources_for_cancelled(self):
        assert sources_for(S.CANCELLED) == (S.SCHEDULED,)

    def test_nothing_reaches_draft_except_review(self):
        assert sources_for(S.DRAFT) == (S.REVIEW,)
