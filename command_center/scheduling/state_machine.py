"""
Content lifecycle state machine.

The whole lifecycle is one table (``TRANSITIONS``) and one check
(:func:`require_transition`).  Every status write in the scheduling core
goes through it, so an illegal transition fails in exactly one place.

    DRAFT      -> REVIEW, SCHEDULED, PUBLISHING
    REVIEW     -> APPROVED, DRAFT, FAILED
    APPROVED   -> SCHEDULED, PUBLISHING
    SCHEDULED  -> PUBLISHING, CANCELLED, SCHEDULED (re-schedule)
    PUBLISHING -> PUBLISHED, FAILED
    FAILED     -> SCHEDULED, PUBLISHING (explicit owner resubmission)

``PUBLISHED`` and ``CANCELLED`` have no outgoing transitions.
"""

from typing import Dict, FrozenSet, Tuple

from command_center.exceptions import InvalidStateError
from command_center.models import ContentStatus

S = ContentStatus

TRANSITIONS: Dict[ContentStatus, FrozenSet[ContentStatus]] = {
    S.DRAFT: frozenset({S.REVIEW, S.SCHEDULED, S.PUBLISHING}),
    S.REVIEW: frozenset({S.APPROVED, S.DRAFT, S.FAILED}),
    S.APPROVED: frozenset({S.SCHEDULED, S.PUBLISHING}),
    S.SCHEDULED: frozenset({S.PUBLISHING, S.CANCELLED, S.SCHEDULED}),
    S.PUBLISHING: frozenset({S.PUBLISHED, S.FAILED}),
    S.PUBLISHED: frozenset(),
    S.FAILED: frozenset({S.SCHEDULED, S.PUBLISHING}),
    S.CANCELLED: frozenset(),
}

INITIAL_STATUS = S.DRAFT

# Transitions owned by the approval workflow rather than the scheduler.
REVIEW_TRANSITIONS: FrozenSet[Tuple[ContentStatus, ContentStatus]] = frozenset({
    (S.DRAFT, S.REVIEW),
    (S.REVIEW, S.APPROVED),
    (S.REVIEW, S.DRAFT),
    (S.REVIEW, S.FAILED),
})


def can_transition(current: ContentStatus, target: ContentStatus) -> bool:
    """Return ``True`` if *current* -> *target* is a legal transition."""
    return target in TRANSITIONS[current]


def require_transition(
    item_id: str,
    current: ContentStatus,
    target: ContentStatus,
) -> None:
    """Raise :class:`InvalidStateError` unless *current* -> *target* is legal."""
    if not can_transition(current, target):
        raise InvalidStateError(item_id, current.value, target.value)


def sources_for(target: ContentStatus) -> Tuple[ContentStatus, ...]:
    """All statuses from which *target* can be reached, in enum order."""
    return tuple(
        status for status in ContentStatus if target in TRANSITIONS[status]
    )


__all__ = [
    "TRANSITIONS",
    "INITIAL_STATUS",
    "REVIEW_TRANSITIONS",
    "can_transition",
    "require_transition",
    "sources_for",
]
