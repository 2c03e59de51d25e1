"""
Entity lifecycle state machine.

    ACTIVE -> PROMOTED   (reconciliation, classification passed)
    ACTIVE -> ARCHIVED   (deadline sweep, deadline elapsed)

PROMOTED and ARCHIVED are terminal. Stores apply transitions as
compare-and-swap on state = 'active', so when reconciliation and the
deadline sweep race on one entity the first commit wins and the other
sees NOT_ACTIVE.
"""

from enum import Enum
from typing import Dict, FrozenSet

from ..data.data_models import EntityState


ALLOWED_TRANSITIONS: Dict[EntityState, FrozenSet[EntityState]] = {
    EntityState.ACTIVE: frozenset({EntityState.PROMOTED, EntityState.ARCHIVED}),
    EntityState.PROMOTED: frozenset(),
    EntityState.ARCHIVED: frozenset(),
}


class InvalidTransitionError(ValueError):
    """Transition not permitted by the lifecycle state machine."""
    pass


class TransitionOutcome(Enum):
    """Result of a conditional store write."""
    APPLIED = "applied"
    NOT_ACTIVE = "not_active"   # Already terminal, or lost a race
    NOT_FOUND = "not_found"

    @property
    def applied(self) -> bool:
        return self is TransitionOutcome.APPLIED


def can_transition(current: EntityState, target: EntityState) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def check_transition(current: EntityState, target: EntityState) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if not can_transition(current, target):
        raise InvalidTransitionError(f"Cannot transition {current.value} -> {target.value}")
