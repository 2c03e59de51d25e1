"""
Hotlist Lifecycle
=================

Entity state machine (active -> promoted | archived) and its stores.
"""

from .transitions import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    TransitionOutcome,
    can_transition,
    check_transition,
)
from .entity_store import EntityStore, InMemoryEntityStore
from .postgres_store import PostgresEntityStore

__all__ = [
    "ALLOWED_TRANSITIONS",
    "InvalidTransitionError",
    "TransitionOutcome",
    "can_transition",
    "check_transition",
    "EntityStore",
    "InMemoryEntityStore",
    "PostgresEntityStore",
]
