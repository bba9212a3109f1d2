"""
Legal ride status transitions.

    pending             -> accepted | declined | cancelled
    accepted            -> in_progress | cancelled | cancelled_by_driver
    in_progress         -> completed | cancelled
    declined            -> needs_reassignment | cancelled
    cancelled_by_driver -> needs_reassignment | cancelled
    needs_reassignment  -> pending | cancelled

completed and cancelled are terminal.
"""

from typing import Dict, FrozenSet

from rides.models import Ride

from .exceptions import InvalidTransitionError

PENDING = Ride.STATUS_PENDING
ACCEPTED = Ride.STATUS_ACCEPTED
IN_PROGRESS = Ride.STATUS_IN_PROGRESS
COMPLETED = Ride.STATUS_COMPLETED
CANCELLED = Ride.STATUS_CANCELLED
CANCELLED_BY_DRIVER = Ride.STATUS_CANCELLED_BY_DRIVER
DECLINED = Ride.STATUS_DECLINED
NEEDS_REASSIGNMENT = Ride.STATUS_NEEDS_REASSIGNMENT

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PENDING: frozenset({ACCEPTED, DECLINED, CANCELLED}),
    ACCEPTED: frozenset({IN_PROGRESS, CANCELLED, CANCELLED_BY_DRIVER}),
    IN_PROGRESS: frozenset({COMPLETED, CANCELLED}),
    DECLINED: frozenset({NEEDS_REASSIGNMENT, CANCELLED}),
    CANCELLED_BY_DRIVER: frozenset({NEEDS_REASSIGNMENT, CANCELLED}),
    NEEDS_REASSIGNMENT: frozenset({PENDING, CANCELLED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in TRANSITIONS.items() if not targets)
NON_TERMINAL_STATUSES = frozenset(TRANSITIONS) - TERMINAL_STATUSES
DRIVER_DROPOUT_STATUSES = frozenset({DECLINED, CANCELLED_BY_DRIVER})


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, frozenset())


def sources_for(target: str) -> FrozenSet[str]:
    """All statuses from which ``target`` is reachable in one step."""
    return frozenset(s for s, targets in TRANSITIONS.items() if target in targets)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def assert_transition(current: str, target: str) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move a ride from '{current}' to '{target}'."
        )
