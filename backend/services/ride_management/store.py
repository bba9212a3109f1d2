"""
Ride record store.

All status changes go through :func:`transition_ride`, a conditional
read-then-write:

1. lock the row (``select_for_update``) and read its status and version
2. verify the expected pre-state and any caller guard
3. ``UPDATE ... WHERE pk = ? AND status = ? AND version = ?``

If step 3 matches no row the write is aborted with RideNotAvailableError.
Committed transitions are published on the live-update channel and handed to
the reassignment coordinator after commit.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Union

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from rides.models import Ride
from .exceptions import RideNotAvailableError, RideNotFoundError
from .state_machine import DRIVER_DROPOUT_STATUSES, assert_transition, sources_for

logger = logging.getLogger(__name__)

Changes = Union[Dict[str, Any], Callable[[Ride], Dict[str, Any]], None]


@dataclass
class TransitionResult:
    ride: Ride
    previous_status: str


def get_ride(ride_id: str, **filters) -> Ride:
    """Fetch a ride by its public id, raising RideNotFoundError if missing."""
    try:
        return Ride.objects.select_related("rider", "driver").get(ride_id=ride_id, **filters)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found.")


def lock_ride(ride_id: str) -> Ride:
    try:
        return Ride.objects.select_for_update().get(ride_id=ride_id)
    except Ride.DoesNotExist:
        raise RideNotFoundError(f"Ride {ride_id} not found.")


def apply_transition(snapshot: Ride, target: str, values: Optional[Dict[str, Any]] = None) -> Ride:
    """
    Conditionally write ``target`` against the status and version the caller read.

    Raises RideNotAvailableError when the persisted row no longer matches the
    snapshot. On success the snapshot is refreshed in place and returned.
    """
    previous_status = snapshot.status
    payload = dict(values or {})
    payload.update(
        status=target,
        updated_at=timezone.now(),
        version=F("version") + 1,
    )

    updated = Ride.objects.filter(
        pk=snapshot.pk,
        status=previous_status,
        version=snapshot.version,
    ).update(**payload)

    if not updated:
        logger.info(
            "Conditional write lost for ride %s (%s -> %s, version %s)",
            snapshot.ride_id, previous_status, target, snapshot.version,
        )
        raise RideNotAvailableError()

    snapshot.refresh_from_db()

    ride_id, status, version = snapshot.ride_id, snapshot.status, snapshot.version
    transaction.on_commit(
        lambda: _after_commit(ride_id, status, previous_status, version)
    )
    return snapshot


def transition_ride(
    ride_id: str,
    target: str,
    *,
    expected: Optional[Iterable[str]] = None,
    guard: Optional[Callable[[Ride], None]] = None,
    changes: Changes = None,
    unavailable_message: Optional[str] = None,
) -> TransitionResult:
    """
    Move a ride to ``target`` inside one transaction.

    Args:
        ride_id: Public ride id
        target: New status
        expected: Statuses the ride must currently be in (defaults to every
            legal source of ``target``)
        guard: Called with the locked ride; raises to abort
        changes: Extra field values, or a callable building them from the locked ride
        unavailable_message: Message used when the pre-state does not match

    Returns:
        TransitionResult with the refreshed ride and its previous status
    """
    expected = frozenset(expected) if expected is not None else sources_for(target)

    with transaction.atomic():
        ride = lock_ride(ride_id)

        if ride.status not in expected:
            raise RideNotAvailableError(
                unavailable_message or f"This ride is no longer available (status: {ride.status})."
            )
        assert_transition(ride.status, target)

        if guard is not None:
            guard(ride)

        values = changes(ride) if callable(changes) else dict(changes or {})
        previous_status = ride.status
        apply_transition(ride, target, values)

    logger.info("Ride %s: %s -> %s", ride.ride_id, previous_status, ride.status)
    return TransitionResult(ride=ride, previous_status=previous_status)


def _after_commit(ride_id: str, status: str, previous_status: str, version: int):
    from realtime.notifications import publish_ride_update

    try:
        publish_ride_update(ride_id, status, previous_status, version)
    except Exception:
        logger.exception("Failed to publish update for ride %s", ride_id)

    if status in DRIVER_DROPOUT_STATUSES:
        from rides.tasks import handle_ride_status_change_task

        # Rides left behind here are picked up by sweep_stranded_rides.
        try:
            handle_ride_status_change_task.delay(ride_id, status, previous_status)
        except Exception:
            logger.exception("Failed to queue reassignment for ride %s", ride_id)
