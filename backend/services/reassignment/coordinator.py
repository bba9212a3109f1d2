"""
Reassignment coordinator.

Reacts to a driver dropping out of a ride (decline, driver cancellation,
acceptance timeout): the driver joins the ride's exclusion list, the ride
moves to ``needs_reassignment`` and the rider is asked to retry or cancel.
Retrying re-runs the driver search with the accumulated exclusions;
picking a new driver re-enters the ride into ``pending``.
"""

import logging
from datetime import timedelta
from typing import Iterable, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from rides.models import Ride
from services.matching import DriverSearchResult, find_nearby_drivers_for_rider
from services.ride_management import state_machine as sm
from services.ride_management.exceptions import RideNotAvailableError
from services.ride_management.ride_lifecycle import (
    RideResult,
    get_eligible_driver,
    notify_after_commit,
    require_rider,
    schedule_pending_timeout,
)
from services.ride_management.store import get_ride, transition_ride

logger = logging.getLogger(__name__)


def _with_excluded(previous_drivers, driver_id: Optional[int]) -> list:
    excluded = list(previous_drivers or [])
    if driver_id is not None and driver_id not in excluded:
        excluded.append(driver_id)
    return excluded


def handle_status_change(ride_id: str, status: str, previous_status: Optional[str]) -> bool:
    """
    Edge-triggered handler for ride status updates.

    Acts only when a ride enters declined/cancelled_by_driver from some other
    status. Replaying the same update is a no-op: the conditional transition
    below finds the ride already in ``needs_reassignment``.

    Returns:
        True if the ride was flagged for reassignment, False otherwise
    """
    if status not in sm.DRIVER_DROPOUT_STATUSES:
        return False
    if previous_status in sm.DRIVER_DROPOUT_STATUSES:
        return False

    return mark_needs_reassignment(ride_id)


def mark_needs_reassignment(ride_id: str) -> bool:
    def changes(ride: Ride):
        departing = ride.driver_id or ride.declined_by_id
        return {
            "previous_drivers": _with_excluded(ride.previous_drivers, departing),
            "last_failed_driver_id": departing,
            "driver": None,
        }

    try:
        result = transition_ride(
            ride_id,
            Ride.STATUS_NEEDS_REASSIGNMENT,
            expected=sm.DRIVER_DROPOUT_STATUSES,
            changes=changes,
        )
    except RideNotAvailableError:
        logger.info("Ride %s already handled; skipping reassignment", ride_id)
        return False

    ride = result.ride
    logger.info(
        "Ride %s needs reassignment (excluded drivers: %s)",
        ride.ride_id, ride.previous_drivers,
    )

    from realtime.notifications import notify_rider_event
    notify_after_commit(
        notify_rider_event,
        "reassignment_needed",
        ride,
        "Your driver is no longer available. Find another driver or cancel the ride.",
        extra={"options": ["retry", "cancel"]},
    )
    return True


def sweep_stranded_rides(grace_seconds: Optional[int] = None) -> int:
    """
    Flag rides still sitting in declined/cancelled_by_driver.

    Normally the post-commit task moves them on within moments; a ride left
    there longer than ``grace_seconds`` lost that hand-off.

    Returns the number of rides flagged for reassignment.
    """
    grace = grace_seconds if grace_seconds is not None else settings.RIDE_REASSIGNMENT_GRACE_SECONDS
    cutoff = timezone.now() - timedelta(seconds=grace)

    stranded = Ride.objects.filter(
        status__in=sm.DRIVER_DROPOUT_STATUSES,
        updated_at__lte=cutoff,
    ).values_list("ride_id", flat=True)

    flagged = 0
    for ride_id in list(stranded):
        if mark_needs_reassignment(ride_id):
            flagged += 1
    if flagged:
        logger.warning("Recovered %d ride(s) stuck after a driver dropout", flagged)
    return flagged


def retry_matching(rider, ride_id: str, exclude: Iterable[int] = ()) -> DriverSearchResult:
    """Search drivers again for a ride, skipping every driver already tried."""
    require_rider(rider)
    ride = get_ride(ride_id, rider=rider)
    if ride.status in sm.DRIVER_DROPOUT_STATUSES:
        # The rider got here before the coordinator did.
        mark_needs_reassignment(ride_id)
        ride = get_ride(ride_id, rider=rider)
    if ride.status not in (Ride.STATUS_NEEDS_REASSIGNMENT, Ride.STATUS_PENDING):
        raise RideNotAvailableError(f"This ride cannot be rematched (status: {ride.status}).")

    return find_nearby_drivers_for_rider(
        ride.pickup_latitude,
        ride.pickup_longitude,
        exclude=exclude,
        ride=ride,
    )


@transaction.atomic
def reassign_ride(rider, ride_id: str, driver_id: int) -> RideResult:
    """
    Re-enter a ride into ``pending`` bound to a newly chosen driver.

    Keeps ``created_at``, bumps ``reassignment_count``, stamps
    ``reassigned_at`` and clears what the failed assignment left behind.
    """
    require_rider(rider)
    ride = get_ride(ride_id, rider=rider)
    profile = get_eligible_driver(driver_id, ride)

    def guard(locked: Ride):
        if driver_id in (locked.previous_drivers or []):
            raise RideNotAvailableError("This driver already passed on this ride.")

    result = transition_ride(
        ride_id,
        Ride.STATUS_PENDING,
        expected={Ride.STATUS_NEEDS_REASSIGNMENT},
        guard=guard,
        changes=lambda locked: {
            "driver": profile.user,
            "reassignment_count": locked.reassignment_count + 1,
            "reassigned_at": timezone.now(),
            "cancelled_at": None,
            "cancelled_by": None,
            "cancellation_reason": None,
            "declined_at": None,
            "declined_by": None,
            "accepted_at": None,
        },
        unavailable_message="This ride is not waiting for a new driver.",
    )
    ride = result.ride
    schedule_pending_timeout(ride)

    from realtime.notifications import notify_driver_event
    notify_after_commit(
        notify_driver_event, "ride_requested", ride, driver_id, "You have a new ride request.",
    )

    logger.info(
        "Ride %s reassigned to driver %s (attempt %s)",
        ride.ride_id, driver_id, ride.reassignment_count,
    )
    return RideResult(success=True, ride=ride, message="Waiting for the new driver to accept.")
