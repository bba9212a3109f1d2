"""
Expiry of rides stuck in ``pending``.

A pending ride bound to a driver who never answers is declined on that
driver's behalf and flows into reassignment. An unbound pending ride is
cancelled by the system.
"""

from datetime import timedelta
from typing import Optional, Tuple

from django.conf import settings
from django.db import close_old_connections
from django.utils import timezone

from rides.models import Ride
from services.ride_management.exceptions import RideNotAvailableError, RideNotFoundError
from services.ride_management.store import transition_ride


def pending_since(ride: Ride):
    return ride.reassigned_at or ride.created_at


def expire_pending_ride(ride_id: str, version: Optional[int] = None,
                        timeout_seconds: Optional[int] = None) -> bool:
    """
    Expire one pending ride if it has waited at least ``timeout_seconds``.

    ``version`` pins the expiry to the assignment it was scheduled for; a ride
    that moved on since then is left alone.
    """
    timeout = timeout_seconds if timeout_seconds is not None else settings.RIDE_PENDING_TIMEOUT_SECONDS
    if not timeout:
        return False

    ride = Ride.objects.filter(ride_id=ride_id).first()
    if ride is None or ride.status != Ride.STATUS_PENDING:
        return False
    if version is not None and ride.version != version:
        return False
    if timezone.now() - pending_since(ride) < timedelta(seconds=timeout):
        return False

    now = timezone.now()
    try:
        if ride.driver_id:
            transition_ride(
                ride_id,
                Ride.STATUS_DECLINED,
                expected={Ride.STATUS_PENDING},
                changes=lambda locked: {"declined_by_id": locked.driver_id, "declined_at": now},
            )
        else:
            transition_ride(
                ride_id,
                Ride.STATUS_CANCELLED,
                expected={Ride.STATUS_PENDING},
                changes={
                    "cancelled_by": "system",
                    "cancelled_at": now,
                    "cancellation_reason": "No driver accepted the ride in time.",
                },
            )
    except (RideNotAvailableError, RideNotFoundError):
        return False
    return True


def expire_stale_pending_rides(timeout_seconds: Optional[int] = None) -> Tuple[int, int]:
    """
    Sweep every pending ride older than the timeout.

    Returns a tuple of (declined_count, cancelled_count).
    """
    timeout = timeout_seconds if timeout_seconds is not None else settings.RIDE_PENDING_TIMEOUT_SECONDS
    if not timeout:
        return 0, 0
    cutoff = timezone.now() - timedelta(seconds=timeout)

    stale = Ride.objects.filter(status=Ride.STATUS_PENDING, created_at__lt=cutoff).order_by("created_at")

    declined = cancelled = 0
    for ride in stale:
        bound = ride.driver_id is not None
        if expire_pending_ride(ride.ride_id, timeout_seconds=timeout):
            if bound:
                declined += 1
            else:
                cancelled += 1

    # Close stale DB connections for long-running workers
    close_old_connections()
    return declined, cancelled
