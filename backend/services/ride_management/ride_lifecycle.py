"""
Core ride lifecycle operations.

This module contains the business logic for moving a ride through its
states. Every status change is a conditional transaction in
``services.ride_management.store``; notifications are sent after commit.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone

from common.utils import Coordinate, calculate_distance, coerce_coordinate
from drivers.models import DriverProfile
from rides.models import ActiveRideMarker, Ride
from . import state_machine as sm
from .exceptions import (
    ActiveRideExistsError,
    DriverNotAvailableError,
    DriverNotFoundError,
    RideNotAvailableError,
    RideNotFoundError,
    RideValidationError,
    RoleMismatchError,
)
from .store import apply_transition, get_ride, lock_ride, transition_ride

logger = logging.getLogger(__name__)


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ===================== Caller checks =====================

def require_rider(user):
    if getattr(user, "role", None) != "rider":
        raise RoleMismatchError("Only riders can perform this action.")


def require_driver(user) -> DriverProfile:
    if getattr(user, "role", None) != "driver":
        raise RoleMismatchError("Only drivers can perform this action.")
    try:
        return DriverProfile.objects.get(user=user)
    except DriverProfile.DoesNotExist:
        raise DriverNotFoundError("Driver profile not found.")


def _require_bound_driver(driver):
    def guard(ride: Ride):
        if ride.driver_id != driver.id:
            raise RideNotAvailableError("This ride is not assigned to you.")
    return guard


def _run_quietly(func, *args, **kwargs):
    try:
        func(*args, **kwargs)
    except Exception:
        logger.exception("Post-commit %s failed", getattr(func, "__name__", func))


def notify_after_commit(func, *args, **kwargs):
    """Run ``func`` after commit; a failure there must not undo or fail the committed change."""
    transaction.on_commit(lambda: _run_quietly(func, *args, **kwargs))


def get_eligible_driver(driver_id: int, ride: Optional[Ride] = None) -> DriverProfile:
    """
    Resolve a driver a rider picked, rejecting excluded, unavailable or busy drivers.
    """
    try:
        profile = DriverProfile.objects.select_related("user").get(user_id=driver_id)
    except DriverProfile.DoesNotExist:
        raise DriverNotFoundError(f"Driver {driver_id} not found.")

    if ride is not None and (
        driver_id in (ride.previous_drivers or []) or driver_id == ride.last_failed_driver_id
    ):
        raise DriverNotAvailableError("This driver already passed on this ride. Please choose another driver.")
    if not profile.is_available:
        raise DriverNotAvailableError("This driver is not available right now.")
    if Ride.objects.filter(driver_id=driver_id, status__in=Ride.ACTIVE_STATUSES).exists():
        raise DriverNotAvailableError("This driver is already on another trip.")
    return profile


def schedule_pending_timeout(ride: Ride):
    """Queue expiry of a pending ride after RIDE_PENDING_TIMEOUT_SECONDS."""
    timeout = getattr(settings, "RIDE_PENDING_TIMEOUT_SECONDS", None)
    if not timeout:
        return

    from rides.tasks import expire_pending_ride_task

    # A lost countdown is covered by the periodic pending sweep.
    notify_after_commit(
        expire_pending_ride_task.apply_async, (ride.ride_id, ride.version), countdown=timeout
    )


# ===================== Rider Operations =====================

def check_active_ride(rider) -> Optional[Ride]:
    """Return the rider's unfinished ride, if any."""
    return Ride.objects.filter(
        rider=rider,
        status__in=sm.NON_TERMINAL_STATUSES,
    ).first()


def create_ride_request(
    rider,
    pickup: Coordinate,
    dropoff: Coordinate,
    transport_class: str,
    payment_method: str,
    ride_id: Optional[str] = None,
    driver_id: Optional[int] = None,
    routing_client=None,
) -> RideResult:
    """
    Create a pending ride, optionally bound to a driver the rider picked.

    The route quote is fetched before the database transaction opens; the
    rider and driver checks run again inside it.

    Args:
        rider: User model instance (rider)
        pickup: Normalized pickup coordinate
        dropoff: Normalized dropoff coordinate
        transport_class: taxi, bus or van
        payment_method: Selected payment method
        ride_id: Client-generated ride id (optional)
        driver_id: Driver chosen from the nearby-drivers list (optional)
        routing_client: Routing provider override

    Returns:
        RideResult with the created ride

    Raises:
        RideValidationError: Missing pickup/dropoff or payment selection
        ActiveRideExistsError: If rider already has an unfinished ride
    """
    require_rider(rider)

    if coerce_coordinate(pickup) is None or coerce_coordinate(dropoff) is None:
        raise RideValidationError("Pickup and dropoff locations are required.")
    if not payment_method:
        raise RideValidationError("Please select a payment method before confirming the ride.")
    if ride_id and Ride.objects.filter(ride_id=ride_id).exists():
        raise RideValidationError("A ride with this id already exists.")

    if check_active_ride(rider):
        raise ActiveRideExistsError("You already have an active ride request.")
    if driver_id is not None:
        get_eligible_driver(driver_id)

    from services.pricing import quote_trip
    quote = quote_trip(pickup, dropoff, transport_class, routing_client=routing_client)

    with transaction.atomic():
        if check_active_ride(rider):
            raise ActiveRideExistsError("You already have an active ride request.")
        driver_profile = get_eligible_driver(driver_id) if driver_id is not None else None

        fields = dict(
            rider=rider,
            driver=driver_profile.user if driver_profile else None,
            pickup_latitude=Decimal(str(round(pickup.latitude, 6))),
            pickup_longitude=Decimal(str(round(pickup.longitude, 6))),
            pickup_address=pickup.address,
            dropoff_latitude=Decimal(str(round(dropoff.latitude, 6))),
            dropoff_longitude=Decimal(str(round(dropoff.longitude, 6))),
            dropoff_address=dropoff.address,
            price=quote.price,
            distance_km=quote.distance_km,
            estimated_minutes=quote.estimated_minutes,
            route_polyline=quote.polyline,
            transport_class=transport_class,
            payment_method=payment_method,
            status=Ride.STATUS_PENDING,
        )
        if ride_id:
            fields["ride_id"] = ride_id

        try:
            with transaction.atomic():
                ride = Ride.objects.create(**fields)
        except IntegrityError:
            raise RideValidationError("A ride with this id already exists.")

        from realtime.notifications import notify_driver_event, publish_ride_update

        notify_after_commit(publish_ride_update, ride.ride_id, Ride.STATUS_PENDING, None, 0)
        schedule_pending_timeout(ride)

        if ride.driver_id:
            notify_after_commit(
                notify_driver_event, "ride_requested", ride, ride.driver_id,
                "You have a new ride request.",
            )
            message = "Waiting for the driver to accept."
        else:
            message = "Ride requested. Choose a driver nearby."

    logger.info("Ride %s created by rider %s (driver=%s)", ride.ride_id, rider.id, ride.driver_id)
    return RideResult(success=True, ride=ride, message=message)


@transaction.atomic
def select_driver(rider, ride_id: str, driver_id: int) -> RideResult:
    """Bind an unbound pending ride to the driver the rider picked."""
    require_rider(rider)
    ride = lock_ride(ride_id)

    if ride.rider_id != rider.id:
        raise RideNotFoundError("Ride not found.")
    if ride.status != Ride.STATUS_PENDING:
        raise RideNotAvailableError(f"This ride is no longer available (status: {ride.status}).")
    if ride.driver_id is not None:
        raise RideNotAvailableError("A driver has already been requested for this ride.")

    profile = get_eligible_driver(driver_id, ride)
    apply_transition(ride, Ride.STATUS_PENDING, {"driver": profile.user})

    from realtime.notifications import notify_driver_event
    notify_after_commit(
        notify_driver_event, "ride_requested", ride, driver_id, "You have a new ride request.",
    )
    return RideResult(success=True, ride=ride, message="Waiting for the driver to accept.")


@transaction.atomic
def cancel_ride_by_rider(rider, ride_id: str, reason: str = "No reason provided") -> RideResult:
    """
    Cancel a ride by its rider. Legal from every non-terminal status.

    Args:
        rider: User model instance
        ride_id: Public id of the ride to cancel
        reason: Cancellation reason

    Returns:
        RideResult with cancellation status
    """
    require_rider(rider)
    if sm.is_terminal(get_ride(ride_id, rider=rider).status):
        raise RideNotAvailableError("This ride has already finished.")

    result = transition_ride(
        ride_id,
        Ride.STATUS_CANCELLED,
        expected=sm.NON_TERMINAL_STATUSES,
        changes={
            "cancelled_by": "user",
            "cancelled_at": timezone.now(),
            "cancellation_reason": reason,
        },
        unavailable_message="This ride has already finished.",
    )
    ride = result.ride
    had_driver = ride.driver_id is not None and result.previous_status in Ride.ACTIVE_STATUSES

    ActiveRideMarker.objects.filter(ride=ride).delete()

    from realtime.notifications import notify_driver_event, notify_rider_event
    if had_driver:
        DriverProfile.objects.filter(user_id=ride.driver_id).update(status=DriverProfile.STATUS_AVAILABLE)
    if ride.driver_id:
        notify_after_commit(
            notify_driver_event, "ride_cancelled", ride, ride.driver_id, "Rider cancelled this ride.",
        )
    notify_after_commit(notify_rider_event, "ride_cancelled", ride, "Ride cancelled.")

    return RideResult(
        success=True,
        ride=ride,
        message="Ride cancelled successfully",
        extra={"was_assigned": had_driver},
    )


@transaction.atomic
def rate_ride(rider, ride_id: str, rating: int, comment: str = "") -> RideResult:
    """Rate the driver of a completed ride, once."""
    require_rider(rider)
    if not 1 <= int(rating) <= 5:
        raise RideValidationError("Rating must be between 1 and 5.")

    ride = get_ride(ride_id, rider=rider)
    updated = Ride.objects.filter(
        pk=ride.pk,
        status=Ride.STATUS_COMPLETED,
        rating__isnull=True,
    ).update(rating=rating, rating_comment=comment, updated_at=timezone.now())
    if not updated:
        raise RideNotAvailableError("Only completed, unrated rides can be rated.")

    DriverProfile.objects.filter(user_id=ride.driver_id).update(
        rating_sum=F("rating_sum") + int(rating),
        rating_count=F("rating_count") + 1,
    )
    ride.refresh_from_db()
    return RideResult(success=True, ride=ride, message="Thanks for rating your driver.")


def get_current_rider_ride(rider) -> Optional[Ride]:
    """Get rider's current unfinished ride."""
    return (
        Ride.objects.filter(rider=rider, status__in=sm.NON_TERMINAL_STATUSES)
        .select_related("driver__driver_profile")
        .first()
    )


# ===================== Driver Operations =====================

def _claim_active_marker(driver, ride: Ride):
    try:
        with transaction.atomic():
            ActiveRideMarker.objects.create(driver=driver, ride=ride)
    except IntegrityError:
        raise ActiveRideExistsError("You already have an active ride. Finish it before accepting another.")


@transaction.atomic
def accept_ride(driver, ride_id: str) -> RideResult:
    """
    Accept a pending ride. Exactly one of several racing drivers succeeds.

    Args:
        driver: User model instance (driver)
        ride_id: Public id of the ride to accept

    Returns:
        RideResult with the accepted ride

    Raises:
        ActiveRideExistsError: The driver already owns an accepted/in-progress ride
        RideNotAvailableError: The ride is no longer pending, or is bound elsewhere
    """
    profile = require_driver(driver)

    if profile.status != DriverProfile.STATUS_AVAILABLE:
        raise DriverNotAvailableError("Please set your status to available before accepting rides.")

    # Fresh pre-check for a specific message; the marker below is the hard guarantee.
    if get_current_driver_ride(driver):
        raise ActiveRideExistsError("You already have an active ride. Finish it before accepting another.")

    def guard(ride: Ride):
        if ride.driver_id is not None and ride.driver_id != driver.id:
            raise RideNotAvailableError("This ride was requested from another driver.")
        if driver.id in (ride.previous_drivers or []):
            raise RideNotAvailableError()

    result = transition_ride(
        ride_id,
        Ride.STATUS_ACCEPTED,
        expected={Ride.STATUS_PENDING},
        guard=guard,
        changes={"driver": driver, "accepted_at": timezone.now()},
        unavailable_message="This ride is no longer available.",
    )
    ride = result.ride
    _claim_active_marker(driver, ride)

    DriverProfile.objects.filter(pk=profile.pk).update(status=DriverProfile.STATUS_BUSY)

    from realtime.notifications import notify_rider_event
    notify_after_commit(
        notify_rider_event, "ride_accepted", ride,
        "Your ride has been accepted! The driver is on the way.",
    )

    return RideResult(
        success=True,
        ride=ride,
        message="Ride accepted successfully! Navigate to pickup location."
    )


@transaction.atomic
def decline_ride(driver, ride_id: str, reason: str = "") -> RideResult:
    """
    Decline a ride bound to this driver.

    A pending ride becomes ``declined``; an accepted ride is handed back as a
    driver cancellation. Both are picked up by the reassignment coordinator.
    """
    require_driver(driver)
    ride = get_ride(ride_id)

    if ride.driver_id != driver.id:
        raise RideNotAvailableError("This ride is not assigned to you.")
    if ride.status == Ride.STATUS_ACCEPTED:
        return cancel_ride_by_driver(driver, ride_id, reason or "Declined by driver")

    result = transition_ride(
        ride_id,
        Ride.STATUS_DECLINED,
        expected={Ride.STATUS_PENDING},
        guard=_require_bound_driver(driver),
        changes={"declined_by": driver, "declined_at": timezone.now()},
    )

    return RideResult(
        success=True,
        ride=result.ride,
        message="Ride declined.",
    )


@transaction.atomic
def start_ride(driver, ride_id: str, latitude, longitude) -> RideResult:
    """Start an accepted ride at the driver's live position."""
    require_driver(driver)
    position = coerce_coordinate({"latitude": latitude, "longitude": longitude})
    if position is None:
        raise RideValidationError("A valid start location is required.")

    result = transition_ride(
        ride_id,
        Ride.STATUS_IN_PROGRESS,
        expected={Ride.STATUS_ACCEPTED},
        guard=_require_bound_driver(driver),
        changes={
            "start_latitude": Decimal(str(round(position.latitude, 6))),
            "start_longitude": Decimal(str(round(position.longitude, 6))),
            "start_time": timezone.now(),
        },
        unavailable_message="Only accepted rides can be started.",
    )

    from realtime.notifications import notify_rider_event
    notify_after_commit(notify_rider_event, "ride_started", result.ride, "Your trip has started.")

    return RideResult(success=True, ride=result.ride, message="Ride started.")


def _completion_changes(latitude: float, longitude: float):
    def build(ride: Ride) -> Dict[str, Any]:
        from services.pricing import final_fare

        straight_line_km = 0.0
        if ride.start_latitude is not None and ride.start_longitude is not None:
            straight_line_km = calculate_distance(
                ride.start_latitude, ride.start_longitude, latitude, longitude
            ) / 1000
        trip_km = Decimal(str(round(max(straight_line_km, float(ride.distance_km)), 2)))

        return {
            "end_latitude": Decimal(str(round(latitude, 6))),
            "end_longitude": Decimal(str(round(longitude, 6))),
            "end_time": timezone.now(),
            "trip_distance_km": trip_km,
            "fare": final_fare(ride.transport_class, trip_km, ride.price),
        }
    return build


@transaction.atomic
def complete_ride(driver, ride_id: str, latitude, longitude) -> RideResult:
    """
    Complete a ride - called by driver when the rider reaches the destination.

    The completed record carries the final fare and trip distance used for billing.
    """
    profile = require_driver(driver)
    position = coerce_coordinate({"latitude": latitude, "longitude": longitude})
    if position is None:
        raise RideValidationError("A valid end location is required.")

    result = transition_ride(
        ride_id,
        Ride.STATUS_COMPLETED,
        expected={Ride.STATUS_IN_PROGRESS},
        guard=_require_bound_driver(driver),
        changes=_completion_changes(position.latitude, position.longitude),
        unavailable_message="Only rides in progress can be completed.",
    )
    ride = result.ride

    ActiveRideMarker.objects.filter(ride=ride).delete()
    DriverProfile.objects.filter(pk=profile.pk).update(
        status=DriverProfile.STATUS_AVAILABLE,
        completed_trips=F("completed_trips") + 1,
        total_earnings=F("total_earnings") + ride.fare,
    )

    from realtime.notifications import notify_rider_event
    notify_after_commit(
        notify_rider_event, "ride_completed", ride,
        "Your ride has been completed. Thank you for riding with us!",
    )

    return RideResult(
        success=True,
        ride=ride,
        message="Ride completed successfully",
        extra={"fare": str(ride.fare), "trip_distance_km": str(ride.trip_distance_km)},
    )


@transaction.atomic
def cancel_ride_by_driver(driver, ride_id: str, reason: str = "Cancelled by driver") -> RideResult:
    """
    Hand back an accepted ride. Unlike a rider cancellation this re-opens
    the ride for reassignment instead of ending it.
    """
    profile = require_driver(driver)

    result = transition_ride(
        ride_id,
        Ride.STATUS_CANCELLED_BY_DRIVER,
        expected={Ride.STATUS_ACCEPTED},
        guard=_require_bound_driver(driver),
        changes={
            "cancelled_by": "driver",
            "cancelled_at": timezone.now(),
            "cancellation_reason": reason,
        },
        unavailable_message="Only accepted rides can be cancelled by the driver.",
    )
    ride = result.ride

    ActiveRideMarker.objects.filter(ride=ride).delete()
    DriverProfile.objects.filter(pk=profile.pk).update(
        status=DriverProfile.STATUS_AVAILABLE,
        cancelled_trips=F("cancelled_trips") + 1,
    )

    return RideResult(success=True, ride=ride, message="Ride cancelled successfully")


def get_current_driver_ride(driver) -> Optional[Ride]:
    """Get driver's current active ride."""
    return Ride.objects.filter(
        driver=driver,
        status__in=Ride.ACTIVE_STATUSES,
    ).select_related("rider").first()
