import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from django.conf import settings
from django.db.models import Sum
from django.utils import timezone

from common.utils import calculate_distance, coerce_coordinate
from drivers.models import DriverProfile
from rides.models import Ride
from services.pricing import CENTS
from services.ride_management.exceptions import RideValidationError

logger = logging.getLogger(__name__)


# DRIVER STATUS UPDATE
def update_driver_status(profile: DriverProfile, new_status: str):
    """
    Update driver availability status.
    A driver holding an active ride stays busy until the ride ends.
    """
    if new_status not in dict(DriverProfile.STATUS_CHOICES):
        raise RideValidationError(f"Invalid driver status: {new_status}")

    if new_status != DriverProfile.STATUS_BUSY and Ride.objects.filter(
        driver_id=profile.user_id, status__in=Ride.ACTIVE_STATUSES
    ).exists():
        raise RideValidationError("Finish your current ride before changing status.")

    profile.status = new_status
    profile.save(update_fields=["status"])
    logger.info("Driver %s status -> %s", profile.user_id, new_status)
    return profile


def has_moved(profile: DriverProfile, lat, lon, threshold_meters: Optional[float] = None) -> bool:
    """True when (lat, lon) is at least the movement threshold away from the stored position."""
    if profile.current_latitude is None or profile.current_longitude is None:
        return True
    threshold = threshold_meters if threshold_meters is not None else settings.DRIVER_LOCATION_MIN_MOVE_METERS
    moved = calculate_distance(profile.current_latitude, profile.current_longitude, lat, lon)
    return moved >= threshold


def update_driver_location(profile: DriverProfile, lat, lon, threshold_meters: Optional[float] = None) -> bool:
    """
    Update driver location. Used by:
    - HTTP fallback
    - WebSocket driver location events

    Moves smaller than DRIVER_LOCATION_MIN_MOVE_METERS are ignored.

    Returns:
        True if the stored location changed, False otherwise
    """
    position = coerce_coordinate({"latitude": lat, "longitude": lon})
    if position is None:
        raise RideValidationError("A valid location is required.")

    if not has_moved(profile, position.latitude, position.longitude, threshold_meters):
        return False

    profile.current_latitude = Decimal(str(round(position.latitude, 6)))
    profile.current_longitude = Decimal(str(round(position.longitude, 6)))
    profile.last_location_update = timezone.now()
    profile.save(update_fields=["current_latitude", "current_longitude", "last_location_update"])
    return True


def driver_stats(profile: DriverProfile) -> dict:
    """Trip counters, earnings and rating summary for the driver dashboard."""
    today = timezone.localdate()
    today_earnings = (
        Ride.objects.filter(
            driver_id=profile.user_id,
            status=Ride.STATUS_COMPLETED,
            end_time__date=today,
        ).aggregate(total=Sum("fare"))["total"]
        or Decimal("0.00")
    )
    # SQLite drops trailing zeros from decimal sums
    today_earnings = Decimal(str(today_earnings)).quantize(CENTS, rounding=ROUND_HALF_UP)

    return {
        "completed_trips": profile.completed_trips,
        "cancelled_trips": profile.cancelled_trips,
        "completion_rate": profile.completion_rate,
        "total_earnings": str(profile.total_earnings),
        "today_earnings": str(today_earnings),
        "average_rating": profile.average_rating,
        "rating_count": profile.rating_count,
    }
