"""
Driver-side ride feed.

Surfaces pending rides near a driver:
    - only rides that are unbound or bound to this driver
    - never rides that already excluded this driver
    - within RIDE_SEARCH_RADIUS_METERS of the driver, closest first
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from django.conf import settings
from django.db.models import Q

from common.utils import Coordinate, coerce_coordinate, filter_within_radius
from rides.models import Ride
from services.ride_management.exceptions import RideValidationError

logger = logging.getLogger(__name__)


@dataclass
class NearbyRide:
    ride: Ride
    distance_meters: float


def pickup_coordinate(ride: Ride) -> Optional[Coordinate]:
    return coerce_coordinate({
        "latitude": ride.pickup_latitude,
        "longitude": ride.pickup_longitude,
        "address": ride.pickup_address,
    })


def is_visible_to_driver(ride: Ride, driver_id: int) -> bool:
    """A pending ride is visible unless it is bound elsewhere or excluded this driver."""
    if ride.status != Ride.STATUS_PENDING:
        return False
    if ride.driver_id is not None and ride.driver_id != driver_id:
        return False
    return driver_id not in (ride.previous_drivers or [])


def find_nearby_rides_for_driver(driver, latitude, longitude, radius_meters: Optional[float] = None) -> List[NearbyRide]:
    """
    Return pending rides around the driver's position.

    Args:
        driver: User model instance (driver)
        latitude: Driver latitude
        longitude: Driver longitude
        radius_meters: Override for RIDE_SEARCH_RADIUS_METERS

    Returns:
        NearbyRide list sorted by ascending distance, one entry per ride id
    """
    origin = coerce_coordinate({"latitude": latitude, "longitude": longitude})
    if origin is None:
        raise RideValidationError("A valid driver location is required.")

    radius = radius_meters if radius_meters is not None else settings.RIDE_SEARCH_RADIUS_METERS

    pending = (
        Ride.objects.filter(status=Ride.STATUS_PENDING)
        .filter(Q(driver__isnull=True) | Q(driver=driver))
        .select_related("rider")
    )

    # The feed may see the same ride twice within one refresh; keep the first.
    unique: Dict[str, Ride] = {}
    for ride in pending:
        if is_visible_to_driver(ride, driver.id):
            unique.setdefault(ride.ride_id, ride)

    matches = filter_within_radius(origin, unique.values(), radius, location=pickup_coordinate)

    logger.debug(
        "Driver %s feed: %d of %d pending rides within %sm",
        driver.id, len(matches), len(unique), radius,
    )
    return [NearbyRide(ride=ride, distance_meters=distance) for ride, distance in matches]
