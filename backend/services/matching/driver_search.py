"""
Rider-side driver search.

Lists drivers a rider may choose for a pickup point, skipping drivers that
are unavailable, already own an active ride, or were excluded for this ride.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from django.conf import settings

from common.utils import coerce_coordinate, filter_within_radius
from drivers.models import DriverProfile
from rides.models import Ride
from services.ride_management.exceptions import RideValidationError

logger = logging.getLogger(__name__)

NO_DRIVERS_NEARBY = "no_drivers_nearby"


@dataclass
class DriverCandidate:
    driver_id: int
    username: str
    vehicle_number: str
    vehicle_model: str
    rating: float
    latitude: float
    longitude: float
    distance_meters: float

    def as_dict(self) -> Dict[str, Any]:
        return {
            "driver_id": self.driver_id,
            "username": self.username,
            "vehicle_number": self.vehicle_number,
            "vehicle_model": self.vehicle_model,
            "rating": self.rating,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "distance_meters": round(self.distance_meters, 2),
        }


@dataclass
class DriverSearchResult:
    drivers: List[DriverCandidate]
    radius_meters: float
    excluded: Set[int] = field(default_factory=set)

    @property
    def is_empty(self) -> bool:
        return not self.drivers

    @property
    def reason(self) -> Optional[str]:
        return NO_DRIVERS_NEARBY if self.is_empty else None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.drivers),
            "drivers": [candidate.as_dict() for candidate in self.drivers],
            "search_radius_meters": self.radius_meters,
            "excluded_driver_ids": sorted(self.excluded),
            "reason": self.reason,
        }


def collect_exclusions(ride: Optional[Ride] = None, exclude: Iterable[int] = ()) -> Set[int]:
    """Explicit exclusions plus the ride's previous drivers and its last failed driver."""
    excluded = {int(driver_id) for driver_id in exclude}
    if ride is not None:
        excluded.update(int(driver_id) for driver_id in (ride.previous_drivers or []))
        if ride.last_failed_driver_id:
            excluded.add(ride.last_failed_driver_id)
    return excluded


def drivers_with_active_rides() -> Set[int]:
    return set(
        Ride.objects.filter(status__in=Ride.ACTIVE_STATUSES, driver__isnull=False)
        .values_list("driver_id", flat=True)
    )


def find_nearby_drivers_for_rider(
    latitude,
    longitude,
    exclude: Iterable[int] = (),
    ride: Optional[Ride] = None,
    radius_meters: Optional[float] = None,
) -> DriverSearchResult:
    """
    Find available drivers near a pickup point.

    Args:
        latitude: Pickup latitude
        longitude: Pickup longitude
        exclude: Driver ids the caller wants skipped
        ride: Ride being (re)matched; its exclusion history is applied
        radius_meters: Override for DRIVER_SEARCH_RADIUS_METERS

    Returns:
        DriverSearchResult; an empty result is a normal outcome
    """
    origin = coerce_coordinate({"latitude": latitude, "longitude": longitude})
    if origin is None:
        raise RideValidationError("A valid pickup location is required.")

    radius = radius_meters if radius_meters is not None else settings.DRIVER_SEARCH_RADIUS_METERS
    excluded = collect_exclusions(ride, exclude)
    busy = drivers_with_active_rides()

    profiles = (
        DriverProfile.objects.select_related("user")
        .filter(
            status=DriverProfile.STATUS_AVAILABLE,
            current_latitude__isnull=False,
            current_longitude__isnull=False,
        )
        .exclude(user_id__in=excluded | busy)
    )

    matches = filter_within_radius(
        origin,
        profiles,
        radius,
        location=lambda p: {"latitude": p.current_latitude, "longitude": p.current_longitude},
    )

    candidates = [
        DriverCandidate(
            driver_id=profile.user_id,
            username=profile.user.username,
            vehicle_number=profile.vehicle_number,
            vehicle_model=profile.vehicle_model,
            rating=profile.average_rating,
            latitude=float(profile.current_latitude),
            longitude=float(profile.current_longitude),
            distance_meters=distance,
        )
        for profile, distance in matches
    ]

    logger.info(
        "Driver search at (%s, %s): %d candidates within %sm, %d excluded",
        origin.latitude, origin.longitude, len(candidates), radius, len(excluded),
    )
    return DriverSearchResult(drivers=candidates, radius_meters=radius, excluded=excluded)
