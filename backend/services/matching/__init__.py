"""
Dispatch matcher.

This module handles:
    - Surfacing nearby pending rides to a driver
    - Listing nearby eligible drivers for a rider
"""

from .ride_feed import NearbyRide, find_nearby_rides_for_driver, is_visible_to_driver
from .driver_search import (
    NO_DRIVERS_NEARBY,
    DriverCandidate,
    DriverSearchResult,
    collect_exclusions,
    find_nearby_drivers_for_rider,
)

__all__ = [
    "NearbyRide",
    "find_nearby_rides_for_driver",
    "is_visible_to_driver",
    "NO_DRIVERS_NEARBY",
    "DriverCandidate",
    "DriverSearchResult",
    "collect_exclusions",
    "find_nearby_drivers_for_rider",
]
