"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Creating ride requests and binding a chosen driver
    - Accepting/declining rides
    - Starting and completing rides
    - Cancelling rides (rider or driver)
    - Querying ride status
"""

from .ride_lifecycle import (
    RideResult,
    create_ride_request,
    select_driver,
    accept_ride,
    decline_ride,
    start_ride,
    complete_ride,
    cancel_ride_by_rider,
    cancel_ride_by_driver,
    rate_ride,
    get_current_rider_ride,
    get_current_driver_ride,
)

from .exceptions import (
    RideServiceError,
    RideNotFoundError,
    DriverNotFoundError,
    RideNotAvailableError,
    RoleMismatchError,
    DriverNotAvailableError,
    ActiveRideExistsError,
    RideValidationError,
    InvalidTransitionError,
    ProviderUnavailableError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "create_ride_request",
    "select_driver",
    "accept_ride",
    "decline_ride",
    "start_ride",
    "complete_ride",
    "cancel_ride_by_rider",
    "cancel_ride_by_driver",
    "rate_ride",
    "get_current_rider_ride",
    "get_current_driver_ride",
    # Exceptions
    "RideServiceError",
    "RideNotFoundError",
    "DriverNotFoundError",
    "RideNotAvailableError",
    "RoleMismatchError",
    "DriverNotAvailableError",
    "ActiveRideExistsError",
    "RideValidationError",
    "InvalidTransitionError",
    "ProviderUnavailableError",
]
