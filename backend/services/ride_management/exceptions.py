"""Custom exceptions for ride management.

Every exception carries a stable ``error_code`` and a human-readable message;
clients branch on the code, users read the message.
"""

from rest_framework import status


class RideServiceError(Exception):
    """Base class for rejected ride actions."""
    error_code = "ride_error"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "The ride action could not be completed."

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class RideNotFoundError(RideServiceError):
    """Raised when a ride cannot be found."""
    error_code = "ride_not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Ride not found."


class DriverNotFoundError(RideServiceError):
    """Raised when a driver record cannot be found."""
    error_code = "driver_not_found"
    http_status = status.HTTP_404_NOT_FOUND
    default_message = "Driver profile not found."


class RideNotAvailableError(RideServiceError):
    """Raised when the persisted ride is no longer in the expected state."""
    error_code = "ride_not_available"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This ride is no longer available."


class RoleMismatchError(RideServiceError):
    """Raised when the caller's role cannot perform the action."""
    error_code = "role_mismatch"
    http_status = status.HTTP_403_FORBIDDEN
    default_message = "Your account role cannot perform this action."


class DriverNotAvailableError(RideServiceError):
    """Raised when a driver cannot take the ride."""
    error_code = "driver_not_available"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This driver is not available for this ride."


class ActiveRideExistsError(RideServiceError):
    """Raised when a user already has an active ride."""
    error_code = "active_ride_exists"
    http_status = status.HTTP_409_CONFLICT
    default_message = "You already have an active ride."


class RideValidationError(RideServiceError):
    """Raised when a ride request is rejected before any write."""
    error_code = "validation_error"
    http_status = status.HTTP_400_BAD_REQUEST
    default_message = "The ride request is invalid."


class InvalidTransitionError(RideServiceError):
    """Raised when a status change is not permitted by the state machine."""
    error_code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT
    default_message = "This ride cannot move to the requested status."


class ProviderUnavailableError(RideServiceError):
    """Raised when the routing or geocoding provider cannot be reached."""
    error_code = "provider_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "Could not reach the routing service. Please try again."
