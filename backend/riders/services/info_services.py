# riders/services/info_services.py

from rides.models import Ride
from rides.serializers import RideSerializer
from services.ride_management import state_machine as sm


def get_rider_profile(user):
    """Return serialized rider profile data."""
    from accounts.serializers import UserSerializer
    return UserSerializer(user).data


def update_rider_profile(user, data):
    """Update rider profile with partial data."""
    from accounts.serializers import UserSerializer
    ser = UserSerializer(user, data=data, partial=True)
    ser.is_valid(raise_exception=True)
    ser.save()
    return ser.data


def get_rider_ride_history(user, limit=20):
    """Return list of finished rides for the rider, newest first."""
    qs = (
        Ride.objects.filter(rider=user, status__in=sm.TERMINAL_STATUSES)
        .select_related("driver__driver_profile")
        .order_by("-created_at")[:limit]
    )
    return RideSerializer(qs, many=True).data
