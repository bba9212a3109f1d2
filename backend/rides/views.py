from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from .serializers import (
    RideSerializer,
    RideCancelSerializer,
    RideLocationSerializer,
)

# Import from services layer
from services.ride_management import ride_lifecycle
from services.ride_management.store import get_ride
from services.ride_management.exceptions import RideNotFoundError


def _ride_response(result, http_status=status.HTTP_200_OK):
    body = {
        'success': True,
        'ride': RideSerializer(result.ride).data,
        'message': result.message,
    }
    if result.extra:
        body.update(result.extra)
    return Response(body, status=http_status)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def get_ride_detail(request, ride_id):
    """Ride record for its rider or its current driver."""
    ride = get_ride(ride_id)
    if request.user.id not in (ride.rider_id, ride.driver_id):
        raise RideNotFoundError()
    return Response(RideSerializer(ride).data)


# ------------------ Driver ride actions -------------

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def accept_ride(request, ride_id):
    """
    Accept a pending ride.

    When several drivers race for the same ride exactly one gets 200; the
    others get 409 ``ride_not_available``.
    """
    result = ride_lifecycle.accept_ride(request.user, ride_id)
    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def decline_ride(request, ride_id):
    """Decline a ride the rider requested from this driver."""
    ser = RideCancelSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    result = ride_lifecycle.decline_ride(request.user, ride_id, ser.validated_data.get('reason', ''))
    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def start_ride(request, ride_id):
    """Driver picked up the rider. Body: {latitude, longitude}"""
    ser = RideLocationSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    result = ride_lifecycle.start_ride(
        request.user, ride_id,
        ser.validated_data['latitude'], ser.validated_data['longitude'],
    )
    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def complete_ride(request, ride_id):
    """Driver dropped the rider off. Body: {latitude, longitude}"""
    ser = RideLocationSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    result = ride_lifecycle.complete_ride(
        request.user, ride_id,
        ser.validated_data['latitude'], ser.validated_data['longitude'],
    )
    return _ride_response(result)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def driver_cancel_ride(request, ride_id):
    """
    Driver hands back an accepted ride. The rider is offered a new driver
    instead of losing the ride.
    """
    ser = RideCancelSerializer(data=request.data)
    ser.is_valid(raise_exception=True)

    result = ride_lifecycle.cancel_ride_by_driver(
        request.user, ride_id, ser.validated_data.get('reason') or 'Cancelled by driver',
    )
    return _ride_response(result)
