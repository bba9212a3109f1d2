# riders/views/rides.py

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from rides.serializers import (
    DriverChoiceSerializer,
    GeocodeQuerySerializer,
    RetryMatchingSerializer,
    RideCancelSerializer,
    RideCreateSerializer,
    RideQuoteSerializer,
    RideRatingSerializer,
    RideSerializer,
)
from services import pricing
from services.providers import get_geocoding_client
from services.reassignment import reassign_ride, retry_matching
from services.ride_management import ride_lifecycle

from ..permissions import IsRider


STATUS_MESSAGES = {
    "pending": "Waiting for a driver to accept...",
    "accepted": "Driver is on the way!",
    "in_progress": "Enjoy your trip.",
    "declined": "Your driver declined. Looking for options...",
    "cancelled_by_driver": "Your driver cancelled. Looking for options...",
    "needs_reassignment": "Your driver is no longer available. Choose another driver or cancel.",
}


class RiderQuoteView(APIView):
    """
    POST: Price a trip before booking.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        ser = RideQuoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        quote = pricing.quote_trip(data["pickup"], data["dropoff"], data["transport_class"])
        return Response({
            "transport_class": quote.transport_class,
            "distance_km": str(quote.distance_km),
            "estimated_minutes": quote.estimated_minutes,
            "price": str(quote.price),
            "route_polyline": quote.polyline,
        })


class RiderGeocodeView(APIView):
    """
    GET: Look up addresses for the pickup/dropoff search box. ?q=<text>
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        ser = GeocodeQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)

        results = get_geocoding_client().geocode(ser.validated_data["q"], limit=ser.validated_data["limit"])
        return Response({
            "count": len(results),
            "results": [
                {"address": r.address, "latitude": r.latitude, "longitude": r.longitude}
                for r in results
            ],
        })


class RiderCreateRideRequestView(APIView):
    """
    POST: Rider creates a ride request, optionally naming the chosen driver.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        ser = RideCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data

        result = ride_lifecycle.create_ride_request(
            rider=request.user,
            pickup=data["pickup"],
            dropoff=data["dropoff"],
            transport_class=data["transport_class"],
            payment_method=data["payment_method"],
            ride_id=data.get("ride_id"),
            driver_id=data.get("driver_id"),
        )

        return Response({
            "success": True,
            "message": result.message,
            "ride": RideSerializer(result.ride).data,
        }, status=status.HTTP_201_CREATED)


class RiderCurrentRideView(APIView):
    """
    GET: Rider polling endpoint to get current ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        ride = ride_lifecycle.get_current_rider_ride(request.user)

        if not ride:
            return Response({
                "has_active_ride": False,
                "message": "No active ride found"
            })

        return Response({
            "has_active_ride": True,
            "ride": RideSerializer(ride).data,
            "status": ride.status,
            "driver_assigned": ride.status in ("accepted", "in_progress"),
            "message": STATUS_MESSAGES.get(ride.status, ""),
        })


class RiderCancelRideView(APIView):
    """
    POST: Rider cancels a ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        ser = RideCancelSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = ride_lifecycle.cancel_ride_by_rider(
            request.user,
            ride_id,
            ser.validated_data.get("reason") or "No reason provided",
        )

        return Response({
            "success": True,
            "message": result.message,
            "ride_id": result.ride.ride_id,
            "was_assigned": result.extra["was_assigned"],
            "cancelled_at": result.ride.cancelled_at,
        })


class RiderSelectDriverView(APIView):
    """
    POST: Request a specific driver for a pending ride that has none yet.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        ser = DriverChoiceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = ride_lifecycle.select_driver(request.user, ride_id, ser.validated_data["driver_id"])
        return Response({
            "success": True,
            "message": result.message,
            "ride": RideSerializer(result.ride).data,
        })


class RiderRetryMatchingView(APIView):
    """
    POST: Search drivers again for a ride whose driver dropped out.
    Drivers who already passed on the ride never come back.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        ser = RetryMatchingSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = retry_matching(request.user, ride_id, exclude=ser.validated_data["exclude"])
        return Response({"ride_id": ride_id, **result.as_dict()})


class RiderReassignRideView(APIView):
    """
    POST: Send a ride waiting for reassignment to a newly chosen driver.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        ser = DriverChoiceSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = reassign_ride(request.user, ride_id, ser.validated_data["driver_id"])
        return Response({
            "success": True,
            "message": result.message,
            "ride": RideSerializer(result.ride).data,
        })


class RiderRateRideView(APIView):
    """
    POST: Rate the driver of a completed ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        ser = RideRatingSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        result = ride_lifecycle.rate_ride(
            request.user, ride_id, ser.validated_data["rating"], ser.validated_data["comment"],
        )
        return Response({
            "success": True,
            "message": result.message,
            "ride": RideSerializer(result.ride).data,
        })
