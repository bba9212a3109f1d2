from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.serializers import (
    DriverProfileSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
)
from rides.models import Ride
from rides.serializers import RideSerializer
from services.matching import find_nearby_rides_for_driver
from services.ride_management.ride_lifecycle import get_current_driver_ride, require_driver

from drivers import services


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = require_driver(request.user)
        serializer = DriverProfileSerializer(profile, context={"request": request})
        return Response(serializer.data)

    def post(self, request):
        profile = require_driver(request.user)
        serializer = DriverProfileSerializer(profile, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data, status=200)


#    NOTE: WS can replace this in future, but HTTP fallback remains.
class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = require_driver(request.user)
        return Response({"status": profile.status})

    def put(self, request):
        profile = require_driver(request.user)

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        services.update_driver_status(profile, new_status)

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })


#    HTTP fallback for the driver WebSocket location stream.
class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = require_driver(request.user)

        return Response({
            "latitude": float(profile.current_latitude) if profile.current_latitude is not None else None,
            "longitude": float(profile.current_longitude) if profile.current_longitude is not None else None,
            "last_updated": profile.last_location_update,
            "status": profile.status,
        })

    def post(self, request):
        profile = require_driver(request.user)

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        lat = serializer.validated_data["latitude"]
        lon = serializer.validated_data["longitude"]

        moved = services.update_driver_location(profile, lat, lon)

        return Response({
            "message": "Location updated" if moved else "Location unchanged",
            "updated": moved,
            "latitude": float(profile.current_latitude),
            "longitude": float(profile.current_longitude),
            "status": profile.status
        })


class NearbyRidesForDriverView(APIView):
    """
    POST {latitude, longitude}: pending rides this driver may accept,
    closest first, within RIDE_SEARCH_RADIUS_METERS.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        profile = require_driver(request.user)

        # If not available, return empty
        if profile.status != "available":
            return Response({
                "rides": [],
                "count": 0,
                "message": "Set status to 'available' to receive ride requests."
            })

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        nearby = find_nearby_rides_for_driver(
            request.user,
            serializer.validated_data["latitude"],
            serializer.validated_data["longitude"],
        )
        rides = []
        for item in nearby:
            data = RideSerializer(item.ride).data
            data["distance_meters"] = round(item.distance_meters, 2)
            rides.append(data)

        return Response({"rides": rides, "count": len(rides)})


class DriverCurrentRideView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        require_driver(request.user)

        ride = get_current_driver_ride(request.user)
        if not ride:
            return Response({"message": "No active ride"}, status=404)

        serializer = RideSerializer(ride, context={"request": request})
        return Response(serializer.data)


class DriverRideHistoryView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        require_driver(request.user)

        completed = Ride.objects.filter(driver=request.user, status=Ride.STATUS_COMPLETED)
        serializer = RideSerializer(completed, many=True, context={"request": request})

        return Response({"count": completed.count(), "rides": serializer.data})


class DriverStatsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        profile = require_driver(request.user)
        return Response(services.driver_stats(profile))
