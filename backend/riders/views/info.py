from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from services.matching import find_nearby_drivers_for_rider

from ..permissions import IsRider
from ..serializers import RequestLocationSerializer
from ..services import info_services


class RiderProfileView(APIView):
    """
    GET  -> Retrieve authenticated rider profile
    POST -> Partially update rider profile
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        return Response(info_services.get_rider_profile(request.user))

    def post(self, request):
        return Response(info_services.update_rider_profile(request.user, request.data))


class RiderNearbyDriversView(APIView):
    """
    POST: Returns drivers a rider may choose around a pickup point.

    An empty list comes back with ``reason: "no_drivers_nearby"`` and a 200.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        loc_ser = RequestLocationSerializer(data=request.data)
        loc_ser.is_valid(raise_exception=True)
        data = loc_ser.validated_data

        result = find_nearby_drivers_for_rider(
            data["latitude"],
            data["longitude"],
            exclude=data["exclude"],
            radius_meters=data.get("radius"),
        )
        return Response(result.as_dict())


class RiderRideHistoryView(APIView):
    """
    GET: Retrieve rider ride history (completed + cancelled)
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        history = info_services.get_rider_ride_history(request.user)
        return Response({"count": len(history), "rides": history})
