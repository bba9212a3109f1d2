from rest_framework import serializers
from drivers.models import DriverProfile
from accounts.serializers import UserSerializer


class DriverProfileSerializer(serializers.ModelSerializer):
    """
    Full driver profile serializer
    """
    user = UserSerializer(read_only=True)
    average_rating = serializers.FloatField(read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "id",
            "user",
            "vehicle_number",
            "vehicle_model",
            "status",
            "current_latitude",
            "current_longitude",
            "last_location_update",
            "completed_trips",
            "average_rating",
        ]
        read_only_fields = [
            "id", "status", "current_latitude", "current_longitude",
            "last_location_update", "completed_trips",
        ]


class DriverBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of driver info for ride details
    (sent to riders once a driver is bound to the ride).
    """
    driver_id = serializers.IntegerField(source="user_id", read_only=True)
    username = serializers.CharField(source="user.username", read_only=True)
    phone_number = serializers.CharField(source="user.phone_number", read_only=True)
    rating = serializers.FloatField(source="average_rating", read_only=True)

    class Meta:
        model = DriverProfile
        fields = [
            "driver_id",
            "username",
            "phone_number",
            "vehicle_number",
            "vehicle_model",
            "rating",
            "current_latitude",
            "current_longitude",
        ]


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for updating driver availability (available/offline).
    """
    status = serializers.ChoiceField(choices=[DriverProfile.STATUS_AVAILABLE, DriverProfile.STATUS_OFFLINE])


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for updating driver GPS location.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)
