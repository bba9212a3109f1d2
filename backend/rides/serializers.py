from rest_framework import serializers

from common.utils import coerce_coordinate
from drivers.models import DriverProfile
from drivers.serializers import DriverBasicSerializer
from riders.serializers import RiderBasicSerializer
from .models import Ride


def _point(latitude, longitude, address=""):
    if latitude is None or longitude is None:
        return None
    return {"latitude": float(latitude), "longitude": float(longitude), "address": address or ""}


class RideSerializer(serializers.ModelSerializer):
    """Full ride record as seen by riders, drivers and live-update subscribers"""
    rider = RiderBasicSerializer(read_only=True)
    driver = serializers.SerializerMethodField()
    pickup = serializers.SerializerMethodField()
    dropoff = serializers.SerializerMethodField()
    last_failed_driver_id = serializers.IntegerField(read_only=True)

    class Meta:
        model = Ride
        fields = [
            'ride_id', 'status', 'rider', 'driver', 'pickup', 'dropoff',
            'price', 'distance_km', 'estimated_minutes', 'route_polyline',
            'transport_class', 'payment_method',
            'previous_drivers', 'last_failed_driver_id', 'reassignment_count', 'version',
            'created_at', 'updated_at', 'accepted_at', 'start_time', 'end_time',
            'cancelled_at', 'cancelled_by', 'cancellation_reason', 'declined_at', 'reassigned_at',
            'trip_distance_km', 'fare', 'rating', 'rating_comment',
        ]

    def get_driver(self, obj):
        if obj.driver_id is None:
            return None
        try:
            profile = obj.driver.driver_profile
        except DriverProfile.DoesNotExist:
            return {"driver_id": obj.driver_id, "username": obj.driver.username}
        return DriverBasicSerializer(profile).data

    def get_pickup(self, obj):
        return _point(obj.pickup_latitude, obj.pickup_longitude, obj.pickup_address)

    def get_dropoff(self, obj):
        return _point(obj.dropoff_latitude, obj.dropoff_longitude, obj.dropoff_address)


class TripEndpointsSerializer(serializers.Serializer):
    """
    Accepts pickup/dropoff in any of the shapes clients send:

        {"pickup": {"latitude": .., "longitude": .., "address": ..}}
        {"pickupLocation": {...}}
        {"pickup_latitude": .., "pickup_longitude": .., "pickup_address": ..}

    and normalizes them into ``pickup`` / ``dropoff`` Coordinates.
    """
    pickup = serializers.JSONField(required=False)
    pickupLocation = serializers.JSONField(required=False)
    pickup_latitude = serializers.FloatField(required=False)
    pickup_longitude = serializers.FloatField(required=False)
    pickup_address = serializers.CharField(required=False, allow_blank=True)

    dropoff = serializers.JSONField(required=False)
    dropoffLocation = serializers.JSONField(required=False)
    dropoff_latitude = serializers.FloatField(required=False)
    dropoff_longitude = serializers.FloatField(required=False)
    dropoff_address = serializers.CharField(required=False, allow_blank=True)

    transport_class = serializers.ChoiceField(choices=Ride.TRANSPORT_CHOICES, default='taxi')

    @staticmethod
    def _resolve(attrs, prefix):
        for key in (prefix, f"{prefix}Location"):
            value = attrs.pop(key, None)
            if value:
                return coerce_coordinate(value)
        flat = {
            "latitude": attrs.pop(f"{prefix}_latitude", None),
            "longitude": attrs.pop(f"{prefix}_longitude", None),
            "address": attrs.pop(f"{prefix}_address", ""),
        }
        return coerce_coordinate(flat)

    def validate(self, attrs):
        attrs = dict(attrs)
        pickup = self._resolve(attrs, "pickup")
        dropoff = self._resolve(attrs, "dropoff")
        # Drop whichever alternative shapes were not used
        for prefix in ("pickup", "dropoff"):
            for suffix in ("Location", "_latitude", "_longitude", "_address"):
                attrs.pop(f"{prefix}{suffix}", None)

        errors = {}
        if pickup is None:
            errors["pickup"] = "A valid pickup location is required."
        if dropoff is None:
            errors["dropoff"] = "A valid dropoff location is required."
        if errors:
            raise serializers.ValidationError(errors)

        attrs["pickup"] = pickup
        attrs["dropoff"] = dropoff
        return attrs


class RideQuoteSerializer(TripEndpointsSerializer):
    """Serializer for pricing a trip before booking"""


class RideCreateSerializer(TripEndpointsSerializer):
    """Serializer for creating ride requests"""
    # Checked by the service so the rider gets a readable message
    payment_method = serializers.CharField(required=False, allow_blank=True, default='')
    ride_id = serializers.CharField(required=False, max_length=64)
    driver_id = serializers.IntegerField(required=False, allow_null=True)

    def validate_payment_method(self, value):
        if value and value not in dict(Ride.PAYMENT_CHOICES):
            raise serializers.ValidationError(f"Unsupported payment method '{value}'.")
        return value


class RideCancelSerializer(serializers.Serializer):
    """Serializer for ride cancellation"""
    reason = serializers.CharField(required=False, allow_blank=True)


class RideLocationSerializer(serializers.Serializer):
    """Driver position stamped when a ride starts or completes"""
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-90, max_value=90)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, min_value=-180, max_value=180)


class DriverChoiceSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()


class RetryMatchingSerializer(serializers.Serializer):
    exclude = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)


class RideRatingSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    comment = serializers.CharField(required=False, allow_blank=True, default='')


class GeocodeQuerySerializer(serializers.Serializer):
    q = serializers.CharField(min_length=2)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=10, default=5)
