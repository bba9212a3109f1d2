from rest_framework import serializers
from django.contrib.auth import get_user_model

User = get_user_model()


class RiderBasicSerializer(serializers.ModelSerializer):
    """
    Basic rider representation used inside ride responses.
    """
    class Meta:
        model = User
        fields = ['id', 'username', 'phone_number']


class RequestLocationSerializer(serializers.Serializer):
    """
    Validates the pickup point a rider searches drivers around.

    Expected body:
    {
        "latitude": <float>,
        "longitude": <float>,
        "radius": <meters, optional>,
        "exclude": [<driver id>, ...]   (optional)
    }
    """

    latitude = serializers.DecimalField(
        max_digits=9,
        decimal_places=6,
        required=True,
        min_value=-90,
        max_value=90,
        help_text="Latitude between -90 and 90 degrees."
    )

    longitude = serializers.DecimalField(
        max_digits=9,
        decimal_places=6,
        required=True,
        min_value=-180,
        max_value=180,
        help_text="Longitude between -180 and 180 degrees."
    )

    radius = serializers.IntegerField(required=False, min_value=1, max_value=100000)
    exclude = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)
