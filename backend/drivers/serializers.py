from decimal import Decimal

from rest_framework import serializers
from drivers.models import Driver, DriverLocation


class DriverLocationSerializer(serializers.ModelSerializer):
    class Meta:
        model = DriverLocation
        fields = ["latitude", "longitude", "heading", "speed", "accuracy", "updated_at"]
        read_only_fields = fields


class DriverSerializer(serializers.ModelSerializer):
    """
    Driver record as seen by the driver app
    """
    username = serializers.CharField(source="user.username", read_only=True)
    location = DriverLocationSerializer(read_only=True)

    class Meta:
        model = Driver
        fields = [
            "id",
            "username",
            "name",
            "phone",
            "status",
            "is_approved",
            "location",
        ]
        read_only_fields = ["id", "is_approved"]


class DriverBasicSerializer(serializers.ModelSerializer):
    """
    Lite version of driver info embedded in course payloads.
    """
    class Meta:
        model = Driver
        fields = ["id", "name", "phone"]


class DriverStatusSerializer(serializers.Serializer):
    """
    Serializer for toggling auto-dispatch availability (active/inactive).
    """
    status = serializers.ChoiceField(choices=["active", "inactive"])
    fcm_token = serializers.CharField(required=False, allow_null=True, allow_blank=True, max_length=255)


class LocationUpdateSerializer(serializers.Serializer):
    """
    Serializer for one GPS sample from the driver app.
    """
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6, coerce_to_string=False,
                                        min_value=Decimal("-90"), max_value=Decimal("90"))
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6, coerce_to_string=False,
                                         min_value=Decimal("-180"), max_value=Decimal("180"))
    heading = serializers.FloatField(required=False, allow_null=True)
    speed = serializers.FloatField(required=False, allow_null=True)
    accuracy = serializers.FloatField(required=False, allow_null=True)


class SosSerializer(serializers.Serializer):
    course_id = serializers.IntegerField(required=False, allow_null=True)
    latitude = serializers.FloatField(required=False, allow_null=True)
    longitude = serializers.FloatField(required=False, allow_null=True)
    message = serializers.CharField(required=False, allow_blank=True, max_length=500)
