from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from drivers.models import Driver
from drivers.serializers import (
    DriverSerializer,
    DriverStatusSerializer,
    LocationUpdateSerializer,
    SosSerializer,
)

from drivers import services

# Utility: Ensure request.user is a driver
def require_driver(user):
    if user.role != "driver":
        return False, Response({"success": False, "error": "not_authorized",
                                "message": "Only drivers allowed"}, status=403)
    try:
        driver = user.driver
        return True, driver
    except Driver.DoesNotExist:
        return False, Response({"success": False, "error": "not_found",
                                "message": "Driver record not found"}, status=404)


class DriverProfileView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver  # Response object

        return Response(DriverSerializer(driver).data)


class DriverStatusView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver

        return Response({"status": driver.status})

    def put(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver

        serializer = DriverStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        new_status = serializer.validated_data["status"]

        services.update_driver_status(
            driver, new_status, fcm_token=serializer.validated_data.get("fcm_token")
        )

        return Response({
            "message": f"Status updated to {new_status}",
            "status": new_status
        })


class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver

        location = getattr(driver, "location", None)
        if location is None:
            return Response({"latitude": None, "longitude": None, "last_updated": None})

        return Response({
            "latitude": float(location.latitude),
            "longitude": float(location.longitude),
            "last_updated": location.updated_at,
        })

    def post(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver

        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        services.record_driver_location(
            driver,
            data["latitude"],
            data["longitude"],
            heading=data.get("heading"),
            speed=data.get("speed"),
            accuracy=data.get("accuracy"),
        )

        return Response({"success": True})


class DriverSosView(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ok, driver = require_driver(request.user)
        if ok is False:
            return driver

        serializer = SosSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        notification = services.send_sos(driver, **serializer.validated_data)

        return Response({"success": True, "notification_id": notification.id}, status=201)
