from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.permissions import IsDriver
from common.exceptions import DispatchError, NotFoundError
from common.responses import error_response
from notifications import services
from notifications.serializers import NotificationSerializer


def _request_driver(request):
    driver = getattr(request.user, "driver", None)
    if driver is None:
        raise NotFoundError("Driver record not found")
    return driver


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsDriver])
def list_notifications(request):
    """
    List the current driver's notifications, newest first.

    Query params:
        unread: "1"/"true" to return only unread entries
    """
    try:
        driver = _request_driver(request)
    except DispatchError as exc:
        return error_response(exc)

    unread_only = request.query_params.get("unread", "").lower() in ("1", "true")
    notifications = services.get_driver_notifications(driver, unread_only=unread_only)[:100]

    return Response({
        "count": len(notifications),
        "unread": services.get_driver_notifications(driver, unread_only=True).count(),
        "notifications": NotificationSerializer(notifications, many=True).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def mark_notification_read(request, notification_id):
    try:
        driver = _request_driver(request)
        notification = services.mark_read(driver, notification_id)
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        "success": True,
        "notification": NotificationSerializer(notification).data,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDriver])
def mark_all_notifications_read(request):
    try:
        driver = _request_driver(request)
    except DispatchError as exc:
        return error_response(exc)

    updated = services.mark_all_read(driver)
    return Response({"success": True, "updated": updated})
