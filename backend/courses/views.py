import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.permissions import IsDispatcher
from common.exceptions import DispatchError, AuthorizationError, NotFoundError
from common.responses import error_response
from courses.models import Course
from courses.serializers import (
    CourseSerializer,
    CourseCreateSerializer,
    CourseTransitionSerializer,
    NotifyDriversSerializer,
)
from services.course_management import (
    transition_course as apply_transition,
    create_course,
    cancel_course as apply_cancel,
    get_actor_driver,
    get_driver_courses,
)
from services.dispatch import fan_out_course

logger = logging.getLogger(__name__)


# ==================== Course list / creation ====================

@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def courses(request):
    """
    GET: courses visible to the current user.
        Drivers see their own courses plus the open pool, dispatchers see all.
    POST: create a course (dispatcher only). Fan-out runs once after commit.
    """
    if request.method == 'POST':
        return _create_course(request)

    status_filter = request.query_params.get('status')

    if getattr(request.user, 'is_dispatcher', False):
        qs = Course.objects.select_related('driver').order_by('pickup_date')
        if status_filter:
            qs = qs.filter(status=status_filter)
    else:
        try:
            driver = get_actor_driver(request.user)
        except DispatchError as exc:
            return error_response(exc)
        qs = get_driver_courses(driver, status=status_filter)

    serializer = CourseSerializer(qs, many=True)
    return Response({'count': len(serializer.data), 'courses': serializer.data})


def _create_course(request):
    serializer = CourseCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = create_course(request.user, **serializer.validated_data)
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'course': CourseSerializer(result.course).data,
    }, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def course_detail(request, course_id):
    try:
        course = Course.objects.select_related('driver').get(id=course_id)
    except Course.DoesNotExist:
        return error_response(NotFoundError(f"Course {course_id} not found"))

    if not getattr(request.user, 'is_dispatcher', False):
        try:
            driver = get_actor_driver(request.user)
        except DispatchError as exc:
            return error_response(exc)
        open_pool = course.status in Course.OPEN_STATUSES and course.driver_id is None
        if course.driver_id != driver.id and not open_pool:
            return error_response(AuthorizationError("You cannot view this course"))

    return Response(CourseSerializer(course).data)


# ==================== Driver transitions ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated])
def transition_course(request):
    """
    Apply a driver action to a course.

    POST Body:
    {
        "course_id": 12,
        "action": "accept" | "refuse" | "start" | "arrived" | "pickup" | "dropoff" | "complete",
        "expected_status": "pending"   (optional),
        "rating": 1-5, "comment": "..." (optional, complete only)
    }
    """
    serializer = CourseTransitionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    data = serializer.validated_data
    try:
        result = apply_transition(
            request.user,
            data['course_id'],
            data['action'],
            expected_status=data.get('expected_status'),
            rating=data.get('rating'),
            comment=data.get('comment'),
        )
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'course': CourseSerializer(result.course).data,
    })


# ==================== Dispatcher operations ====================

@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDispatcher])
def notify_drivers(request):
    """
    Run fan-out for an existing course and report how many drivers were notified.

    POST Body: {"courseId": 12}
    """
    serializer = NotifyDriversSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    try:
        result = fan_out_course(serializer.validated_data['courseId'])
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'notified_drivers': result.notified_drivers,
        'dispatch_mode': result.dispatch_mode,
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsDispatcher])
def cancel_course(request, course_id):
    try:
        result = apply_cancel(request.user, course_id)
    except DispatchError as exc:
        return error_response(exc)

    return Response({
        'success': True,
        'message': result.message,
        'course': CourseSerializer(result.course).data,
    })
