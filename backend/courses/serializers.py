from rest_framework import serializers

from courses.models import Course
from drivers.serializers import DriverBasicSerializer

TRANSITION_ACTIONS = ["accept", "refuse", "start", "arrived", "pickup", "dropoff", "complete"]


class CourseSerializer(serializers.ModelSerializer):
    """Serializer for courses returned to drivers and dispatchers"""
    driver = DriverBasicSerializer(read_only=True)
    unlock_time = serializers.DateTimeField(read_only=True)

    class Meta:
        model = Course
        fields = ['id', 'client_name', 'client_phone', 'departure_location',
                  'destination_location', 'pickup_date', 'passengers_count', 'notes',
                  'status', 'dispatch_mode', 'driver', 'unlock_time',
                  'accepted_at', 'started_at', 'arrived_at', 'picked_up_at', 'dropped_off_at',
                  'completed_at', 'cancelled_at', 'rating', 'created_at']
        read_only_fields = fields


class CourseCreateSerializer(serializers.ModelSerializer):
    """Serializer for dispatcher-side course creation"""
    driver_id = serializers.IntegerField(required=False, allow_null=True)

    class Meta:
        model = Course
        fields = ['client_name', 'client_phone', 'departure_location', 'destination_location',
                  'pickup_date', 'passengers_count', 'notes', 'dispatch_mode', 'driver_id']

    def validate(self, attrs):
        if attrs.get('dispatch_mode') == 'manual' and not attrs.get('driver_id'):
            raise serializers.ValidationError(
                {'driver_id': 'Manual dispatch requires a driver.'}
            )
        return attrs


class CourseTransitionSerializer(serializers.Serializer):
    course_id = serializers.IntegerField()
    action = serializers.ChoiceField(choices=TRANSITION_ACTIONS)
    expected_status = serializers.ChoiceField(
        choices=[choice for choice, _ in Course.STATUS_CHOICES], required=False
    )
    rating = serializers.IntegerField(min_value=1, max_value=5, required=False)
    comment = serializers.CharField(required=False, allow_blank=True, max_length=1000)

    def validate(self, attrs):
        if attrs.get('action') != 'complete' and ('rating' in attrs or attrs.get('comment')):
            raise serializers.ValidationError('rating and comment are only accepted with complete.')
        return attrs


class NotifyDriversSerializer(serializers.Serializer):
    courseId = serializers.IntegerField()
