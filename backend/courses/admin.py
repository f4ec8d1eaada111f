from django.contrib import admin
from courses.models import Course


@admin.register(Course)
class CourseAdmin(admin.ModelAdmin):
    list_display = ['id', 'client_name', 'pickup_date', 'status', 'dispatch_mode', 'driver']
    list_filter = ['status', 'dispatch_mode', 'pickup_date']
    search_fields = ['client_name', 'departure_location', 'destination_location']
    readonly_fields = ['created_at', 'accepted_at', 'started_at', 'completed_at', 'cancelled_at']
