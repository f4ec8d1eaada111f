from django.contrib import admin
from drivers.models import Driver, DriverLocation


@admin.register(Driver)
class DriverAdmin(admin.ModelAdmin):
    """Admin panel for managing drivers and their dispatch eligibility"""

    list_display = [
        "user",
        "name",
        "status",
        "is_approved",
        "created_at",
    ]

    list_filter = [
        "status",
        "is_approved",
    ]

    search_fields = [
        "user__username",
        "name",
        "phone",
    ]

    ordering = ("user__username",)


@admin.register(DriverLocation)
class DriverLocationAdmin(admin.ModelAdmin):
    list_display = ("driver", "latitude", "longitude", "speed", "updated_at")
    readonly_fields = ("updated_at",)
