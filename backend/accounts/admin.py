from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from accounts.models import User
from drivers.models import Driver


class DriverInline(admin.StackedInline):
    """Driver record for users with the driver role"""

    model = Driver
    can_delete = False
    extra = 0
    fields = ("name", "phone", "status", "is_approved", "fcm_token")


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for drivers and dispatch staff"""

    list_display = ["username", "email", "role", "is_dispatcher", "is_active"]
    list_filter = ["role", "is_active", "date_joined"]
    search_fields = ["username", "email", "phone_number", "driver__name"]
    ordering = ("username",)

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Dispatch Role", {"fields": ("role", "phone_number")}),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Dispatch Role", {"fields": ("role", "phone_number")}),
    )

    def get_inlines(self, request, obj):
        if obj is not None and obj.role == "driver":
            return [DriverInline]
        return []

    @admin.display(boolean=True, description="Dispatcher")
    def is_dispatcher(self, obj):
        return obj.is_dispatcher
