from django.contrib import admin
from notifications.models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("id", "type", "driver", "course", "read", "created_at")
    list_filter = ("type", "read")
    search_fields = ("title", "message")
    readonly_fields = ("data", "created_at")
