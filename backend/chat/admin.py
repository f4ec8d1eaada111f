from django.contrib import admin
from chat.models import ChatMessage


@admin.register(ChatMessage)
class ChatMessageAdmin(admin.ModelAdmin):
    list_display = ("id", "course", "sender_role", "read_by_driver", "read_by_fleet", "created_at")
    list_filter = ("sender_role",)
    search_fields = ("content",)
