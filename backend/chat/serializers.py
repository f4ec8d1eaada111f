from rest_framework import serializers
from chat.models import ChatMessage

CHAT_ACTIONS = ["get_messages", "send_message", "mark_read"]


class ChatMessageSerializer(serializers.ModelSerializer):
    class Meta:
        model = ChatMessage
        fields = ["id", "course_id", "driver_id", "sender_role", "content",
                  "read_by_driver", "read_by_fleet", "created_at"]
        read_only_fields = fields


class ChatActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=CHAT_ACTIONS)
    course_id = serializers.IntegerField()
    content = serializers.CharField(required=False, allow_blank=False, max_length=2000)

    def validate(self, attrs):
        if attrs["action"] == "send_message" and not attrs.get("content", "").strip():
            raise serializers.ValidationError({"content": "Message content is required."})
        return attrs
