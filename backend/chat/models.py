from django.db import models
from django.conf import settings


class ChatMessage(models.Model):
    """
    One message in a course conversation between its driver and dispatch.
    Each side tracks its own read flag.
    """
    SENDER_CHOICES = [
        ('driver', 'Driver'),
        ('dispatcher', 'Dispatcher'),
    ]

    course = models.ForeignKey('courses.Course', on_delete=models.CASCADE, related_name='messages')
    # Routing identity: the course's driver when the message was sent
    driver = models.ForeignKey(
        'drivers.Driver',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='chat_messages',
    )
    sender_role = models.CharField(max_length=20, choices=SENDER_CHOICES)
    sender_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='sent_chat_messages',
    )
    content = models.TextField()
    read_by_driver = models.BooleanField(default=False)
    read_by_fleet = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'chat_messages'
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Chat {self.course_id} [{self.sender_role}] {self.content[:30]}"
