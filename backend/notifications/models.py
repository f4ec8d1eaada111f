from django.db import models
from django.db.models import Q


class Notification(models.Model):
    """
    Driver inbox entry, or a dispatcher-side broadcast when driver is null.
    Only the read flag changes after insert.
    """
    TYPE_CHOICES = [
        ('new_course', 'New course'),
        ('course_status', 'Course status'),
        ('course_unlocked', 'Course unlocked'),
        ('course_reminder', 'Course reminder'),
        ('admin_course_update', 'Admin course update'),
        ('late_alert', 'Late alert'),
        ('sos_alert', 'SOS alert'),
        ('driver_login', 'Driver login'),
        ('chat', 'Chat'),
    ]

    driver = models.ForeignKey(
        'drivers.Driver',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )
    course = models.ForeignKey(
        'courses.Course',
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='notifications',
    )
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField(blank=True)
    read = models.BooleanField(default=False)
    data = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'driver_notifications'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'read'], name='notif_driver_read_idx'),
            models.Index(fields=['course', 'type', 'created_at'], name='notif_course_type_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=['driver', 'course', 'type'],
                condition=Q(type='new_course'),
                name='unique_new_course_notification',
            ),
        ]

    def __str__(self):
        return f"Notification({self.type}) -> {self.driver_id or 'dispatch'}"
