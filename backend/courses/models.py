from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from common.utils import get_unlock_time


class Course(models.Model):
    """A scheduled pickup dispatched to drivers"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('dispatched', 'Dispatched'),
        ('accepted', 'Accepted'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    DISPATCH_MODE_CHOICES = [
        ('auto', 'Auto'),
        ('manual', 'Manual'),
    ]

    OPEN_STATUSES = ('pending', 'dispatched')
    TERMINAL_STATUSES = ('completed', 'cancelled')

    client_name = models.CharField(max_length=200)
    client_phone = models.CharField(max_length=20, blank=True)
    departure_location = models.CharField(max_length=255)
    destination_location = models.CharField(max_length=255)
    pickup_date = models.DateTimeField()
    passengers_count = models.PositiveSmallIntegerField(default=1)
    notes = models.TextField(blank=True)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    dispatch_mode = models.CharField(
        max_length=10, choices=DISPATCH_MODE_CHOICES, null=True, blank=True
    )
    driver = models.ForeignKey(
        'drivers.Driver',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='courses',
    )

    accepted_at = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)
    arrived_at = models.DateTimeField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    dropped_off_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    rating = models.PositiveSmallIntegerField(
        null=True, blank=True, validators=[MinValueValidator(1), MaxValueValidator(5)]
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'courses'
        ordering = ['pickup_date']
        indexes = [
            models.Index(fields=['status', 'pickup_date'], name='course_status_pickup_idx'),
        ]

    @property
    def unlock_time(self):
        return get_unlock_time(self.pickup_date)

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def __str__(self):
        return f"Course {self.id} - {self.client_name} ({self.status})"
