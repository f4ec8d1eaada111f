from django.db import models
from django.utils import timezone
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverQuerySet(models.QuerySet):
    def reachable(self):
        """Active, approved drivers with a push channel (auto-dispatch targets)."""
        return (
            self.filter(status="active", is_approved=True, fcm_token__isnull=False)
            .exclude(fcm_token="")
        )


class Driver(models.Model):
    """Driver record linked to an auth user; status gates auto-dispatch"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('inactive', 'Inactive'),
    ]
    
    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver')
    name = models.CharField(max_length=150, blank=True)
    phone = models.CharField(max_length=20, blank=True)
    
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='inactive')
    fcm_token = models.CharField(max_length=255, null=True, blank=True)
    is_approved = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    objects = DriverQuerySet.as_manager()
    
    class Meta:
        db_table = 'drivers'
        
    def __str__(self):
        return f"{self.name or self.user} ({self.status})"


class DriverLocation(models.Model):
    """Latest accepted position sample for a driver (overwritten on every update)"""

    driver = models.OneToOneField(Driver, on_delete=models.CASCADE, related_name='location')
    latitude = models.DecimalField(max_digits=9, decimal_places=6)
    longitude = models.DecimalField(max_digits=9, decimal_places=6)
    heading = models.FloatField(null=True, blank=True)
    speed = models.FloatField(null=True, blank=True)
    accuracy = models.FloatField(null=True, blank=True)
    updated_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = 'driver_locations'

    def __str__(self):
        return f"{self.driver_id} @ {self.latitude},{self.longitude}"
