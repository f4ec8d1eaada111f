from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_CHOICES = [
        ('driver', 'Driver'),
        ('dispatcher', 'Dispatcher'),
        ('fleet_manager', 'Fleet Manager'),
        ('admin', 'Admin'),
    ]

    # Roles allowed to manage courses and read every chat
    DISPATCH_ROLES = ('dispatcher', 'fleet_manager', 'admin')
    
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='driver')
    phone_number = models.CharField(max_length=20, blank=True)
    
    class Meta:
        db_table = 'users'

    @property
    def is_dispatcher(self) -> bool:
        return self.role in self.DISPATCH_ROLES
        
    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
