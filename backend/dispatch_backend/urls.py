from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint
    
    # Authentication endpoints (at /api/auth/)
    path('api/auth/', include('accounts.urls')),  # JWT login / refresh
    
    # Driver APIs (availability, location ingestion, SOS)
    path('api/driver/', include('drivers.urls')),
    
    # Course endpoints (listing, transitions, dispatcher create/cancel, fan-out trigger)
    path('api/courses/', include('courses.urls')),

    # Notification inbox
    path('api/notifications/', include('notifications.urls')),

    # Course chat between driver and dispatch
    path('api/chat/', include('chat.urls')),
]
