from django.urls import path
from . import views

urlpatterns = [
    path('', views.list_notifications, name='notification-list'),
    path('<int:notification_id>/read/', views.mark_notification_read, name='notification-read'),
    path('read-all/', views.mark_all_notifications_read, name='notification-read-all'),
]
