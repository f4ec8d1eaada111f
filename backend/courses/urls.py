from django.urls import path
from . import views

urlpatterns = [
    path('', views.courses, name='course-list'),
    path('transition/', views.transition_course, name='course-transition'),
    path('notify-drivers/', views.notify_drivers, name='course-notify-drivers'),
    path('<int:course_id>/', views.course_detail, name='course-detail'),
    path('<int:course_id>/cancel/', views.cancel_course, name='course-cancel'),
]
