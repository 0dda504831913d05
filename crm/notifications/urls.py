from django.urls import path
from .views import notification_list, notification_detail, notification_mark_all_read, notification_settings

urlpatterns = [
    path('notifications/', notification_list, name='notification-list'),
    path('notifications/mark-all-read/', notification_mark_all_read, name='notification-mark-all-read'),
    path('notifications/settings/', notification_settings, name='notification-settings'),
    path('notifications/<int:pk>/', notification_detail, name='notification-detail'),
]
