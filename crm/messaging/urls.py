from django.urls import path
from .views import (
    scheduled_message_list_create, scheduled_message_detail, scheduled_message_cancel,
    scheduled_message_preview_count, scheduled_message_process, scheduled_message_cron,
    scheduled_message_server,
    template_list_create, template_detail,
    reminder_list_create, reminder_detail,
)

urlpatterns = [
    # Scheduled message endpoints
    path('scheduled-messages/', scheduled_message_list_create, name='scheduled-message-list-create'),
    path('scheduled-messages/preview-count/', scheduled_message_preview_count, name='scheduled-message-preview-count'),
    path('scheduled-messages/process/', scheduled_message_process, name='scheduled-message-process'),
    path('scheduled-messages/cron/', scheduled_message_cron, name='scheduled-message-cron'),
    path('scheduled-messages/server/', scheduled_message_server, name='scheduled-message-server'),
    path('scheduled-messages/<int:pk>/', scheduled_message_detail, name='scheduled-message-detail'),
    path('scheduled-messages/<int:pk>/cancel/', scheduled_message_cancel, name='scheduled-message-cancel'),

    # Template endpoints
    path('templates/', template_list_create, name='template-list-create'),
    path('templates/<int:pk>/', template_detail, name='template-detail'),

    # Reminder endpoints
    path('reminders/', reminder_list_create, name='reminder-list-create'),
    path('reminders/<int:pk>/', reminder_detail, name='reminder-detail'),
]
