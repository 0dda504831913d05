from django.urls import path
from .views import (
    chat_inboxes, chat_conversations, chat_messages, chat_send_message, chat_mark_read,
    chat_channel_list_create, chat_channel_detail,
    chat_assignments, chat_customer_links, chatwoot_webhook,
)

urlpatterns = [
    # Chat provider proxy
    path('chat/inboxes/', chat_inboxes, name='chat-inboxes'),
    path('chat/conversations/', chat_conversations, name='chat-conversations'),
    path('chat/messages/', chat_messages, name='chat-messages'),
    path('chat/send-message/', chat_send_message, name='chat-send-message'),
    path('chat/mark-read/', chat_mark_read, name='chat-mark-read'),

    # Channels and assignments
    path('chat-channels/', chat_channel_list_create, name='chat-channel-list-create'),
    path('chat-channels/<int:pk>/', chat_channel_detail, name='chat-channel-detail'),
    path('chat-assignments/', chat_assignments, name='chat-assignments'),
    path('chat-customer-links/', chat_customer_links, name='chat-customer-links'),

    # Webhooks
    path('webhooks/chatwoot/', chatwoot_webhook, name='chatwoot-webhook'),
]
