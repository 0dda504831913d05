from django.contrib import admin
from .models import InboxChannel, ChatAssignment, ChatCustomerLink


@admin.register(InboxChannel)
class InboxChannelAdmin(admin.ModelAdmin):
    list_display = ['inbox_name', 'chatwoot_inbox_id', 'user', 'workspace', 'channel_type', 'is_active']
    list_filter = ['channel_type', 'is_active']
    search_fields = ['inbox_name', 'user__username']


@admin.register(ChatAssignment)
class ChatAssignmentAdmin(admin.ModelAdmin):
    list_display = ['conversation_id', 'agent', 'workspace', 'status', 'assigned_at']
    list_filter = ['status']


@admin.register(ChatCustomerLink)
class ChatCustomerLinkAdmin(admin.ModelAdmin):
    list_display = ['conversation_id', 'customer', 'workspace', 'linked_by', 'linked_at']
    search_fields = ['customer__name']
