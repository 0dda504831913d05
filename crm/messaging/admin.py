from django.contrib import admin
from .models import ScheduledMessage, ScheduledMessageSend, MessageTemplate, Reminder


class ScheduledMessageSendInline(admin.TabularInline):
    model = ScheduledMessageSend
    extra = 0


@admin.register(ScheduledMessage)
class ScheduledMessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'workspace', 'target_type', 'channel', 'scheduled_at', 'status', 'recurrence']
    list_filter = ['status', 'target_type', 'channel', 'recurrence']
    inlines = [ScheduledMessageSendInline]


@admin.register(MessageTemplate)
class MessageTemplateAdmin(admin.ModelAdmin):
    list_display = ['name', 'workspace', 'shortcut', 'category', 'is_active']
    search_fields = ['name', 'shortcut', 'content']


@admin.register(Reminder)
class ReminderAdmin(admin.ModelAdmin):
    list_display = ['title', 'user', 'workspace', 'due_date', 'priority', 'status']
    list_filter = ['status', 'priority']
