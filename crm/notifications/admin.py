from django.contrib import admin
from .models import Notification, NotificationSettings


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['user', 'type', 'title', 'priority', 'read', 'created_at']
    list_filter = ['type', 'priority', 'read']
    search_fields = ['user__username', 'title']


admin.site.register(NotificationSettings)
