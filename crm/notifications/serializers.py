from rest_framework import serializers
from .models import Notification, NotificationSettings


class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'workspace', 'type', 'title', 'message', 'priority', 'read', 'read_at',
                  'action_url', 'metadata', 'created_at']
        read_only_fields = ['workspace', 'type', 'title', 'message', 'priority', 'read_at',
                            'action_url', 'metadata', 'created_at']


class NotificationSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = NotificationSettings
        fields = ['enabled', 'sound_enabled', 'browser_notifications', 'notification_types', 'updated_at']
        read_only_fields = ['updated_at']

    def validate_notification_types(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("notification_types must be an object.")
        valid_types = {choice[0] for choice in Notification.TYPE_CHOICES}
        unknown = set(value) - valid_types
        if unknown:
            raise serializers.ValidationError(f"Unknown notification types: {', '.join(sorted(unknown))}")
        return value
