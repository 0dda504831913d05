from rest_framework import serializers
from crm.parties.models import Customer
from .models import ScheduledMessage, ScheduledMessageSend, MessageTemplate, Reminder


class ScheduledMessageSendSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)

    class Meta:
        model = ScheduledMessageSend
        fields = ['id', 'customer', 'customer_name', 'status', 'sent_at', 'error_message']
        read_only_fields = fields


class ScheduledMessageSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)
    customer_phone = serializers.CharField(source='customer.phone', read_only=True, default=None)
    customer_email = serializers.CharField(source='customer.email', read_only=True, default=None)
    recipients_count = serializers.SerializerMethodField()

    class Meta:
        model = ScheduledMessage
        fields = [
            'id', 'workspace', 'customer', 'customer_name', 'customer_phone', 'customer_email',
            'message', 'scheduled_at', 'status', 'recurrence', 'channel', 'target_type',
            'filter_by_tags', 'filter_by_labels', 'filter_by_message_age', 'filter_by_last_interaction',
            'recipients_count', 'previous_occurrence', 'created_at', 'sent_at', 'error_message',
        ]
        read_only_fields = fields

    def get_recipients_count(self, obj):
        if obj.target_type == 'single':
            return 1 if obj.customer_id else 0
        return obj.sends.count()


class MessageTemplateSerializer(serializers.ModelSerializer):
    class Meta:
        model = MessageTemplate
        fields = ['id', 'workspace', 'user', 'name', 'content', 'shortcut', 'category', 'is_active',
                  'created_at', 'updated_at']
        read_only_fields = ['workspace', 'user', 'created_at', 'updated_at']


class ReminderSerializer(serializers.ModelSerializer):
    customer_id = serializers.IntegerField(required=False, allow_null=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)

    class Meta:
        model = Reminder
        fields = ['id', 'workspace', 'user', 'customer_id', 'customer_name', 'conversation_id', 'title',
                  'description', 'due_date', 'priority', 'status', 'created_from_message_id',
                  'completed_at', 'created_at', 'updated_at']
        read_only_fields = ['workspace', 'user', 'completed_at', 'created_at', 'updated_at']

    def validate_customer_id(self, value):
        if value is None:
            return value
        workspace = self.context.get('workspace')
        if workspace is not None and not Customer.objects.filter(pk=value, workspace=workspace).exists():
            raise serializers.ValidationError("Customer not found in this workspace.")
        return value
