from rest_framework import serializers
from .models import InboxChannel, ChatAssignment, ChatCustomerLink


class InboxChannelSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = InboxChannel
        fields = ['id', 'user', 'username', 'workspace', 'chatwoot_account_id', 'chatwoot_inbox_id',
                  'inbox_name', 'channel_type', 'is_active', 'metadata', 'created_at', 'updated_at']
        read_only_fields = ['user', 'workspace', 'created_at', 'updated_at']


class ChatAssignmentSerializer(serializers.ModelSerializer):
    agent_username = serializers.CharField(source='agent.username', read_only=True)
    agent_name = serializers.SerializerMethodField()
    assigned_by_username = serializers.CharField(source='assigned_by.username', read_only=True, default=None)

    class Meta:
        model = ChatAssignment
        fields = ['id', 'workspace', 'conversation_id', 'agent', 'agent_username', 'agent_name',
                  'assigned_by', 'assigned_by_username', 'status', 'notes', 'assigned_at', 'unassigned_at']
        read_only_fields = ['workspace', 'assigned_by', 'assigned_at', 'unassigned_at']

    def get_agent_name(self, obj):
        return obj.agent.get_display_name()


class ChatCustomerLinkSerializer(serializers.ModelSerializer):
    customer_name = serializers.CharField(source='customer.name', read_only=True)
    customer_email = serializers.CharField(source='customer.email', read_only=True)
    customer_phone = serializers.CharField(source='customer.phone', read_only=True, default=None)
    customer_stage = serializers.CharField(source='customer.stage', read_only=True)
    linked_by_username = serializers.CharField(source='linked_by.username', read_only=True, default=None)

    class Meta:
        model = ChatCustomerLink
        fields = ['id', 'workspace', 'conversation_id', 'customer', 'customer_name', 'customer_email',
                  'customer_phone', 'customer_stage', 'notes', 'linked_by', 'linked_by_username',
                  'linked_at', 'updated_at']
        read_only_fields = fields
