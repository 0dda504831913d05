from django.db import models
from crm.core.models import User


class InboxChannel(models.Model):
    """Chat provider inbox made available to a user inside a workspace"""
    CHANNEL_TYPE_CHOICES = [
        ('whatsapp', 'WhatsApp'),
        ('web', 'Website'),
        ('email', 'Email'),
        ('sms', 'SMS'),
        ('api', 'API'),
        ('other', 'Other'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='inbox_channels')
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='inbox_channels')
    chatwoot_account_id = models.IntegerField()
    chatwoot_inbox_id = models.IntegerField(db_index=True)
    inbox_name = models.CharField(max_length=255, blank=True, null=True)
    channel_type = models.CharField(max_length=20, choices=CHANNEL_TYPE_CHOICES, default='whatsapp')
    is_active = models.BooleanField(default=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.inbox_name or self.chatwoot_inbox_id} ({self.user.username})"

    class Meta:
        db_table = 'inbox_channels'
        ordering = ['-created_at']
        unique_together = [['user', 'workspace', 'chatwoot_inbox_id']]


class ChatAssignment(models.Model):
    """Agent responsible for a conversation"""
    STATUS_CHOICES = [
        ('active', 'Active'),
        ('completed', 'Completed'),
        ('transferred', 'Transferred'),
    ]

    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='chat_assignments')
    conversation_id = models.IntegerField(db_index=True)
    agent = models.ForeignKey(User, on_delete=models.CASCADE, related_name='chat_assignments')
    assigned_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='chat_assignments_made')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='active')
    notes = models.TextField(blank=True, null=True)
    assigned_at = models.DateTimeField(auto_now_add=True)
    unassigned_at = models.DateTimeField(null=True, blank=True)

    def __str__(self):
        return f"Conversation {self.conversation_id} -> {self.agent.username}"

    class Meta:
        db_table = 'chat_assignments'
        ordering = ['-assigned_at', '-id']
        indexes = [
            models.Index(fields=['workspace', 'conversation_id', 'status'], name='idx_assignment_ws_conv'),
        ]


class ChatCustomerLink(models.Model):
    """Customer record a conversation belongs to, one per conversation and workspace"""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='chat_customer_links')
    conversation_id = models.IntegerField(db_index=True)
    customer = models.ForeignKey('parties.Customer', on_delete=models.CASCADE, related_name='chat_links')
    notes = models.TextField(blank=True, null=True)
    linked_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    linked_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Conversation {self.conversation_id} -> {self.customer}"

    class Meta:
        db_table = 'chat_customer_links'
        ordering = ['-linked_at', '-id']
        unique_together = [['workspace', 'conversation_id']]
