from django.db import models
from crm.core.models import User
from crm.parties.models import Customer


class ScheduledMessage(models.Model):
    """Message to send later to one customer or to a filtered group of customers"""
    TARGET_TYPE_CHOICES = [
        ('single', 'Single customer'),
        ('group', 'Customer group'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('queued', 'Queued'),
        ('processing', 'Processing'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
        ('cancelled', 'Cancelled'),
    ]
    RECURRENCE_CHOICES = [
        ('once', 'Once'),
        ('daily', 'Daily'),
        ('weekly', 'Weekly'),
        ('monthly', 'Monthly'),
    ]
    CHANNEL_CHOICES = [
        ('whatsapp', 'WhatsApp'),
        ('sms', 'SMS'),
        ('email', 'Email'),
    ]
    MESSAGE_AGE_CHOICES = [
        ('last_7_days', 'Last 7 days'),
        ('last_30_days', 'Last 30 days'),
        ('last_90_days', 'Last 90 days'),
        ('inactive', 'Inactive'),
    ]
    LAST_INTERACTION_CHOICES = [
        ('last_24h', 'Last 24 hours'),
        ('last_week', 'Last week'),
        ('last_month', 'Last month'),
        ('no_interaction', 'No interaction'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='scheduled_messages')
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='scheduled_messages')
    target_type = models.CharField(max_length=10, choices=TARGET_TYPE_CHOICES)
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, null=True, blank=True, related_name='scheduled_messages')
    message = models.TextField()
    scheduled_at = models.DateTimeField(db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    recurrence = models.CharField(max_length=10, choices=RECURRENCE_CHOICES, default='once')
    channel = models.CharField(max_length=20, choices=CHANNEL_CHOICES, default='whatsapp')
    filter_by_tags = models.JSONField(null=True, blank=True)
    filter_by_labels = models.JSONField(null=True, blank=True)
    filter_by_message_age = models.CharField(max_length=20, choices=MESSAGE_AGE_CHOICES, null=True, blank=True)
    filter_by_last_interaction = models.CharField(max_length=20, choices=LAST_INTERACTION_CHOICES, null=True, blank=True)
    previous_occurrence = models.ForeignKey('self', on_delete=models.SET_NULL, null=True, blank=True, related_name='next_occurrences')
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.get_target_type_display()} message at {self.scheduled_at}"

    @property
    def audience_filters(self):
        return {
            'filter_by_tags': self.filter_by_tags,
            'filter_by_labels': self.filter_by_labels,
            'filter_by_message_age': self.filter_by_message_age,
            'filter_by_last_interaction': self.filter_by_last_interaction,
        }

    class Meta:
        db_table = 'scheduled_messages'
        ordering = ['scheduled_at', 'id']
        indexes = [
            models.Index(fields=['status', 'scheduled_at'], name='idx_scheduled_status_at'),
        ]


class ScheduledMessageSend(models.Model):
    """Delivery of a group message to one customer"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('sent', 'Sent'),
        ('failed', 'Failed'),
    ]

    scheduled_message = models.ForeignKey(ScheduledMessage, on_delete=models.CASCADE, related_name='sends')
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='scheduled_message_sends')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    sent_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'scheduled_message_sends'
        ordering = ['id']
        unique_together = [['scheduled_message', 'customer']]


class MessageTemplate(models.Model):
    """Reusable canned response"""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='message_templates')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='message_templates')
    name = models.CharField(max_length=255)
    content = models.TextField()
    shortcut = models.CharField(max_length=50, blank=True, null=True)
    category = models.CharField(max_length=100, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'message_templates'
        ordering = ['name']


class Reminder(models.Model):
    """Follow-up task, usually created from a chat message"""
    PRIORITY_CHOICES = [
        ('low', 'Low'),
        ('medium', 'Medium'),
        ('high', 'High'),
        ('urgent', 'Urgent'),
    ]
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('in_progress', 'In progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='reminders')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='reminders')
    customer = models.ForeignKey(Customer, on_delete=models.SET_NULL, null=True, blank=True, related_name='reminders')
    conversation_id = models.IntegerField(null=True, blank=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)
    due_date = models.DateTimeField()
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='medium')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    created_from_message_id = models.IntegerField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.title

    class Meta:
        db_table = 'reminders'
        ordering = ['due_date', 'id']
