from decimal import Decimal, InvalidOperation

from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.dateparse import parse_date


class User(AbstractUser):
    """Extended user model with additional fields"""
    display_name = models.CharField(max_length=255, blank=True, null=True)
    phone = models.CharField(max_length=20, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'users'

    def get_display_name(self):
        return self.display_name or self.get_full_name() or self.username


class AuditLog(models.Model):
    """Audit log for critical operations"""
    ACTION_CHOICES = [
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
        ('stock_in', 'Stock In'),
        ('stock_out', 'Stock Out'),
        ('stock_adjust', 'Stock Adjustment'),
        ('order_create', 'Order Created'),
        ('order_status', 'Order Status Changed'),
        ('order_cancel', 'Order Cancelled'),
        ('payment_add', 'Payment Added'),
        ('payment_update', 'Payment Updated'),
        ('role_assign', 'Role Assigned'),
        ('invitation_accept', 'Invitation Accepted'),
    ]

    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, null=True, blank=True, related_name='audit_logs')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=50, choices=ACTION_CHOICES)
    model_name = models.CharField(max_length=100)
    object_id = models.CharField(max_length=100)
    object_name = models.CharField(max_length=255, blank=True, null=True, help_text="Human-readable name of the object (e.g., product name, order number)")
    object_reference = models.CharField(max_length=255, blank=True, null=True, help_text="Reference identifier (e.g., order number, payment number)")
    changes = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['-created_at'], name='idx_audit_created'),
            models.Index(fields=['action'], name='idx_audit_action'),
            models.Index(fields=['model_name'], name='idx_audit_model'),
            models.Index(fields=['object_reference'], name='idx_audit_reference'),
        ]

    def __str__(self):
        return f"{self.action} {self.model_name}#{self.object_id}"


class FieldDefinition(models.Model):
    """Custom field a workspace adds to one of its forms"""
    FIELD_TYPE_CHOICES = [
        ('text', 'Text'),
        ('number', 'Number'),
        ('select', 'Select'),
        ('date', 'Date'),
        ('checkbox', 'Checkbox'),
    ]

    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='+')
    name = models.CharField(max_length=100)
    label = models.CharField(max_length=255)
    field_type = models.CharField(max_length=20, choices=FIELD_TYPE_CHOICES, default='text')
    required = models.BooleanField(default=False)
    default_value = models.CharField(max_length=255, blank=True, null=True)
    options = models.JSONField(null=True, blank=True)
    order_position = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True
        ordering = ['order_position', 'name']

    def __str__(self):
        return self.label or self.name

    def coerce(self, value):
        """Submitted value checked against the field type; raises ValueError when it does not fit"""
        if self.field_type == 'number':
            if isinstance(value, bool):
                raise ValueError(f"{self.label} must be a number")
            try:
                Decimal(str(value))
            except InvalidOperation:
                raise ValueError(f"{self.label} must be a number")
        elif self.field_type == 'checkbox':
            if not isinstance(value, bool):
                raise ValueError(f"{self.label} must be true or false")
        elif self.field_type == 'select':
            if value not in (self.options or []):
                raise ValueError(f"{self.label} must be one of: {', '.join(str(o) for o in self.options or [])}")
        elif self.field_type == 'date':
            try:
                day = parse_date(str(value))
            except ValueError:
                day = None
            if day is None:
                raise ValueError(f"{self.label} must be a date (YYYY-MM-DD)")
        return value
