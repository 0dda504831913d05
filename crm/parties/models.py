from django.db import models
from crm.core.models import User, FieldDefinition


class Tag(models.Model):
    """Workspace labels attached to customers"""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='tags')
    name = models.CharField(max_length=100)
    color = models.CharField(max_length=20, default='#6b7280')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'tags'
        ordering = ['name']
        unique_together = [['workspace', 'name']]


class Customer(models.Model):
    """Customers of a workspace"""
    STAGE_CHOICES = [
        ('prospect', 'Prospect'),
        ('lead', 'Lead'),
        ('customer', 'Customer'),
        ('inactive', 'Inactive'),
    ]
    DOCUMENT_TYPE_CHOICES = [
        ('dni', 'DNI'),
        ('ruc', 'RUC'),
        ('ce', 'Foreign ID'),
        ('passport', 'Passport'),
        ('other', 'Other'),
    ]

    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='customers')
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_customers')
    name = models.CharField(max_length=200)
    identity_document_type = models.CharField(max_length=20, choices=DOCUMENT_TYPE_CHOICES)
    identity_document_number = models.CharField(max_length=50)
    email = models.EmailField()
    phone = models.CharField(max_length=30, blank=True, null=True)
    city = models.CharField(max_length=100, blank=True, null=True)
    province = models.CharField(max_length=100, blank=True, null=True)
    district = models.CharField(max_length=100, blank=True, null=True)
    address = models.TextField(blank=True, null=True)
    stage = models.CharField(max_length=20, choices=STAGE_CHOICES, default='prospect')
    tags = models.ManyToManyField(Tag, through='CustomerTag', related_name='customers', blank=True)
    # Labels mirrored from the chat provider
    labels = models.JSONField(default=list, blank=True)
    chatwoot_contact_id = models.IntegerField(null=True, blank=True, db_index=True)
    chatwoot_conversation_id = models.IntegerField(null=True, blank=True)
    last_message_at = models.DateTimeField(null=True, blank=True)
    last_interaction_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'customers'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['workspace', 'stage'], name='idx_customer_ws_stage'),
            models.Index(fields=['workspace', 'phone'], name='idx_customer_ws_phone'),
        ]


class CustomerTag(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='customer_tags')
    tag = models.ForeignKey(Tag, on_delete=models.CASCADE, related_name='customer_tags')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'customer_tags'
        unique_together = [['customer', 'tag']]


class CustomerNote(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='notes')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='customer_notes')
    content = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"Note on {self.customer}"

    class Meta:
        db_table = 'customer_notes'
        ordering = ['-created_at']


class CustomerActivity(models.Model):
    """Timeline entries for a customer"""
    ACTIVITY_TYPE_CHOICES = [
        ('created', 'Created'),
        ('updated', 'Updated'),
        ('stage_changed', 'Stage Changed'),
        ('note_added', 'Note Added'),
        ('order_created', 'Order Created'),
        ('payment_received', 'Payment Received'),
        ('message_received', 'Message Received'),
        ('message_scheduled', 'Message Scheduled'),
    ]

    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='activities')
    activity_type = models.CharField(max_length=30, choices=ACTIVITY_TYPE_CHOICES)
    description = models.TextField(blank=True, default='')
    metadata = models.JSONField(default=dict, blank=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='customer_activities')
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.customer} - {self.activity_type}"

    class Meta:
        db_table = 'customer_activities'
        ordering = ['-created_at']

class CustomerAttributeDefinition(FieldDefinition):
    """Attribute a workspace tracks on its customers"""

    class Meta(FieldDefinition.Meta):
        db_table = 'customer_attribute_definitions'
        ordering = ['name']
        unique_together = [['workspace', 'name']]


class CustomerAttribute(models.Model):
    """Free-form attribute value on a customer; checked when a definition with its name exists"""
    customer = models.ForeignKey(Customer, on_delete=models.CASCADE, related_name='attributes')
    attribute_name = models.CharField(max_length=100)
    attribute_value = models.JSONField(null=True, blank=True)
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.customer}: {self.attribute_name}"

    class Meta:
        db_table = 'customer_attributes'
        ordering = ['attribute_name']
        unique_together = [['customer', 'attribute_name']]


def record_activity(customer, activity_type, description='', user=None, metadata=None):
    return CustomerActivity.objects.create(
        customer=customer,
        activity_type=activity_type,
        description=description,
        metadata=metadata or {},
        created_by=user if user and user.is_authenticated else None,
    )
