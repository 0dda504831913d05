from rest_framework import serializers
from decimal import Decimal
from crm.core.serializers import FieldDefinitionSerializer
from crm.workspaces.models import get_agent_display_name
from .models import Order, OrderItem, OrderStatusHistory, Payment, OrderFieldDefinition


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = ['id', 'product', 'variant', 'product_name', 'variant_name', 'sku', 'quantity',
                  'unit_price', 'subtotal', 'discount', 'tax', 'total']


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    changed_by_username = serializers.CharField(source='changed_by.username', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ['id', 'from_status', 'to_status', 'changed_by', 'changed_by_username', 'notes', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)
    customer_email = serializers.CharField(source='customer.email', read_only=True, default=None)
    agent_name = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'workspace', 'order_number', 'customer', 'customer_name', 'customer_email', 'user',
            'agent_name', 'created_by_name', 'status', 'subtotal', 'discount_amount', 'tax_amount',
            'total_amount', 'shipping_address', 'billing_address', 'notes', 'payment_proof_url',
            'custom_fields', 'metadata', 'order_date', 'items', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_agent_name(self, obj):
        return get_agent_display_name(obj.user, fallback=None) or obj.created_by_name or 'User'


class OrderItemInputSerializer(serializers.Serializer):
    product_id = serializers.IntegerField()
    variant_id = serializers.IntegerField(required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True, min_value=Decimal('0'))
    discount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))
    tax = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))


class OrderCreateSerializer(serializers.Serializer):
    workspace_id = serializers.IntegerField()
    customer_id = serializers.IntegerField(required=False, allow_null=True)
    items = OrderItemInputSerializer(many=True, allow_empty=False)
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False, default='pending')
    discount_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))
    tax_amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, default=Decimal('0.00'), min_value=Decimal('0'))
    shipping_address = serializers.JSONField(required=False, allow_null=True)
    billing_address = serializers.JSONField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    payment_proof_url = serializers.URLField(required=False, allow_blank=True, allow_null=True)
    custom_fields = serializers.DictField(required=False, default=dict)
    metadata = serializers.DictField(required=False, default=dict)

    def validate_status(self, value):
        if value == 'cancelled':
            raise serializers.ValidationError("An order cannot be created cancelled.")
        return value


class OrderUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=False)
    status_notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    customer_id = serializers.IntegerField(required=False, allow_null=True)
    shipping_address = serializers.JSONField(required=False, allow_null=True)
    billing_address = serializers.JSONField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    payment_proof_url = serializers.URLField(required=False, allow_blank=True, allow_null=True)
    custom_fields = serializers.DictField(required=False)
    metadata = serializers.DictField(required=False)


class PaymentSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True, default=None)
    customer_name = serializers.CharField(source='customer.name', read_only=True, default=None)

    class Meta:
        model = Payment
        fields = [
            'id', 'workspace', 'payment_number', 'order', 'order_number', 'customer', 'customer_name',
            'user', 'amount', 'currency', 'status', 'payment_method', 'payment_date', 'transaction_id',
            'card_brand', 'reference_number', 'notes', 'metadata', 'created_at', 'updated_at'
        ]
        read_only_fields = ['workspace', 'payment_number', 'order', 'customer', 'user', 'created_at', 'updated_at']

    def validate_amount(self, value):
        if value <= Decimal('0'):
            raise serializers.ValidationError("Amount must be greater than 0.")
        return value


class OrderFieldDefinitionSerializer(FieldDefinitionSerializer):
    class Meta(FieldDefinitionSerializer.Meta):
        model = OrderFieldDefinition
