from rest_framework import serializers
from .models import StockMovement


class StockMovementSerializer(serializers.ModelSerializer):
    product_name = serializers.CharField(source='product.name', read_only=True)
    product_sku = serializers.CharField(source='product.sku', read_only=True)
    variant_name = serializers.CharField(source='variant.name', read_only=True, default=None)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = StockMovement
        fields = [
            'id', 'workspace', 'product', 'product_name', 'product_sku', 'variant', 'variant_name',
            'movement_type', 'quantity', 'previous_stock', 'new_stock', 'reason', 'notes', 'reference',
            'created_by', 'created_by_username', 'created_at'
        ]
