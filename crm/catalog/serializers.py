from rest_framework import serializers
from decimal import Decimal
from .models import Category, Product, ProductVariant


class CategorySerializer(serializers.ModelSerializer):
    class Meta:
        model = Category
        fields = ['id', 'workspace', 'name', 'description', 'color', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['workspace', 'created_at', 'updated_at']


class ProductVariantSerializer(serializers.ModelSerializer):
    id = serializers.IntegerField(required=False)
    effective_price = serializers.SerializerMethodField()

    class Meta:
        model = ProductVariant
        fields = ['id', 'product', 'name', 'sku', 'price', 'effective_price', 'stock', 'is_active', 'created_at', 'updated_at']
        read_only_fields = ['product', 'created_at', 'updated_at']

    def get_effective_price(self, obj):
        return str(obj.get_price())

    def validate_price(self, value):
        if value is not None and value < Decimal('0'):
            raise serializers.ValidationError("Price cannot be negative.")
        return value

    def validate_stock(self, value):
        if value < 0:
            raise serializers.ValidationError("Stock cannot be negative.")
        return value


class ProductSerializer(serializers.ModelSerializer):
    variants = ProductVariantSerializer(many=True, required=False)

    # For reading: return full nested objects
    category = CategorySerializer(read_only=True)

    # For writing: accept integer IDs
    category_id = serializers.PrimaryKeyRelatedField(
        queryset=Category.objects.all(),
        source='category',
        write_only=True,
        required=False,
        allow_null=True
    )
    category_name = serializers.CharField(source='category.name', read_only=True, default=None)
    effective_min_stock_alert = serializers.SerializerMethodField()
    is_low_stock = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id', 'workspace', 'name', 'description', 'price', 'sku', 'stock', 'min_stock_alert',
            'effective_min_stock_alert', 'is_low_stock', 'image_url', 'is_active', 'category',
            'category_id', 'category_name', 'variants', 'created_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['workspace', 'created_by', 'created_at', 'updated_at']

    def get_effective_min_stock_alert(self, obj):
        return obj.get_min_stock_alert()

    def get_is_low_stock(self, obj):
        return obj.is_low_stock()

    def validate_price(self, value):
        if value < Decimal('0'):
            raise serializers.ValidationError("Price cannot be negative.")
        return value

    def validate_stock(self, value):
        if value < 0:
            raise serializers.ValidationError("Stock cannot be negative.")
        return value

    def validate_category_id(self, value):
        workspace = self.context.get('workspace')
        if value is not None and workspace is not None and value.workspace_id != workspace.id:
            raise serializers.ValidationError("Category does not belong to this workspace.")
        return value

    def create(self, validated_data):
        variants_data = validated_data.pop('variants', [])
        product = Product.objects.create(**validated_data)
        for variant_data in variants_data:
            variant_data.pop('id', None)
            ProductVariant.objects.create(product=product, **variant_data)
        return product

    def update(self, instance, validated_data):
        variants_data = validated_data.pop('variants', None)
        product = super().update(instance, validated_data)
        if variants_data is not None:
            keep_ids = []
            for variant_data in variants_data:
                variant_id = variant_data.pop('id', None)
                variant = product.variants.filter(pk=variant_id).first() if variant_id else None
                if variant:
                    for field, value in variant_data.items():
                        setattr(variant, field, value)
                    variant.save()
                else:
                    variant = ProductVariant.objects.create(product=product, **variant_data)
                keep_ids.append(variant.id)
            product.variants.exclude(id__in=keep_ids).delete()
        return product
