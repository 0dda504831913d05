from django.contrib import admin
from .models import Category, Product, ProductVariant


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ['name', 'workspace', 'is_active', 'created_at']
    search_fields = ['name']


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'workspace', 'sku', 'price', 'stock', 'min_stock_alert', 'is_active']
    list_filter = ['is_active', 'workspace']
    search_fields = ['name', 'sku']
    inlines = [ProductVariantInline]
