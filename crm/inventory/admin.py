from django.contrib import admin
from .models import StockMovement


@admin.register(StockMovement)
class StockMovementAdmin(admin.ModelAdmin):
    list_display = ['product', 'variant', 'movement_type', 'quantity', 'previous_stock', 'new_stock', 'reference', 'created_at']
    list_filter = ['movement_type', 'workspace']
    search_fields = ['product__name', 'product__sku', 'reference']
    readonly_fields = ['previous_stock', 'new_stock', 'created_at']
