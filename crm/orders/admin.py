from django.contrib import admin
from .models import Order, OrderItem, OrderStatusHistory, DocumentSequence, Payment


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'workspace', 'customer', 'status', 'total_amount', 'order_date']
    list_filter = ['status', 'workspace']
    search_fields = ['order_number', 'customer__name']
    inlines = [OrderItemInline]


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    list_display = ['payment_number', 'workspace', 'order', 'amount', 'currency', 'status', 'payment_method']
    list_filter = ['status', 'payment_method']
    search_fields = ['payment_number', 'reference_number', 'transaction_id']


admin.site.register(OrderStatusHistory)
admin.site.register(DocumentSequence)
