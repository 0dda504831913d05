from django.db import models
from decimal import Decimal
from crm.core.models import User


class Category(models.Model):
    """Product categories of a workspace"""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='categories')
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True, null=True)
    color = models.CharField(max_length=20, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    class Meta:
        db_table = 'categories'
        ordering = ['name']
        verbose_name_plural = 'categories'


class Product(models.Model):
    """Products sold by a workspace"""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, related_name='products')
    category = models.ForeignKey(Category, on_delete=models.SET_NULL, null=True, blank=True, related_name='products')
    name = models.CharField(max_length=200, db_index=True)
    description = models.TextField(blank=True, null=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    sku = models.CharField(max_length=100, blank=True, null=True, db_index=True)
    stock = models.IntegerField(default=0)
    # Falls back to the workspace default when empty
    min_stock_alert = models.PositiveIntegerField(null=True, blank=True)
    image_url = models.URLField(max_length=500, blank=True, null=True)
    is_active = models.BooleanField(default=True, db_index=True)
    created_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='created_products')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return self.name

    def get_min_stock_alert(self):
        if self.min_stock_alert is not None:
            return self.min_stock_alert
        return self.workspace.default_min_stock_alert

    def is_low_stock(self):
        return self.stock <= self.get_min_stock_alert()

    class Meta:
        db_table = 'products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['workspace', 'sku'], name='idx_product_ws_sku'),
        ]


class ProductVariant(models.Model):
    """Product variants (e.g., size, color)"""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    name = models.CharField(max_length=200)  # e.g., "Red - Large"
    sku = models.CharField(max_length=100, blank=True, null=True)
    # Empty price means the product price applies
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"{self.product.name} - {self.name}"

    def get_price(self):
        return self.price if self.price is not None else self.product.price

    class Meta:
        db_table = 'product_variants'
        ordering = ['id']
