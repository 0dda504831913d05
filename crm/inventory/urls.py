from django.urls import path
from .views import stock_movements, stock_products

urlpatterns = [
    path('stock/', stock_movements, name='stock-movements'),
    path('stock/products/', stock_products, name='stock-products'),
]
