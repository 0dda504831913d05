from django.urls import path
from .views import (
    order_list_create, order_detail, order_history,
    payment_list_create, payment_detail,
    order_field_definition_list_create, order_field_definition_detail,
)

urlpatterns = [
    # Order endpoints
    path('orders/', order_list_create, name='order-list-create'),
    path('orders/<int:pk>/', order_detail, name='order-detail'),
    path('orders/<int:pk>/history/', order_history, name='order-history'),

    # Payment endpoints
    path('payments/', payment_list_create, name='payment-list-create'),
    path('payments/<int:pk>/', payment_detail, name='payment-detail'),

    # Custom order fields
    path('order-field-definitions/', order_field_definition_list_create, name='order-field-definition-list-create'),
    path('order-field-definitions/<int:pk>/', order_field_definition_detail, name='order-field-definition-detail'),
]
