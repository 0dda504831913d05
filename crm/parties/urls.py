from django.urls import path
from .views import (
    customer_list_create, customer_detail,
    tag_list_create, tag_detail,
    customer_note_list_create, customer_note_detail,
    customer_activity_list,
    customer_attribute_definition_list_create, customer_attribute_definition_detail, customer_attributes,
)

urlpatterns = [
    # Customer endpoints
    path('customers/', customer_list_create, name='customer-list-create'),
    path('customers/<int:pk>/', customer_detail, name='customer-detail'),

    # Tag endpoints
    path('tags/', tag_list_create, name='tag-list-create'),
    path('tags/<int:pk>/', tag_detail, name='tag-detail'),

    # Note and activity endpoints
    path('customer-notes/', customer_note_list_create, name='customer-note-list-create'),
    path('customer-notes/<int:pk>/', customer_note_detail, name='customer-note-detail'),
    path('customer-activities/', customer_activity_list, name='customer-activity-list'),

    # Custom attribute endpoints
    path('customer-attribute-definitions/', customer_attribute_definition_list_create, name='customer-attribute-definition-list-create'),
    path('customer-attribute-definitions/<int:pk>/', customer_attribute_definition_detail, name='customer-attribute-definition-detail'),
    path('customer-attributes/', customer_attributes, name='customer-attributes'),
]
