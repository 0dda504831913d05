from django.contrib import admin
from .models import Tag, Customer, CustomerNote, CustomerActivity, CustomerAttributeDefinition, CustomerAttribute


@admin.register(Customer)
class CustomerAdmin(admin.ModelAdmin):
    list_display = ['name', 'workspace', 'email', 'phone', 'stage', 'created_at']
    list_filter = ['stage', 'workspace']
    search_fields = ['name', 'email', 'phone', 'identity_document_number']


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ['name', 'workspace', 'color']
    search_fields = ['name']


admin.site.register(CustomerNote)
admin.site.register(CustomerActivity)
admin.site.register(CustomerAttributeDefinition)
admin.site.register(CustomerAttribute)
