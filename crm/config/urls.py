"""
URL configuration for the crm project.

Every app exposes its routes under /api/v1/.
"""
from django.contrib import admin
from django.urls import path, include

admin.site.site_header = "CRM Administration"
admin.site.site_title = "CRM Admin Portal"
admin.site.index_title = "Workspace back office"

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include('crm.core.urls')),
    path('api/v1/', include('crm.workspaces.urls')),
    path('api/v1/', include('crm.roles.urls')),
    path('api/v1/', include('crm.parties.urls')),
    path('api/v1/', include('crm.catalog.urls')),
    path('api/v1/', include('crm.inventory.urls')),
    path('api/v1/', include('crm.orders.urls')),
    path('api/v1/', include('crm.messaging.urls')),
    path('api/v1/', include('crm.chat.urls')),
    path('api/v1/', include('crm.realtime.urls')),
    path('api/v1/', include('crm.notifications.urls')),
]
