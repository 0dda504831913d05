from django.contrib import admin
from .models import Workspace, WorkspaceMember, WorkspaceAgent, AgentProfile, AgentInvitation


class WorkspaceMemberInline(admin.TabularInline):
    model = WorkspaceMember
    extra = 0


@admin.register(Workspace)
class WorkspaceAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'owner', 'allow_orders_without_stock', 'created_at']
    search_fields = ['name', 'slug', 'owner__username']
    inlines = [WorkspaceMemberInline]


@admin.register(AgentProfile)
class AgentProfileAdmin(admin.ModelAdmin):
    list_display = ['user', 'display_name', 'chatwoot_user_id', 'status', 'max_concurrent_chats']
    list_filter = ['status']


@admin.register(AgentInvitation)
class AgentInvitationAdmin(admin.ModelAdmin):
    list_display = ['email', 'workspace', 'role', 'status', 'expires_at', 'created_at']
    list_filter = ['status']
    search_fields = ['email']


admin.site.register(WorkspaceAgent)
