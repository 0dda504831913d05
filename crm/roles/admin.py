from django.contrib import admin
from .models import Role, UserRole, RoleModule, PermissionGroup, PermissionSwitch, RolePermissionGroup, RolePermissionSwitch


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'workspace', 'is_system_role', 'created_at']
    list_filter = ['is_system_role']
    search_fields = ['name', 'slug']


@admin.register(UserRole)
class UserRoleAdmin(admin.ModelAdmin):
    list_display = ['user', 'role', 'assigned_by', 'created_at']
    search_fields = ['user__username', 'role__slug']


@admin.register(RoleModule)
class RoleModuleAdmin(admin.ModelAdmin):
    list_display = ['role', 'module_slug', 'is_active', 'workspace']
    list_filter = ['module_slug', 'is_active']


class PermissionSwitchInline(admin.TabularInline):
    model = PermissionSwitch
    extra = 0


@admin.register(PermissionGroup)
class PermissionGroupAdmin(admin.ModelAdmin):
    list_display = ['name', 'slug', 'sort_order', 'is_system']
    inlines = [PermissionSwitchInline]


admin.site.register(RolePermissionGroup)
admin.site.register(RolePermissionSwitch)
