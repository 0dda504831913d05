from django.conf import settings
from django.db import models


class Role(models.Model):
    """Role template. Roles without a workspace are system roles shared by every tenant."""
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, null=True, blank=True, related_name='roles')
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100)
    description = models.TextField(blank=True, null=True)
    permissions = models.JSONField(default=dict, blank=True)
    is_system_role = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'roles'
        ordering = ['name']

    def __str__(self):
        return self.name


class UserRole(models.Model):
    """Role held by a user inside one workspace; without a workspace it applies everywhere (staff grants)"""
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='user_roles')
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='user_roles')
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, null=True, blank=True, related_name='user_roles')
    assigned_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'user_roles'
        unique_together = [['user', 'role', 'workspace']]

    def __str__(self):
        return f"{self.user} -> {self.role}"


class RoleModule(models.Model):
    """Top-level product area toggled on or off for a role"""
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='modules')
    module_slug = models.CharField(max_length=50)
    is_active = models.BooleanField(default=True)
    workspace = models.ForeignKey('workspaces.Workspace', on_delete=models.CASCADE, null=True, blank=True, related_name='role_modules')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'role_modules'
        unique_together = [['role', 'module_slug']]

    def __str__(self):
        return f"{self.role.slug}:{self.module_slug}={self.is_active}"


class PermissionGroup(models.Model):
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)
    icon = models.CharField(max_length=50, blank=True, null=True)
    sort_order = models.IntegerField(default=0)
    is_system = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'permission_groups'
        ordering = ['sort_order', 'name']

    def __str__(self):
        return self.name


class PermissionSwitch(models.Model):
    group = models.ForeignKey(PermissionGroup, on_delete=models.CASCADE, related_name='switches')
    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)
    sort_order = models.IntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'permission_switches'
        ordering = ['sort_order', 'name']

    def __str__(self):
        return self.slug


class RolePermissionGroup(models.Model):
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='permission_groups')
    group = models.ForeignKey(PermissionGroup, on_delete=models.CASCADE, related_name='role_links')
    is_active = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'role_permission_groups'
        unique_together = [['role', 'group']]


class RolePermissionSwitch(models.Model):
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name='permission_switches')
    switch = models.ForeignKey(PermissionSwitch, on_delete=models.CASCADE, related_name='role_links')
    is_active = models.BooleanField(default=False)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'role_permission_switches'
        unique_together = [['role', 'switch']]
