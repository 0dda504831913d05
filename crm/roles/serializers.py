from rest_framework import serializers
from .models import Role, UserRole, PermissionGroup, PermissionSwitch


class RoleSerializer(serializers.ModelSerializer):
    class Meta:
        model = Role
        fields = ['id', 'workspace', 'name', 'slug', 'description', 'permissions',
                  'is_system_role', 'created_at', 'updated_at']
        read_only_fields = ['workspace', 'is_system_role', 'created_at', 'updated_at']

    def validate_permissions(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Permissions must be an object.")
        return value


class UserRoleSerializer(serializers.ModelSerializer):
    role = RoleSerializer(read_only=True)

    class Meta:
        model = UserRole
        fields = ['id', 'user', 'role', 'workspace', 'assigned_by', 'created_at']


class PermissionSwitchSerializer(serializers.ModelSerializer):
    class Meta:
        model = PermissionSwitch
        fields = ['id', 'group', 'name', 'slug', 'description', 'sort_order']


class PermissionGroupSerializer(serializers.ModelSerializer):
    switches = PermissionSwitchSerializer(many=True, read_only=True)

    class Meta:
        model = PermissionGroup
        fields = ['id', 'name', 'slug', 'description', 'icon', 'sort_order', 'is_system', 'switches']
