from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from crm.core.utils import create_audit_log
from crm.workspaces.access import resolve_workspace, check_workspace_access
from .models import Role, UserRole, RoleModule, PermissionGroup, PermissionSwitch, RolePermissionGroup, RolePermissionSwitch
from .serializers import RoleSerializer, UserRoleSerializer, PermissionGroupSerializer
from .permissions import (
    MODULE_SLUGS, assign_role, can_manage_assignment, can_manage_role, get_role_modules, get_role_with_permissions,
    get_user_permissions, get_user_roles, get_user_switches,
)

User = get_user_model()


def can_view_role(user, role):
    if role.workspace_id is None:
        return True
    return check_workspace_access(user, role.workspace)


def forbidden(message='Insufficient permissions'):
    return Response({'error': message}, status=status.HTTP_403_FORBIDDEN)


# Role views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def role_list_create(request):
    """List roles of a workspace (system roles without workspace_id) or create a workspace role"""
    if request.method == 'GET':
        if request.query_params.get('workspace_id'):
            workspace, error = resolve_workspace(request)
            if error:
                return error
            roles = Role.objects.filter(workspace=workspace)
        else:
            roles = Role.objects.filter(workspace__isnull=True)
        serializer = RoleSerializer(roles, many=True)
        return Response(serializer.data)

    if not request.data.get('name') or not request.data.get('slug') or not request.data.get('workspace_id'):
        return Response({'error': 'name, slug and workspace_id are required'}, status=status.HTTP_400_BAD_REQUEST)
    workspace, error = resolve_workspace(request, admin=True)
    if error:
        return error
    if Role.objects.filter(workspace=workspace, slug=request.data.get('slug')).exists():
        return Response({'error': 'A role with this slug already exists'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = RoleSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(workspace=workspace, is_system_role=False)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def role_detail(request, pk):
    """Retrieve, update or delete a role"""
    role = get_object_or_404(Role.objects.select_related('workspace'), pk=pk)

    if request.method == 'GET':
        if not can_view_role(request.user, role):
            return forbidden('Unauthorized workspace access')
        return Response(RoleSerializer(role).data)

    if role.is_system_role:
        return forbidden('System roles cannot be modified')
    if not can_manage_role(request.user, role):
        return forbidden()

    if request.method in ('PUT', 'PATCH'):
        serializer = RoleSerializer(role, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            new_slug = serializer.validated_data.get('slug', role.slug)
            if Role.objects.filter(workspace=role.workspace, slug=new_slug).exclude(pk=role.pk).exists():
                return Response({'error': 'A role with this slug already exists'}, status=status.HTTP_400_BAD_REQUEST)
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    # DELETE
    if role.slug == 'admin':
        return forbidden('The admin role cannot be deleted')
    if role.user_roles.exists():
        return Response({'error': 'Cannot delete a role that is assigned to users'}, status=status.HTTP_400_BAD_REQUEST)
    role.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


# Role module toggles
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def role_modules(request):
    """Modules enabled for a role, or toggle one module"""
    if request.method == 'GET':
        role_id = request.query_params.get('role_id')
        if not role_id:
            return Response({'error': 'role_id is required'}, status=status.HTTP_400_BAD_REQUEST)
        role = get_object_or_404(Role, pk=role_id)
        if not can_view_role(request.user, role):
            return forbidden('Unauthorized workspace access')
        return Response({
            'role': RoleSerializer(role).data,
            'modules': get_role_modules(role),
        })

    role_id = request.data.get('role_id')
    module_slug = request.data.get('module_slug')
    is_active = request.data.get('is_active')
    if not role_id or not module_slug:
        return Response({'error': 'role_id and module_slug are required'}, status=status.HTTP_400_BAD_REQUEST)
    if not isinstance(is_active, bool):
        return Response({'error': 'is_active must be a boolean'}, status=status.HTTP_400_BAD_REQUEST)
    if module_slug not in MODULE_SLUGS:
        return Response({'error': f'Unknown module: {module_slug}'}, status=status.HTTP_400_BAD_REQUEST)
    role = get_object_or_404(Role, pk=role_id)
    if not can_manage_role(request.user, role):
        return forbidden()

    module, _ = RoleModule.objects.update_or_create(
        role=role, module_slug=module_slug,
        defaults={'is_active': is_active, 'workspace': role.workspace},
    )
    return Response({
        'id': module.id,
        'role_id': role.id,
        'module_slug': module.module_slug,
        'is_active': module.is_active,
    })


def _toggle_payload(request, key):
    role_id = request.data.get('role_id')
    target_id = request.data.get(key)
    is_active = request.data.get('is_active')
    if not role_id or not target_id:
        return None, Response({'error': f'role_id and {key} are required'}, status=status.HTTP_400_BAD_REQUEST)
    if not isinstance(is_active, bool):
        return None, Response({'error': 'is_active must be a boolean'}, status=status.HTTP_400_BAD_REQUEST)
    return (role_id, target_id, is_active), None


@api_view(['POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def role_permission_groups(request):
    """Enable/disable a permission group for a role, or remove the link"""
    if request.method == 'DELETE':
        role = get_object_or_404(Role, pk=request.query_params.get('role_id') or 0)
        if not can_manage_role(request.user, role):
            return forbidden()
        deleted, _ = RolePermissionGroup.objects.filter(
            role=role, group_id=request.query_params.get('group_id') or 0
        ).delete()
        if not deleted:
            return Response({'error': 'Permission group link not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)

    payload, error = _toggle_payload(request, 'group_id')
    if error:
        return error
    role_id, group_id, is_active = payload
    role = get_object_or_404(Role, pk=role_id)
    group = get_object_or_404(PermissionGroup, pk=group_id)
    if not can_manage_role(request.user, role):
        return forbidden()
    link, _ = RolePermissionGroup.objects.update_or_create(
        role=role, group=group, defaults={'is_active': is_active}
    )
    return Response({'id': link.id, 'role_id': role.id, 'group_id': group.id, 'is_active': link.is_active})


@api_view(['POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def role_permission_switches(request):
    """Enable/disable a permission switch for a role"""
    if request.method == 'DELETE':
        role = get_object_or_404(Role, pk=request.query_params.get('role_id') or 0)
        if not can_manage_role(request.user, role):
            return forbidden()
        deleted, _ = RolePermissionSwitch.objects.filter(
            role=role, switch_id=request.query_params.get('switch_id') or 0
        ).delete()
        if not deleted:
            return Response({'error': 'Permission switch link not found'}, status=status.HTTP_404_NOT_FOUND)
        return Response(status=status.HTTP_204_NO_CONTENT)

    payload, error = _toggle_payload(request, 'switch_id')
    if error:
        return error
    role_id, switch_id, is_active = payload
    role = get_object_or_404(Role, pk=role_id)
    switch = get_object_or_404(PermissionSwitch, pk=switch_id)
    if not can_manage_role(request.user, role):
        return forbidden()

    if request.method == 'PUT':
        link = get_object_or_404(RolePermissionSwitch, role=role, switch=switch)
        link.is_active = is_active
        link.save(update_fields=['is_active', 'updated_at'])
    else:
        link, _ = RolePermissionSwitch.objects.update_or_create(
            role=role, switch=switch, defaults={'is_active': is_active}
        )
    return Response({'id': link.id, 'role_id': role.id, 'switch_id': switch.id, 'is_active': link.is_active})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def role_permission_tree(request, pk):
    """Permission groups and switches of a role"""
    role = get_object_or_404(Role, pk=pk)
    if not can_view_role(request.user, role):
        return forbidden('Unauthorized workspace access')
    return Response(get_role_with_permissions(role))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def permission_group_list(request):
    """Catalog of permission groups with their switches"""
    groups = PermissionGroup.objects.prefetch_related('switches')
    serializer = PermissionGroupSerializer(groups, many=True)
    return Response(serializer.data)


# User role views
@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def user_role_list_create(request):
    """List, assign or remove user roles"""
    if request.method == 'GET':
        user_id = request.query_params.get('user_id') or request.user.id
        user_roles = UserRole.objects.filter(user_id=user_id).select_related('role', 'workspace')
        if str(user_id) != str(request.user.id) and not request.user.is_staff:
            # Outside staff, only assignments of workspaces the caller administers are visible
            user_roles = [
                ur for ur in user_roles
                if ur.workspace_id and can_manage_assignment(request.user, ur)
            ]
        serializer = UserRoleSerializer(user_roles, many=True)
        return Response(serializer.data)

    if request.method == 'DELETE':
        user_role = get_object_or_404(UserRole.objects.select_related('role', 'workspace'), pk=request.query_params.get('id') or 0)
        if not can_manage_assignment(request.user, user_role):
            return forbidden()
        user_role.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    user_id = request.data.get('user_id')
    role_id = request.data.get('role_id')
    if not user_id or not role_id:
        return Response({'error': 'user_id and role_id are required'}, status=status.HTTP_400_BAD_REQUEST)
    target_user = get_object_or_404(User, pk=user_id)
    role = get_object_or_404(Role, pk=role_id)

    workspace = None
    if request.data.get('workspace_id'):
        workspace, error = resolve_workspace(request, admin=True)
        if error:
            return error
        if role.workspace_id not in (None, workspace.id):
            return Response({'error': 'Role does not belong to this workspace'}, status=status.HTTP_400_BAD_REQUEST)
        if not check_workspace_access(target_user, workspace):
            return Response({'error': 'User is not part of this workspace'}, status=status.HTTP_400_BAD_REQUEST)
    elif not can_manage_role(request.user, role):
        return forbidden()

    user_role = assign_role(target_user, role, workspace=workspace or role.workspace, assigned_by=request.user)
    create_audit_log(
        request=request, action='role_assign', model_name='UserRole', object_id=user_role.id,
        workspace=workspace or role.workspace, object_name=role.slug,
        changes={'user_id': target_user.id, 'role_id': role.id},
    )
    return Response(UserRoleSerializer(user_role).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def my_permissions(request):
    """Effective modules, switches and roles of the caller in a workspace"""
    workspace, error = resolve_workspace(request)
    if error:
        return error
    return Response({
        'workspace_id': workspace.id,
        'permissions': get_user_permissions(request.user, workspace),
        'switches': get_user_switches(request.user, workspace),
        'roles': list(get_user_roles(request.user, workspace).values_list('slug', flat=True)),
    })
