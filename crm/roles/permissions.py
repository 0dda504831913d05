"""
Effective permissions of a user inside a workspace.

Permissions come from three places: the workspace relationship (owners and
admin members see everything), the JSON ``permissions`` of each assigned role
and the role module toggles. Fine-grained switches are resolved separately
from the group/switch tables.
"""
import logging

from django.core.cache import cache
from django.db import transaction
from django.db.models import Q

from crm.core.cache_utils import make_namespaced_key, PERMISSIONS_CACHE_TTL
from crm.workspaces.access import get_workspace_role
from .models import (
    Role, UserRole, RoleModule, PermissionGroup, PermissionSwitch,
    RolePermissionGroup, RolePermissionSwitch,
)

logger = logging.getLogger(__name__)

PERMISSIONS_NAMESPACE = 'permissions'

ADMIN_ROLE_SLUGS = ('super_admin', 'admin')

SYSTEM_MODULES = [
    {'slug': 'dashboard', 'name': 'Dashboard', 'description': 'Overview and metrics', 'icon': 'layout-dashboard'},
    {'slug': 'chats', 'name': 'Chats', 'description': 'Conversations with customers', 'icon': 'message-circle'},
    {'slug': 'assistant', 'name': 'Assistant', 'description': 'AI assistant', 'icon': 'bot'},
    {'slug': 'customers', 'name': 'Customers', 'description': 'Customer records', 'icon': 'users'},
    {'slug': 'orders', 'name': 'Orders', 'description': 'Sales orders', 'icon': 'shopping-cart'},
    {'slug': 'scheduled_messages', 'name': 'Scheduled messages', 'description': 'Messages sent at a future time', 'icon': 'clock'},
    {'slug': 'products', 'name': 'Products', 'description': 'Catalog and stock', 'icon': 'package'},
    {'slug': 'kanban', 'name': 'Kanban', 'description': 'Customer pipeline board', 'icon': 'columns'},
    {'slug': 'payments', 'name': 'Payments', 'description': 'Payments received', 'icon': 'credit-card'},
    {'slug': 'integrations', 'name': 'Integrations', 'description': 'Channels and external services', 'icon': 'plug'},
    {'slug': 'automation', 'name': 'Automation', 'description': 'Automated flows', 'icon': 'zap'},
    {'slug': 'config', 'name': 'Configuration', 'description': 'Workspace settings', 'icon': 'settings'},
]

MODULE_SLUGS = [module['slug'] for module in SYSTEM_MODULES]


def get_user_roles(user, workspace=None):
    """Roles held by the user; with a workspace, only assignments made in it or global ones"""
    assignments = UserRole.objects.filter(user=user)
    roles = Role.objects.all()
    if workspace is not None:
        assignments = assignments.filter(Q(workspace=workspace) | Q(workspace__isnull=True))
        roles = roles.filter(Q(workspace=workspace) | Q(workspace__isnull=True))
    return roles.filter(id__in=assignments.values('role_id'))


def is_admin(user, workspace=None):
    if not user or not user.is_authenticated:
        return False
    return get_user_roles(user, workspace).filter(slug__in=ADMIN_ROLE_SLUGS).exists()


def _merge_permission(merged, key, value):
    current = merged.get(key)
    if value is True or current is True:
        merged[key] = True
    elif isinstance(value, dict):
        actions = dict(current) if isinstance(current, dict) else {}
        for action, allowed in value.items():
            actions[action] = bool(actions.get(action)) or allowed is True
        merged[key] = actions
    elif key not in merged:
        merged[key] = False


def compute_user_permissions(user, workspace):
    role = get_workspace_role(user, workspace)
    if role is None:
        return {}
    if role in ('owner', 'admin'):
        return {'all': True}

    roles = list(get_user_roles(user, workspace).prefetch_related('modules'))
    if any(r.slug in ADMIN_ROLE_SLUGS for r in roles):
        return {'all': True}

    merged = {}
    for r in roles:
        for key, value in (r.permissions or {}).items():
            if key == 'all':
                if value is True:
                    return {'all': True}
                continue
            _merge_permission(merged, key, value)
        for module in r.modules.all():
            if module.workspace_id not in (None, workspace.id):
                continue
            if module.is_active:
                merged[module.module_slug] = True
            elif module.module_slug not in merged:
                merged[module.module_slug] = False
    return merged


def get_user_permissions(user, workspace):
    """Merged permission map, cached per user and workspace"""
    if not user or not user.is_authenticated or workspace is None:
        return {}
    cache_key = make_namespaced_key(PERMISSIONS_NAMESPACE, user.id, workspace.id)
    permissions = cache.get(cache_key)
    if permissions is None:
        permissions = compute_user_permissions(user, workspace)
        cache.set(cache_key, permissions, PERMISSIONS_CACHE_TTL)
    return permissions


def has_module_access(user, workspace, module_slug):
    permissions = get_user_permissions(user, workspace)
    if permissions.get('all') is True:
        return True
    value = permissions.get(module_slug)
    if value is True:
        return True
    return isinstance(value, dict) and value.get('view') is True


def get_user_switches(user, workspace):
    """{switch_slug: bool}; a switch is on when one role has both it and its group active"""
    switches = PermissionSwitch.objects.all()
    if get_user_permissions(user, workspace).get('all') is True:
        return {switch.slug: True for switch in switches}

    role_ids = list(get_user_roles(user, workspace).values_list('id', flat=True))
    active_groups = set(
        RolePermissionGroup.objects.filter(role_id__in=role_ids, is_active=True)
        .values_list('role_id', 'group_id')
    )
    enabled = set()
    role_switches = RolePermissionSwitch.objects.filter(
        role_id__in=role_ids, is_active=True
    ).select_related('switch')
    for link in role_switches:
        if (link.role_id, link.switch.group_id) in active_groups:
            enabled.add(link.switch.slug)
    return {switch.slug: switch.slug in enabled for switch in switches}


def get_role_with_permissions(role):
    """Group -> switch tree of a role with the active flags filled in"""
    group_flags = dict(
        RolePermissionGroup.objects.filter(role=role).values_list('group_id', 'is_active')
    )
    switch_flags = dict(
        RolePermissionSwitch.objects.filter(role=role).values_list('switch_id', 'is_active')
    )
    groups = []
    for group in PermissionGroup.objects.prefetch_related('switches'):
        groups.append({
            'group': {
                'id': group.id,
                'name': group.name,
                'slug': group.slug,
                'description': group.description,
                'icon': group.icon,
                'sort_order': group.sort_order,
            },
            'is_active': group_flags.get(group.id, False),
            'switches': [
                {
                    'switch': {
                        'id': switch.id,
                        'name': switch.name,
                        'slug': switch.slug,
                        'description': switch.description,
                    },
                    'is_active': switch_flags.get(switch.id, False),
                }
                for switch in group.switches.all()
            ],
        })
    return {
        'role': {'id': role.id, 'name': role.name, 'slug': role.slug},
        'groups': groups,
    }


def get_role_modules(role):
    flags = dict(RoleModule.objects.filter(role=role).values_list('module_slug', 'is_active'))
    return [
        {'module': module, 'is_active': flags.get(module['slug'], False)}
        for module in SYSTEM_MODULES
    ]


def can_manage_role(user, role):
    """Workspace roles are managed by workspace admins, system roles by staff"""
    if role.workspace_id:
        return get_workspace_role(user, role.workspace) in ('owner', 'admin')
    return bool(user.is_staff or user.is_superuser)


def can_manage_assignment(user, user_role):
    if user_role.workspace_id:
        return get_workspace_role(user, user_role.workspace) in ('owner', 'admin')
    return can_manage_role(user, user_role.role)


def assign_role(user, role, workspace=None, assigned_by=None):
    """Give the user exactly one role within the workspace scope"""
    with transaction.atomic():
        removed, _ = UserRole.objects.filter(user=user, workspace=workspace).delete()
        user_role = UserRole.objects.create(
            user=user, role=role, workspace=workspace, assigned_by=assigned_by
        )
    logger.info(f"Assigned role {role.slug} to user {user.id} (replaced {removed})")
    return user_role
