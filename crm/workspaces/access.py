"""
Workspace access checks.

A user reaches a workspace when it owns it, is a member of it, or was added
to it as an agent. Admin rights belong to the owner and to members with the
admin role.
"""
from django.db.models import Q
from rest_framework import status
from rest_framework.response import Response

from .models import Workspace, WorkspaceMember, WorkspaceAgent


def accessible_workspaces(user):
    if not user or not user.is_authenticated:
        return Workspace.objects.none()
    return Workspace.objects.filter(
        Q(owner=user) | Q(members__user=user) | Q(agents__agent=user)
    ).distinct()


def get_workspace_role(user, workspace):
    """'owner', 'admin', 'agent' or None"""
    if not user or not user.is_authenticated or workspace is None:
        return None
    if workspace.owner_id == user.id:
        return 'owner'
    member_role = WorkspaceMember.objects.filter(
        workspace=workspace, user=user
    ).values_list('role', flat=True).first()
    if member_role:
        return member_role
    if WorkspaceAgent.objects.filter(workspace=workspace, agent=user).exists():
        return 'agent'
    return None


def check_workspace_access(user, workspace):
    return get_workspace_role(user, workspace) is not None


def check_workspace_admin(user, workspace):
    return get_workspace_role(user, workspace) in ('owner', 'admin')


def get_request_workspace_id(request):
    workspace_id = request.query_params.get('workspace_id')
    if not workspace_id and hasattr(request.data, 'get'):
        workspace_id = request.data.get('workspace_id')
    return workspace_id


def resolve_workspace(request, workspace_id=None, admin=False):
    """
    Load the workspace named by the request and check the caller may use it.

    Returns (workspace, None) on success or (None, Response) with the error
    to send back.
    """
    if workspace_id is None:
        workspace_id = get_request_workspace_id(request)
    if not workspace_id:
        return None, Response({'error': 'Workspace ID required'}, status=status.HTTP_400_BAD_REQUEST)

    try:
        workspace = Workspace.objects.get(pk=int(workspace_id))
    except (Workspace.DoesNotExist, TypeError, ValueError):
        return None, Response({'error': 'Workspace not found'}, status=status.HTTP_404_NOT_FOUND)

    role = get_workspace_role(request.user, workspace)
    if role is None:
        return None, Response({'error': 'Unauthorized workspace access'}, status=status.HTTP_403_FORBIDDEN)
    if admin and role not in ('owner', 'admin'):
        return None, Response({'error': 'Only workspace admins can perform this action'}, status=status.HTTP_403_FORBIDDEN)
    return workspace, None
