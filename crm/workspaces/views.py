import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from crm.chat.models import InboxChannel
from crm.core.utils import parse_bool, parse_int
from crm.roles.models import Role
from .access import accessible_workspaces, get_workspace_role, resolve_workspace
from .invitations import InvitationError, create_invitation, accept_invitation, reject_invitation
from .models import Workspace, WorkspaceMember, WorkspaceAgent, AgentProfile, AgentInvitation
from .serializers import (
    WorkspaceSerializer, WorkspaceSettingsSerializer, WorkspaceMemberSerializer, AgentProfileSerializer,
    AgentInvitationSerializer, InvitationCreateSerializer,
)

logger = logging.getLogger(__name__)

User = get_user_model()


# Workspace views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def workspace_list_create(request):
    """List workspaces the user can reach or create a new one"""
    if request.method == 'GET':
        data = []
        for workspace in accessible_workspaces(request.user):
            item = WorkspaceSerializer(workspace).data
            is_owner = workspace.owner_id == request.user.id
            item['is_owner'] = is_owner
            item['access_type'] = 'owner' if is_owner else 'guest'
            item['role'] = get_workspace_role(request.user, workspace)
            data.append(item)
        return Response(data)

    serializer = WorkspaceSerializer(data=request.data)
    if serializer.is_valid():
        with transaction.atomic():
            workspace = serializer.save(owner=request.user)
            WorkspaceMember.objects.create(workspace=workspace, user=request.user, role='admin')
        logger.info(f"Workspace {workspace.id} created by user {request.user.id}")
        return Response(WorkspaceSerializer(workspace).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def workspace_detail(request, pk):
    """Retrieve, update or delete a workspace"""
    workspace, error = resolve_workspace(request, workspace_id=pk, admin=request.method != 'GET')
    if error:
        return error

    if request.method == 'GET':
        data = WorkspaceSerializer(workspace).data
        data['role'] = get_workspace_role(request.user, workspace)
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = WorkspaceSerializer(workspace, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        if workspace.owner_id != request.user.id:
            return Response({'error': 'Only the owner can delete a workspace'}, status=status.HTTP_403_FORBIDDEN)
        workspace.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def workspace_settings(request, pk):
    """Stock related workspace settings"""
    workspace, error = resolve_workspace(request, workspace_id=pk, admin=request.method == 'PUT')
    if error:
        return error

    if request.method == 'GET':
        return Response(WorkspaceSettingsSerializer(workspace).data)

    update_fields = []
    if 'default_min_stock_alert' in request.data:
        value = request.data.get('default_min_stock_alert')
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            return Response({'error': 'default_min_stock_alert must be a non-negative number'}, status=status.HTTP_400_BAD_REQUEST)
        workspace.default_min_stock_alert = int(value)
        update_fields.append('default_min_stock_alert')
    if 'allow_orders_without_stock' in request.data:
        value = request.data.get('allow_orders_without_stock')
        if not isinstance(value, bool):
            return Response({'error': 'allow_orders_without_stock must be a boolean'}, status=status.HTTP_400_BAD_REQUEST)
        workspace.allow_orders_without_stock = value
        update_fields.append('allow_orders_without_stock')

    if update_fields:
        workspace.save(update_fields=update_fields + ['updated_at'])
    return Response(WorkspaceSettingsSerializer(workspace).data)


# Member views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def workspace_members(request, pk):
    """List people with access to a workspace or add an existing user as member"""
    workspace, error = resolve_workspace(request, workspace_id=pk, admin=request.method == 'POST')
    if error:
        return error

    if request.method == 'GET':
        people = {}
        owner = workspace.owner
        people[owner.id] = {'user_id': owner.id, 'username': owner.username, 'email': owner.email,
                            'role': 'owner', 'is_owner': True}
        for member in WorkspaceMember.objects.filter(workspace=workspace).select_related('user'):
            entry = people.setdefault(member.user_id, {
                'user_id': member.user_id, 'username': member.user.username,
                'email': member.user.email, 'role': member.role, 'is_owner': False,
            })
            if not entry['is_owner']:
                entry['role'] = member.role
        for agent in WorkspaceAgent.objects.filter(workspace=workspace).select_related('agent'):
            people.setdefault(agent.agent_id, {
                'user_id': agent.agent_id, 'username': agent.agent.username,
                'email': agent.agent.email, 'role': 'agent', 'is_owner': False,
            })
        profiles = {
            p.user_id: p for p in AgentProfile.objects.filter(user_id__in=people.keys())
        }
        for user_id, entry in people.items():
            profile = profiles.get(user_id)
            entry['display_name'] = profile.display_name if profile and profile.display_name else entry['username']
            entry['status'] = profile.status if profile else 'offline'
        return Response(sorted(people.values(), key=lambda p: (not p['is_owner'], p['display_name'].lower())))

    user_id = request.data.get('user_id')
    email = request.data.get('email')
    if not user_id and not email:
        return Response({'error': 'user_id or email is required'}, status=status.HTTP_400_BAD_REQUEST)
    lookup = Q(pk=user_id) if user_id else Q(email__iexact=email)
    user = User.objects.filter(lookup).first()
    if not user:
        return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
    role = request.data.get('role', 'agent')
    if role not in dict(WorkspaceMember.ROLE_CHOICES):
        return Response({'error': 'role must be admin or agent'}, status=status.HTTP_400_BAD_REQUEST)
    member, created = WorkspaceMember.objects.update_or_create(
        workspace=workspace, user=user, defaults={'role': role}
    )
    return Response(WorkspaceMemberSerializer(member).data,
                    status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def workspace_member_remove(request, pk, user_id):
    workspace, error = resolve_workspace(request, workspace_id=pk, admin=True)
    if error:
        return error
    if workspace.owner_id == user_id:
        return Response({'error': 'The workspace owner cannot be removed'}, status=status.HTTP_400_BAD_REQUEST)
    with transaction.atomic():
        removed_members, _ = WorkspaceMember.objects.filter(workspace=workspace, user_id=user_id).delete()
        removed_agents, _ = WorkspaceAgent.objects.filter(workspace=workspace, agent_id=user_id).delete()
    if not removed_members and not removed_agents:
        return Response({'error': 'Member not found'}, status=status.HTTP_404_NOT_FOUND)
    return Response(status=status.HTTP_204_NO_CONTENT)


# Agent views
def workspace_agent_ids(workspace):
    """Users working the workspace chats: attached agents and agent members"""
    agent_ids = set(WorkspaceAgent.objects.filter(workspace=workspace).values_list('agent_id', flat=True))
    agent_ids.update(
        WorkspaceMember.objects.filter(workspace=workspace, role='agent').values_list('user_id', flat=True)
    )
    return agent_ids


def can_edit_profile(user, target_id):
    return str(target_id) == str(user.id) or user.is_staff


@api_view(['GET', 'POST', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def agents(request):
    """
    Agent profiles.

    GET lists the agents of ?workspace_id (staff may omit it to see every
    profile), optionally by ?status or ?active_only=true. POST creates and
    PATCH updates the profile of body user_id, which must be the caller
    unless staff. DELETE takes an agent out of ?workspace_id.
    """
    if request.method == 'GET':
        queryset = AgentProfile.objects.select_related('user')
        if request.query_params.get('workspace_id') or not request.user.is_staff:
            workspace, error = resolve_workspace(request)
            if error:
                return error
            queryset = queryset.filter(user_id__in=workspace_agent_ids(workspace))
        if parse_bool(request.query_params.get('active_only')):
            queryset = queryset.exclude(status='offline')
        elif request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params.get('status'))
        return Response(AgentProfileSerializer(queryset.order_by('display_name', 'id'), many=True).data)

    if request.method == 'DELETE':
        user_id = parse_int(request.query_params.get('user_id'))
        if not user_id:
            return Response({'error': 'user_id is required'}, status=status.HTTP_400_BAD_REQUEST)
        workspace, error = resolve_workspace(request, admin=True)
        if error:
            return error
        if workspace.owner_id == user_id:
            return Response({'error': 'The workspace owner cannot be removed'}, status=status.HTTP_400_BAD_REQUEST)
        with transaction.atomic():
            removed_agents, _ = WorkspaceAgent.objects.filter(workspace=workspace, agent_id=user_id).delete()
            removed_members, _ = WorkspaceMember.objects.filter(workspace=workspace, user_id=user_id, role='agent').delete()
            InboxChannel.objects.filter(workspace=workspace, user_id=user_id).update(is_active=False)
        if not removed_agents and not removed_members:
            return Response({'error': 'Agent not found in this workspace'}, status=status.HTTP_404_NOT_FOUND)
        logger.info(f"Agent {user_id} removed from workspace {workspace.id} by {request.user.id}")
        return Response({'success': True})

    user_id = parse_int(request.data.get('user_id'))
    if not user_id:
        return Response({'error': 'user_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    if not can_edit_profile(request.user, user_id):
        return Response({'error': 'You can only manage your own agent profile'}, status=status.HTTP_403_FORBIDDEN)
    user = get_object_or_404(User, pk=user_id)

    if request.method == 'POST':
        if AgentProfile.objects.filter(user=user).exists():
            return Response({'error': 'Agent profile already exists'}, status=status.HTTP_400_BAD_REQUEST)
        serializer = AgentProfileSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer.save(user=user)
        return Response(serializer.data, status=status.HTTP_201_CREATED)

    profile = AgentProfile.objects.filter(user=user).first()
    if not profile:
        return Response({'error': 'Agent profile not found'}, status=status.HTTP_404_NOT_FOUND)
    serializer = AgentProfileSerializer(profile, data=request.data, partial=True)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer.save()
    return Response(serializer.data)


# Invitation views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def invitation_list_create(request):
    """Invitations sent by a workspace, or received by the current user"""
    if request.method == 'GET':
        if request.query_params.get('my_invitations') == 'true':
            invitations = AgentInvitation.objects.filter(
                email__iexact=request.user.email or '', status='pending', expires_at__gt=timezone.now()
            )
        else:
            workspace, error = resolve_workspace(request, admin=True)
            if error:
                return error
            invitations = AgentInvitation.objects.filter(workspace=workspace)
            invitation_status = request.query_params.get('status')
            if invitation_status:
                invitations = invitations.filter(status=invitation_status)
        invitations = invitations.select_related('workspace', 'role', 'invited_by')
        return Response(AgentInvitationSerializer(invitations, many=True).data)

    serializer = InvitationCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    data = serializer.validated_data
    workspace, error = resolve_workspace(request, workspace_id=data['workspace_id'], admin=True)
    if error:
        return error

    role = None
    if data.get('role_id'):
        role = Role.objects.filter(
            Q(workspace=workspace) | Q(workspace__isnull=True), pk=data['role_id']
        ).first()
        if not role:
            return Response({'error': 'Role not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        invitation = create_invitation(
            workspace,
            request.user,
            data['email'],
            role=role,
            display_name=data.get('display_name'),
            max_concurrent_chats=data.get('max_concurrent_chats', 5),
            specialties=data.get('specialties'),
            languages=data.get('languages'),
            message=data.get('message'),
        )
    except InvitationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(AgentInvitationSerializer(invitation).data, status=status.HTTP_201_CREATED)


def _answer_invitation(request, handler):
    token = request.data.get('token')
    if not token:
        return Response({'error': 'token is required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        invitation = handler(token, request.user)
    except InvitationError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    return Response(AgentInvitationSerializer(invitation).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def invitation_accept(request):
    return _answer_invitation(request, accept_invitation)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def invitation_reject(request):
    return _answer_invitation(request, reject_invitation)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def invitation_revoke(request, pk):
    """Cancel a pending invitation"""
    invitation = get_object_or_404(AgentInvitation, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=invitation.workspace_id, admin=True)
    if error:
        return error
    if invitation.status != 'pending':
        return Response({'error': 'Only pending invitations can be cancelled'}, status=status.HTTP_400_BAD_REQUEST)
    invitation.status = 'cancelled'
    invitation.responded_at = timezone.now()
    invitation.save(update_fields=['status', 'responded_at', 'updated_at'])
    return Response(AgentInvitationSerializer(invitation).data)
