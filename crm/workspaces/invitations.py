"""Agent invitation workflow"""
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.core.mail import send_mail
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from crm.core.utils import create_audit_log
from crm.notifications.services import create_notification
from crm.roles.models import Role
from crm.roles.permissions import ADMIN_ROLE_SLUGS, assign_role
from .models import AgentInvitation, AgentProfile, WorkspaceAgent, WorkspaceMember

logger = logging.getLogger(__name__)


class InvitationError(Exception):
    """Invitation cannot be created or answered"""


def default_agent_role(workspace):
    """The workspace's 'agent' role, else the system one"""
    return (
        Role.objects.filter(Q(workspace=workspace) | Q(workspace__isnull=True), slug='agent')
        .order_by('workspace_id')
        .first()
    )


def send_invitation_email(invitation):
    if not settings.ENABLE_INVITATION_EMAILS:
        return False
    accept_url = f"{settings.APP_URL.rstrip('/')}/invitations/{invitation.token}"
    inviter = invitation.invited_by.get_display_name() if invitation.invited_by else 'A workspace admin'
    body = (
        f"{inviter} invited you to join {invitation.workspace.name}.\n\n"
        f"{invitation.message or ''}\n\n"
        f"Accept the invitation: {accept_url}\n"
        f"This invitation expires on {invitation.expires_at:%Y-%m-%d}."
    )
    try:
        send_mail(
            subject=f"Invitation to {invitation.workspace.name}",
            message=body,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[invitation.email],
        )
        return True
    except Exception as e:
        logger.error(f"Failed to send invitation email to {invitation.email}: {str(e)}")
        return False


def create_invitation(workspace, invited_by, email, role=None, display_name=None,
                      max_concurrent_chats=5, specialties=None, languages=None, message=None):
    email = email.strip().lower()
    if AgentInvitation.objects.filter(workspace=workspace, email__iexact=email, status='pending').exists():
        raise InvitationError('A pending invitation already exists for this email')

    invitation = AgentInvitation.objects.create(
        workspace=workspace,
        email=email,
        role=role or default_agent_role(workspace),
        invited_by=invited_by,
        display_name=display_name,
        max_concurrent_chats=max_concurrent_chats,
        specialties=specialties or [],
        languages=languages or ['es'],
        message=message,
    )
    logger.info(f"Invitation {invitation.id} created for {email} in workspace {workspace.id}")

    send_invitation_email(invitation)

    invited_user = get_user_model().objects.filter(email__iexact=email).first()
    if invited_user:
        create_notification(
            invited_user,
            'invitation',
            f"Invitation to {workspace.name}",
            message=message or f"You have been invited to join {workspace.name}",
            priority='high',
            workspace=workspace,
            action_url='/invitations',
            metadata={'invitation_id': invitation.id, 'token': str(invitation.token)},
        )
    return invitation


def _load_pending(token, user):
    try:
        invitation = AgentInvitation.objects.select_for_update().select_related('workspace', 'role').get(token=token)
    except (AgentInvitation.DoesNotExist, ValidationError, ValueError, TypeError):
        raise InvitationError('Invitation not found')
    if invitation.status != 'pending':
        raise InvitationError(f'Invitation already {invitation.status}')
    if invitation.is_expired:
        raise InvitationError('Invitation has expired')
    if (user.email or '').lower() != invitation.email.lower():
        raise InvitationError('This invitation was sent to a different email')
    return invitation


def accept_invitation(token, user):
    with transaction.atomic():
        invitation = _load_pending(token, user)
        workspace = invitation.workspace

        WorkspaceAgent.objects.get_or_create(
            workspace=workspace, agent=user, defaults={'invited_by': invitation.invited_by}
        )
        member_role = 'admin' if invitation.role and invitation.role.slug in ADMIN_ROLE_SLUGS else 'agent'
        WorkspaceMember.objects.get_or_create(workspace=workspace, user=user, defaults={'role': member_role})

        profile, created = AgentProfile.objects.get_or_create(
            user=user,
            defaults={
                'display_name': invitation.display_name or user.get_display_name(),
                'max_concurrent_chats': invitation.max_concurrent_chats,
                'specialties': invitation.specialties,
                'languages': invitation.languages,
            },
        )
        if not created and invitation.display_name and not profile.display_name:
            profile.display_name = invitation.display_name
            profile.save(update_fields=['display_name', 'updated_at'])

        if invitation.role:
            assign_role(user, invitation.role, workspace=workspace, assigned_by=invitation.invited_by)

        invitation.status = 'accepted'
        invitation.responded_at = timezone.now()
        invitation.save(update_fields=['status', 'responded_at', 'updated_at'])

    create_audit_log(
        action='invitation_accept', model_name='AgentInvitation', object_id=invitation.id,
        user=user, workspace=workspace, object_name=invitation.email,
    )
    if invitation.invited_by:
        create_notification(
            invitation.invited_by,
            'system',
            'Invitation accepted',
            message=f"{invitation.email} joined {workspace.name}",
            workspace=workspace,
        )
    logger.info(f"Invitation {invitation.id} accepted by user {user.id}")
    return invitation


def reject_invitation(token, user):
    with transaction.atomic():
        invitation = _load_pending(token, user)
        invitation.status = 'rejected'
        invitation.responded_at = timezone.now()
        invitation.save(update_fields=['status', 'responded_at', 'updated_at'])
    logger.info(f"Invitation {invitation.id} rejected by user {user.id}")
    return invitation

