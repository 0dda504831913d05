import uuid
from datetime import timedelta

from django.conf import settings
from django.db import models
from django.utils import timezone


INVITATION_TTL_DAYS = 7


def default_invitation_expiry():
    return timezone.now() + timedelta(days=INVITATION_TTL_DAYS)


class Workspace(models.Model):
    """Tenant boundary: every business record belongs to one workspace"""
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True)
    description = models.TextField(blank=True, null=True)
    image_url = models.URLField(max_length=500, blank=True, null=True)
    owner = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='owned_workspaces')
    default_min_stock_alert = models.PositiveIntegerField(default=10)
    allow_orders_without_stock = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'workspaces'
        ordering = ['name']

    def __str__(self):
        return self.name


class WorkspaceMember(models.Model):
    ROLE_CHOICES = [
        ('admin', 'Admin'),
        ('agent', 'Agent'),
    ]

    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name='members')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='workspace_memberships')
    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='agent')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'workspace_members'
        unique_together = [['workspace', 'user']]

    def __str__(self):
        return f"{self.user} @ {self.workspace} ({self.role})"


class WorkspaceAgent(models.Model):
    """Agent attached to a workspace through an accepted invitation"""
    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name='agents')
    agent = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='agent_workspaces')
    invited_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'workspace_agents'
        unique_together = [['workspace', 'agent']]

    def __str__(self):
        return f"{self.agent} agent of {self.workspace}"


class AgentProfile(models.Model):
    STATUS_CHOICES = [
        ('online', 'Online'),
        ('away', 'Away'),
        ('busy', 'Busy'),
        ('offline', 'Offline'),
    ]

    user = models.OneToOneField(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='agent_profile')
    display_name = models.CharField(max_length=255, blank=True, null=True)
    avatar_url = models.URLField(max_length=500, blank=True, null=True)
    chatwoot_user_id = models.IntegerField(null=True, blank=True, db_index=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='offline')
    max_concurrent_chats = models.PositiveIntegerField(default=5)
    specialties = models.JSONField(default=list, blank=True)
    languages = models.JSONField(default=list, blank=True)
    working_hours = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'agent_profiles'

    def __str__(self):
        return self.display_name or str(self.user)


class AgentInvitation(models.Model):
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('accepted', 'Accepted'),
        ('rejected', 'Rejected'),
        ('cancelled', 'Cancelled'),
    ]

    workspace = models.ForeignKey(Workspace, on_delete=models.CASCADE, related_name='invitations')
    email = models.EmailField()
    role = models.ForeignKey('roles.Role', on_delete=models.SET_NULL, null=True, blank=True, related_name='invitations')
    invited_by = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='sent_invitations')
    display_name = models.CharField(max_length=255, blank=True, null=True)
    max_concurrent_chats = models.PositiveIntegerField(default=5)
    specialties = models.JSONField(default=list, blank=True)
    languages = models.JSONField(default=list, blank=True)
    message = models.TextField(blank=True, null=True)
    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending')
    expires_at = models.DateTimeField(default=default_invitation_expiry)
    responded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'agent_invitations'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email', 'status'], name='idx_invitation_email_status'),
        ]

    def __str__(self):
        return f"Invitation {self.email} -> {self.workspace}"

    @property
    def is_expired(self):
        return self.expires_at <= timezone.now()


def get_agent_display_name(user, fallback=None):
    """Agent profile name, then the user's own display name"""
    if user is None:
        return fallback
    profile = AgentProfile.objects.filter(user=user).first()
    if profile and profile.display_name:
        return profile.display_name
    return user.get_display_name() or fallback
