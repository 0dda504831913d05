from rest_framework import serializers
from django.utils.text import slugify
from .models import Workspace, WorkspaceMember, AgentProfile, AgentInvitation


class WorkspaceSerializer(serializers.ModelSerializer):
    slug = serializers.SlugField(required=False)

    class Meta:
        model = Workspace
        fields = ['id', 'name', 'slug', 'description', 'image_url', 'owner',
                  'default_min_stock_alert', 'allow_orders_without_stock', 'created_at', 'updated_at']
        read_only_fields = ['owner', 'created_at', 'updated_at']

    def validate_slug(self, value):
        existing = Workspace.objects.filter(slug=value)
        if self.instance:
            existing = existing.exclude(pk=self.instance.pk)
        if existing.exists():
            raise serializers.ValidationError("A workspace with this slug already exists.")
        return value

    def validate(self, attrs):
        if not attrs.get('slug') and not self.instance:
            base = slugify(attrs.get('name', '')) or 'workspace'
            slug = base
            suffix = 1
            while Workspace.objects.filter(slug=slug).exists():
                suffix += 1
                slug = f"{base}-{suffix}"
            attrs['slug'] = slug
        return attrs


class WorkspaceSettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = Workspace
        fields = ['id', 'name', 'default_min_stock_alert', 'allow_orders_without_stock']
        read_only_fields = ['id', 'name']


class AgentProfileSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)

    class Meta:
        model = AgentProfile
        fields = ['id', 'user', 'username', 'display_name', 'avatar_url', 'chatwoot_user_id', 'status',
                  'max_concurrent_chats', 'specialties', 'languages', 'working_hours', 'metadata',
                  'created_at', 'updated_at']
        read_only_fields = ['user', 'created_at', 'updated_at']


class WorkspaceMemberSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True)
    email = serializers.CharField(source='user.email', read_only=True)

    class Meta:
        model = WorkspaceMember
        fields = ['id', 'workspace', 'user', 'username', 'email', 'role', 'created_at']
        read_only_fields = ['workspace', 'created_at']


class AgentInvitationSerializer(serializers.ModelSerializer):
    workspace_name = serializers.CharField(source='workspace.name', read_only=True)
    role_name = serializers.CharField(source='role.name', read_only=True, default=None)
    invited_by_name = serializers.SerializerMethodField()

    class Meta:
        model = AgentInvitation
        fields = ['id', 'workspace', 'workspace_name', 'email', 'role', 'role_name', 'invited_by',
                  'invited_by_name', 'display_name', 'max_concurrent_chats', 'specialties', 'languages',
                  'message', 'token', 'status', 'expires_at', 'responded_at', 'created_at']
        read_only_fields = fields

    def get_invited_by_name(self, obj):
        return obj.invited_by.get_display_name() if obj.invited_by else None


class InvitationCreateSerializer(serializers.Serializer):
    workspace_id = serializers.IntegerField()
    email = serializers.EmailField()
    role_id = serializers.IntegerField(required=False, allow_null=True)
    display_name = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    max_concurrent_chats = serializers.IntegerField(required=False, min_value=1, default=5)
    specialties = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    languages = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    message = serializers.CharField(required=False, allow_blank=True, allow_null=True)
