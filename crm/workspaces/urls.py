from django.urls import path
from .views import (
    workspace_list_create, workspace_detail, workspace_settings,
    workspace_members, workspace_member_remove,
    invitation_list_create, invitation_accept, invitation_reject, invitation_revoke,
    agents,
)

urlpatterns = [
    path('workspaces/', workspace_list_create, name='workspace-list-create'),
    path('workspaces/<int:pk>/', workspace_detail, name='workspace-detail'),
    path('workspaces/<int:pk>/settings/', workspace_settings, name='workspace-settings'),
    path('workspaces/<int:pk>/members/', workspace_members, name='workspace-members'),
    path('workspaces/<int:pk>/members/<int:user_id>/', workspace_member_remove, name='workspace-member-remove'),

    path('agents/', agents, name='agents'),

    path('invitations/', invitation_list_create, name='invitation-list-create'),
    path('invitations/accept/', invitation_accept, name='invitation-accept'),
    path('invitations/reject/', invitation_reject, name='invitation-reject'),
    path('invitations/<int:pk>/', invitation_revoke, name='invitation-revoke'),
]
