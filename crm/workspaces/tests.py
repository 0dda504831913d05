"""
Tests for workspaces, membership checks and agent invitations
"""
from datetime import timedelta
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.core.models import AuditLog
from crm.notifications.models import Notification
from crm.chat.models import InboxChannel
from crm.roles.models import UserRole
from crm.workspaces.access import (
    accessible_workspaces, get_workspace_role, check_workspace_access, check_workspace_admin,
)
from crm.workspaces.invitations import InvitationError, create_invitation, accept_invitation, reject_invitation
from crm.workspaces.models import (
    Workspace, WorkspaceMember, WorkspaceAgent, AgentProfile, AgentInvitation, get_agent_display_name,
)


class WorkspaceAccessTests(TestCase):
    """Owner, member and agent access to a workspace"""

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)

    def test_owner_role(self):
        self.assertEqual(get_workspace_role(self.owner, self.workspace), 'owner')
        self.assertTrue(check_workspace_admin(self.owner, self.workspace))

    def test_member_roles(self):
        admin = TestDataFactory.create_member(self.workspace, role='admin')
        agent = TestDataFactory.create_member(self.workspace, role='agent')
        self.assertTrue(check_workspace_admin(admin, self.workspace))
        self.assertTrue(check_workspace_access(agent, self.workspace))
        self.assertFalse(check_workspace_admin(agent, self.workspace))

    def test_invited_agent_has_access(self):
        agent = TestDataFactory.create_agent(self.workspace)
        self.assertEqual(get_workspace_role(agent, self.workspace), 'agent')

    def test_outsider_has_no_access(self):
        outsider = TestDataFactory.create_user()
        self.assertIsNone(get_workspace_role(outsider, self.workspace))
        self.assertFalse(accessible_workspaces(outsider).exists())

    def test_accessible_workspaces_are_distinct(self):
        # Owner is also a member row; the workspace must be listed once
        self.assertEqual(list(accessible_workspaces(self.owner)), [self.workspace])


class WorkspaceAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_create_workspace_generates_slug(self):
        response = self.client.post('/api/v1/workspaces/', {'name': 'Corner Store'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['slug'], 'corner-store')
        workspace = Workspace.objects.get(pk=response.data['id'])
        self.assertEqual(workspace.owner, self.user)
        self.assertTrue(WorkspaceMember.objects.filter(workspace=workspace, user=self.user, role='admin').exists())

    def test_create_workspace_slug_suffix(self):
        self.client.post('/api/v1/workspaces/', {'name': 'Corner Store'}, format='json')
        response = self.client.post('/api/v1/workspaces/', {'name': 'Corner Store'}, format='json')
        self.assertEqual(response.data['slug'], 'corner-store-2')

    def test_list_workspaces(self):
        own = TestDataFactory.create_workspace(owner=self.user)
        guest = TestDataFactory.create_workspace()
        TestDataFactory.create_member(guest, user=self.user)
        TestDataFactory.create_workspace()
        response = self.client.get('/api/v1/workspaces/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        by_id = {w['id']: w for w in response.data}
        self.assertEqual(set(by_id), {own.id, guest.id})
        self.assertEqual(by_id[own.id]['access_type'], 'owner')
        self.assertEqual(by_id[guest.id]['access_type'], 'guest')

    def test_detail_forbidden_for_outsider(self):
        workspace = TestDataFactory.create_workspace()
        response = self.client.get(f'/api/v1/workspaces/{workspace.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'Unauthorized workspace access')

    def test_detail_not_found(self):
        response = self.client.get('/api/v1/workspaces/99999/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_agent_cannot_update_workspace(self):
        workspace = TestDataFactory.create_workspace()
        TestDataFactory.create_member(workspace, user=self.user)
        response = self.client.patch(f'/api/v1/workspaces/{workspace.id}/', {'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_only_owner_deletes(self):
        workspace = TestDataFactory.create_workspace()
        TestDataFactory.create_member(workspace, user=self.user, role='admin')
        response = self.client.delete(f'/api/v1/workspaces/{workspace.id}/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertTrue(Workspace.objects.filter(pk=workspace.id).exists())

    def test_update_settings(self):
        workspace = TestDataFactory.create_workspace(owner=self.user)
        response = self.client.put(
            f'/api/v1/workspaces/{workspace.id}/settings/',
            {'default_min_stock_alert': 3, 'allow_orders_without_stock': True},
            format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        workspace.refresh_from_db()
        self.assertEqual(workspace.default_min_stock_alert, 3)
        self.assertTrue(workspace.allow_orders_without_stock)

    def test_update_settings_rejects_negative(self):
        workspace = TestDataFactory.create_workspace(owner=self.user)
        response = self.client.put(
            f'/api/v1/workspaces/{workspace.id}/settings/', {'default_min_stock_alert': -1}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_members_list_and_remove(self):
        workspace = TestDataFactory.create_workspace(owner=self.user)
        agent = TestDataFactory.create_agent(workspace)
        response = self.client.get(f'/api/v1/workspaces/{workspace.id}/members/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data[0]['is_owner'])
        self.assertIn(agent.id, [m['user_id'] for m in response.data])

        response = self.client.delete(f'/api/v1/workspaces/{workspace.id}/members/{agent.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(WorkspaceAgent.objects.filter(workspace=workspace, agent=agent).exists())

    def test_owner_cannot_be_removed(self):
        workspace = TestDataFactory.create_workspace(owner=self.user)
        response = self.client.delete(f'/api/v1/workspaces/{workspace.id}/members/{self.user.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class InvitationTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.role = TestDataFactory.create_role(name='Agent', slug='agent')
        self.invitee = TestDataFactory.create_user(email='agent@test.com')

    def test_create_invitation_notifies_existing_user(self):
        invitation = create_invitation(self.workspace, self.owner, 'Agent@Test.com ')
        self.assertEqual(invitation.email, 'agent@test.com')
        self.assertEqual(invitation.role, self.role)
        self.assertEqual(invitation.languages, ['es'])
        self.assertTrue(Notification.objects.filter(user=self.invitee, type='invitation').exists())

    def test_duplicate_pending_invitation(self):
        create_invitation(self.workspace, self.owner, 'agent@test.com')
        with self.assertRaises(InvitationError):
            create_invitation(self.workspace, self.owner, 'agent@test.com')

    def test_accept_invitation(self):
        invitation = create_invitation(self.workspace, self.owner, 'agent@test.com', display_name='Ana')
        accept_invitation(invitation.token, self.invitee)

        invitation.refresh_from_db()
        self.assertEqual(invitation.status, 'accepted')
        self.assertIsNotNone(invitation.responded_at)
        self.assertTrue(WorkspaceAgent.objects.filter(workspace=self.workspace, agent=self.invitee).exists())
        self.assertEqual(get_workspace_role(self.invitee, self.workspace), 'agent')
        self.assertEqual(AgentProfile.objects.get(user=self.invitee).display_name, 'Ana')
        self.assertTrue(UserRole.objects.filter(user=self.invitee, role=self.role).exists())
        self.assertTrue(AuditLog.objects.filter(action='invitation_accept').exists())
        self.assertEqual(get_agent_display_name(self.invitee), 'Ana')

    def test_accept_wrong_email(self):
        invitation = create_invitation(self.workspace, self.owner, 'agent@test.com')
        other = TestDataFactory.create_user(email='other@test.com')
        with self.assertRaises(InvitationError):
            accept_invitation(invitation.token, other)

    def test_accept_expired(self):
        invitation = create_invitation(self.workspace, self.owner, 'agent@test.com')
        AgentInvitation.objects.filter(pk=invitation.pk).update(expires_at=timezone.now() - timedelta(days=1))
        with self.assertRaisesMessage(InvitationError, 'Invitation has expired'):
            accept_invitation(invitation.token, self.invitee)

    def test_reject_then_accept(self):
        invitation = create_invitation(self.workspace, self.owner, 'agent@test.com')
        reject_invitation(invitation.token, self.invitee)
        with self.assertRaisesMessage(InvitationError, 'Invitation already rejected'):
            accept_invitation(invitation.token, self.invitee)

    def test_unknown_token(self):
        with self.assertRaisesMessage(InvitationError, 'Invitation not found'):
            accept_invitation('not-a-uuid', self.invitee)

    def test_api_flow(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.owner)
        response = client.post('/api/v1/invitations/', {
            'workspace_id': self.workspace.id,
            'email': 'agent@test.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        token = response.data['token']

        client.authenticate_user(self.invitee)
        response = client.get('/api/v1/invitations/?my_invitations=true')
        self.assertEqual(len(response.data), 1)

        response = client.post('/api/v1/invitations/accept/', {'token': token}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'accepted')

    def test_agent_cannot_invite(self):
        agent = TestDataFactory.create_member(self.workspace)
        client = AuthenticatedAPIClient()
        client.authenticate_user(agent)
        response = client.post('/api/v1/invitations/', {
            'workspace_id': self.workspace.id,
            'email': 'someone@test.com',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_revoke(self):
        invitation = create_invitation(self.workspace, self.owner, 'agent@test.com')
        client = AuthenticatedAPIClient()
        client.authenticate_user(self.owner)
        response = client.delete(f'/api/v1/invitations/{invitation.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'cancelled')
        response = client.delete(f'/api/v1/invitations/{invitation.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class AgentDisplayNameTests(TestCase):

    def test_fallbacks(self):
        user = TestDataFactory.create_user(username='plainuser')
        self.assertEqual(get_agent_display_name(user), 'plainuser')
        self.assertEqual(get_agent_display_name(None, 'User'), 'User')


class AgentAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.agent = TestDataFactory.create_agent(self.workspace, invited_by=self.owner)
        self.member = TestDataFactory.create_member(self.workspace)
        AgentProfile.objects.create(user=self.agent, display_name='Ana', status='online')
        AgentProfile.objects.create(user=self.member, display_name='Bruno', status='offline')
        self.outsider = TestDataFactory.create_user()
        AgentProfile.objects.create(user=self.outsider, display_name='Carla', status='online')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_list_workspace_agents(self):
        response = self.client.get(f'/api/v1/agents/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([a['display_name'] for a in response.data], ['Ana', 'Bruno'])

        response = self.client.get(f'/api/v1/agents/?workspace_id={self.workspace.id}&active_only=true')
        self.assertEqual([a['display_name'] for a in response.data], ['Ana'])
        response = self.client.get(f'/api/v1/agents/?workspace_id={self.workspace.id}&status=offline')
        self.assertEqual([a['display_name'] for a in response.data], ['Bruno'])

    def test_list_without_workspace(self):
        response = self.client.get('/api/v1/agents/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        staff = TestDataFactory.create_user(is_staff=True)
        self.client.authenticate_user(staff)
        response = self.client.get('/api/v1/agents/?status=online')
        self.assertEqual(sorted(a['display_name'] for a in response.data), ['Ana', 'Carla'])

    def test_create_own_profile(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.post('/api/v1/agents/', {
            'user_id': user.id, 'display_name': 'Dora', 'languages': ['es', 'en'],
            'working_hours': {'mon': ['09:00', '18:00']},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        profile = AgentProfile.objects.get(user=user)
        self.assertEqual(profile.languages, ['es', 'en'])
        self.assertEqual(profile.status, 'offline')

        response = self.client.post('/api/v1/agents/', {'user_id': user.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post('/api/v1/agents/', {'user_id': self.outsider.id}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_update_profile(self):
        self.client.authenticate_user(self.agent)
        response = self.client.patch('/api/v1/agents/', {'user_id': self.agent.id, 'status': 'busy'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['status'], 'busy')
        self.assertEqual(response.data['display_name'], 'Ana')

        response = self.client.patch('/api/v1/agents/', {'user_id': self.agent.id, 'status': 'sleeping'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.patch('/api/v1/agents/', {'user_id': self.member.id, 'status': 'busy'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_remove_agent_from_workspace(self):
        TestDataFactory.create_inbox_channel(self.agent, self.workspace, inbox_id=42)
        self.client.authenticate_user(self.member)
        response = self.client.delete(f'/api/v1/agents/?workspace_id={self.workspace.id}&user_id={self.agent.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(self.owner)
        response = self.client.delete(f'/api/v1/agents/?workspace_id={self.workspace.id}&user_id={self.agent.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(WorkspaceAgent.objects.filter(workspace=self.workspace, agent=self.agent).exists())
        self.assertFalse(InboxChannel.objects.get(user=self.agent).is_active)
        self.assertTrue(AgentProfile.objects.filter(user=self.agent).exists())

        response = self.client.delete(f'/api/v1/agents/?workspace_id={self.workspace.id}&user_id={self.agent.id}')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.delete(f'/api/v1/agents/?workspace_id={self.workspace.id}&user_id={self.owner.id}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
