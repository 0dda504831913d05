"""
Tests for roles, module toggles, permission switches and the permission cache
"""
from io import StringIO
from django.core.management import call_command
from django.test import TestCase
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.roles.models import Role, UserRole, RoleModule, PermissionGroup, PermissionSwitch, RolePermissionGroup, RolePermissionSwitch
from crm.roles.permissions import (
    assign_role, compute_user_permissions, get_user_permissions, get_user_switches, has_module_access, is_admin,
)


class PermissionComputationTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.agent = TestDataFactory.create_member(self.workspace)

    def test_owner_has_everything(self):
        self.assertEqual(compute_user_permissions(self.owner, self.workspace), {'all': True})
        self.assertTrue(has_module_access(self.owner, self.workspace, 'payments'))

    def test_outsider_has_nothing(self):
        outsider = TestDataFactory.create_user()
        self.assertEqual(compute_user_permissions(outsider, self.workspace), {})
        self.assertFalse(has_module_access(outsider, self.workspace, 'orders'))

    def test_role_permissions_and_modules(self):
        role = TestDataFactory.create_role(
            workspace=self.workspace, permissions={'orders': {'view': True, 'delete': False}}, user=self.agent
        )
        RoleModule.objects.create(role=role, module_slug='customers', is_active=True)
        RoleModule.objects.create(role=role, module_slug='payments', is_active=False)

        self.assertTrue(has_module_access(self.agent, self.workspace, 'orders'))
        self.assertTrue(has_module_access(self.agent, self.workspace, 'customers'))
        self.assertFalse(has_module_access(self.agent, self.workspace, 'payments'))
        self.assertFalse(has_module_access(self.agent, self.workspace, 'config'))

    def test_roles_merge_with_or(self):
        TestDataFactory.create_role(workspace=self.workspace, permissions={'products': False}, user=self.agent)
        TestDataFactory.create_role(workspace=self.workspace, permissions={'products': True}, user=self.agent)
        self.assertTrue(get_user_permissions(self.agent, self.workspace)['products'])

    def test_admin_role_slug_grants_all(self):
        TestDataFactory.create_role(name='Admin', slug='admin', user=self.agent)
        self.assertTrue(is_admin(self.agent, self.workspace))
        self.assertEqual(get_user_permissions(self.agent, self.workspace), {'all': True})

    def test_cache_invalidated_when_module_changes(self):
        role = TestDataFactory.create_role(workspace=self.workspace, user=self.agent)
        self.assertFalse(has_module_access(self.agent, self.workspace, 'kanban'))
        RoleModule.objects.create(role=role, module_slug='kanban', is_active=True)
        self.assertTrue(has_module_access(self.agent, self.workspace, 'kanban'))

    def test_switch_requires_active_group(self):
        role = TestDataFactory.create_role(workspace=self.workspace, user=self.agent)
        group = PermissionGroup.objects.create(name='Sales', slug='sales')
        switch = PermissionSwitch.objects.create(group=group, name='Cancel orders', slug='orders_cancel')
        RolePermissionSwitch.objects.create(role=role, switch=switch, is_active=True)
        self.assertFalse(get_user_switches(self.agent, self.workspace)['orders_cancel'])

        RolePermissionGroup.objects.create(role=role, group=group, is_active=True)
        self.assertTrue(get_user_switches(self.agent, self.workspace)['orders_cancel'])

    def test_assign_role_replaces_previous(self):
        first = TestDataFactory.create_role(workspace=self.workspace, user=self.agent)
        second = TestDataFactory.create_role(workspace=self.workspace)
        assign_role(self.agent, second, workspace=self.workspace, assigned_by=self.owner)
        self.assertFalse(UserRole.objects.filter(user=self.agent, role=first).exists())
        self.assertTrue(UserRole.objects.filter(user=self.agent, role=second).exists())


    def test_workspace_role_does_not_leak_into_other_workspace(self):
        other_workspace = TestDataFactory.create_workspace()
        TestDataFactory.create_member(other_workspace, user=self.agent)
        admin_role = Role.objects.create(name='Admin', slug='admin', is_system_role=True)
        self.assertEqual(get_user_permissions(self.agent, other_workspace), {})

        assign_role(self.agent, admin_role, workspace=self.workspace, assigned_by=self.owner)
        self.assertEqual(get_user_permissions(self.agent, self.workspace), {'all': True})
        self.assertEqual(get_user_permissions(self.agent, other_workspace), {})
        self.assertFalse(has_module_access(self.agent, other_workspace, 'payments'))
        self.assertFalse(is_admin(self.agent, other_workspace))

    def test_assign_role_keeps_other_workspace_assignments(self):
        other_workspace = TestDataFactory.create_workspace()
        TestDataFactory.create_member(other_workspace, user=self.agent)
        agent_role = Role.objects.create(name='Agent', slug='agent', is_system_role=True)
        assign_role(self.agent, agent_role, workspace=self.workspace)
        assign_role(self.agent, agent_role, workspace=other_workspace)
        self.assertEqual(UserRole.objects.filter(user=self.agent, role=agent_role).count(), 2)

        local_role = TestDataFactory.create_role(workspace=other_workspace)
        assign_role(self.agent, local_role, workspace=other_workspace)
        self.assertTrue(UserRole.objects.filter(user=self.agent, role=agent_role, workspace=self.workspace).exists())
        self.assertFalse(UserRole.objects.filter(user=self.agent, workspace=other_workspace, role=agent_role).exists())


class RoleAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_create_role(self):
        data = {'workspace_id': self.workspace.id, 'name': 'Cashier', 'slug': 'cashier'}
        response = self.client.post('/api/v1/roles/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['workspace'], self.workspace.id)
        self.assertFalse(response.data['is_system_role'])

        response = self.client.post('/api/v1/roles/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_create_role_missing_fields(self):
        response = self.client.post('/api/v1/roles/', {'name': 'Cashier'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_agent_cannot_create_role(self):
        agent = TestDataFactory.create_member(self.workspace)
        self.client.authenticate_user(agent)
        response = self.client.post(
            '/api/v1/roles/', {'workspace_id': self.workspace.id, 'name': 'X', 'slug': 'x'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_system_role_is_read_only(self):
        role = Role.objects.create(name='Agent', slug='agent', is_system_role=True)
        response = self.client.patch(f'/api/v1/roles/{role.id}/', {'name': 'Renamed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_cannot_delete_assigned_role(self):
        agent = TestDataFactory.create_member(self.workspace)
        role = TestDataFactory.create_role(workspace=self.workspace, user=agent)
        response = self.client.delete(f'/api/v1/roles/{role.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_toggle_module(self):
        role = TestDataFactory.create_role(workspace=self.workspace)
        response = self.client.post('/api/v1/roles/permissions/', {
            'role_id': role.id, 'module_slug': 'orders', 'is_active': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(RoleModule.objects.get(role=role, module_slug='orders').is_active)

        response = self.client.get(f'/api/v1/roles/permissions/?role_id={role.id}')
        modules = {m['module']['slug']: m['is_active'] for m in response.data['modules']}
        self.assertTrue(modules['orders'])
        self.assertFalse(modules['payments'])

    def test_toggle_unknown_module(self):
        role = TestDataFactory.create_role(workspace=self.workspace)
        response = self.client.post('/api/v1/roles/permissions/', {
            'role_id': role.id, 'module_slug': 'spaceships', 'is_active': True,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_assign_user_role(self):
        agent = TestDataFactory.create_member(self.workspace)
        role = TestDataFactory.create_role(workspace=self.workspace)
        response = self.client.post('/api/v1/user-roles/', {
            'user_id': agent.id, 'role_id': role.id, 'workspace_id': self.workspace.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(UserRole.objects.filter(user=agent, role=role).exists())

    def test_assign_user_role_outside_workspace(self):
        outsider = TestDataFactory.create_user()
        role = TestDataFactory.create_role(workspace=self.workspace)
        response = self.client.post('/api/v1/user-roles/', {
            'user_id': outsider.id, 'role_id': role.id, 'workspace_id': self.workspace.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_system_role_assigned_in_one_workspace_only(self):
        agent = TestDataFactory.create_member(self.workspace)
        other_workspace = TestDataFactory.create_workspace()
        TestDataFactory.create_member(other_workspace, user=agent)
        admin_role = Role.objects.create(name='Admin', slug='admin', is_system_role=True)

        response = self.client.post('/api/v1/user-roles/', {
            'user_id': agent.id, 'role_id': admin_role.id, 'workspace_id': self.workspace.id,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['workspace'], self.workspace.id)
        self.assertTrue(has_module_access(agent, self.workspace, 'payments'))
        self.assertFalse(has_module_access(agent, other_workspace, 'payments'))

        # The workspace admin can remove the assignment it made
        response = self.client.delete(f"/api/v1/user-roles/?id={response.data['id']}")
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)

    def test_my_permissions(self):
        response = self.client.get(f'/api/v1/permissions/me/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['permissions'], {'all': True})


class SeedPermissionsCommandTests(TestCase):

    def test_seed_is_idempotent(self):
        call_command('seed_permissions', stdout=StringIO())
        call_command('seed_permissions', stdout=StringIO())
        self.assertEqual(Role.objects.filter(workspace__isnull=True, is_system_role=True).count(), 4)
        self.assertTrue(RoleModule.objects.filter(role__slug='agent', module_slug='chats').exists())
        self.assertTrue(PermissionSwitch.objects.filter(slug='orders_cancel', group__slug='sales').exists())
