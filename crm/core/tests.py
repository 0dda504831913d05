"""
Tests for authentication, the current user endpoint and the audit trail
"""
from django.test import TestCase, RequestFactory
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.core.models import AuditLog
from crm.core.utils import create_audit_log, get_client_ip, parse_bool, parse_int


class AuthAPITests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()

    def test_register_returns_tokens(self):
        data = {
            'username': 'newagent',
            'email': 'newagent@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn('access', response.data)
        self.assertIn('refresh', response.data)
        self.assertEqual(response.data['user']['username'], 'newagent')

    def test_register_password_mismatch(self):
        data = {
            'username': 'newagent',
            'email': 'newagent@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'other-pass-456',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_register_duplicate_email(self):
        TestDataFactory.create_user(email='taken@test.com')
        data = {
            'username': 'another',
            'email': 'TAKEN@test.com',
            'password': 'Str0ng-pass-123',
            'password_confirm': 'Str0ng-pass-123',
        }
        response = self.client.post('/api/v1/auth/register/', data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('email', response.data)

    def test_login(self):
        TestDataFactory.create_user(username='loginuser', password='testpass123')
        response = self.client.post(
            '/api/v1/auth/login/', {'username': 'loginuser', 'password': 'testpass123'}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['user']['username'], 'loginuser')

    def test_me_requires_authentication(self):
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_me_lists_workspaces_with_role(self):
        user = TestDataFactory.create_user()
        owned = TestDataFactory.create_workspace(owner=user, name='Alpha Shop')
        other = TestDataFactory.create_workspace(name='Beta Shop')
        TestDataFactory.create_agent(other, user=user)
        TestDataFactory.create_workspace(name='Gamma Shop')

        self.client.authenticate_user(user)
        response = self.client.get('/api/v1/auth/me/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        workspaces = {w['id']: w for w in response.data['workspaces']}
        self.assertEqual(set(workspaces), {owned.id, other.id})
        self.assertEqual(workspaces[owned.id]['role'], 'owner')
        self.assertTrue(workspaces[owned.id]['is_owner'])
        self.assertEqual(workspaces[other.id]['role'], 'agent')

    def test_me_patch_display_name(self):
        user = TestDataFactory.create_user()
        self.client.authenticate_user(user)
        response = self.client.patch('/api/v1/auth/me/', {'display_name': 'Front Desk'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertEqual(user.get_display_name(), 'Front Desk')


class AuditLogTests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.client = AuthenticatedAPIClient()

    def test_create_audit_log_skips_missing_fields(self):
        self.assertIsNone(create_audit_log(action='order_create', model_name='Order'))
        self.assertEqual(AuditLog.objects.count(), 0)

    def test_create_audit_log_uses_forwarded_ip(self):
        request = RequestFactory().get('/', HTTP_X_FORWARDED_FOR='10.0.0.1, 10.0.0.2')
        request.user = self.owner
        log = create_audit_log(
            request=request, action='order_create', model_name='Order', object_id=5,
            workspace=self.workspace, object_reference='ORD-20240101-0001'
        )
        self.assertEqual(log.ip_address, '10.0.0.1')
        self.assertEqual(log.object_id, '5')
        self.assertEqual(log.user, self.owner)

    def test_audit_log_list_admin_only(self):
        agent = TestDataFactory.create_member(self.workspace)
        self.client.authenticate_user(agent)
        response = self.client.get(f'/api/v1/audit-logs/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_audit_log_list_filters_by_reference(self):
        create_audit_log(user=self.owner, action='order_create', model_name='Order', object_id=1,
                         workspace=self.workspace, object_reference='ORD-A')
        create_audit_log(user=self.owner, action='order_create', model_name='Order', object_id=2,
                         workspace=self.workspace, object_reference='ORD-B')
        self.client.authenticate_user(self.owner)
        response = self.client.get(f'/api/v1/audit-logs/?workspace_id={self.workspace.id}&reference=ORD-B')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)
        self.assertEqual(response.data[0]['object_id'], '2')


class UtilsTests(TestCase):

    def test_parse_bool(self):
        self.assertTrue(parse_bool('true'))
        self.assertTrue(parse_bool('1'))
        self.assertFalse(parse_bool('no'))
        self.assertFalse(parse_bool(None))

    def test_parse_int(self):
        self.assertEqual(parse_int('12'), 12)
        self.assertEqual(parse_int('abc', 7), 7)

    def test_get_client_ip_without_request(self):
        self.assertIsNone(get_client_ip(None))
