from django.test import TestCase
from rest_framework import status
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.notifications.models import Notification, NotificationSettings
from crm.notifications.services import create_notification, conversation_recipients, notify_conversation_agents
from crm.workspaces.models import AgentProfile


class NotificationServiceTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)

    def test_create_notification(self):
        notification = create_notification(self.user, 'system', 'Hello', message='World')
        self.assertIsNotNone(notification)
        self.assertFalse(notification.read)

    def test_disabled_type_is_skipped(self):
        NotificationSettings.objects.create(user=self.user, notification_types={'new_message': False})
        self.assertIsNone(create_notification(self.user, 'new_message', 'Ping'))
        self.assertIsNotNone(create_notification(self.user, 'system', 'Still delivered'))

    def test_globally_disabled(self):
        NotificationSettings.objects.create(user=self.user, enabled=False)
        self.assertIsNone(create_notification(self.user, 'system', 'Muted'))

    def test_recipients_from_inbox_channels(self):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)
        other = TestDataFactory.create_user()
        TestDataFactory.create_inbox_channel(other, self.workspace, inbox_id=43, account_id=3)
        self.assertEqual(conversation_recipients(account_id=3, inbox_id=42), [self.user])

    def test_assignee_takes_precedence(self):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42)
        assignee = TestDataFactory.create_user()
        AgentProfile.objects.create(user=assignee, chatwoot_user_id=77)
        self.assertEqual(conversation_recipients(inbox_id=42, assignee_id=77), [assignee])

    def test_notify_conversation_agents(self):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=1)
        created = notify_conversation_agents(
            'new_message', 'New message from Ana', account_id=1, inbox_id=42, conversation_id=9
        )
        self.assertEqual(len(created), 1)
        self.assertEqual(created[0].workspace, self.workspace)
        self.assertEqual(created[0].action_url, '/chats?conversation=9')
        self.assertEqual(created[0].metadata['conversation_id'], 9)


class NotificationAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_list_with_unread_count(self):
        create_notification(self.user, 'system', 'One')
        create_notification(self.user, 'system', 'Two')
        create_notification(TestDataFactory.create_user(), 'system', 'Not mine')
        response = self.client.get('/api/v1/notifications/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data['notifications']), 2)
        self.assertEqual(response.data['unread_count'], 2)

    def test_mark_read(self):
        notification = create_notification(self.user, 'system', 'One')
        response = self.client.patch(f'/api/v1/notifications/{notification.id}/', {'read': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        notification.refresh_from_db()
        self.assertTrue(notification.read)
        self.assertIsNotNone(notification.read_at)

    def test_mark_read_requires_boolean(self):
        notification = create_notification(self.user, 'system', 'One')
        response = self.client.patch(f'/api/v1/notifications/{notification.id}/', {'read': 'yes'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_touch_other_users_notification(self):
        notification = create_notification(TestDataFactory.create_user(), 'system', 'Hidden')
        response = self.client.delete(f'/api/v1/notifications/{notification.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_mark_all_read(self):
        create_notification(self.user, 'system', 'One')
        create_notification(self.user, 'system', 'Two')
        response = self.client.post('/api/v1/notifications/mark-all-read/')
        self.assertEqual(response.data['updated'], 2)
        self.assertFalse(Notification.objects.filter(user=self.user, read=False).exists())

    def test_settings_roundtrip(self):
        response = self.client.get('/api/v1/notifications/settings/')
        self.assertTrue(response.data['enabled'])
        response = self.client.put(
            '/api/v1/notifications/settings/', {'notification_types': {'reminder': False}}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(NotificationSettings.objects.get(user=self.user).allows('reminder'))

    def test_settings_rejects_unknown_type(self):
        response = self.client.put(
            '/api/v1/notifications/settings/', {'notification_types': {'bogus': True}}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
