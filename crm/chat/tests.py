"""
Tests for the chat provider proxy, inbox channels, assignments, customer links and the webhook
"""
from unittest.mock import MagicMock, patch
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.chat.chatwoot import ChatwootClient, ChatwootError, extract_payload, normalize_api_url
from crm.chat.models import ChatAssignment, ChatCustomerLink, InboxChannel
from crm.chat.webhooks import handle_chatwoot_event, normalize_message_type, to_epoch_seconds
from crm.notifications.models import Notification
from crm.realtime.broker import chat_broker
from crm.realtime.events import event_log


def fake_response(status_code=200, json_data=None):
    response = MagicMock()
    response.status_code = status_code
    response.content = b'{}' if json_data is not None else b''
    response.json.return_value = json_data
    return response


class ChatwootClientTests(TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = ChatwootClient(
            api_url='https://chat.test/', access_token='secret', account_id=1, timeout=5, session=self.session
        )

    def test_normalize_api_url(self):
        self.assertEqual(normalize_api_url('https://chat.test/'), 'https://chat.test/api/v1')
        self.assertEqual(normalize_api_url('https://chat.test/api/v1/'), 'https://chat.test/api/v1')

    def test_extract_payload(self):
        self.assertEqual(extract_payload({'data': {'payload': [1]}}), [1])
        self.assertEqual(extract_payload({'payload': [2]}), [2])
        self.assertEqual(extract_payload([3]), [3])

    def test_list_inboxes(self):
        self.session.request.return_value = fake_response(json_data={'payload': [{'id': 42}]})
        self.assertEqual(self.client.list_inboxes(), [{'id': 42}])
        self.session.request.assert_called_once_with(
            'GET', 'https://chat.test/api/v1/accounts/1/inboxes', timeout=5
        )

    def test_list_conversations_returns_meta(self):
        self.session.request.return_value = fake_response(json_data={
            'data': {'meta': {'all_count': 1}, 'payload': [{'id': 9, 'inbox_id': 42}]},
        })
        conversations, meta = self.client.list_conversations(account_id=3, inbox_id=42)
        self.assertEqual(conversations, [{'id': 9, 'inbox_id': 42}])
        self.assertEqual(meta, {'all_count': 1})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args[1], 'https://chat.test/api/v1/accounts/3/conversations')
        self.assertEqual(kwargs['params'], {'status': 'open', 'page': 1, 'inbox_id': 42})

    def test_upstream_error(self):
        self.session.request.return_value = fake_response(status_code=404, json_data={'error': 'missing'})
        with self.assertRaises(ChatwootError) as ctx:
            self.client.get_conversation(5)
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.payload, {'error': 'missing'})

    def test_missing_credentials(self):
        client = ChatwootClient(api_url='', access_token='', session=MagicMock())
        with self.assertRaises(ChatwootError) as ctx:
            client.list_inboxes()
        self.assertEqual(ctx.exception.status_code, 500)

    def test_send_attachments_uses_multipart(self):
        self.session.request.return_value = fake_response(json_data={'id': 1})
        self.client.send_message(5, content='Photo', attachments=[('a.png', b'data', 'image/png')])
        kwargs = self.session.request.call_args[1]
        self.assertEqual(kwargs['data'], {'message_type': 'outgoing', 'private': 'false', 'content': 'Photo'})
        self.assertEqual(kwargs['files'], [('attachments[]', ('a.png', b'data', 'image/png'))])


class WebhookEventTests(TestCase):

    def setUp(self):
        event_log.clear()
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)

    def tearDown(self):
        event_log.clear()

    def message_payload(self, message_type='incoming', **extra):
        payload = {
            'event': 'message_created',
            'id': 501,
            'content': 'Hola, tienen stock?',
            'message_type': message_type,
            'created_at': '2024-01-01T00:00:00Z',
            'account': {'id': 3},
            'inbox': {'id': 42},
            'sender': {'id': 900, 'name': 'Rosa'},
            'conversation': {'id': 9, 'display_id': 12, 'inbox_id': 42},
        }
        payload.update(extra)
        return payload

    def test_message_types(self):
        self.assertEqual(normalize_message_type('incoming'), 0)
        self.assertEqual(normalize_message_type('outgoing'), 1)
        self.assertEqual(normalize_message_type('activity'), 2)
        self.assertEqual(normalize_message_type(1), 1)

    def test_epoch_seconds(self):
        self.assertEqual(to_epoch_seconds('2024-01-01T00:00:00Z'), 1704067200.0)
        self.assertEqual(to_epoch_seconds(1700000000), 1700000000)
        self.assertIsNone(to_epoch_seconds('not a date'))

    def test_incoming_message(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_contact_id=900)
        event = handle_chatwoot_event(self.message_payload())

        self.assertEqual(event['event'], 'message.created')
        self.assertEqual(event['conversationId'], 9)
        self.assertEqual(event['data']['message']['message_type'], 0)
        self.assertEqual(event['data']['message']['created_at'], 1704067200.0)

        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.type, 'new_message')
        self.assertEqual(notification.title, 'New message from Rosa')
        self.assertEqual(notification.workspace, self.workspace)

        customer.refresh_from_db()
        self.assertIsNotNone(customer.last_message_at)
        self.assertEqual(len(event_log), 1)

    def test_outgoing_message_does_not_notify(self):
        handle_chatwoot_event(self.message_payload(message_type='outgoing'))
        self.assertFalse(Notification.objects.exists())
        self.assertEqual(len(event_log), 1)

    def test_conversation_created(self):
        event = handle_chatwoot_event({
            'event': 'conversation_created',
            'id': 10,
            'display_id': 14,
            'inbox_id': 42,
            'account': {'id': 3},
            'meta': {'sender': {'name': 'Luis'}},
        })
        self.assertEqual(event['event'], 'conversation.created')
        self.assertEqual(event['conversationId'], 10)
        self.assertEqual(event['inboxId'], 42)
        notification = Notification.objects.get(user=self.user)
        self.assertEqual(notification.message, 'Conversation #14 started')

    def test_unhandled_event(self):
        self.assertIsNone(handle_chatwoot_event({'event': 'contact_created'}))
        self.assertEqual(len(event_log), 0)

    def test_broadcast_reaches_matching_subscriber(self):
        matching = chat_broker.subscribe(account_id=3, inbox_ids=[42])
        other = chat_broker.subscribe(account_id=3, inbox_ids=[7])
        self.addCleanup(chat_broker.unsubscribe, matching.client_id)
        self.addCleanup(chat_broker.unsubscribe, other.client_id)

        handle_chatwoot_event(self.message_payload(message_type='outgoing'))
        self.assertEqual(matching.next_event(timeout=0.1)['event'], 'message.created')
        self.assertIsNone(other.next_event(timeout=0.01))


class WebhookEndpointTests(TestCase):

    def setUp(self):
        event_log.clear()
        self.client = APIClient()

    def tearDown(self):
        event_log.clear()

    def test_challenge(self):
        response = self.client.get('/api/v1/webhooks/chatwoot/?hub.challenge=abc123')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.content, b'abc123')

    def test_status(self):
        response = self.client.get('/api/v1/webhooks/chatwoot/')
        self.assertEqual(response.data['status'], 'active')

    def test_receive_event(self):
        response = self.client.post('/api/v1/webhooks/chatwoot/', {
            'event': 'conversation_status_changed',
            'status': 'resolved',
            'account': {'id': 3},
            'conversation': {'id': 9, 'inbox_id': 42},
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['event'], 'conversation.status_changed')
        self.assertEqual(event_log.since(0)[0]['data']['status'], 'resolved')

    def test_unhandled_event_is_acknowledged(self):
        response = self.client.post('/api/v1/webhooks/chatwoot/', {'event': 'contact_created'}, format='json')
        self.assertEqual(response.data, {'received': True, 'event': 'contact_created'})

    @patch('crm.chat.views.handle_chatwoot_event', side_effect=RuntimeError('boom'))
    def test_processing_error(self, mock_handle):
        response = self.client.post('/api/v1/webhooks/chatwoot/', {'event': 'message_created'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data['details'], 'boom')


class ChatProxyTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def test_conversations_without_channels(self):
        response = self.client.get(f'/api/v1/chat/conversations/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['conversations'], [])
        self.assertEqual(response.data['meta'], {'count': 0})

    @patch('crm.chat.views.ChatwootClient')
    def test_conversations_filtered_to_user_inboxes(self, mock_client):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)
        mock_client.return_value.list_conversations.return_value = (
            [{'id': 1, 'inbox_id': 42}, {'id': 2, 'inbox_id': 99}], {'all_count': 2},
        )
        response = self.client.get(f'/api/v1/chat/conversations/?workspace_id={self.workspace.id}')
        self.assertEqual([c['id'] for c in response.data['conversations']], [1])
        self.assertEqual(response.data['meta'], {'all_count': 2, 'count': 1})
        self.assertEqual(mock_client.return_value.list_conversations.call_args[1]['account_id'], 3)

    @patch('crm.chat.views.ChatwootClient')
    def test_conversations_foreign_inbox(self, mock_client):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42)
        response = self.client.get(f'/api/v1/chat/conversations/?workspace_id={self.workspace.id}&inbox_id=99')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        mock_client.return_value.list_conversations.assert_not_called()

    @patch('crm.chat.views.ChatwootClient')
    def test_inboxes_provider_error(self, mock_client):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42)
        mock_client.return_value.list_inboxes.side_effect = ChatwootError(
            'Chat provider request failed', status_code=401, payload={'error': 'Invalid token'}
        )
        response = self.client.get(f'/api/v1/chat/inboxes/?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.data['details'], {'error': 'Invalid token'})

    @patch('crm.chat.views.ChatwootClient')
    def test_send_message(self, mock_client):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)
        mock_client.return_value.get_conversation.return_value = {'id': 5, 'inbox_id': 42}
        mock_client.return_value.send_message.return_value = {'id': 77, 'content': 'Hola'}
        response = self.client.post('/api/v1/chat/send-message/', {
            'workspace_id': self.workspace.id, 'conversation_id': 5, 'content': ' Hola ',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        mock_client.return_value.send_message.assert_called_once_with(
            5, content='Hola', account_id=3, private=False, attachments=None
        )

    @patch('crm.chat.views.ChatwootClient')
    def test_send_message_to_foreign_conversation(self, mock_client):
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42)
        mock_client.return_value.get_conversation.return_value = {'id': 5, 'inbox_id': 99}
        response = self.client.post('/api/v1/chat/send-message/', {
            'workspace_id': self.workspace.id, 'conversation_id': 5, 'content': 'Hola',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        mock_client.return_value.send_message.assert_not_called()

    def test_send_message_requires_content(self):
        response = self.client.post('/api/v1/chat/send-message/', {
            'workspace_id': self.workspace.id, 'conversation_id': 5, 'content': '   ',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class InboxChannelAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.agent = TestDataFactory.create_member(self.workspace)
        self.client = AuthenticatedAPIClient()

    def test_admin_assigns_channel_to_agent(self):
        self.client.authenticate_user(self.owner)
        response = self.client.post('/api/v1/chat-channels/', {
            'workspace_id': self.workspace.id, 'user_id': self.agent.id,
            'chatwoot_account_id': 3, 'chatwoot_inbox_id': 42,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['user'], self.agent.id)

        response = self.client.post('/api/v1/chat-channels/', {
            'workspace_id': self.workspace.id, 'user_id': self.agent.id,
            'chatwoot_account_id': 3, 'chatwoot_inbox_id': 42,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_agent_cannot_assign_to_others(self):
        self.client.authenticate_user(self.agent)
        response = self.client.post('/api/v1/chat-channels/', {
            'workspace_id': self.workspace.id, 'user_id': self.owner.id,
            'chatwoot_account_id': 3, 'chatwoot_inbox_id': 42,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_agent_only_sees_own_channels(self):
        mine = TestDataFactory.create_inbox_channel(self.agent, self.workspace)
        TestDataFactory.create_inbox_channel(self.owner, self.workspace)
        self.client.authenticate_user(self.agent)
        response = self.client.get(f'/api/v1/chat-channels/?workspace_id={self.workspace.id}')
        self.assertEqual([c['id'] for c in response.data], [mine.id])

    def test_agent_cannot_edit_other_channel(self):
        channel = TestDataFactory.create_inbox_channel(self.owner, self.workspace)
        self.client.authenticate_user(self.agent)
        response = self.client.patch(f'/api/v1/chat-channels/{channel.id}/', {'is_active': False}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_deactivate_and_delete(self):
        channel = TestDataFactory.create_inbox_channel(self.agent, self.workspace)
        self.client.authenticate_user(self.agent)
        response = self.client.patch(f'/api/v1/chat-channels/{channel.id}/', {'is_active': False}, format='json')
        self.assertFalse(response.data['is_active'])
        response = self.client.delete(f'/api/v1/chat-channels/{channel.id}/')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(InboxChannel.objects.filter(pk=channel.id).exists())


class ChatAssignmentAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.agent = TestDataFactory.create_member(self.workspace)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def assign(self, agent_id, conversation_id=9):
        return self.client.post('/api/v1/chat-assignments/', {
            'workspace_id': self.workspace.id, 'conversation_id': conversation_id, 'agent_id': agent_id,
        }, format='json')

    def test_reassignment_transfers_previous(self):
        first = self.assign(self.owner.id)
        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        second = self.assign(self.agent.id)
        self.assertEqual(second.status_code, status.HTTP_201_CREATED)

        previous = ChatAssignment.objects.get(pk=first.data['id'])
        self.assertEqual(previous.status, 'transferred')
        self.assertIsNotNone(previous.unassigned_at)
        self.assertEqual(ChatAssignment.objects.filter(conversation_id=9, status='active').count(), 1)

    def test_agent_outside_workspace(self):
        response = self.assign(TestDataFactory.create_user().id)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_complete_assignment(self):
        assignment_id = self.assign(self.agent.id).data['id']
        response = self.client.patch('/api/v1/chat-assignments/', {
            'workspace_id': self.workspace.id, 'id': assignment_id, 'status': 'completed',
        }, format='json')
        self.assertEqual(response.data['status'], 'completed')
        self.assertIsNotNone(response.data['unassigned_at'])

        response = self.client.patch('/api/v1/chat-assignments/', {
            'workspace_id': self.workspace.id, 'id': assignment_id, 'status': 'paused',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_and_delete(self):
        assignment_id = self.assign(self.agent.id).data['id']
        response = self.client.get(f'/api/v1/chat-assignments/?workspace_id={self.workspace.id}&agent_id={self.agent.id}')
        self.assertEqual(len(response.data), 1)
        response = self.client.get(f'/api/v1/chat-assignments/?workspace_id={self.workspace.id}&agent_id=me')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'/api/v1/chat-assignments/?workspace_id={self.workspace.id}&id={assignment_id}')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)


class ChatCustomerLinkAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.customer = TestDataFactory.create_customer(self.workspace, name='Ana Torres')
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)
        self.url = '/api/v1/chat-customer-links/'

    def link(self, conversation_id, customer, **extra):
        return self.client.post(self.url, {
            'workspace_id': self.workspace.id, 'conversation_id': conversation_id, 'customer_id': customer.id, **extra,
        }, format='json')

    def test_link_then_relink(self):
        response = self.link(77, self.customer, notes='first contact')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['created'])
        self.assertEqual(response.data['link']['customer_name'], 'Ana Torres')
        self.assertEqual(response.data['link']['linked_by'], self.owner.id)

        other = TestDataFactory.create_customer(self.workspace)
        response = self.link(77, other)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['updated'])
        self.assertEqual(ChatCustomerLink.objects.get(conversation_id=77).customer, other)
        self.assertEqual(ChatCustomerLink.objects.count(), 1)

    def test_required_fields_and_foreign_customer(self):
        response = self.client.post(self.url, {'workspace_id': self.workspace.id, 'conversation_id': 77}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        foreign = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        response = self.link(77, foreign)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['error'], 'Customer not found or unauthorized')
        self.assertFalse(ChatCustomerLink.objects.exists())

    def test_get_single_and_list(self):
        self.link(77, self.customer)
        self.link(78, self.customer)
        other = TestDataFactory.create_customer(self.workspace)
        self.link(79, other)

        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}&conversation_id=78')
        self.assertEqual(response.data['link']['conversation_id'], 78)
        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}&conversation_id=80')
        self.assertIsNone(response.data['link'])

        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}&customer_id={self.customer.id}')
        self.assertEqual(sorted(link['conversation_id'] for link in response.data['links']), [77, 78])
        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}')
        self.assertEqual(len(response.data['links']), 3)

    def test_links_are_per_workspace(self):
        self.link(77, self.customer)
        outsider = TestDataFactory.create_user()
        other_workspace = TestDataFactory.create_workspace(owner=outsider)
        self.client.authenticate_user(outsider)

        response = self.client.get(f'{self.url}?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(f'{self.url}?workspace_id={other_workspace.id}&conversation_id=77')
        self.assertIsNone(response.data['link'])

    def test_delete(self):
        self.link(77, self.customer)
        response = self.client.delete(f'{self.url}?workspace_id={self.workspace.id}')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.delete(f'{self.url}?workspace_id={self.workspace.id}&conversation_id=99')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        response = self.client.delete(f'{self.url}?workspace_id={self.workspace.id}&conversation_id=77')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['deleted']['conversation_id'], 77)
        self.assertFalse(ChatCustomerLink.objects.exists())
