"""
Tests for the event broker, the latest events buffer and the stream endpoints
"""
from unittest.mock import patch
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APIClient
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.realtime.broker import EventBroker, chat_broker, realtime_broker
from crm.realtime.events import EventLog, event_log
from crm.realtime.views import format_sse, parse_inbox_ids


class EventBrokerTests(TestCase):

    def setUp(self):
        self.broker = EventBroker('test')

    def test_filters_by_account_and_inbox(self):
        subscriber = self.broker.subscribe(account_id=3, inbox_ids=['42'])
        self.assertEqual(self.broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 42}), 1)
        self.assertEqual(self.broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 7}), 0)
        self.assertEqual(self.broker.broadcast({'event': 'message.created', 'accountId': 4, 'inboxId': 42}), 0)
        # Events without an inbox reach every subscriber of the account
        self.assertEqual(self.broker.broadcast({'event': 'conversation.updated', 'accountId': '3'}), 1)

        first = subscriber.next_event(timeout=0.1)
        self.assertEqual(first['inboxId'], 42)
        self.assertIn('timestamp', first)

    def test_non_numeric_inbox_id_is_skipped(self):
        self.broker.subscribe(account_id=3, inbox_ids=[42])
        self.assertEqual(self.broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 'abc'}), 0)

    def test_scope_applies_to_unfiltered_broker(self):
        broker = EventBroker('all', filtered=False)
        subscriber = broker.subscribe(scope={('3', 42)})
        self.assertEqual(broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 7}), 0)
        self.assertEqual(broker.broadcast({'event': 'message.created', 'accountId': 4, 'inboxId': 42}), 0)
        self.assertEqual(broker.broadcast({'event': 'conversation.updated', 'accountId': 3}), 0)
        self.assertEqual(broker.broadcast({'event': 'message.created', 'accountId': '3', 'inboxId': '42'}), 1)
        self.assertEqual(subscriber.next_event(timeout=0.1)['inboxId'], '42')

    def test_unfiltered_broker_delivers_everything(self):
        broker = EventBroker('all', filtered=False)
        broker.subscribe(account_id=3, inbox_ids=[42])
        self.assertEqual(broker.broadcast({'event': 'message.created', 'accountId': 9, 'inboxId': 1}), 1)

    def test_full_queue_drops_subscriber(self):
        with patch('crm.realtime.broker.SUBSCRIBER_QUEUE_SIZE', 1):
            subscriber = self.broker.subscribe()
        self.assertEqual(self.broker.broadcast({'event': 'a'}), 1)
        self.assertEqual(self.broker.broadcast({'event': 'b'}), 0)
        self.assertEqual(self.broker.stats()['total'], 0)
        self.assertFalse(self.broker.unsubscribe(subscriber.client_id))

    def test_stats(self):
        self.broker.subscribe(account_id=3, inbox_ids=[42, 43])
        self.broker.subscribe()
        stats = self.broker.stats()
        self.assertEqual(stats['total'], 2)
        self.assertEqual(stats['by_account'], {'3': 1, 'any': 1})
        self.assertEqual(stats['by_inbox'], {'42': 1, '43': 1})
        self.assertEqual(self.broker.close_all(), 2)

    def test_next_event_timeout(self):
        subscriber = self.broker.subscribe()
        self.assertIsNone(subscriber.next_event(timeout=0.01))


class EventLogTests(TestCase):

    def test_keeps_newest_first_up_to_limit(self):
        log = EventLog(max_events=3)
        for index in range(5):
            log.add({'event': f'e{index}'})
        self.assertEqual(len(log), 3)
        self.assertEqual([e['event'] for e in log.since(0)], ['e4', 'e3', 'e2'])

    def test_since_filters_by_scope(self):
        log = EventLog()
        log.add({'event': 'mine', 'accountId': 3, 'inboxId': 42})
        log.add({'event': 'theirs', 'accountId': 3, 'inboxId': 7})
        log.add({'event': 'no inbox', 'accountId': 3})
        self.assertEqual([e['event'] for e in log.since(0, scope={('3', 42)})], ['mine'])
        self.assertEqual(len(log.since(0)), 3)

    def test_default_limit(self):
        self.assertEqual(EventLog().max_events, 50)

    @patch('crm.realtime.events.now_ms', side_effect=[1000, 2000, 3000])
    def test_since_is_strict(self, mock_now):
        log = EventLog()
        for name in ('a', 'b', 'c'):
            log.add({'event': name, 'timestamp': 1})
        self.assertEqual([e['event'] for e in log.since(2000)], ['c'])
        self.assertEqual([e['timestamp'] for e in log.since(0)], [3000, 2000, 1000])


class HelperTests(TestCase):

    def test_format_sse(self):
        self.assertEqual(format_sse({'a': 1}), 'data: {"a": 1}\n\n')
        self.assertEqual(format_sse({'a': 1}, event='ping'), 'event: ping\ndata: {"a": 1}\n\n')

    def test_parse_inbox_ids(self):
        self.assertEqual(parse_inbox_ids('1, 2,x,,3'), [1, 2, 3])
        self.assertEqual(parse_inbox_ids(None), [])


class RealtimeAPITests(TestCase):

    def setUp(self):
        event_log.clear()
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=43, account_id=3)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def tearDown(self):
        event_log.clear()
        chat_broker.close_all()
        realtime_broker.close_all()

    def test_latest_events_since(self):
        with patch('crm.realtime.events.now_ms', side_effect=[1000, 2000]):
            event_log.add({'event': 'message.created', 'accountId': 3, 'inboxId': 42})
            event_log.add({'event': 'conversation.updated', 'accountId': 3, 'inboxId': 43})
        response = self.client.get('/api/v1/events/latest/?since=1000')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['event'] for e in response.data['events']], ['conversation.updated'])
        self.assertIn('timestamp', response.data)

    def test_latest_events_hide_other_inboxes(self):
        event_log.add({'event': 'message.created', 'accountId': 3, 'inboxId': 42, 'data': {'message': {'content': 'hi'}}})
        event_log.add({'event': 'message.created', 'accountId': 9, 'inboxId': 900, 'data': {'message': {'content': 'secret'}}})
        response = self.client.get('/api/v1/events/latest/')
        self.assertEqual([e['inboxId'] for e in response.data['events']], [42])

        self.client.authenticate_user(TestDataFactory.create_user(is_staff=True))
        response = self.client.get('/api/v1/events/latest/')
        self.assertEqual(len(response.data['events']), 2)

    def test_latest_events_requires_auth(self):
        response = APIClient().get('/api/v1/events/latest/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_stream_requires_auth(self):
        response = APIClient().get('/api/v1/chat/stream/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_chat_stream_starts_with_connection_event(self):
        response = self.client.get('/api/v1/chat/stream/?accountId=3&inboxIds=42,43')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response['Content-Type'], 'text/event-stream')
        self.assertEqual(response['Cache-Control'], 'no-cache, no-transform')

        first = next(iter(response.streaming_content)).decode()
        self.assertTrue(first.startswith('event: connection\n'))
        self.assertIn('"inboxIds": [42, 43]', first)
        self.assertEqual(chat_broker.stats()['by_account'], {'3': 1})
        response.close()
        self.assertEqual(chat_broker.stats()['total'], 0)

    def test_chat_stream_keeps_only_own_inboxes(self):
        response = self.client.get('/api/v1/chat/stream/?accountId=3&inboxIds=42,900')
        first = next(iter(response.streaming_content)).decode()
        self.assertIn('"inboxIds": [42]', first)

        chat_broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 900})
        self.assertEqual(chat_broker.stats()['by_inbox'], {'42': 1})
        response.close()

    def test_chat_stream_without_channels_is_forbidden(self):
        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/chat/stream/?accountId=3&inboxIds=42')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(chat_broker.stats()['total'], 0)

        self.client.authenticate_user(self.user)
        response = self.client.get('/api/v1/chat/stream/?accountId=9')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_realtime_stream_is_scoped(self):
        response = self.client.get('/api/v1/realtime/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        next(iter(response.streaming_content))
        self.assertEqual(realtime_broker.broadcast({'event': 'message.created', 'accountId': 9, 'inboxId': 900}), 0)
        self.assertEqual(realtime_broker.broadcast({'event': 'message.created', 'accountId': 3, 'inboxId': 43}), 1)
        response.close()
        self.assertEqual(realtime_broker.stats()['total'], 0)

        self.client.authenticate_user(TestDataFactory.create_user())
        response = self.client.get('/api/v1/realtime/')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_stream_test_is_staff_only(self):
        response = self.client.post('/api/v1/realtime/test/', {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

        self.client.authenticate_user(TestDataFactory.create_user(is_staff=True))
        response = self.client.post('/api/v1/realtime/test/', {'accountId': 3, 'inboxId': 42}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['sent'], 0)
        self.assertEqual(len(event_log), 1)

    def test_stats(self):
        chat_broker.subscribe(account_id=3)
        response = self.client.get('/api/v1/realtime/stats/')
        self.assertEqual(response.data['chat']['total'], 1)
        self.assertEqual(response.data['stored_events'], 0)
