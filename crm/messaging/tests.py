"""
Test suite for scheduled messages, audiences, templates and reminders
"""
from datetime import datetime, timedelta, timezone as dt_timezone
from io import StringIO
from unittest.mock import MagicMock, patch

import requests
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient
from crm.core.test_utils import TestDataFactory, AuthenticatedAPIClient
from crm.chat.chatwoot import ChatwootError
from crm.messaging.audience import resolve_audience
from crm.messaging.models import ScheduledMessage, ScheduledMessageSend, MessageTemplate, Reminder
from crm.messaging.services import (
    ScheduledMessageError, cancel_scheduled_message, create_scheduled_message, next_occurrence, parse_schedule,
    process_due_messages, update_scheduled_message,
)
from crm.parties.models import CustomerActivity


def utc(*args):
    return datetime(*args, tzinfo=dt_timezone.utc)


class ScheduleHelperTests(TestCase):

    def test_next_occurrence(self):
        start = utc(2024, 1, 10, 9, 0)
        self.assertEqual(next_occurrence(start, 'daily'), utc(2024, 1, 11, 9, 0))
        self.assertEqual(next_occurrence(start, 'weekly'), utc(2024, 1, 17, 9, 0))
        self.assertEqual(next_occurrence(start, 'monthly'), utc(2024, 2, 10, 9, 0))
        self.assertIsNone(next_occurrence(start, 'once'))

    def test_monthly_clamps_to_month_end(self):
        self.assertEqual(next_occurrence(utc(2024, 1, 31, 9, 0), 'monthly'), utc(2024, 2, 29, 9, 0))
        self.assertEqual(next_occurrence(utc(2023, 12, 15, 9, 0), 'monthly'), utc(2024, 1, 15, 9, 0))

    def test_parse_schedule(self):
        self.assertEqual(parse_schedule({'scheduled_at': '2030-05-01T09:30:00Z'}), utc(2030, 5, 1, 9, 30))
        combined = parse_schedule({'scheduled_date': '2030-05-01', 'scheduled_time': '09:30'})
        self.assertTrue(timezone.is_aware(combined))
        self.assertIsNone(parse_schedule({}))
        with self.assertRaises(ScheduledMessageError):
            parse_schedule({'scheduled_at': 'tomorrow'})


class AudienceTests(TestCase):

    def setUp(self):
        self.workspace = TestDataFactory.create_workspace()
        self.now = timezone.now()

    def test_tags_and_labels(self):
        tag = TestDataFactory.create_tag(self.workspace)
        tagged = TestDataFactory.create_customer(self.workspace, labels=['vip'])
        tagged.tags.add(tag)
        TestDataFactory.create_customer(self.workspace, labels=['vip'])
        other_tagged = TestDataFactory.create_customer(self.workspace, labels=['new'])
        other_tagged.tags.add(tag)

        self.assertEqual(resolve_audience(self.workspace, {'filter_by_tags': [tag.id]}), [tagged, other_tagged])
        self.assertEqual(
            resolve_audience(self.workspace, {'filter_by_tags': [tag.id], 'filter_by_labels': ['vip', 'gold']}),
            [tagged],
        )

    def test_message_age(self):
        recent = TestDataFactory.create_customer(self.workspace, last_message_at=self.now - timedelta(days=2))
        old = TestDataFactory.create_customer(self.workspace, last_message_at=self.now - timedelta(days=120))
        never = TestDataFactory.create_customer(self.workspace)

        self.assertEqual(resolve_audience(self.workspace, {'filter_by_message_age': 'last_7_days'}, self.now), [recent])
        self.assertEqual(resolve_audience(self.workspace, {'filter_by_message_age': 'inactive'}, self.now), [old, never])

    def test_last_interaction(self):
        active = TestDataFactory.create_customer(self.workspace, last_interaction_at=self.now - timedelta(hours=3))
        silent = TestDataFactory.create_customer(self.workspace)
        self.assertEqual(resolve_audience(self.workspace, {'filter_by_last_interaction': 'last_24h'}, self.now), [active])
        self.assertEqual(resolve_audience(self.workspace, {'filter_by_last_interaction': 'no_interaction'}, self.now), [silent])

    def test_scoped_to_workspace(self):
        mine = TestDataFactory.create_customer(self.workspace)
        TestDataFactory.create_customer(TestDataFactory.create_workspace())
        self.assertEqual(resolve_audience(self.workspace, {}), [mine])


class ScheduledMessageServiceTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.future = (timezone.now() + timedelta(days=1)).isoformat()

    def test_single_message(self):
        scheduled = create_scheduled_message(self.user, self.workspace, {
            'target_type': 'single', 'customer_id': self.customer.id, 'message': ' Hola! ',
            'channel': 'whatsapp', 'scheduled_at': self.future,
        })
        self.assertEqual(scheduled.message, 'Hola!')
        self.assertEqual(scheduled.recurrence, 'once')
        self.assertTrue(CustomerActivity.objects.filter(customer=self.customer, activity_type='message_scheduled').exists())

    def test_required_fields(self):
        with self.assertRaises(ScheduledMessageError):
            create_scheduled_message(self.user, self.workspace, {'target_type': 'single', 'channel': 'whatsapp'})
        with self.assertRaisesMessage(ScheduledMessageError, 'A scheduled date and time is required'):
            create_scheduled_message(self.user, self.workspace, {
                'target_type': 'group', 'message': 'Hi', 'channel': 'whatsapp',
            })

    def test_past_time_rejected(self):
        with self.assertRaisesMessage(ScheduledMessageError, 'Scheduled time must be in the future'):
            create_scheduled_message(self.user, self.workspace, {
                'target_type': 'single', 'customer_id': self.customer.id, 'message': 'Hi',
                'channel': 'whatsapp', 'scheduled_at': (timezone.now() - timedelta(minutes=1)).isoformat(),
            })

    def test_customer_of_other_workspace(self):
        foreign = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        with self.assertRaises(ScheduledMessageError) as ctx:
            create_scheduled_message(self.user, self.workspace, {
                'target_type': 'single', 'customer_id': foreign.id, 'message': 'Hi',
                'channel': 'whatsapp', 'scheduled_at': self.future,
            })
        self.assertEqual(ctx.exception.status_code, 404)

    def test_group_message_builds_sends(self):
        tag = TestDataFactory.create_tag(self.workspace)
        self.customer.tags.add(tag)
        TestDataFactory.create_customer(self.workspace)
        scheduled = create_scheduled_message(self.user, self.workspace, {
            'target_type': 'group', 'message': 'Promo', 'channel': 'whatsapp',
            'scheduled_at': self.future, 'filter_by_tags': [tag.id],
        })
        self.assertIsNone(scheduled.customer)
        self.assertEqual(list(scheduled.sends.values_list('customer_id', flat=True)), [self.customer.id])

    def test_group_filter_validation(self):
        with self.assertRaisesMessage(ScheduledMessageError, 'filter_by_labels must be a list of strings'):
            create_scheduled_message(self.user, self.workspace, {
                'target_type': 'group', 'message': 'Promo', 'channel': 'whatsapp',
                'scheduled_at': self.future, 'filter_by_labels': [1],
            })
        with self.assertRaises(ScheduledMessageError):
            create_scheduled_message(self.user, self.workspace, {
                'target_type': 'group', 'message': 'Promo', 'channel': 'whatsapp',
                'scheduled_at': self.future, 'filter_by_message_age': 'ancient',
            })

    def test_update_recomputes_group_recipients(self):
        scheduled = create_scheduled_message(self.user, self.workspace, {
            'target_type': 'group', 'message': 'Promo', 'channel': 'whatsapp', 'scheduled_at': self.future,
        })
        self.assertEqual(scheduled.sends.count(), 1)
        tagged = TestDataFactory.create_customer(self.workspace)
        tag = TestDataFactory.create_tag(self.workspace)
        tagged.tags.add(tag)

        update_scheduled_message(scheduled, {'filter_by_tags': [tag.id], 'message': 'New promo'})
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.message, 'New promo')
        self.assertEqual(list(scheduled.sends.values_list('customer_id', flat=True)), [tagged.id])

    def test_only_pending_can_change(self):
        scheduled = create_scheduled_message(self.user, self.workspace, {
            'target_type': 'single', 'customer_id': self.customer.id, 'message': 'Hi',
            'channel': 'whatsapp', 'scheduled_at': self.future,
        })
        cancel_scheduled_message(scheduled)
        self.assertEqual(scheduled.status, 'cancelled')
        with self.assertRaisesMessage(ScheduledMessageError, 'Can only cancel pending messages'):
            cancel_scheduled_message(scheduled)
        with self.assertRaisesMessage(ScheduledMessageError, 'Can only update pending messages'):
            update_scheduled_message(scheduled, {'message': 'Changed'})


class ProcessDueMessagesTests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        TestDataFactory.create_inbox_channel(self.user, self.workspace, inbox_id=42, account_id=3)
        self.now = timezone.now()
        self.client = MagicMock()

    def schedule(self, customer=None, target_type='single', recurrence='once', minutes_ago=5, channel='whatsapp', **extra):
        return ScheduledMessage.objects.create(
            user=self.user,
            workspace=self.workspace,
            target_type=target_type,
            customer=customer,
            message='Your order is ready',
            scheduled_at=self.now - timedelta(minutes=minutes_ago),
            recurrence=recurrence,
            channel=channel,
            **extra
        )

    def test_sends_to_existing_conversation(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        scheduled = self.schedule(customer)

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual((results['processed'], results['sent'], results['failed']), (1, 1, 0))
        self.client.send_message.assert_called_once_with(55, content='Your order is ready', account_id=3)
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'sent')
        self.assertEqual(scheduled.sent_at, self.now)

    def test_opens_conversation_when_missing(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_contact_id=900)
        self.client.create_conversation.return_value = {'id': 66}
        self.schedule(customer)

        process_due_messages(now=self.now, client=self.client)
        self.client.create_conversation.assert_called_once_with(42, 900, account_id=3)
        customer.refresh_from_db()
        self.assertEqual(customer.chatwoot_conversation_id, 66)

    def test_future_and_non_pending_are_skipped(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        self.schedule(customer, minutes_ago=-10)
        self.schedule(customer, status='cancelled')
        self.schedule(customer, status='processing')

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual(results['processed'], 0)
        self.client.send_message.assert_not_called()

    def test_provider_failure(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        self.client.send_message.side_effect = ChatwootError('Chat provider request failed', status_code=500)
        scheduled = self.schedule(customer, recurrence='daily')

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual(results['failed'], 1)
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'failed')
        self.assertEqual(scheduled.error_message, 'Chat provider request failed')
        self.assertFalse(ScheduledMessage.objects.filter(previous_occurrence=scheduled).exists())

    def test_missing_channel(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        scheduled = self.schedule(customer, channel='sms')
        process_due_messages(now=self.now, client=self.client)
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'failed')
        self.assertEqual(scheduled.error_message, 'Channel configuration not found')

    def test_recurring_message_is_rescheduled(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        scheduled = self.schedule(customer, recurrence='daily')

        process_due_messages(now=self.now, client=self.client)
        follow_up = ScheduledMessage.objects.get(previous_occurrence=scheduled)
        self.assertEqual(follow_up.status, 'pending')
        self.assertEqual(follow_up.scheduled_at, scheduled.scheduled_at + timedelta(days=1))
        self.assertEqual(follow_up.customer, customer)

    @patch('crm.messaging.services.schedule_next_occurrence', side_effect=RuntimeError('db locked'))
    def test_recurrence_failure_keeps_message_sent(self, mock_next):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        scheduled = self.schedule(customer, recurrence='weekly')

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual((results['processed'], results['sent'], results['failed']), (1, 1, 0))
        self.assertEqual(results['errors'], [])
        mock_next.assert_called_once()
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'sent')
        self.assertEqual(scheduled.sent_at, self.now)

    def test_message_claimed_by_another_run_is_skipped(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        first = self.schedule(customer, minutes_ago=10)
        second = self.schedule(customer, minutes_ago=5)

        def claim_second(scheduled, client, now):
            # Another worker claims the second message while the first is being sent
            ScheduledMessage.objects.filter(pk=second.pk).update(status='processing')
            return True

        with patch('crm.messaging.services.process_scheduled_message', side_effect=claim_second) as mock_process:
            results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual(results['processed'], 1)
        self.assertEqual(mock_process.call_count, 1)
        self.assertEqual(mock_process.call_args[0][0].pk, first.pk)
        second.refresh_from_db()
        self.assertEqual(second.status, 'processing')

    def test_group_partial_failure(self):
        reachable = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        unreachable = TestDataFactory.create_customer(self.workspace)
        scheduled = self.schedule(target_type='group')
        ScheduledMessageSend.objects.create(scheduled_message=scheduled, customer=reachable)
        ScheduledMessageSend.objects.create(scheduled_message=scheduled, customer=unreachable)

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual(results['failed'], 1)
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'sent')
        self.assertIsNone(scheduled.sent_at)
        self.assertIn('has no chat contact', scheduled.error_message)
        self.assertEqual(ScheduledMessageSend.objects.get(customer=reachable).status, 'sent')
        self.assertEqual(ScheduledMessageSend.objects.get(customer=unreachable).status, 'failed')

    def test_group_without_recipients_fails(self):
        scheduled = self.schedule(target_type='group')
        process_due_messages(now=self.now, client=self.client)
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'failed')
        self.assertEqual(scheduled.error_message, 'No recipients match the message filters')

    def test_unexpected_error_marks_failed(self):
        customer = TestDataFactory.create_customer(self.workspace, chatwoot_conversation_id=55)
        self.client.send_message.side_effect = RuntimeError('socket closed')
        scheduled = self.schedule(customer)

        results = process_due_messages(now=self.now, client=self.client)
        self.assertEqual(results['errors'], [{'message_id': scheduled.id, 'error': 'socket closed'}])
        scheduled.refresh_from_db()
        self.assertEqual(scheduled.status, 'failed')

    @patch('crm.messaging.management.commands.process_scheduled_messages.process_due_messages')
    def test_management_command(self, mock_process):
        mock_process.return_value = {'processed': 2, 'sent': 1, 'failed': 1,
                                     'errors': [{'message_id': 7, 'error': 'boom'}]}
        out = StringIO()
        call_command('process_scheduled_messages', stdout=out)
        self.assertIn('Processed 2 messages: 1 sent, 1 failed', out.getvalue())
        self.assertIn('Message 7: boom', out.getvalue())


class ScheduledMessageAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.customer = TestDataFactory.create_customer(self.workspace)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def create_payload(self, **overrides):
        data = {
            'workspace_id': self.workspace.id,
            'target_type': 'single',
            'customer_id': self.customer.id,
            'message': 'Reminder about your order',
            'channel': 'whatsapp',
            'scheduled_at': (timezone.now() + timedelta(hours=2)).isoformat(),
        }
        data.update(overrides)
        return data

    def test_create_and_list(self):
        response = self.client.post('/api/v1/scheduled-messages/', self.create_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['recipients_count'], 1)
        self.assertEqual(response.data['customer_name'], self.customer.name)

        other = TestDataFactory.create_member(self.workspace)
        ScheduledMessage.objects.create(
            user=other, workspace=self.workspace, target_type='single', customer=self.customer,
            message='Not mine', scheduled_at=timezone.now() + timedelta(days=1),
        )
        response = self.client.get(f'/api/v1/scheduled-messages/?workspace_id={self.workspace.id}')
        self.assertEqual([m['message'] for m in response.data], ['Reminder about your order'])

    def test_create_validation_error(self):
        response = self.client.post('/api/v1/scheduled-messages/', self.create_payload(channel='pigeon'), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['error'], 'Invalid channel: pigeon')

    def test_cancel(self):
        message_id = self.client.post('/api/v1/scheduled-messages/', self.create_payload(), format='json').data['id']
        response = self.client.post(f'/api/v1/scheduled-messages/{message_id}/cancel/')
        self.assertEqual(response.data['status'], 'cancelled')
        response = self.client.post(f'/api/v1/scheduled-messages/{message_id}/cancel/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_cannot_delete_while_processing(self):
        scheduled = ScheduledMessage.objects.create(
            user=self.user, workspace=self.workspace, target_type='single', customer=self.customer,
            message='Busy', scheduled_at=timezone.now(), status='processing',
        )
        response = self.client.delete(f'/api/v1/scheduled-messages/{scheduled.id}/')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_users_message_is_hidden(self):
        other = TestDataFactory.create_member(self.workspace)
        scheduled = ScheduledMessage.objects.create(
            user=other, workspace=self.workspace, target_type='single', customer=self.customer,
            message='Private', scheduled_at=timezone.now() + timedelta(days=1),
        )
        response = self.client.get(f'/api/v1/scheduled-messages/{scheduled.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_preview_count(self):
        self.customer.labels = ['vip']
        self.customer.save()
        TestDataFactory.create_customer(self.workspace)
        response = self.client.post('/api/v1/scheduled-messages/preview-count/', {
            'workspace_id': self.workspace.id, 'filter_by_labels': ['vip'],
        }, format='json')
        self.assertEqual(response.data, {'count': 1})


class CronEndpointTests(TestCase):

    def setUp(self):
        self.client = APIClient()

    @override_settings(CRON_SECRET='s3cret')
    def test_secret_required(self):
        response = self.client.post('/api/v1/scheduled-messages/process/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        response = self.client.post('/api/v1/scheduled-messages/process/', HTTP_AUTHORIZATION='Bearer wrong')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        response = self.client.post('/api/v1/scheduled-messages/process/', HTTP_AUTHORIZATION='Bearer s3cre')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    @override_settings(CRON_SECRET='s3cret')
    def test_secret_accepted(self):
        response = self.client.post('/api/v1/scheduled-messages/process/', HTTP_AUTHORIZATION='Bearer s3cret')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'No messages to process')

        response = self.client.get('/api/v1/scheduled-messages/cron/', HTTP_AUTHORIZATION='Bearer s3cret')
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['processed'], 0)

    @override_settings(CRON_SECRET='')
    def test_staff_token_without_secret(self):
        client = AuthenticatedAPIClient()
        client.authenticate_user(TestDataFactory.create_user())
        response = client.post('/api/v1/scheduled-messages/process/')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

        client.authenticate_user(TestDataFactory.create_user(is_staff=True))
        response = client.post('/api/v1/scheduled-messages/process/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    @override_settings(CRON_SECRET='s3cret')
    @patch('crm.messaging.views.process_due_messages', side_effect=RuntimeError('db down'))
    def test_cron_failure(self, mock_process):
        response = self.client.get('/api/v1/scheduled-messages/cron/', HTTP_AUTHORIZATION='Bearer s3cret')
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(response.data['success'])


@override_settings(CRM_SERVER_URL='http://crm.test/')
class CRMServerEndpointTests(TestCase):

    def setUp(self):
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(TestDataFactory.create_user())

    @patch('crm.messaging.crm_server.requests.request')
    def test_stats(self, mock_request):
        mock_request.return_value.ok = True
        mock_request.return_value.json.return_value = {'pending': 2}
        response = self.client.get('/api/v1/scheduled-messages/server/')
        self.assertEqual(response.data, {'pending': 2})
        self.assertEqual(mock_request.call_args[0], ('GET', 'http://crm.test/scheduled-messages/stats'))

    @patch('crm.messaging.crm_server.requests.request')
    def test_trigger_poll(self, mock_request):
        mock_request.return_value.ok = True
        mock_request.return_value.json.return_value = {'success': True, 'queued': 3}
        response = self.client.post('/api/v1/scheduled-messages/server/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, {'success': True, 'queued': 3})
        self.assertEqual(mock_request.call_args[0], ('POST', 'http://crm.test/scheduled-messages/trigger-poll'))

    @patch('crm.messaging.crm_server.requests.request', side_effect=requests.exceptions.ConnectionError('refused'))
    def test_server_unreachable(self, mock_request):
        response = self.client.post('/api/v1/scheduled-messages/server/')
        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response.data['error'], 'Could not connect to CRM server')
        self.assertEqual(response.data['serverUrl'], 'http://crm.test')

    @patch('crm.messaging.crm_server.requests.request')
    def test_server_error_status(self, mock_request):
        mock_request.return_value.ok = False
        mock_request.return_value.status_code = 500
        mock_request.return_value.text = 'queue offline'
        response = self.client.post('/api/v1/scheduled-messages/server/')
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.data['message'], 'queue offline')


class TemplateAPITests(TestCase):

    def setUp(self):
        self.owner = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.owner)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.owner)

    def test_create_and_search(self):
        response = self.client.post('/api/v1/templates/', {
            'workspace_id': self.workspace.id, 'name': 'Greeting', 'content': 'Hello {name}', 'shortcut': '/hi',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        MessageTemplate.objects.create(workspace=self.workspace, name='Bye', content='See you')
        response = self.client.get(f'/api/v1/templates/?workspace_id={self.workspace.id}&search=/hi')
        self.assertEqual([t['name'] for t in response.data], ['Greeting'])

    def test_only_author_or_admin_edits(self):
        template = MessageTemplate.objects.create(workspace=self.workspace, user=self.owner, name='T', content='C')
        agent = TestDataFactory.create_member(self.workspace)
        self.client.authenticate_user(agent)
        response = self.client.get(f'/api/v1/templates/{template.id}/')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        response = self.client.patch(f'/api/v1/templates/{template.id}/', {'name': 'Mine now'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ReminderAPITests(TestCase):

    def setUp(self):
        self.user = TestDataFactory.create_user()
        self.workspace = TestDataFactory.create_workspace(owner=self.user)
        self.client = AuthenticatedAPIClient()
        self.client.authenticate_user(self.user)

    def reminder_payload(self, **overrides):
        data = {
            'workspace_id': self.workspace.id,
            'title': 'Call back about delivery',
            'due_date': (timezone.now() + timedelta(days=1)).isoformat(),
        }
        data.update(overrides)
        return data

    def test_completed_at_follows_status(self):
        response = self.client.post('/api/v1/reminders/', self.reminder_payload(status='completed'), format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIsNotNone(response.data['completed_at'])

        response = self.client.patch(f"/api/v1/reminders/{response.data['id']}/", {'status': 'pending'}, format='json')
        self.assertIsNone(response.data['completed_at'])

    def test_customer_must_belong_to_workspace(self):
        foreign = TestDataFactory.create_customer(TestDataFactory.create_workspace())
        response = self.client.post('/api/v1/reminders/', self.reminder_payload(customer_id=foreign.id), format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_overdue_filter(self):
        Reminder.objects.create(
            workspace=self.workspace, user=self.user, title='Late', due_date=timezone.now() - timedelta(hours=1)
        )
        Reminder.objects.create(
            workspace=self.workspace, user=self.user, title='Later', due_date=timezone.now() + timedelta(hours=1)
        )
        response = self.client.get(f'/api/v1/reminders/?workspace_id={self.workspace.id}&overdue=true')
        self.assertEqual([r['title'] for r in response.data], ['Late'])

    def test_reminders_are_private(self):
        other = TestDataFactory.create_member(self.workspace)
        reminder = Reminder.objects.create(
            workspace=self.workspace, user=other, title='Theirs', due_date=timezone.now()
        )
        response = self.client.get(f'/api/v1/reminders/{reminder.id}/')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
