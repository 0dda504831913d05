"""Scheduling and delivery of scheduled messages"""
import calendar
import logging
from datetime import datetime, timedelta

from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from crm.chat.chatwoot import ChatwootClient, ChatwootError
from crm.chat.models import InboxChannel
from crm.parties.models import Customer, record_activity
from .audience import resolve_audience
from .models import ScheduledMessage, ScheduledMessageSend

logger = logging.getLogger(__name__)

FILTER_FIELDS = ('filter_by_tags', 'filter_by_labels', 'filter_by_message_age', 'filter_by_last_interaction')


class ScheduledMessageError(Exception):
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def choice_values(choices):
    return [choice[0] for choice in choices]


def next_occurrence(scheduled_at, recurrence):
    """Next send time of a recurring message; None for one-off messages"""
    if recurrence == 'daily':
        return scheduled_at + timedelta(days=1)
    if recurrence == 'weekly':
        return scheduled_at + timedelta(days=7)
    if recurrence == 'monthly':
        year = scheduled_at.year + scheduled_at.month // 12
        month = scheduled_at.month % 12 + 1
        # Jan 31 -> Feb 28/29
        day = min(scheduled_at.day, calendar.monthrange(year, month)[1])
        return scheduled_at.replace(year=year, month=month, day=day)
    return None


def parse_schedule(data):
    """scheduled_at as ISO string, or scheduled_date plus scheduled_time; None when neither is given"""
    value = data.get('scheduled_at')
    if value:
        scheduled_at = value if isinstance(value, datetime) else parse_datetime(str(value))
        if scheduled_at is None:
            raise ScheduledMessageError('scheduled_at must be an ISO 8601 datetime')
    elif data.get('scheduled_date') and data.get('scheduled_time'):
        scheduled_at = parse_datetime(f"{data['scheduled_date']}T{data['scheduled_time']}")
        if scheduled_at is None:
            raise ScheduledMessageError('scheduled_date/scheduled_time are not a valid date and time')
    else:
        return None
    if timezone.is_naive(scheduled_at):
        scheduled_at = timezone.make_aware(scheduled_at)
    return scheduled_at


def validate_future(scheduled_at, now=None):
    if scheduled_at <= (now or timezone.now()):
        raise ScheduledMessageError('Scheduled time must be in the future')


def clean_filters(data):
    filters = {}
    tags = data.get('filter_by_tags')
    if tags:
        if not isinstance(tags, list):
            raise ScheduledMessageError('filter_by_tags must be a list of tag ids')
        try:
            filters['filter_by_tags'] = [int(tag_id) for tag_id in tags]
        except (TypeError, ValueError):
            raise ScheduledMessageError('filter_by_tags must be a list of tag ids')
    else:
        filters['filter_by_tags'] = None

    labels = data.get('filter_by_labels')
    if labels:
        if not isinstance(labels, list) or not all(isinstance(label, str) for label in labels):
            raise ScheduledMessageError('filter_by_labels must be a list of strings')
        filters['filter_by_labels'] = labels
    else:
        filters['filter_by_labels'] = None

    message_age = data.get('filter_by_message_age') or None
    if message_age and message_age not in choice_values(ScheduledMessage.MESSAGE_AGE_CHOICES):
        raise ScheduledMessageError(f"Invalid filter_by_message_age: {message_age}")
    filters['filter_by_message_age'] = message_age

    last_interaction = data.get('filter_by_last_interaction') or None
    if last_interaction and last_interaction not in choice_values(ScheduledMessage.LAST_INTERACTION_CHOICES):
        raise ScheduledMessageError(f"Invalid filter_by_last_interaction: {last_interaction}")
    filters['filter_by_last_interaction'] = last_interaction
    return filters


def rebuild_sends(scheduled, now=None):
    """Replace the per-customer rows of a group message with the current audience"""
    scheduled.sends.all().delete()
    customers = resolve_audience(scheduled.workspace, scheduled.audience_filters, now)
    ScheduledMessageSend.objects.bulk_create([
        ScheduledMessageSend(scheduled_message=scheduled, customer=customer)
        for customer in customers
    ])
    return len(customers)


def create_scheduled_message(user, workspace, data, now=None):
    target_type = data.get('target_type')
    message = (data.get('message') or '').strip()
    channel = data.get('channel')
    if not target_type or not message or not channel:
        raise ScheduledMessageError('target_type, message and channel are required')
    if target_type not in choice_values(ScheduledMessage.TARGET_TYPE_CHOICES):
        raise ScheduledMessageError(f"Invalid target_type: {target_type}")
    if channel not in choice_values(ScheduledMessage.CHANNEL_CHOICES):
        raise ScheduledMessageError(f"Invalid channel: {channel}")
    recurrence = data.get('recurrence') or 'once'
    if recurrence not in choice_values(ScheduledMessage.RECURRENCE_CHOICES):
        raise ScheduledMessageError(f"Invalid recurrence: {recurrence}")

    scheduled_at = parse_schedule(data)
    if scheduled_at is None:
        raise ScheduledMessageError('A scheduled date and time is required')
    validate_future(scheduled_at, now)

    customer = None
    filters = {field: None for field in FILTER_FIELDS}
    if target_type == 'single':
        if not data.get('customer_id'):
            raise ScheduledMessageError('A customer is required for single messages')
        customer = Customer.objects.filter(pk=data.get('customer_id'), workspace=workspace).first()
        if not customer:
            raise ScheduledMessageError('Customer not found', status_code=404)
    else:
        filters = clean_filters(data)

    with transaction.atomic():
        scheduled = ScheduledMessage.objects.create(
            user=user,
            workspace=workspace,
            target_type=target_type,
            customer=customer,
            message=message,
            scheduled_at=scheduled_at,
            recurrence=recurrence,
            channel=channel,
            **filters,
        )
        recipients = rebuild_sends(scheduled, now) if target_type == 'group' else 1

    if customer:
        record_activity(
            customer, 'message_scheduled', f"Message scheduled for {scheduled_at:%Y-%m-%d %H:%M}",
            user=user, metadata={'scheduled_message_id': scheduled.id},
        )
    logger.info(f"Scheduled message {scheduled.id} ({target_type}, {recipients} recipients) for {scheduled_at.isoformat()}")
    return scheduled


def update_scheduled_message(scheduled, data, now=None):
    """Edit a pending message; changing group filters recomputes its recipients"""
    if scheduled.status != 'pending':
        raise ScheduledMessageError('Can only update pending messages')

    update_fields = []
    if 'message' in data:
        message = (data.get('message') or '').strip()
        if not message:
            raise ScheduledMessageError('message cannot be empty')
        scheduled.message = message
        update_fields.append('message')
    if 'recurrence' in data:
        if data['recurrence'] not in choice_values(ScheduledMessage.RECURRENCE_CHOICES):
            raise ScheduledMessageError(f"Invalid recurrence: {data['recurrence']}")
        scheduled.recurrence = data['recurrence']
        update_fields.append('recurrence')
    if 'channel' in data:
        if data['channel'] not in choice_values(ScheduledMessage.CHANNEL_CHOICES):
            raise ScheduledMessageError(f"Invalid channel: {data['channel']}")
        scheduled.channel = data['channel']
        update_fields.append('channel')

    scheduled_at = parse_schedule(data)
    if scheduled_at is not None:
        validate_future(scheduled_at, now)
        scheduled.scheduled_at = scheduled_at
        update_fields.append('scheduled_at')

    filters_changed = scheduled.target_type == 'group' and any(field in data for field in FILTER_FIELDS)
    if filters_changed:
        merged = {**scheduled.audience_filters, **{field: data[field] for field in FILTER_FIELDS if field in data}}
        for field, value in clean_filters(merged).items():
            setattr(scheduled, field, value)
        update_fields.extend(FILTER_FIELDS)

    with transaction.atomic():
        if update_fields:
            scheduled.save(update_fields=update_fields + ['updated_at'])
        if filters_changed:
            rebuild_sends(scheduled, now)
    return scheduled


def cancel_scheduled_message(scheduled):
    if scheduled.status != 'pending':
        raise ScheduledMessageError('Can only cancel pending messages')
    scheduled.status = 'cancelled'
    scheduled.save(update_fields=['status', 'updated_at'])
    logger.info(f"Scheduled message {scheduled.id} cancelled")
    return scheduled


def find_channel(scheduled):
    return InboxChannel.objects.filter(
        user=scheduled.user, workspace=scheduled.workspace, channel_type=scheduled.channel, is_active=True
    ).first()


def send_to_customer(scheduled, customer, client, channel):
    """Post the message in the customer's conversation, opening one when needed"""
    if customer is None:
        raise ScheduledMessageError('Customer not found')
    if channel is None:
        raise ScheduledMessageError('Channel configuration not found')

    conversation_id = customer.chatwoot_conversation_id
    if not conversation_id:
        if not customer.chatwoot_contact_id:
            raise ScheduledMessageError(f"Customer {customer.id} has no chat contact")
        conversation = client.create_conversation(
            channel.chatwoot_inbox_id, customer.chatwoot_contact_id, account_id=channel.chatwoot_account_id
        )
        conversation_id = conversation.get('id')
        if not conversation_id:
            raise ScheduledMessageError('Failed to create conversation')
        customer.chatwoot_conversation_id = conversation_id
        customer.save(update_fields=['chatwoot_conversation_id'])

    client.send_message(conversation_id, content=scheduled.message, account_id=channel.chatwoot_account_id)


def deliver(scheduled, customer, client, channel, send=None, now=None):
    """Returns (success, error message) and records the outcome on the send row"""
    try:
        send_to_customer(scheduled, customer, client, channel)
    except (ScheduledMessageError, ChatwootError) as e:
        error = e.message
        if send is not None:
            send.status = 'failed'
            send.error_message = error
            send.save(update_fields=['status', 'error_message'])
        return False, error

    if send is not None:
        send.status = 'sent'
        send.sent_at = now or timezone.now()
        send.save(update_fields=['status', 'sent_at'])
    return True, None


def schedule_next_occurrence(scheduled, now=None):
    next_at = next_occurrence(scheduled.scheduled_at, scheduled.recurrence)
    if next_at is None:
        return None
    with transaction.atomic():
        follow_up = ScheduledMessage.objects.create(
            user=scheduled.user,
            workspace=scheduled.workspace,
            target_type=scheduled.target_type,
            customer=scheduled.customer,
            message=scheduled.message,
            scheduled_at=next_at,
            recurrence=scheduled.recurrence,
            channel=scheduled.channel,
            previous_occurrence=scheduled,
            **scheduled.audience_filters,
        )
        if follow_up.target_type == 'group':
            rebuild_sends(follow_up, now)
    logger.info(f"Scheduled message {scheduled.id} recurs as {follow_up.id} at {next_at.isoformat()}")
    return follow_up


def process_scheduled_message(scheduled, client, now):
    """Send one claimed message; returns True when every delivery succeeded"""
    channel = find_channel(scheduled)
    if scheduled.target_type == 'single':
        outcomes = [deliver(scheduled, scheduled.customer, client, channel, now=now)]
    else:
        sends = scheduled.sends.filter(status='pending').select_related('customer')
        outcomes = [deliver(scheduled, send.customer, client, channel, send=send, now=now) for send in sends]

    errors = [error for success, error in outcomes if not success]
    if not outcomes:
        errors = ['No recipients match the message filters']
    all_success = bool(outcomes) and not errors
    any_success = any(success for success, error in outcomes)

    scheduled.status = 'sent' if any_success else 'failed'
    scheduled.sent_at = now if all_success else None
    scheduled.error_message = '; '.join(errors) or None
    scheduled.save(update_fields=['status', 'sent_at', 'error_message', 'updated_at'])

    if all_success and scheduled.recurrence != 'once':
        # The current send stays sent even when the follow-up cannot be created
        try:
            schedule_next_occurrence(scheduled, now)
        except Exception as e:
            logger.error(f"Could not schedule the next occurrence of message {scheduled.id}: {str(e)}", exc_info=True)
    return all_success


def process_due_messages(now=None, client=None):
    """
    Send every pending message whose time has come, oldest first.
    A message is claimed by moving it to 'processing' before sending, so
    concurrent runs never send it twice.
    """
    now = now or timezone.now()
    client = client or ChatwootClient()
    results = {'processed': 0, 'sent': 0, 'failed': 0, 'errors': []}

    due = ScheduledMessage.objects.filter(status='pending', scheduled_at__lte=now).select_related(
        'user', 'workspace', 'customer'
    ).order_by('scheduled_at', 'id')
    for scheduled in due:
        claimed = ScheduledMessage.objects.filter(pk=scheduled.pk, status='pending').update(status='processing')
        if not claimed:
            continue
        scheduled.status = 'processing'
        try:
            all_success = process_scheduled_message(scheduled, client, now)
        except Exception as e:
            logger.error(f"Scheduled message {scheduled.id} failed: {str(e)}", exc_info=True)
            ScheduledMessage.objects.filter(pk=scheduled.pk).update(status='failed', error_message=str(e))
            results['failed'] += 1
            results['errors'].append({'message_id': scheduled.id, 'error': str(e)})
            continue

        results['processed'] += 1
        if all_success:
            results['sent'] += 1
        else:
            results['failed'] += 1

    if results['processed'] or results['failed']:
        logger.info(f"Processed {results['processed']} scheduled messages: {results['sent']} sent, {results['failed']} failed")
    return results
