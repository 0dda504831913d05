"""Translation of Chatwoot webhook payloads into internal chat events"""
import logging
from datetime import datetime

from django.db.models import Q
from django.utils import timezone

from crm.notifications.services import notify_conversation_agents
from crm.parties.models import Customer
from crm.realtime.broker import chat_broker, realtime_broker, now_ms
from crm.realtime.events import event_log

logger = logging.getLogger(__name__)

EVENT_MAP = {
    'message_created': 'message.created',
    'message_updated': 'message.created',
    'conversation_created': 'conversation.created',
    'conversation_status_changed': 'conversation.status_changed',
    'conversation_updated': 'conversation.updated',
}

MESSAGE_TYPES = {'incoming': 0, 'outgoing': 1}


def normalize_message_type(value):
    """incoming -> 0, outgoing -> 1, anything else -> 2; numeric types pass through"""
    if isinstance(value, int):
        return value
    return MESSAGE_TYPES.get(value, 2)


def to_epoch_seconds(value):
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return value
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00')).timestamp()
    except ValueError:
        return None


def build_message(body, conversation_id):
    return {
        'id': body.get('id'),
        'content': body.get('content'),
        'message_type': normalize_message_type(body.get('message_type')),
        'created_at': to_epoch_seconds(body.get('created_at')),
        'sender': body.get('sender'),
        'attachments': body.get('attachments') or [],
        'conversation_id': conversation_id,
    }


def touch_customer(sender_id, conversation_id):
    """Refresh the last contact timestamps of the customer behind a conversation"""
    lookup = Q()
    if sender_id:
        lookup |= Q(chatwoot_contact_id=sender_id)
    if conversation_id:
        lookup |= Q(chatwoot_conversation_id=conversation_id)
    if not lookup:
        return 0
    now = timezone.now()
    return Customer.objects.filter(lookup).update(last_message_at=now, last_interaction_at=now)


def handle_chatwoot_event(body):
    """
    Turn a webhook payload into an internal event, broadcast it and keep it
    for polling clients. Returns the event, or None for unhandled types.
    """
    event_type = body.get('event')
    internal_event = EVENT_MAP.get(event_type)
    if internal_event is None:
        logger.info(f"Unhandled Chatwoot event type: {event_type}")
        return None

    conversation = body.get('conversation') or {}
    account_id = (body.get('account') or {}).get('id')
    inbox_id = (body.get('inbox') or {}).get('id') or conversation.get('inbox_id')
    conversation_id = conversation.get('id')

    if event_type in ('message_created', 'message_updated'):
        message = build_message(body, conversation_id)
        data = {'message': message, 'conversation': conversation, 'sender': body.get('sender')}
        if event_type == 'message_created' and message['message_type'] == 0:
            sender = body.get('sender') or {}
            sender_name = sender.get('name') or 'Customer'
            notify_conversation_agents(
                'new_message',
                f"New message from {sender_name}",
                message=message['content'] or 'Message without content',
                priority='high',
                account_id=account_id,
                inbox_id=inbox_id,
                conversation_id=conversation_id,
                assignee_id=conversation.get('assignee_id'),
                metadata={
                    'sender_name': sender_name,
                    'conversation_display_id': conversation.get('display_id') or conversation_id,
                    'message_id': message['id'],
                },
            )
            touch_customer(sender.get('id'), conversation_id)
    elif event_type == 'conversation_created':
        # The conversation comes at the root of the payload for this event
        conversation = body.get('conversation') or body
        conversation_id = conversation_id or conversation.get('id')
        inbox_id = inbox_id or conversation.get('inbox_id')
        data = {'conversation': conversation}
        contact_name = ((conversation.get('meta') or {}).get('sender') or {}).get('name') or 'Customer'
        display_id = conversation.get('display_id') or conversation_id
        notify_conversation_agents(
            'new_conversation',
            f"New conversation from {contact_name}",
            message=f"Conversation #{display_id} started",
            account_id=account_id,
            inbox_id=inbox_id,
            conversation_id=conversation_id,
            assignee_id=conversation.get('assignee_id'),
            metadata={'contact_name': contact_name, 'conversation_display_id': display_id},
        )
    elif event_type == 'conversation_status_changed':
        data = {'conversation': conversation, 'status': body.get('status')}
    else:
        data = {'conversation': conversation}

    event = {
        'event': internal_event,
        'accountId': account_id,
        'inboxId': inbox_id,
        'conversationId': conversation_id,
        'data': data,
        'timestamp': now_ms(),
    }
    sent = chat_broker.broadcast(event)
    realtime_broker.broadcast(event)
    event_log.add(event)
    logger.info(f"Chatwoot {event_type} -> {internal_event} (conversation {conversation_id}) sent to {sent} clients")
    return event
