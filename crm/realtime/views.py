import json
import logging

from django.conf import settings
from django.http import StreamingHttpResponse
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, renderer_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.renderers import BaseRenderer, JSONRenderer
from rest_framework.response import Response
from crm.chat.models import InboxChannel
from crm.core.utils import parse_int
from .broker import chat_broker, realtime_broker, now_ms
from .events import event_log

logger = logging.getLogger(__name__)


class EventStreamRenderer(BaseRenderer):
    """Lets clients ask for text/event-stream; the body is streamed by the view"""
    media_type = 'text/event-stream'
    format = 'sse'
    charset = 'utf-8'

    def render(self, data, accepted_media_type=None, renderer_context=None):
        return json.dumps(data).encode(self.charset)


def format_sse(data, event=None):
    message = ''
    if event:
        message += f"event: {event}\n"
    message += f"data: {json.dumps(data, default=str)}\n\n"
    return message


def parse_inbox_ids(value):
    inbox_ids = []
    for part in (value or '').split(','):
        inbox_id = parse_int(part.strip())
        if inbox_id is not None:
            inbox_ids.append(inbox_id)
    return inbox_ids


def get_channel_scope(user, account_id=None):
    """(account, inbox) pairs of the user's active channels; None for staff, who see everything"""
    if user.is_staff:
        return None
    channels = InboxChannel.objects.filter(user=user, is_active=True)
    if account_id is not None:
        channels = channels.filter(chatwoot_account_id=parse_int(account_id, 0))
    return {
        (str(account), inbox_id)
        for account, inbox_id in channels.values_list('chatwoot_account_id', 'chatwoot_inbox_id')
    }


def no_channels_response():
    return Response({'error': 'No active inbox channels for this stream'}, status=status.HTTP_403_FORBIDDEN)


def event_stream(broker, subscriber, connected):
    """Yield the connected message, then events as they arrive with a ping on every idle interval"""
    try:
        yield format_sse(connected, event='connection')
        while True:
            event = subscriber.next_event(timeout=settings.REALTIME_PING_INTERVAL)
            if event is None:
                yield format_sse({'type': 'ping', 'timestamp': now_ms(), 'connections': broker.stats()['total']}, event='ping')
            else:
                yield format_sse(event)
    finally:
        broker.unsubscribe(subscriber.client_id)


def sse_response(stream):
    response = StreamingHttpResponse(stream, content_type='text/event-stream')
    response['Cache-Control'] = 'no-cache, no-transform'
    response['X-Accel-Buffering'] = 'no'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@renderer_classes([JSONRenderer, EventStreamRenderer])
def chat_stream(request):
    """Chat events for one account, optionally narrowed to some inboxes"""
    account_id = request.query_params.get('accountId') or settings.CHATWOOT_ACCOUNT_ID or None
    inbox_ids = parse_inbox_ids(request.query_params.get('inboxIds'))
    conversation_id = parse_int(request.query_params.get('conversationId'))

    scope = get_channel_scope(request.user, account_id)
    if scope is not None:
        allowed = sorted({inbox_id for _, inbox_id in scope})
        inbox_ids = [inbox_id for inbox_id in inbox_ids if inbox_id in allowed] if inbox_ids else allowed
        if not inbox_ids:
            return no_channels_response()

    subscriber = chat_broker.subscribe(
        account_id=account_id, inbox_ids=inbox_ids, conversation_id=conversation_id, scope=scope
    )
    connected = {
        'type': 'connected',
        'clientId': subscriber.client_id,
        'accountId': subscriber.account_id,
        'inboxIds': subscriber.inbox_ids,
        'conversationId': conversation_id,
        'timestamp': now_ms(),
        'message': 'Connected to chat stream',
    }
    return sse_response(event_stream(chat_broker, subscriber, connected))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
@renderer_classes([JSONRenderer, EventStreamRenderer])
def realtime_stream(request):
    """Every broadcast event of the caller's channels, without the chat stream filters"""
    account_id = request.query_params.get('accountId') or settings.CHATWOOT_ACCOUNT_ID or None
    scope = get_channel_scope(request.user)
    if scope is not None and not scope:
        return no_channels_response()
    subscriber = realtime_broker.subscribe(account_id=account_id, scope=scope)
    connected = {
        'type': 'connected',
        'clientId': subscriber.client_id,
        'accountId': subscriber.account_id,
        'message': 'Connected to realtime server',
    }
    return sse_response(event_stream(realtime_broker, subscriber, connected))


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def latest_events(request):
    """Polling fallback: events newer than ?since= (milliseconds)"""
    since = parse_int(request.query_params.get('since'), 0)
    events = event_log.since(since, scope=get_channel_scope(request.user))
    return Response({'events': events, 'timestamp': now_ms()})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stream_stats(request):
    return Response({
        'chat': chat_broker.stats(),
        'realtime': realtime_broker.stats(),
        'stored_events': len(event_log),
    })


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def stream_test(request):
    """Broadcast a synthetic event to check connected clients (staff only)"""
    if not request.user.is_staff:
        return Response({'error': 'Only staff users can send test events'}, status=status.HTTP_403_FORBIDDEN)

    event = {
        'event': request.data.get('event') or 'message.created',
        'accountId': request.data.get('accountId') or settings.CHATWOOT_ACCOUNT_ID or None,
        'inboxId': parse_int(request.data.get('inboxId')),
        'conversationId': parse_int(request.data.get('conversationId')),
        'data': request.data.get('data') or {
            'message': {'id': now_ms(), 'content': 'Test message', 'message_type': 0},
        },
        'timestamp': now_ms(),
    }
    sent = chat_broker.broadcast(event)
    realtime_broker.broadcast(event)
    event_log.add(event)
    logger.info(f"Test event {event['event']} sent to {sent} chat clients by user {request.user.id}")
    return Response({'success': True, 'sent': sent, 'event': event, 'stats': chat_broker.stats()})
