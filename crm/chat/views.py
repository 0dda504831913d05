import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from crm.core.utils import parse_int, parse_bool
from crm.parties.models import Customer
from crm.workspaces.access import resolve_workspace, check_workspace_admin, check_workspace_access
from .chatwoot import ChatwootClient, ChatwootError
from .models import InboxChannel, ChatAssignment, ChatCustomerLink
from .serializers import InboxChannelSerializer, ChatAssignmentSerializer, ChatCustomerLinkSerializer
from .webhooks import handle_chatwoot_event

logger = logging.getLogger(__name__)


def get_user_channels(user, workspace):
    return InboxChannel.objects.filter(user=user, workspace=workspace, is_active=True)


def chatwoot_error_response(error):
    body = {'error': error.message}
    if error.payload:
        body['details'] = error.payload
    return Response(body, status=error.status_code)


def resolve_conversation(request, client, workspace, conversation_id, account_id):
    """Fetch a conversation and check its inbox is one of the caller's channels"""
    conversation = client.get_conversation(conversation_id, account_id=account_id)
    inbox_ids = set(get_user_channels(request.user, workspace).values_list('chatwoot_inbox_id', flat=True))
    if conversation.get('inbox_id') not in inbox_ids:
        return None, Response({'error': 'You do not have access to this conversation'}, status=status.HTTP_403_FORBIDDEN)
    return conversation, None


def default_account_id(request, channels=None):
    account_id = request.query_params.get('account_id') or (
        request.data.get('account_id') if hasattr(request.data, 'get') else None
    )
    if account_id:
        return account_id
    if channels is not None:
        channel = channels.first()
        if channel:
            return channel.chatwoot_account_id
    return settings.CHATWOOT_ACCOUNT_ID


# Provider proxy views
@api_view(['GET'])
@permission_classes([IsAuthenticated])
def chat_inboxes(request):
    """Provider inboxes the caller has an active channel for"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    channels = get_user_channels(request.user, workspace)
    if not channels.exists():
        return Response({'success': True, 'inboxes': []})

    channel_by_inbox = {channel.chatwoot_inbox_id: channel for channel in channels}
    try:
        inboxes = ChatwootClient().list_inboxes(account_id=default_account_id(request, channels))
    except ChatwootError as e:
        return chatwoot_error_response(e)

    result = []
    for inbox in inboxes:
        channel = channel_by_inbox.get(inbox.get('id'))
        if channel:
            result.append({**inbox, 'channel_id': channel.id, 'channel_type': channel.channel_type})
    return Response({'success': True, 'inboxes': result})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def chat_conversations(request):
    """Conversations of the caller's inboxes"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    channels = get_user_channels(request.user, workspace)
    if not channels.exists():
        return Response({
            'success': True,
            'conversations': [],
            'meta': {'count': 0},
            'message': 'You have no channels assigned',
        })

    user_inbox_ids = set(channels.values_list('chatwoot_inbox_id', flat=True))
    inbox_id = parse_int(request.query_params.get('inbox_id'))
    if request.query_params.get('inbox_id') and inbox_id not in user_inbox_ids:
        return Response({'error': 'You do not have access to this inbox'}, status=status.HTTP_403_FORBIDDEN)

    try:
        conversations, meta = ChatwootClient().list_conversations(
            account_id=default_account_id(request, channels),
            status=request.query_params.get('status', 'open'),
            page=parse_int(request.query_params.get('page'), 1),
            inbox_id=inbox_id,
        )
    except ChatwootError as e:
        return chatwoot_error_response(e)

    conversations = [conversation for conversation in conversations if conversation.get('inbox_id') in user_inbox_ids]
    return Response({
        'success': True,
        'conversations': conversations,
        'meta': {**meta, 'count': len(conversations)},
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def chat_messages(request):
    workspace, error = resolve_workspace(request)
    if error:
        return error
    conversation_id = parse_int(request.query_params.get('conversation_id'))
    if not conversation_id:
        return Response({'error': 'conversation_id is required'}, status=status.HTTP_400_BAD_REQUEST)

    client = ChatwootClient()
    account_id = default_account_id(request, get_user_channels(request.user, workspace))
    try:
        conversation, error = resolve_conversation(request, client, workspace, conversation_id, account_id)
        if error:
            return error
        messages = client.list_messages(conversation_id, account_id=account_id, before=request.query_params.get('before'))
    except ChatwootError as e:
        return chatwoot_error_response(e)

    return Response({'success': True, 'messages': messages, 'conversation': conversation})


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def chat_send_message(request):
    """Send a text message and/or attachments to a conversation"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    conversation_id = parse_int(request.data.get('conversation_id'))
    content = (request.data.get('content') or '').strip()
    attachments = [
        (upload.name, upload, upload.content_type)
        for upload in request.FILES.getlist('attachments')
    ]
    if not conversation_id:
        return Response({'error': 'conversation_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    if not content and not attachments:
        return Response({'error': 'Message content or attachments are required'}, status=status.HTTP_400_BAD_REQUEST)

    client = ChatwootClient()
    account_id = default_account_id(request, get_user_channels(request.user, workspace))
    try:
        conversation, error = resolve_conversation(request, client, workspace, conversation_id, account_id)
        if error:
            return error
        message = client.send_message(
            conversation_id,
            content=content or None,
            account_id=account_id,
            private=parse_bool(request.data.get('private')),
            attachments=attachments or None,
        )
    except ChatwootError as e:
        return chatwoot_error_response(e)

    logger.info(f"User {request.user.id} sent a message to conversation {conversation_id} ({len(attachments)} attachments)")
    return Response({'success': True, 'message': message}, status=status.HTTP_201_CREATED)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def chat_mark_read(request):
    workspace, error = resolve_workspace(request)
    if error:
        return error
    conversation_id = parse_int(request.data.get('conversation_id'))
    if not conversation_id:
        return Response({'error': 'conversation_id is required'}, status=status.HTTP_400_BAD_REQUEST)

    client = ChatwootClient()
    account_id = default_account_id(request, get_user_channels(request.user, workspace))
    try:
        conversation, error = resolve_conversation(request, client, workspace, conversation_id, account_id)
        if error:
            return error
        client.mark_read(conversation_id, account_id=account_id)
    except ChatwootError as e:
        return chatwoot_error_response(e)
    return Response({'success': True})


# Channel views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def chat_channel_list_create(request):
    """
    List or register inbox channels. Admins may manage channels of any
    workspace user; everyone else only sees and creates their own.
    """
    workspace, error = resolve_workspace(request)
    if error:
        return error
    is_admin = check_workspace_admin(request.user, workspace)

    if request.method == 'GET':
        queryset = InboxChannel.objects.filter(workspace=workspace).select_related('user')
        user_id = request.query_params.get('user_id')
        if not is_admin:
            queryset = queryset.filter(user=request.user)
        elif user_id:
            queryset = queryset.filter(user_id=user_id)
        if request.query_params.get('is_active') is not None:
            queryset = queryset.filter(is_active=parse_bool(request.query_params.get('is_active')))
        return Response(InboxChannelSerializer(queryset, many=True).data)

    owner = request.user
    user_id = parse_int(request.data.get('user_id'))
    if user_id and user_id != request.user.id:
        if not is_admin:
            return Response({'error': 'Only workspace admins can assign channels to other users'}, status=status.HTTP_403_FORBIDDEN)
        owner = get_user_model().objects.filter(pk=user_id).first()
        if not owner or not check_workspace_access(owner, workspace):
            return Response({'error': 'User is not part of this workspace'}, status=status.HTTP_400_BAD_REQUEST)

    serializer = InboxChannelSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    try:
        with transaction.atomic():
            channel = serializer.save(user=owner, workspace=workspace)
    except IntegrityError:
        return Response({'error': 'This inbox is already assigned to the user in this workspace'}, status=status.HTTP_400_BAD_REQUEST)
    logger.info(f"Inbox {channel.chatwoot_inbox_id} assigned to user {owner.id} in workspace {workspace.id}")
    return Response(InboxChannelSerializer(channel).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def chat_channel_detail(request, pk):
    channel = get_object_or_404(InboxChannel, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=channel.workspace_id)
    if error:
        return error
    if channel.user_id != request.user.id and not check_workspace_admin(request.user, workspace):
        return Response({'error': 'You can only manage your own channels'}, status=status.HTTP_403_FORBIDDEN)

    if request.method == 'GET':
        return Response(InboxChannelSerializer(channel).data)
    elif request.method == 'PATCH':
        serializer = InboxChannelSerializer(channel, data=request.data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        channel.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Assignment views
@api_view(['GET', 'POST', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def chat_assignments(request):
    """List, create, update (?id in body) or delete (?id) conversation assignments"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = ChatAssignment.objects.filter(workspace=workspace).select_related('agent', 'assigned_by')
        for param in ('conversation_id', 'agent_id'):
            value = request.query_params.get(param)
            if not value:
                continue
            if parse_int(value) is None:
                return Response({'error': f'{param} must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(**{param: parse_int(value)})
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params.get('status'))
        return Response(ChatAssignmentSerializer(queryset, many=True).data)

    if request.method == 'POST':
        conversation_id = parse_int(request.data.get('conversation_id'))
        agent_id = parse_int(request.data.get('agent_id'))
        if not conversation_id or not agent_id:
            return Response({'error': 'conversation_id and agent_id are required'}, status=status.HTTP_400_BAD_REQUEST)
        agent = get_user_model().objects.filter(pk=agent_id).first()
        if not agent or not check_workspace_access(agent, workspace):
            return Response({'error': 'Agent is not part of this workspace'}, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            ChatAssignment.objects.select_for_update().filter(
                workspace=workspace, conversation_id=conversation_id, status='active'
            ).update(status='transferred', unassigned_at=timezone.now())
            assignment = ChatAssignment.objects.create(
                workspace=workspace,
                conversation_id=conversation_id,
                agent=agent,
                assigned_by=request.user,
                notes=request.data.get('notes'),
            )
        logger.info(f"Conversation {conversation_id} assigned to user {agent.id} by {request.user.id}")
        return Response(ChatAssignmentSerializer(assignment).data, status=status.HTTP_201_CREATED)

    assignment_id = request.data.get('id') if request.method == 'PATCH' else request.query_params.get('id')
    if not assignment_id:
        return Response({'error': 'id is required'}, status=status.HTTP_400_BAD_REQUEST)
    assignment = ChatAssignment.objects.filter(pk=parse_int(assignment_id), workspace=workspace).first()
    if not assignment:
        return Response({'error': 'Assignment not found'}, status=status.HTTP_404_NOT_FOUND)

    if request.method == 'PATCH':
        new_status = request.data.get('status')
        if new_status is not None:
            valid_statuses = [choice[0] for choice in ChatAssignment.STATUS_CHOICES]
            if new_status not in valid_statuses:
                return Response({'error': f"status must be one of: {', '.join(valid_statuses)}"}, status=status.HTTP_400_BAD_REQUEST)
            assignment.status = new_status
            if new_status in ('completed', 'transferred'):
                assignment.unassigned_at = timezone.now()
        if 'notes' in request.data:
            assignment.notes = request.data.get('notes')
        assignment.save()
        return Response(ChatAssignmentSerializer(assignment).data)

    # DELETE
    assignment.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET', 'POST', 'DELETE'])
@permission_classes([IsAuthenticated])
def chat_customer_links(request):
    """Link conversations to customer records; ?conversation_id returns a single link"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = ChatCustomerLink.objects.filter(workspace=workspace).select_related('customer', 'linked_by')
        conversation_id = request.query_params.get('conversation_id')
        if conversation_id:
            if parse_int(conversation_id) is None:
                return Response({'error': 'conversation_id must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
            link = queryset.filter(conversation_id=parse_int(conversation_id)).first()
            return Response({'link': ChatCustomerLinkSerializer(link).data if link else None})
        customer_id = request.query_params.get('customer_id')
        if customer_id:
            if parse_int(customer_id) is None:
                return Response({'error': 'customer_id must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
            queryset = queryset.filter(customer_id=parse_int(customer_id))
        return Response({'links': ChatCustomerLinkSerializer(queryset, many=True).data})

    if request.method == 'POST':
        conversation_id = parse_int(request.data.get('conversation_id'))
        customer_id = parse_int(request.data.get('customer_id'))
        if not conversation_id or not customer_id:
            return Response({'error': 'conversation_id, customer_id and workspace_id are required'}, status=status.HTTP_400_BAD_REQUEST)
        customer = Customer.objects.filter(pk=customer_id, workspace=workspace).first()
        if not customer:
            return Response({'error': 'Customer not found or unauthorized'}, status=status.HTTP_404_NOT_FOUND)

        link, created = ChatCustomerLink.objects.update_or_create(
            workspace=workspace, conversation_id=conversation_id,
            defaults={'customer': customer, 'notes': request.data.get('notes'), 'linked_by': request.user},
        )
        logger.info(f"Conversation {conversation_id} linked to customer {customer.id} in workspace {workspace.id}")
        if created:
            return Response({'link': ChatCustomerLinkSerializer(link).data, 'created': True}, status=status.HTTP_201_CREATED)
        return Response({'link': ChatCustomerLinkSerializer(link).data, 'updated': True})

    # DELETE
    conversation_id = request.query_params.get('conversation_id')
    if not conversation_id:
        return Response({'error': 'conversation_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    link = ChatCustomerLink.objects.filter(workspace=workspace, conversation_id=parse_int(conversation_id)).first()
    if not link:
        return Response({'error': 'Link not found'}, status=status.HTTP_404_NOT_FOUND)
    deleted = ChatCustomerLinkSerializer(link).data
    link.delete()
    return Response({'success': True, 'deleted': deleted})


# Webhook
@api_view(['GET', 'POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def chatwoot_webhook(request):
    """Receives Chatwoot events and fans them out to connected clients"""
    if request.method == 'GET':
        challenge = request.query_params.get('hub.challenge')
        if challenge:
            return HttpResponse(challenge, content_type='text/plain')
        return Response({
            'status': 'active',
            'endpoint': '/api/v1/webhooks/chatwoot/',
            'message': 'Webhook is ready to receive events from Chatwoot',
        })

    body = request.data if isinstance(request.data, dict) else {}
    try:
        event = handle_chatwoot_event(body)
    except Exception as e:
        logger.error(f"Error processing Chatwoot webhook: {str(e)}", exc_info=True)
        return Response({'error': 'Internal server error', 'details': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    if event is None:
        return Response({'received': True, 'event': body.get('event')})
    return Response({
        'received': True,
        'event': event['event'],
        'timestamp': timezone.now().isoformat(),
    })
