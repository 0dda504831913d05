import hmac
import logging

from django.conf import settings
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes, authentication_classes
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError
from crm.core.utils import parse_bool
from crm.workspaces.access import resolve_workspace, check_workspace_admin
from .audience import resolve_audience
from .crm_server import CRMServerClient, CRMServerError
from .models import ScheduledMessage, MessageTemplate, Reminder
from .serializers import (
    ScheduledMessageSerializer, ScheduledMessageSendSerializer, MessageTemplateSerializer, ReminderSerializer,
)
from .services import (
    ScheduledMessageError, create_scheduled_message, update_scheduled_message, cancel_scheduled_message,
    clean_filters, process_due_messages,
)

logger = logging.getLogger(__name__)


def scheduled_error_response(error):
    return Response({'error': error.message}, status=error.status_code)


def cron_authorized(request):
    """
    With CRON_SECRET configured the caller must send it as a bearer token;
    without it only authenticated staff users may trigger processing.
    """
    header = request.META.get('HTTP_AUTHORIZATION', '')
    if settings.CRON_SECRET:
        return hmac.compare_digest(header.encode(), f"Bearer {settings.CRON_SECRET}".encode())
    try:
        result = JWTAuthentication().authenticate(request)
    except (InvalidToken, TokenError, AuthenticationFailed):
        return False
    return bool(result and result[0].is_staff)


def get_own_scheduled_message(request, pk):
    return get_object_or_404(ScheduledMessage.objects.select_related('customer', 'workspace'), pk=pk, user=request.user)


# Scheduled message views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def scheduled_message_list_create(request):
    """List the caller's scheduled messages or schedule a new one"""
    if request.method == 'GET':
        queryset = ScheduledMessage.objects.filter(user=request.user).select_related('customer')
        for param in ('workspace_id', 'status', 'customer_id', 'target_type'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        return Response(ScheduledMessageSerializer(queryset, many=True).data)

    workspace, error = resolve_workspace(request)
    if error:
        return error
    try:
        scheduled = create_scheduled_message(request.user, workspace, request.data)
    except ScheduledMessageError as e:
        return scheduled_error_response(e)
    return Response(ScheduledMessageSerializer(scheduled).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def scheduled_message_detail(request, pk):
    scheduled = get_own_scheduled_message(request, pk)

    if request.method == 'GET':
        data = ScheduledMessageSerializer(scheduled).data
        if scheduled.target_type == 'group':
            data['sends'] = ScheduledMessageSendSerializer(scheduled.sends.select_related('customer'), many=True).data
        return Response(data)
    elif request.method in ('PUT', 'PATCH'):
        try:
            scheduled = update_scheduled_message(scheduled, request.data)
        except ScheduledMessageError as e:
            return scheduled_error_response(e)
        return Response(ScheduledMessageSerializer(scheduled).data)
    else:  # DELETE
        if scheduled.status == 'processing':
            return Response({'error': 'Cannot delete a message that is being sent'}, status=status.HTTP_400_BAD_REQUEST)
        scheduled.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def scheduled_message_cancel(request, pk):
    scheduled = get_own_scheduled_message(request, pk)
    try:
        scheduled = cancel_scheduled_message(scheduled)
    except ScheduledMessageError as e:
        return scheduled_error_response(e)
    return Response(ScheduledMessageSerializer(scheduled).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def scheduled_message_preview_count(request):
    """Number of customers a group message with these filters would reach"""
    workspace, error = resolve_workspace(request)
    if error:
        return error
    try:
        filters = clean_filters(request.data)
    except ScheduledMessageError as e:
        return scheduled_error_response(e)
    return Response({'count': len(resolve_audience(workspace, filters))})


@api_view(['POST'])
@authentication_classes([])
@permission_classes([AllowAny])
def scheduled_message_process(request):
    """Send every due message now"""
    if not cron_authorized(request):
        return Response({'error': 'Unauthorized'}, status=status.HTTP_401_UNAUTHORIZED)
    results = process_due_messages()
    if not results['processed'] and not results['failed']:
        return Response({'message': 'No messages to process', **results})
    return Response({'message': 'Processing complete', **results})


@api_view(['GET'])
@authentication_classes([])
@permission_classes([AllowAny])
def scheduled_message_cron(request):
    """Entry point for an external scheduler hitting the API periodically"""
    if not cron_authorized(request):
        return Response({'error': 'Unauthorized'}, status=status.HTTP_401_UNAUTHORIZED)
    try:
        results = process_due_messages()
    except Exception as e:
        logger.error(f"Scheduled message cron run failed: {str(e)}", exc_info=True)
        return Response(
            {'success': False, 'error': str(e), 'timestamp': timezone.now().isoformat()},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
    return Response({'success': True, 'timestamp': timezone.now().isoformat(), **results})


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def scheduled_message_server(request):
    """Queue stats from the CRM server (GET) or ask it to poll now (POST)"""
    client = CRMServerClient()
    try:
        if request.method == 'GET':
            data = client.get_stats()
        else:
            data = client.trigger_poll()
    except CRMServerError as e:
        body = {'error': e.message, 'serverUrl': client.base_url}
        if e.payload:
            body['message'] = e.payload.get('message')
        return Response(body, status=e.status_code)
    return Response(data)


# Template views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def template_list_create(request):
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = MessageTemplate.objects.filter(workspace=workspace)
        if request.query_params.get('is_active') is not None:
            queryset = queryset.filter(is_active=parse_bool(request.query_params.get('is_active')))
        category = request.query_params.get('category')
        if category:
            queryset = queryset.filter(category=category)
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) | Q(content__icontains=search) | Q(shortcut__icontains=search)
            )
        return Response(MessageTemplateSerializer(queryset, many=True).data)

    serializer = MessageTemplateSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(workspace=workspace, user=request.user)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def template_detail(request, pk):
    template = get_object_or_404(MessageTemplate, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=template.workspace_id)
    if error:
        return error

    if request.method == 'GET':
        return Response(MessageTemplateSerializer(template).data)

    if template.user_id != request.user.id and not check_workspace_admin(request.user, workspace):
        return Response({'error': 'Only the author or a workspace admin can change this template'}, status=status.HTTP_403_FORBIDDEN)

    if request.method in ('PUT', 'PATCH'):
        serializer = MessageTemplateSerializer(template, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    template.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


# Reminder views
def stamp_completion(reminder):
    """completed_at follows the status"""
    if reminder.status == 'completed' and reminder.completed_at is None:
        reminder.completed_at = timezone.now()
        reminder.save(update_fields=['completed_at'])
    elif reminder.status != 'completed' and reminder.completed_at is not None:
        reminder.completed_at = None
        reminder.save(update_fields=['completed_at'])
    return reminder


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def reminder_list_create(request):
    """The caller's reminders in a workspace"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = Reminder.objects.filter(workspace=workspace, user=request.user).select_related('customer')
        for param in ('status', 'priority', 'customer_id', 'conversation_id'):
            value = request.query_params.get(param)
            if value:
                queryset = queryset.filter(**{param: value})
        if parse_bool(request.query_params.get('overdue')):
            queryset = queryset.filter(due_date__lt=timezone.now(), status__in=['pending', 'in_progress'])
        return Response(ReminderSerializer(queryset, many=True).data)

    serializer = ReminderSerializer(data=request.data, context={'workspace': workspace})
    if serializer.is_valid():
        reminder = stamp_completion(serializer.save(workspace=workspace, user=request.user))
        return Response(ReminderSerializer(reminder).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def reminder_detail(request, pk):
    reminder = get_object_or_404(Reminder.objects.select_related('customer'), pk=pk, user=request.user)

    if request.method == 'GET':
        return Response(ReminderSerializer(reminder).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ReminderSerializer(
            reminder, data=request.data, partial=request.method == 'PATCH',
            context={'workspace': reminder.workspace}
        )
        if serializer.is_valid():
            reminder = stamp_completion(serializer.save())
            return Response(ReminderSerializer(reminder).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        reminder.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
