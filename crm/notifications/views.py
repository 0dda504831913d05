from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.shortcuts import get_object_or_404
from django.utils import timezone
from crm.core.utils import parse_bool, parse_int
from .models import Notification, NotificationSettings
from .serializers import NotificationSerializer, NotificationSettingsSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def notification_list(request):
    """Notifications of the current user, newest first"""
    notifications = Notification.objects.filter(user=request.user)
    if parse_bool(request.query_params.get('unread')):
        notifications = notifications.filter(read=False)
    limit = min(parse_int(request.query_params.get('limit'), 50), 200)
    unread_count = Notification.objects.filter(user=request.user, read=False).count()
    serializer = NotificationSerializer(notifications[:limit], many=True)
    return Response({'notifications': serializer.data, 'unread_count': unread_count})


@api_view(['PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def notification_detail(request, pk):
    notification = get_object_or_404(Notification, pk=pk, user=request.user)

    if request.method == 'DELETE':
        notification.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)

    read = request.data.get('read')
    if not isinstance(read, bool):
        return Response({'error': 'read must be a boolean'}, status=status.HTTP_400_BAD_REQUEST)
    notification.read = read
    notification.read_at = timezone.now() if read else None
    notification.save(update_fields=['read', 'read_at'])
    return Response(NotificationSerializer(notification).data)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def notification_mark_all_read(request):
    updated = Notification.objects.filter(user=request.user, read=False).update(
        read=True, read_at=timezone.now()
    )
    return Response({'updated': updated})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated])
def notification_settings(request):
    """Per-user notification preferences"""
    user_settings, _ = NotificationSettings.objects.get_or_create(user=request.user)
    if request.method == 'GET':
        return Response(NotificationSettingsSerializer(user_settings).data)

    serializer = NotificationSettingsSerializer(user_settings, data=request.data, partial=True)
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
