"""Creation of in-app notifications"""
import logging

from django.contrib.auth import get_user_model

from crm.chat.models import InboxChannel
from .models import Notification, NotificationSettings

logger = logging.getLogger(__name__)

User = get_user_model()


def create_notification(user, notification_type, title, message='', priority='medium',
                        workspace=None, action_url=None, metadata=None):
    """
    Create a notification unless the user switched that type off.
    Returns the notification or None; never raises.
    """
    try:
        user_settings = NotificationSettings.objects.filter(user=user).first()
        if user_settings and not user_settings.allows(notification_type):
            logger.debug(f"Notification {notification_type} skipped for user {user.id} by settings")
            return None
        return Notification.objects.create(
            user=user,
            workspace=workspace,
            type=notification_type,
            title=title,
            message=message or '',
            priority=priority,
            action_url=action_url,
            metadata=metadata or {},
        )
    except Exception as e:
        logger.error(f"Failed to create notification for user {getattr(user, 'id', None)}: {str(e)}")
        return None


def conversation_recipients(account_id=None, inbox_id=None, assignee_id=None):
    """
    Users to notify about a conversation: the assigned agent when known,
    otherwise everyone with an active channel on the inbox.
    """
    if assignee_id:
        users = list(User.objects.filter(agent_profile__chatwoot_user_id=assignee_id))
        if users:
            return users
    if not inbox_id:
        return []
    channels = InboxChannel.objects.filter(chatwoot_inbox_id=inbox_id, is_active=True)
    if account_id:
        channels = channels.filter(chatwoot_account_id=account_id)
    user_ids = set(channels.values_list('user_id', flat=True))
    return list(User.objects.filter(id__in=user_ids))


def notify_conversation_agents(notification_type, title, message='', priority='medium',
                               account_id=None, inbox_id=None, conversation_id=None,
                               assignee_id=None, metadata=None):
    recipients = conversation_recipients(account_id, inbox_id, assignee_id)
    notifications = []
    for user in recipients:
        channel = InboxChannel.objects.filter(
            user=user, chatwoot_inbox_id=inbox_id, is_active=True
        ).select_related('workspace').first() if inbox_id else None
        notification = create_notification(
            user,
            notification_type,
            title,
            message=message,
            priority=priority,
            workspace=channel.workspace if channel else None,
            action_url=f"/chats?conversation={conversation_id}" if conversation_id else None,
            metadata={
                **(metadata or {}),
                'account_id': account_id,
                'inbox_id': inbox_id,
                'conversation_id': conversation_id,
            },
        )
        if notification:
            notifications.append(notification)
    logger.info(f"Created {len(notifications)} {notification_type} notifications for conversation {conversation_id}")
    return notifications

