"""
Cache invalidation signals
Drop cached permission maps whenever a row feeding them changes
"""
from django.db.models.signals import post_save, post_delete
from django.dispatch import receiver
import logging

from crm.core.cache_utils import invalidate_namespace
from crm.workspaces.models import WorkspaceMember, WorkspaceAgent
from .models import Role, UserRole, RoleModule, RolePermissionGroup, RolePermissionSwitch
from .permissions import PERMISSIONS_NAMESPACE

logger = logging.getLogger(__name__)

PERMISSION_SOURCES = (
    Role, UserRole, RoleModule, RolePermissionGroup, RolePermissionSwitch,
    WorkspaceMember, WorkspaceAgent,
)


@receiver(post_save)
@receiver(post_delete)
def invalidate_permissions_cache(sender, **kwargs):
    if sender not in PERMISSION_SOURCES:
        return
    invalidate_namespace(PERMISSIONS_NAMESPACE)
    logger.debug(f"Permissions cache invalidated by {sender.__name__}")
