"""Utility functions for audit logging"""
import logging

from .models import AuditLog

logger = logging.getLogger(__name__)


def get_client_ip(request):
    """Extract client IP address from request"""
    if not request or not hasattr(request, 'META'):
        return None
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        ip = x_forwarded_for.split(',')[0].strip()
    else:
        ip = request.META.get('REMOTE_ADDR')
    return ip or None


def create_audit_log(request=None, action=None, model_name=None, object_id=None,
                     changes=None, user=None, workspace=None, object_name=None,
                     object_reference=None):
    """
    Create an audit log entry

    Args:
        request: Django request object (for user and IP), optional if user is provided
        action: Action type (order_create, stock_out, payment_add, ...)
        model_name: Name of the model being acted upon
        object_id: ID of the object (as string)
        changes: Dictionary of changes made
        user: Optional user override (defaults to request.user if request provided)
        workspace: Workspace the change belongs to
        object_name: Human-readable name of the object
        object_reference: Reference identifier (e.g., order number)
    """
    try:
        audit_user = None
        if user:
            audit_user = user
        elif request and hasattr(request, 'user'):
            audit_user = request.user

        ip_address = get_client_ip(request) if request else None

        if not action or not model_name or not object_id:
            logger.warning(f"Audit log creation skipped: missing required fields (action={action}, model_name={model_name}, object_id={object_id})")
            return None

        return AuditLog.objects.create(
            workspace=workspace,
            user=audit_user if audit_user and audit_user.is_authenticated else None,
            action=action,
            model_name=model_name,
            object_id=str(object_id),
            object_name=object_name,
            object_reference=object_reference,
            changes=changes or {},
            ip_address=ip_address
        )
    except Exception as e:
        # The audited operation must not fail because of the audit trail
        logger.error(f"Failed to create audit log: {str(e)}")
        return None


def parse_bool(value):
    """Interpret query string booleans ('true', '1', 'yes')"""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def parse_int(value, default=None):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def apply_field_definitions(definitions, values):
    """
    Check custom field values against the workspace definitions.

    Empty fields take the definition's default; a required field without
    value or default raises ValueError, as does a value of the wrong type.
    Keys without a definition are kept as sent.
    """
    values = dict(values or {})
    for definition in definitions:
        value = values.get(definition.name)
        if value is None or value == '':
            if definition.default_value not in (None, ''):
                values[definition.name] = definition.default_value
            elif definition.required:
                raise ValueError(f"{definition.label} is required")
            continue
        values[definition.name] = definition.coerce(value)
    return values
