"""Selection of the customers a group message goes to"""
from datetime import timedelta

from django.db.models import Q
from django.utils import timezone

from crm.parties.models import Customer

MESSAGE_AGE_WINDOWS = {
    'last_7_days': timedelta(days=7),
    'last_30_days': timedelta(days=30),
    'last_90_days': timedelta(days=90),
}
INACTIVE_AFTER = timedelta(days=90)

LAST_INTERACTION_WINDOWS = {
    'last_24h': timedelta(hours=24),
    'last_week': timedelta(days=7),
    'last_month': timedelta(days=30),
}


def audience_queryset(workspace, filters, now=None):
    """Customers of the workspace matching the database side filters"""
    now = now or timezone.now()
    filters = filters or {}
    queryset = Customer.objects.filter(workspace=workspace)

    tag_ids = filters.get('filter_by_tags')
    if tag_ids:
        queryset = queryset.filter(tags__id__in=tag_ids).distinct()

    message_age = filters.get('filter_by_message_age')
    if message_age in MESSAGE_AGE_WINDOWS:
        queryset = queryset.filter(last_message_at__gte=now - MESSAGE_AGE_WINDOWS[message_age])
    elif message_age == 'inactive':
        queryset = queryset.filter(Q(last_message_at__isnull=True) | Q(last_message_at__lt=now - INACTIVE_AFTER))

    last_interaction = filters.get('filter_by_last_interaction')
    if last_interaction in LAST_INTERACTION_WINDOWS:
        queryset = queryset.filter(last_interaction_at__gte=now - LAST_INTERACTION_WINDOWS[last_interaction])
    elif last_interaction == 'no_interaction':
        queryset = queryset.filter(last_interaction_at__isnull=True)

    return queryset.order_by('id')


def resolve_audience(workspace, filters, now=None):
    """
    Every customer matching all of the given filters. Tags and labels match
    when the customer has any of the requested ones.
    """
    customers = list(audience_queryset(workspace, filters, now))
    labels = (filters or {}).get('filter_by_labels')
    if labels:
        # JSON containment lookups are not available on every backend
        wanted = set(labels)
        customers = [customer for customer in customers if wanted.intersection(customer.labels or [])]
    return customers
