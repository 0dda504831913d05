"""
Per-workspace daily document numbers (ORD-20240131-001, PAY-20240131-0001).

The counter row is locked with SELECT ... FOR UPDATE, so two concurrent
requests in the same workspace and day always get different numbers.
Call inside the transaction that stores the document.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .models import DocumentSequence

logger = logging.getLogger(__name__)

ORDER_PREFIX = 'ORD'
PAYMENT_PREFIX = 'PAY'

PREFIX_DIGITS = {
    ORDER_PREFIX: 3,
    PAYMENT_PREFIX: 4,
}


def format_document_number(prefix, day, value, digits=None):
    digits = digits or PREFIX_DIGITS.get(prefix, 4)
    return f"{prefix}-{day:%Y%m%d}-{value:0{digits}d}"


def next_document_number(workspace, prefix, day=None):
    day = day or timezone.localdate()
    with transaction.atomic():
        DocumentSequence.objects.get_or_create(workspace=workspace, prefix=prefix, date=day)
        sequence = DocumentSequence.objects.select_for_update().get(workspace=workspace, prefix=prefix, date=day)
        sequence.last_value += 1
        sequence.save(update_fields=['last_value'])
    number = format_document_number(prefix, day, sequence.last_value)
    logger.debug(f"Issued {number} for workspace {workspace.id}")
    return number
