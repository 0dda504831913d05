"""Stock movement rules shared by the stock endpoints and order processing"""
import logging

from django.db import transaction

from crm.catalog.models import Product, ProductVariant
from .models import StockMovement

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = [choice[0] for choice in StockMovement.MOVEMENT_TYPE_CHOICES]


class StockError(Exception):
    """Invalid stock movement request"""


class InsufficientStock(StockError):
    def __init__(self, item_name, requested, available):
        self.item_name = item_name
        self.requested = requested
        self.available = available
        super().__init__(f"Insufficient stock for {item_name}: requested {requested}, available {available}")


def apply_stock_movement(product, movement_type, quantity, user=None, variant=None, reason=None,
                         notes=None, reference=None, allow_negative=False):
    """
    Apply one movement and record it.

    'in' adds, 'out' subtracts (InsufficientStock below zero unless allowed),
    'adjustment' sets the absolute stock and records the size of the change.
    The product (and variant) rows are locked for the duration of the
    transaction so concurrent movements serialize.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise StockError(f"movement_type must be one of: {', '.join(MOVEMENT_TYPES)}")
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise StockError('quantity must be an integer')
    if movement_type == 'adjustment':
        if quantity < 0:
            raise StockError('Stock cannot be adjusted below zero')
    elif quantity <= 0:
        raise StockError('quantity must be greater than zero')

    with transaction.atomic():
        locked_product = Product.objects.select_for_update().get(pk=product.pk)
        target = locked_product
        if variant is not None:
            target = ProductVariant.objects.select_for_update().get(pk=variant.pk, product=locked_product)

        previous_stock = target.stock
        if movement_type == 'in':
            new_stock = previous_stock + quantity
            recorded = quantity
        elif movement_type == 'out':
            new_stock = previous_stock - quantity
            if new_stock < 0 and not allow_negative:
                raise InsufficientStock(str(target), quantity, previous_stock)
            recorded = quantity
        else:
            new_stock = quantity
            recorded = abs(new_stock - previous_stock)

        target.stock = new_stock
        target.save(update_fields=['stock', 'updated_at'])

        movement = StockMovement.objects.create(
            workspace_id=locked_product.workspace_id,
            product=locked_product,
            variant=target if variant is not None else None,
            movement_type=movement_type,
            quantity=recorded,
            previous_stock=previous_stock,
            new_stock=new_stock,
            reason=reason,
            notes=notes,
            reference=reference,
            created_by=user if user and user.is_authenticated else None,
        )

    # Keep the caller's instances in sync with the database
    if variant is not None:
        variant.stock = new_stock
    else:
        product.stock = new_stock
    logger.info(f"Stock {movement_type} on product {product.pk} variant {getattr(variant, 'pk', None)}: {previous_stock} -> {new_stock}")
    return movement
