"""Order lifecycle: creation with stock reservation, status changes, cancellation"""
import logging
from collections import defaultdict
from decimal import Decimal

from django.db import transaction

from crm.catalog.models import Product, ProductVariant
from crm.core.utils import apply_field_definitions
from crm.inventory.services import apply_stock_movement
from crm.parties.models import Customer, record_activity
from crm.workspaces.models import get_agent_display_name
from .models import Order, OrderItem, OrderStatusHistory, Payment, OrderFieldDefinition
from .numbering import ORDER_PREFIX, PAYMENT_PREFIX, next_document_number

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')


class OrderError(Exception):
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def get_workspace_customer(workspace, customer_id):
    if not customer_id:
        return None
    customer = Customer.objects.filter(pk=customer_id, workspace=workspace).first()
    if not customer:
        raise OrderError('Customer not found', status_code=404)
    return customer


def clean_custom_fields(workspace, values):
    """Order custom fields checked against the workspace field definitions"""
    try:
        return apply_field_definitions(OrderFieldDefinition.objects.filter(workspace=workspace), values)
    except ValueError as e:
        raise OrderError(str(e))


def _prepare_lines(workspace, items):
    """Lock the products involved and price every line"""
    lines = []
    requested = defaultdict(int)
    for item in items:
        product = Product.objects.select_for_update().filter(pk=item['product_id'], workspace=workspace).first()
        if not product:
            raise OrderError(f"Product not found: {item['product_id']}", status_code=404)
        variant = None
        if item.get('variant_id'):
            variant = ProductVariant.objects.select_for_update().filter(pk=item['variant_id'], product=product).first()
            if not variant:
                raise OrderError(f"Variant not found: {item['variant_id']}", status_code=404)

        quantity = item['quantity']
        key = ('variant', variant.id) if variant else ('product', product.id)
        requested[key] += quantity
        available = variant.stock if variant else product.stock
        if not workspace.allow_orders_without_stock and requested[key] > available:
            name = f"{product.name} - {variant.name}" if variant else product.name
            raise OrderError(f"Insufficient stock for {name}. Available: {available}, requested: {requested[key]}")

        if item.get('unit_price') is not None:
            unit_price = Decimal(item['unit_price'])
        elif variant:
            unit_price = variant.get_price()
        else:
            unit_price = product.price
        discount = Decimal(item.get('discount') or 0)
        tax = Decimal(item.get('tax') or 0)
        subtotal = (unit_price * quantity).quantize(TWO_PLACES)
        total = (subtotal - discount + tax).quantize(TWO_PLACES)
        if total < 0:
            raise OrderError(f"Line discount exceeds the price of {product.name}")

        lines.append({
            'product': product,
            'variant': variant,
            'product_name': product.name,
            'variant_name': variant.name if variant else None,
            'sku': (variant.sku if variant else None) or product.sku,
            'quantity': quantity,
            'unit_price': unit_price,
            'subtotal': subtotal,
            'discount': discount,
            'tax': tax,
            'total': total,
        })
    return lines


def create_order(workspace, user, data):
    """
    Create an order with its items, number and initial history entry,
    and take the ordered quantities out of stock, all in one transaction.
    """
    items = data.get('items') or []
    if not items:
        raise OrderError('Order must contain at least one item')
    custom_fields = clean_custom_fields(workspace, data.get('custom_fields'))

    with transaction.atomic():
        customer = get_workspace_customer(workspace, data.get('customer_id'))
        lines = _prepare_lines(workspace, items)

        # Order amounts are the line sums; order-level discount and tax are added on top
        extra_discount = Decimal(data.get('discount_amount') or 0)
        extra_tax = Decimal(data.get('tax_amount') or 0)
        subtotal = sum((line['subtotal'] for line in lines), Decimal('0.00'))
        discount_amount = sum((line['discount'] for line in lines), extra_discount)
        tax_amount = sum((line['tax'] for line in lines), extra_tax)
        lines_total = sum((line['total'] for line in lines), Decimal('0.00'))
        total_amount = (lines_total - extra_discount + extra_tax).quantize(TWO_PLACES)
        if total_amount < 0:
            raise OrderError('Discount cannot exceed the order subtotal')

        order = Order.objects.create(
            workspace=workspace,
            order_number=next_document_number(workspace, ORDER_PREFIX),
            customer=customer,
            user=user,
            created_by_name=get_agent_display_name(user),
            status=data.get('status') or 'pending',
            subtotal=subtotal,
            discount_amount=discount_amount,
            tax_amount=tax_amount,
            total_amount=total_amount,
            shipping_address=data.get('shipping_address'),
            billing_address=data.get('billing_address'),
            notes=data.get('notes'),
            payment_proof_url=data.get('payment_proof_url') or None,
            custom_fields=custom_fields,
            metadata=data.get('metadata') or {},
        )
        OrderItem.objects.bulk_create([
            OrderItem(order=order, **line)
            for line in lines
        ])
        OrderStatusHistory.objects.create(
            order=order, from_status=None, to_status=order.status, changed_by=user, notes='Order created'
        )
        for line in lines:
            apply_stock_movement(
                line['product'],
                'out',
                line['quantity'],
                user=user,
                variant=line['variant'],
                reason='Order',
                reference=order.order_number,
                allow_negative=workspace.allow_orders_without_stock,
            )

    if customer:
        record_activity(
            customer, 'order_created', f"Order {order.order_number} created", user=user,
            metadata={'order_id': order.id, 'total': str(order.total_amount)},
        )
    logger.info(f"Order {order.order_number} created in workspace {workspace.id} ({len(lines)} items)")
    return order


def restore_order_stock(order, user=None):
    for item in order.items.select_related('product', 'variant'):
        if item.product is None:
            continue
        apply_stock_movement(
            item.product,
            'in',
            item.quantity,
            user=user,
            variant=item.variant,
            reason='Order cancelled',
            reference=order.order_number,
        )


def change_order_status(order, new_status, user=None, notes=None):
    """
    Move an order to a new status. Completed orders are final, cancelled
    orders stay cancelled, and cancelling puts the items back in stock.
    """
    valid_statuses = [choice[0] for choice in Order.STATUS_CHOICES]
    if new_status not in valid_statuses:
        raise OrderError(f"status must be one of: {', '.join(valid_statuses)}")

    with transaction.atomic():
        locked = Order.objects.select_for_update().get(pk=order.pk)
        if new_status == locked.status:
            return locked
        if locked.status == 'completed':
            raise OrderError('Cannot change the status of a completed order')
        if locked.status == 'cancelled':
            raise OrderError('Cannot change the status of a cancelled order')

        if new_status == 'cancelled':
            restore_order_stock(locked, user)

        previous_status = locked.status
        locked.status = new_status
        locked.save(update_fields=['status', 'updated_at'])
        OrderStatusHistory.objects.create(
            order=locked, from_status=previous_status, to_status=new_status, changed_by=user, notes=notes
        )

    logger.info(f"Order {locked.order_number} status {previous_status} -> {new_status}")
    order.status = locked.status
    return locked


def update_order(order, data, user=None):
    """Apply editable fields, then the status transition if one was requested"""
    update_fields = []
    if 'custom_fields' in data:
        data = {**data, 'custom_fields': clean_custom_fields(order.workspace, data['custom_fields'])}
    if 'customer_id' in data:
        order.customer = get_workspace_customer(order.workspace, data['customer_id'])
        update_fields.append('customer')
    for field in ('shipping_address', 'billing_address', 'notes', 'payment_proof_url', 'custom_fields', 'metadata'):
        if field in data:
            setattr(order, field, data[field])
            update_fields.append(field)

    with transaction.atomic():
        if update_fields:
            order.save(update_fields=update_fields + ['updated_at'])
        if data.get('status'):
            order = change_order_status(order, data['status'], user=user, notes=data.get('status_notes'))
    return order


def cancel_order(order, user=None, notes=None):
    if order.status == 'completed':
        raise OrderError('Cannot cancel a completed order')
    if order.status == 'cancelled':
        raise OrderError('Order is already cancelled')
    return change_order_status(order, 'cancelled', user=user, notes=notes or 'Order cancelled')


def create_payment(workspace, user, validated_data, order=None, customer=None):
    """Register a payment; the customer defaults to the order's customer"""
    if customer is None and order is not None:
        customer = order.customer
    with transaction.atomic():
        payment = Payment.objects.create(
            workspace=workspace,
            payment_number=next_document_number(workspace, PAYMENT_PREFIX),
            order=order,
            customer=customer,
            user=user,
            **validated_data,
        )
    if customer:
        record_activity(
            customer, 'payment_received', f"Payment {payment.payment_number} of {payment.amount} {payment.currency}",
            user=user, metadata={'payment_id': payment.id, 'order_id': order.id if order else None},
        )
    logger.info(f"Payment {payment.payment_number} registered in workspace {workspace.id}")
    return payment
