import math

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db.models import Q
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_date
from crm.core.utils import create_audit_log, parse_int
from crm.roles.permissions import has_module_access
from crm.workspaces.access import resolve_workspace
from .models import Order, Payment, OrderFieldDefinition
from .serializers import (
    OrderSerializer, OrderCreateSerializer, OrderUpdateSerializer, OrderStatusHistorySerializer,
    PaymentSerializer, OrderFieldDefinitionSerializer,
)
from .services import (
    OrderError, create_order, update_order, cancel_order, create_payment, get_workspace_customer,
)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def resolve_module_workspace(request, module, workspace_id=None):
    """Workspace access plus the role module needed by the endpoint"""
    workspace, error = resolve_workspace(request, workspace_id=workspace_id)
    if error:
        return None, error
    if not has_module_access(request.user, workspace, module):
        return None, Response({'error': f'You do not have permission to access {module}'}, status=status.HTTP_403_FORBIDDEN)
    return workspace, None


def paginate(request, queryset):
    page = max(parse_int(request.query_params.get('page'), 1), 1)
    page_size = min(max(parse_int(request.query_params.get('page_size'), DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)
    total = queryset.count()
    offset = (page - 1) * page_size
    return queryset[offset:offset + page_size], {
        'total': total,
        'page': page,
        'page_size': page_size,
        'total_pages': math.ceil(total / page_size) if total else 0,
    }


def invalid_filter(param, expected):
    return Response({'error': f'{param} must be {expected}'}, status=status.HTTP_400_BAD_REQUEST)


def apply_id_filters(request, queryset, fields):
    """Filter on integer query params ({param: field}); returns (queryset, error response)"""
    for param, field in fields.items():
        value = request.query_params.get(param)
        if not value or value == 'all':
            continue
        value = parse_int(value)
        if value is None:
            return None, invalid_filter(param, 'an integer')
        queryset = queryset.filter(**{field: value})
    return queryset, None


def apply_date_range(request, queryset, field):
    """date_from and date_to (YYYY-MM-DD, whole day inclusive); returns (queryset, error response)"""
    for param, lookup in (('date_from', 'gte'), ('date_to', 'lte')):
        value = request.query_params.get(param)
        if not value:
            continue
        try:
            day = parse_date(value)
        except ValueError:
            day = None
        if day is None:
            return None, invalid_filter(param, 'a date (YYYY-MM-DD)')
        queryset = queryset.filter(**{f'{field}__date__{lookup}': day})
    return queryset, None


def order_error_response(error):
    return Response({'error': error.message}, status=error.status_code)


# Order views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_list_create(request):
    """List orders of a workspace (paginated) or create a new order"""
    if request.method == 'GET':
        workspace, error = resolve_module_workspace(request, 'orders')
        if error:
            return error

        queryset = Order.objects.filter(workspace=workspace).select_related('customer', 'user').prefetch_related('items')
        order_status = request.query_params.get('status', 'all')
        if order_status and order_status != 'all':
            queryset = queryset.filter(status=order_status)
        queryset, error = apply_id_filters(request, queryset, {'customer_id': 'customer_id', 'agent_id': 'user_id'})
        if error:
            return error
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(order_number__icontains=search) | Q(customer__name__icontains=search)
            )
        queryset, error = apply_date_range(request, queryset, 'order_date')
        if error:
            return error

        page, meta = paginate(request, queryset)
        return Response({'orders': OrderSerializer(page, many=True).data, **meta})

    serializer = OrderCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    workspace, error = resolve_module_workspace(request, 'orders', workspace_id=serializer.validated_data['workspace_id'])
    if error:
        return error

    try:
        order = create_order(workspace, request.user, serializer.validated_data)
    except OrderError as e:
        return order_error_response(e)

    create_audit_log(
        request=request, action='order_create', model_name='Order', object_id=order.id,
        workspace=workspace, object_name=order.order_number, object_reference=order.order_number,
        changes={'total_amount': str(order.total_amount), 'items': order.items.count()},
    )
    return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def order_detail(request, pk):
    """Retrieve or update an order; DELETE cancels it"""
    order = get_object_or_404(Order.objects.select_related('workspace', 'customer', 'user'), pk=pk)
    workspace, error = resolve_module_workspace(request, 'orders', workspace_id=order.workspace_id)
    if error:
        return error

    if request.method == 'GET':
        return Response(OrderSerializer(order).data)

    if request.method in ('PUT', 'PATCH'):
        serializer = OrderUpdateSerializer(data=request.data, partial=request.method == 'PATCH')
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
        previous_status = order.status
        try:
            order = update_order(order, serializer.validated_data, user=request.user)
        except OrderError as e:
            return order_error_response(e)
        if order.status != previous_status:
            create_audit_log(
                request=request, action='order_status', model_name='Order', object_id=order.id,
                workspace=workspace, object_name=order.order_number, object_reference=order.order_number,
                changes={'status': [previous_status, order.status]},
            )
        order.refresh_from_db()
        return Response(OrderSerializer(order).data)

    # DELETE
    try:
        order = cancel_order(order, user=request.user, notes=request.query_params.get('reason'))
    except OrderError as e:
        return order_error_response(e)
    create_audit_log(
        request=request, action='order_cancel', model_name='Order', object_id=order.id,
        workspace=workspace, object_name=order.order_number, object_reference=order.order_number,
    )
    return Response(OrderSerializer(order).data)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def order_history(request, pk):
    order = get_object_or_404(Order, pk=pk)
    workspace, error = resolve_module_workspace(request, 'orders', workspace_id=order.workspace_id)
    if error:
        return error
    history = order.status_history.select_related('changed_by')
    return Response(OrderStatusHistorySerializer(history, many=True).data)


# Payment views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def payment_list_create(request):
    """List payments of a workspace (paginated) or register a payment"""
    workspace, error = resolve_module_workspace(request, 'payments')
    if error:
        return error

    if request.method == 'GET':
        queryset = Payment.objects.filter(workspace=workspace).select_related('order', 'customer')
        for param in ('status', 'payment_method'):
            value = request.query_params.get(param)
            if value and value != 'all':
                queryset = queryset.filter(**{param: value})
        queryset, error = apply_id_filters(request, queryset, {'order_id': 'order_id', 'customer_id': 'customer_id'})
        if error:
            return error
        search = request.query_params.get('search')
        if search:
            queryset = queryset.filter(
                Q(payment_number__icontains=search) |
                Q(reference_number__icontains=search) |
                Q(transaction_id__icontains=search) |
                Q(customer__name__icontains=search)
            )
        queryset, error = apply_date_range(request, queryset, 'payment_date')
        if error:
            return error

        page, meta = paginate(request, queryset)
        return Response({'payments': PaymentSerializer(page, many=True).data, **meta})

    serializer = PaymentSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    order = None
    if request.data.get('order_id'):
        order = Order.objects.filter(pk=request.data.get('order_id'), workspace=workspace).first()
        if not order:
            return Response({'error': 'Order not found'}, status=status.HTTP_404_NOT_FOUND)
    try:
        customer = get_workspace_customer(workspace, request.data.get('customer_id'))
    except OrderError as e:
        return order_error_response(e)

    payment = create_payment(workspace, request.user, serializer.validated_data, order=order, customer=customer)
    create_audit_log(
        request=request, action='payment_add', model_name='Payment', object_id=payment.id,
        workspace=workspace, object_name=payment.payment_number,
        object_reference=order.order_number if order else payment.payment_number,
        changes={'amount': str(payment.amount), 'method': payment.payment_method},
    )
    return Response(PaymentSerializer(payment).data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def payment_detail(request, pk):
    """Retrieve, update or delete a payment"""
    payment = get_object_or_404(Payment.objects.select_related('order', 'customer'), pk=pk)
    workspace, error = resolve_module_workspace(request, 'payments', workspace_id=payment.workspace_id)
    if error:
        return error

    if request.method == 'GET':
        return Response(PaymentSerializer(payment).data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = PaymentSerializer(payment, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            previous = {'status': payment.status, 'amount': str(payment.amount)}
            serializer.save()
            create_audit_log(
                request=request, action='payment_update', model_name='Payment', object_id=payment.id,
                workspace=workspace, object_name=payment.payment_number,
                changes={'before': previous, 'after': {'status': payment.status, 'amount': str(payment.amount)}},
            )
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        workspace, error = resolve_workspace(request, workspace_id=payment.workspace_id, admin=True)
        if error:
            return error
        payment.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Order field definition views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def order_field_definition_list_create(request):
    """Custom order fields of a workspace; creating one needs workspace admin rights"""
    if request.method == 'GET':
        workspace, error = resolve_module_workspace(request, 'orders')
        if error:
            return error
        definitions = OrderFieldDefinition.objects.filter(workspace=workspace)
        return Response(OrderFieldDefinitionSerializer(definitions, many=True).data)

    workspace, error = resolve_workspace(request, admin=True)
    if error:
        return error
    serializer = OrderFieldDefinitionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if OrderFieldDefinition.objects.filter(workspace=workspace, name=serializer.validated_data['name']).exists():
        return Response({'error': 'A field with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    serializer.save(workspace=workspace)
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def order_field_definition_detail(request, pk):
    definition = get_object_or_404(OrderFieldDefinition, pk=pk)
    if request.method == 'GET':
        workspace, error = resolve_module_workspace(request, 'orders', workspace_id=definition.workspace_id)
        if error:
            return error
        return Response(OrderFieldDefinitionSerializer(definition).data)

    workspace, error = resolve_workspace(request, workspace_id=definition.workspace_id, admin=True)
    if error:
        return error

    if request.method in ('PUT', 'PATCH'):
        data = {key: value for key, value in request.data.items() if key != 'name'}
        serializer = OrderFieldDefinitionSerializer(definition, data=data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    definition.delete()
    return Response({'message': 'Field definition deleted successfully'})
