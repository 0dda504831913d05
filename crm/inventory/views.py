from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from crm.catalog.filters import ProductFilter
from crm.catalog.models import Product, ProductVariant
from crm.catalog.serializers import ProductSerializer
from crm.core.utils import create_audit_log
from crm.workspaces.access import resolve_workspace
from .models import StockMovement
from .serializers import StockMovementSerializer
from .services import InsufficientStock, StockError, apply_stock_movement

MOVEMENT_AUDIT_ACTIONS = {
    'in': 'stock_in',
    'out': 'stock_out',
    'adjustment': 'stock_adjust',
}


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def stock_movements(request):
    """List recent stock movements or register a new one"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = StockMovement.objects.filter(workspace=workspace).select_related('product', 'variant', 'created_by')
        product_id = request.query_params.get('product_id', None)
        if product_id:
            queryset = queryset.filter(product_id=product_id)
        movement_type = request.query_params.get('movement_type', None)
        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)
        serializer = StockMovementSerializer(queryset[:100], many=True)
        return Response(serializer.data)

    product_id = request.data.get('product_id')
    movement_type = request.data.get('movement_type')
    quantity = request.data.get('quantity')
    if not product_id or not movement_type or quantity in (None, ''):
        return Response({'error': 'product_id, movement_type and quantity are required'}, status=status.HTTP_400_BAD_REQUEST)

    product = Product.objects.filter(pk=product_id, workspace=workspace).first()
    if not product:
        return Response({'error': 'Product not found'}, status=status.HTTP_404_NOT_FOUND)
    variant = None
    if request.data.get('variant_id'):
        variant = ProductVariant.objects.filter(pk=request.data.get('variant_id'), product=product).first()
        if not variant:
            return Response({'error': 'Variant not found'}, status=status.HTTP_404_NOT_FOUND)

    try:
        movement = apply_stock_movement(
            product,
            movement_type,
            quantity,
            user=request.user,
            variant=variant,
            reason=request.data.get('reason'),
            notes=request.data.get('notes'),
        )
    except InsufficientStock as e:
        return Response({'error': 'Insufficient stock', 'available': e.available}, status=status.HTTP_400_BAD_REQUEST)
    except StockError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)

    create_audit_log(
        request=request,
        action=MOVEMENT_AUDIT_ACTIONS[movement.movement_type],
        model_name='Product',
        object_id=product.id,
        workspace=workspace,
        object_name=product.name,
        changes={
            'previous_stock': movement.previous_stock,
            'new_stock': movement.new_stock,
            'quantity': movement.quantity,
            'variant_id': variant.id if variant else None,
        },
    )
    return Response(StockMovementSerializer(movement).data, status=status.HTTP_201_CREATED)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def stock_products(request):
    """Products with their stock levels; low_stock=true keeps those at or under their alert level"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    queryset = Product.objects.filter(workspace=workspace).select_related('category', 'workspace').prefetch_related('variants')
    filterset = ProductFilter(request.query_params, queryset=queryset)
    if not filterset.is_valid():
        return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
    serializer = ProductSerializer(filterset.qs.order_by('stock', 'name'), many=True)
    return Response(serializer.data)
