import logging

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import transaction
from django.shortcuts import get_object_or_404
from crm.inventory.services import StockError, apply_stock_movement
from crm.workspaces.access import resolve_workspace
from .filters import ProductFilter
from .models import Category, Product, ProductVariant
from .serializers import CategorySerializer, ProductSerializer
from .utils import format_product_message

logger = logging.getLogger(__name__)


# Category views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def category_list_create(request):
    """List categories of a workspace or create a new category"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        categories = Category.objects.filter(workspace=workspace)
        serializer = CategorySerializer(categories, many=True)
        return Response(serializer.data)

    serializer = CategorySerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(workspace=workspace)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def category_detail(request, pk):
    """Retrieve, update or delete a category"""
    category = get_object_or_404(Category, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=category.workspace_id)
    if error:
        return error

    if request.method == 'GET':
        serializer = CategorySerializer(category)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = CategorySerializer(category, data=request.data, partial=request.method == 'PATCH')
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        category.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Product views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def product_list_create(request):
    """List products of a workspace or create a new product"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = Product.objects.filter(workspace=workspace).select_related('category', 'workspace').prefetch_related('variants')
        filterset = ProductFilter(request.query_params, queryset=queryset)
        if not filterset.is_valid():
            return Response(filterset.errors, status=status.HTTP_400_BAD_REQUEST)
        serializer = ProductSerializer(filterset.qs, many=True)
        return Response(serializer.data)

    serializer = ProductSerializer(data=request.data, context={'workspace': workspace})
    if serializer.is_valid():
        product = serializer.save(workspace=workspace, created_by=request.user)
        logger.info(f"Product {product.id} created in workspace {workspace.id}")
        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def product_detail(request, pk):
    """Retrieve, update or delete a product"""
    product = get_object_or_404(Product.objects.select_related('category', 'workspace'), pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=product.workspace_id)
    if error:
        return error

    if request.method == 'GET':
        serializer = ProductSerializer(product)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        serializer = ProductSerializer(
            product, data=request.data, partial=request.method == 'PATCH', context={'workspace': workspace}
        )
        if serializer.is_valid():
            # Stock edits go through the movement ledger
            new_stock = serializer.validated_data.pop('stock', None)
            with transaction.atomic():
                product = serializer.save()
                if new_stock is not None and new_stock != product.stock:
                    try:
                        apply_stock_movement(
                            product, 'adjustment', new_stock, user=request.user,
                            reason='Product edit',
                        )
                    except StockError as e:
                        transaction.set_rollback(True)
                        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
            product.refresh_from_db()
            return Response(ProductSerializer(product).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        product.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def product_format_message(request):
    """Chat message text describing a product (and optionally one of its variants)"""
    product_id = request.data.get('product_id')
    if not product_id:
        return Response({'error': 'product_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    product = get_object_or_404(Product, pk=product_id)
    workspace, error = resolve_workspace(request, workspace_id=product.workspace_id)
    if error:
        return error

    variant = None
    variant_id = request.data.get('variant_id')
    if variant_id:
        variant = get_object_or_404(ProductVariant, pk=variant_id, product=product)

    return Response({
        'message': format_product_message(product, variant),
        'image_url': product.image_url or None,
    })
