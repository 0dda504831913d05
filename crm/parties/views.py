from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.shortcuts import get_object_or_404
from crm.core.utils import parse_int
from crm.workspaces.access import resolve_workspace
from .models import (
    Tag, Customer, CustomerNote, CustomerActivity, CustomerAttributeDefinition, CustomerAttribute, record_activity,
)
from .serializers import (
    TagSerializer, CustomerSerializer, CustomerNoteSerializer, CustomerActivitySerializer,
    CustomerAttributeDefinitionSerializer, CustomerAttributeSerializer,
)


def get_workspace_customer(request, pk):
    """Customer by id, checked against the caller's workspace access"""
    customer = get_object_or_404(Customer, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=customer.workspace_id)
    return customer, error


# Customer views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_list_create(request):
    """List customers of a workspace or create a new customer"""
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        queryset = Customer.objects.filter(workspace=workspace).prefetch_related('tags')
        search = request.query_params.get('search', None)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(email__icontains=search) |
                Q(phone__icontains=search) |
                Q(identity_document_number__icontains=search)
            )
        stage = request.query_params.get('stage', None)
        if stage:
            queryset = queryset.filter(stage=stage)
        tag_id = request.query_params.get('tag_id', None)
        if tag_id:
            queryset = queryset.filter(tags__id=tag_id).distinct()
        limit = parse_int(request.query_params.get('limit'))
        if limit:
            queryset = queryset[:limit]
        serializer = CustomerSerializer(queryset, many=True)
        response = Response(serializer.data)
        response['Cache-Control'] = 'private, no-cache'
        return response

    serializer = CustomerSerializer(data=request.data, context={'workspace': workspace})
    if serializer.is_valid():
        customer = serializer.save(workspace=workspace, created_by=request.user)
        record_activity(customer, 'created', f"Customer {customer.name} created", user=request.user)
        return Response(CustomerSerializer(customer).data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def customer_detail(request, pk):
    """Retrieve, update or delete a customer"""
    customer, error = get_workspace_customer(request, pk)
    if error:
        return error

    if request.method == 'GET':
        serializer = CustomerSerializer(customer)
        return Response(serializer.data)
    elif request.method in ('PUT', 'PATCH'):
        previous_stage = customer.stage
        serializer = CustomerSerializer(
            customer, data=request.data, partial=request.method == 'PATCH',
            context={'workspace': customer.workspace}
        )
        if serializer.is_valid():
            customer = serializer.save()
            if customer.stage != previous_stage:
                record_activity(
                    customer, 'stage_changed', f"Stage changed from {previous_stage} to {customer.stage}",
                    user=request.user, metadata={'from': previous_stage, 'to': customer.stage}
                )
            else:
                record_activity(customer, 'updated', 'Customer updated', user=request.user,
                                metadata={'fields': sorted(serializer.validated_data.keys())})
            return Response(CustomerSerializer(customer).data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    else:  # DELETE
        customer.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)


# Tag views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def tag_list_create(request):
    workspace, error = resolve_workspace(request)
    if error:
        return error

    if request.method == 'GET':
        tags = Tag.objects.filter(workspace=workspace)
        return Response(TagSerializer(tags, many=True).data)

    if Tag.objects.filter(workspace=workspace, name__iexact=request.data.get('name', '')).exists():
        return Response({'error': 'A tag with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    serializer = TagSerializer(data=request.data)
    if serializer.is_valid():
        serializer.save(workspace=workspace)
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def tag_detail(request, pk):
    tag = get_object_or_404(Tag, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=tag.workspace_id)
    if error:
        return error

    if request.method == 'DELETE':
        tag.delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
    serializer = TagSerializer(tag, data=request.data, partial=request.method == 'PATCH')
    if serializer.is_valid():
        serializer.save()
        return Response(serializer.data)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


# Customer note views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_note_list_create(request):
    customer_id = request.query_params.get('customer_id') or request.data.get('customer')
    if not customer_id:
        return Response({'error': 'customer_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    customer, error = get_workspace_customer(request, customer_id)
    if error:
        return error

    if request.method == 'GET':
        notes = CustomerNote.objects.filter(customer=customer).select_related('user')
        return Response(CustomerNoteSerializer(notes, many=True).data)

    data = request.data.copy()
    data['customer'] = customer.id
    serializer = CustomerNoteSerializer(data=data)
    if serializer.is_valid():
        note = serializer.save(user=request.user)
        record_activity(customer, 'note_added', note.content[:200], user=request.user,
                        metadata={'note_id': note.id})
        return Response(serializer.data, status=status.HTTP_201_CREATED)
    return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)


@api_view(['DELETE'])
@permission_classes([IsAuthenticated])
def customer_note_detail(request, pk):
    note = get_object_or_404(CustomerNote, pk=pk)
    if note.user_id != request.user.id:
        return Response({'error': 'Only the author can delete this note'}, status=status.HTTP_403_FORBIDDEN)
    note.delete()
    return Response(status=status.HTTP_204_NO_CONTENT)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def customer_activity_list(request):
    customer_id = request.query_params.get('customer_id')
    if not customer_id:
        return Response({'error': 'customer_id is required'}, status=status.HTTP_400_BAD_REQUEST)
    customer, error = get_workspace_customer(request, customer_id)
    if error:
        return error
    activities = CustomerActivity.objects.filter(customer=customer)
    activity_type = request.query_params.get('type')
    if activity_type:
        activities = activities.filter(activity_type=activity_type)
    return Response(CustomerActivitySerializer(activities[:100], many=True).data)


# Customer attribute views
@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated])
def customer_attribute_definition_list_create(request):
    """Attribute definitions of a workspace; creating one needs workspace admin rights"""
    workspace, error = resolve_workspace(request, admin=request.method == 'POST')
    if error:
        return error

    if request.method == 'GET':
        definitions = CustomerAttributeDefinition.objects.filter(workspace=workspace)
        return Response(CustomerAttributeDefinitionSerializer(definitions, many=True).data)

    serializer = CustomerAttributeDefinitionSerializer(data=request.data)
    if not serializer.is_valid():
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)
    if CustomerAttributeDefinition.objects.filter(workspace=workspace, name=serializer.validated_data['name']).exists():
        return Response({'error': 'An attribute with this name already exists'}, status=status.HTTP_400_BAD_REQUEST)
    serializer.save(workspace=workspace)
    return Response(serializer.data, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PUT', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated])
def customer_attribute_definition_detail(request, pk):
    definition = get_object_or_404(CustomerAttributeDefinition, pk=pk)
    workspace, error = resolve_workspace(request, workspace_id=definition.workspace_id, admin=request.method != 'GET')
    if error:
        return error

    if request.method == 'GET':
        return Response(CustomerAttributeDefinitionSerializer(definition).data)

    if request.method in ('PUT', 'PATCH'):
        data = {key: value for key, value in request.data.items() if key != 'name'}
        serializer = CustomerAttributeDefinitionSerializer(definition, data=data, partial=True)
        if serializer.is_valid():
            serializer.save()
            return Response(serializer.data)
        return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

    definition.delete()
    return Response({'message': 'Attribute definition deleted successfully'})


def check_attribute_value(workspace, name, value):
    """Value checked against the definition of the same name, when the workspace has one"""
    definition = CustomerAttributeDefinition.objects.filter(workspace=workspace, name=name).first()
    if definition is None:
        return value
    return definition.coerce(value)


def save_attribute(attribute):
    """Save, mapping a duplicate name on the same customer to a 409"""
    try:
        with transaction.atomic():
            attribute.save()
    except IntegrityError:
        return Response({'error': 'An attribute with this name already exists for this customer'},
                        status=status.HTTP_409_CONFLICT)
    return None


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated])
def customer_attributes(request):
    """
    Attributes of one customer.

    GET and POST take customer_id with workspace_id; PUT takes the attribute
    id in the body and DELETE takes it as ?id.
    """
    if request.method in ('GET', 'POST'):
        workspace, error = resolve_workspace(request)
        if error:
            return error
        params = request.query_params if request.method == 'GET' else request.data
        customer_id = parse_int(params.get('customer_id'))
        if not customer_id:
            return Response({'error': 'customer_id and workspace_id are required'}, status=status.HTTP_400_BAD_REQUEST)
        customer = Customer.objects.filter(pk=customer_id, workspace=workspace).first()
        if not customer:
            return Response({'error': 'Customer not found or unauthorized'}, status=status.HTTP_404_NOT_FOUND)

        if request.method == 'GET':
            attributes = CustomerAttribute.objects.filter(customer=customer)
            return Response(CustomerAttributeSerializer(attributes, many=True).data)

        name = request.data.get('attribute_name')
        if not name or 'attribute_value' not in request.data:
            return Response({'error': 'customer_id, attribute_name, attribute_value, and workspace_id are required'},
                            status=status.HTTP_400_BAD_REQUEST)
        try:
            value = check_attribute_value(workspace, name, request.data.get('attribute_value'))
        except ValueError as e:
            return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
        attribute = CustomerAttribute(customer=customer, attribute_name=name, attribute_value=value, user=request.user)
        error = save_attribute(attribute)
        if error:
            return error
        return Response(CustomerAttributeSerializer(attribute).data, status=status.HTTP_201_CREATED)

    attribute_id = request.data.get('id') if request.method == 'PUT' else request.query_params.get('id')
    if not attribute_id:
        return Response({'error': 'id is required'}, status=status.HTTP_400_BAD_REQUEST)
    attribute = CustomerAttribute.objects.filter(pk=parse_int(attribute_id)).select_related('customer').first()
    if not attribute:
        return Response({'error': 'Attribute not found'}, status=status.HTTP_404_NOT_FOUND)
    workspace, error = resolve_workspace(request, workspace_id=attribute.customer.workspace_id)
    if error:
        return error

    if request.method == 'DELETE':
        attribute.delete()
        return Response({'success': True})

    name = request.data.get('attribute_name')
    if not name or 'attribute_value' not in request.data:
        return Response({'error': 'id, attribute_name, and attribute_value are required'}, status=status.HTTP_400_BAD_REQUEST)
    try:
        attribute.attribute_value = check_attribute_value(workspace, name, request.data.get('attribute_value'))
    except ValueError as e:
        return Response({'error': str(e)}, status=status.HTTP_400_BAD_REQUEST)
    attribute.attribute_name = name
    attribute.user = request.user
    error = save_attribute(attribute)
    if error:
        return error
    return Response(CustomerAttributeSerializer(attribute).data)
