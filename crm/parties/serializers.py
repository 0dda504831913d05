from rest_framework import serializers
from crm.core.serializers import FieldDefinitionSerializer
from .models import Tag, Customer, CustomerNote, CustomerActivity, CustomerAttributeDefinition, CustomerAttribute


class TagSerializer(serializers.ModelSerializer):
    class Meta:
        model = Tag
        fields = ['id', 'workspace', 'name', 'color', 'created_at']
        read_only_fields = ['workspace', 'created_at']


class CustomerSerializer(serializers.ModelSerializer):
    tags = TagSerializer(many=True, read_only=True)
    tag_ids = serializers.ListField(child=serializers.IntegerField(), write_only=True, required=False)
    created_by_username = serializers.CharField(source='created_by.username', read_only=True, default=None)

    class Meta:
        model = Customer
        fields = [
            'id', 'workspace', 'name', 'identity_document_type', 'identity_document_number', 'email',
            'phone', 'city', 'province', 'district', 'address', 'stage', 'tags', 'tag_ids', 'labels',
            'chatwoot_contact_id', 'chatwoot_conversation_id', 'last_message_at', 'last_interaction_at',
            'created_by', 'created_by_username', 'created_at', 'updated_at'
        ]
        read_only_fields = ['workspace', 'created_by', 'last_message_at', 'last_interaction_at',
                            'created_at', 'updated_at']

    def validate_labels(self, value):
        if not isinstance(value, list) or not all(isinstance(label, str) for label in value):
            raise serializers.ValidationError("labels must be a list of strings.")
        return value

    def validate_tag_ids(self, value):
        workspace = self.context.get('workspace')
        if workspace is None:
            return value
        found = set(Tag.objects.filter(workspace=workspace, id__in=value).values_list('id', flat=True))
        missing = [tag_id for tag_id in value if tag_id not in found]
        if missing:
            raise serializers.ValidationError(f"Tags not found in this workspace: {missing}")
        return value

    def create(self, validated_data):
        tag_ids = validated_data.pop('tag_ids', None)
        customer = super().create(validated_data)
        if tag_ids:
            customer.tags.set(tag_ids)
        return customer

    def update(self, instance, validated_data):
        tag_ids = validated_data.pop('tag_ids', None)
        customer = super().update(instance, validated_data)
        if tag_ids is not None:
            customer.tags.set(tag_ids)
        return customer


class CustomerNoteSerializer(serializers.ModelSerializer):
    username = serializers.CharField(source='user.username', read_only=True, default=None)

    class Meta:
        model = CustomerNote
        fields = ['id', 'customer', 'user', 'username', 'content', 'created_at']
        read_only_fields = ['user', 'created_at']


class CustomerActivitySerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerActivity
        fields = ['id', 'customer', 'activity_type', 'description', 'metadata', 'created_by', 'created_at']


class CustomerAttributeDefinitionSerializer(FieldDefinitionSerializer):
    label = serializers.CharField(max_length=255, required=False)

    class Meta(FieldDefinitionSerializer.Meta):
        model = CustomerAttributeDefinition

    def validate(self, attrs):
        attrs = super().validate(attrs)
        if not attrs.get('label') and self.instance is None:
            attrs['label'] = attrs.get('name')
        return attrs


class CustomerAttributeSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerAttribute
        fields = ['id', 'customer', 'attribute_name', 'attribute_value', 'user', 'created_at', 'updated_at']
        read_only_fields = fields
