from rest_framework import serializers
from django.contrib.auth.password_validation import validate_password
from .models import User, AuditLog, FieldDefinition


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'username', 'email', 'first_name', 'last_name', 'display_name', 'phone', 'is_active', 'is_staff', 'created_at', 'updated_at']
        read_only_fields = ['is_active', 'is_staff', 'created_at', 'updated_at']


class UserCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, validators=[validate_password])
    password_confirm = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['username', 'email', 'password', 'password_confirm', 'first_name', 'last_name', 'display_name', 'phone']

    def validate_email(self, value):
        if value and User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with this email already exists.")
        return value

    def validate(self, attrs):
        if attrs['password'] != attrs['password_confirm']:
            raise serializers.ValidationError({"password": "Passwords don't match"})
        return attrs

    def create(self, validated_data):
        validated_data.pop('password_confirm')
        password = validated_data.pop('password')
        user = User(**validated_data, is_active=True)
        user.set_password(password)
        user.save()
        return user


class AuditLogSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = AuditLog
        fields = ['id', 'workspace', 'user', 'action', 'model_name', 'object_id', 'object_name',
                  'object_reference', 'changes', 'ip_address', 'created_at']


class FieldDefinitionSerializer(serializers.ModelSerializer):
    """Base for custom field definitions; subclasses set Meta.model"""
    type = serializers.ChoiceField(source='field_type', choices=FieldDefinition.FIELD_TYPE_CHOICES, required=False)

    class Meta:
        fields = ['id', 'workspace', 'name', 'label', 'type', 'required', 'default_value', 'options',
                  'order_position', 'created_at', 'updated_at']
        read_only_fields = ['workspace', 'created_at', 'updated_at']

    def validate_options(self, value):
        if value is not None and not isinstance(value, list):
            raise serializers.ValidationError("Options must be a list.")
        return value

    def validate(self, attrs):
        field_type = attrs.get('field_type', getattr(self.instance, 'field_type', 'text'))
        options = attrs.get('options', getattr(self.instance, 'options', None))
        if field_type == 'select' and not options:
            raise serializers.ValidationError({'options': "Select fields require a list of options."})
        if field_type != 'select' and 'field_type' in attrs:
            attrs['options'] = None
        return attrs
