from rest_framework import serializers
from django.contrib.auth import get_user_model

User = get_user_model()


class UserMinimalSerializer(serializers.ModelSerializer):
    """Minimal user serializer for ticket and task relationships."""
    full_name = serializers.CharField(source='get_full_name', read_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'first_name', 'last_name', 'full_name']
        read_only_fields = fields


class UserSerializer(serializers.ModelSerializer):
    """Directory entry for a tenant user."""
    full_name = serializers.CharField(source='get_full_name', read_only=True)
    is_internal = serializers.BooleanField(read_only=True)
    client_name = serializers.CharField(source='client.name', read_only=True, default=None)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name',
            'role', 'client', 'client_name', 'is_internal', 'is_active',
        ]
        read_only_fields = fields
