from rest_framework import serializers
from .models import Product, Module, Component, Addon, Epic, Feature


class ComponentSerializer(serializers.ModelSerializer):
    class Meta:
        model = Component
        fields = ['id', 'name', 'description']


class ModuleSerializer(serializers.ModelSerializer):
    components = ComponentSerializer(many=True, read_only=True)

    class Meta:
        model = Module
        fields = ['id', 'name', 'description', 'components']


class AddonSerializer(serializers.ModelSerializer):
    class Meta:
        model = Addon
        fields = ['id', 'name', 'description']


class ProductSerializer(serializers.ModelSerializer):
    """Product with its module/component/addon structure."""
    modules = ModuleSerializer(many=True, read_only=True)
    addons = AddonSerializer(many=True, read_only=True)

    class Meta:
        model = Product
        fields = [
            'id', 'name', 'code', 'description',
            'default_implementor', 'default_developer', 'default_tester',
            'modules', 'addons', 'created_at',
        ]
        read_only_fields = fields


class FeatureSerializer(serializers.ModelSerializer):
    product = serializers.IntegerField(source='epic.product_id', read_only=True)

    class Meta:
        model = Feature
        fields = ['id', 'issue_key', 'title', 'status', 'priority', 'epic', 'product']
        read_only_fields = fields


class EpicSerializer(serializers.ModelSerializer):
    features = FeatureSerializer(many=True, read_only=True)

    class Meta:
        model = Epic
        fields = ['id', 'issue_key', 'title', 'status', 'priority', 'product', 'features']
        read_only_fields = fields
