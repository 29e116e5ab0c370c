from rest_framework import viewsets, filters
from django_filters.rest_framework import DjangoFilterBackend
from users.permissions import IsInternalUser
from .models import Product, Epic
from .serializers import ProductSerializer, EpicSerializer


class ProductViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Product catalog for the current tenant. Clients need it to pick the
    product a ticket is about, so it is readable by every tenant user.
    """
    serializer_class = ProductSerializer
    filter_backends = [filters.SearchFilter, filters.OrderingFilter]
    search_fields = ['name', 'code']
    ordering = ['name']

    def get_queryset(self):
        return Product.objects.filter(
            tenant_id=self.request.user.tenant_id
        ).prefetch_related('modules__components', 'addons')


class EpicViewSet(viewsets.ReadOnlyModelViewSet):
    """Epics with their features, for choosing where a dev task belongs."""
    serializer_class = EpicSerializer
    permission_classes = [IsInternalUser]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['product', 'status']
    ordering = ['-created_at']

    def get_queryset(self):
        return Epic.objects.filter(
            tenant_id=self.request.user.tenant_id
        ).prefetch_related('features')
