from rest_framework import viewsets, filters
from rest_framework.decorators import action
from rest_framework.response import Response
from django_filters.rest_framework import DjangoFilterBackend
from django.contrib.auth import get_user_model
from .serializers import UserSerializer

User = get_user_model()


class UserViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Tenant user directory, used when picking assignees, reporters and watchers.
    Client users only see the members of their own client.
    """
    serializer_class = UserSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['role', 'client', 'is_active']
    search_fields = ['email', 'first_name', 'last_name']
    ordering = ['email']

    def get_queryset(self):
        user = self.request.user
        queryset = User.objects.filter(tenant_id=user.tenant_id).select_related('client')
        if not user.is_internal:
            queryset = queryset.filter(client_id=user.client_id)

        internal = self.request.query_params.get('internal')
        if internal in ('true', '1'):
            queryset = queryset.filter(client__isnull=True)
        elif internal in ('false', '0'):
            queryset = queryset.filter(client__isnull=False)
        return queryset

    @action(detail=False, methods=['get'])
    def me(self, request):
        """Return the authenticated user."""
        serializer = self.get_serializer(request.user)
        return Response(serializer.data)
