from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from tickets.lifecycle import get_ticket_for_user
from users.permissions import IsInternalUser
from . import lifecycle
from .commands import SpawnTaskCommand
from .models import Sprint
from .serializers import (
    DevTaskSerializer, DevTaskListSerializer, DevTaskWriteSerializer,
    TaskCloseSerializer, TaskAssignSerializer, SprintSerializer
)


class DevTaskViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    Development tasks. Internal users manage all tasks of the tenant;
    other users only see and work on the tasks they are assigned to.
    """
    serializer_class = DevTaskSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'type', 'product', 'feature', 'sprint', 'priority', 'support_ticket']
    search_fields = ['issue_key', 'title', 'description']
    ordering_fields = ['created_at', 'updated_at', 'priority', 'due_date']
    ordering = ['-created_at']

    internal_actions = (
        'create', 'destroy', 'points', 'sprint', 'assign',
        'spawn_from_ticket', 'spawn_from_ticket_legacy',
    )

    def get_permissions(self):
        if self.action in self.internal_actions:
            return [IsInternalUser()]
        return super().get_permissions()

    def get_serializer_class(self):
        if self.action in ('list', 'my_tasks'):
            return DevTaskListSerializer
        return DevTaskSerializer

    def get_queryset(self):
        return lifecycle.visible_tasks(self.request.user).select_related(
            'implementor', 'developer', 'tester'
        )

    def get_object(self):
        return lifecycle.get_task_for_user(self.request.user, self.kwargs['pk'])

    def _task_response(self, task, status_code=status.HTTP_200_OK, message=None):
        payload = {'task': DevTaskSerializer(task).data}
        if message:
            payload['message'] = message
        return Response(payload, status=status_code)

    def retrieve(self, request, pk=None):
        return Response(self.get_serializer(self.get_object()).data)

    @extend_schema(request=DevTaskWriteSerializer, responses={201: DevTaskSerializer})
    def create(self, request):
        serializer = DevTaskWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.create_task(request.user, serializer.validated_data)
        return self._task_response(task, status.HTTP_201_CREATED)

    @extend_schema(request=DevTaskWriteSerializer, responses={200: DevTaskSerializer})
    def partial_update(self, request, pk=None):
        """Partial update; ``metadata`` is merged into the stored map."""
        task = self.get_object()
        serializer = DevTaskWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.update_task(request.user, task, serializer.validated_data)
        return self._task_response(task)

    def destroy(self, request, pk=None):
        task = self.get_object()
        lifecycle.delete_task(request.user, task)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['get'], url_path='my-tasks')
    def my_tasks(self, request):
        """Tasks the current user is assigned to."""
        queryset = lifecycle.my_tasks(request.user).select_related('implementor', 'developer', 'tester')
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    @extend_schema(
        request={'type': 'object', 'properties': {'story_points': {'type': 'integer', 'nullable': True}}},
        responses={200: DevTaskSerializer, 400: OpenApiResponse(description='Not a Fibonacci number')},
    )
    @action(detail=True, methods=['patch'])
    def points(self, request, pk=None):
        task = self.get_object()
        task = lifecycle.set_story_points(request.user, task, request.data.get('story_points'))
        return self._task_response(task)

    @extend_schema(
        request={'type': 'object', 'properties': {'sprint_id': {'type': 'integer', 'nullable': True}}},
        responses={200: DevTaskSerializer},
    )
    @action(detail=True, methods=['patch'])
    def sprint(self, request, pk=None):
        """Move the task into a sprint, or back to the backlog with ``sprint_id: null``."""
        task = self.get_object()
        task = lifecycle.assign_sprint(request.user, task, request.data.get('sprint_id'))
        return self._task_response(task)

    @extend_schema(request=TaskCloseSerializer, responses={200: DevTaskSerializer})
    @action(detail=True, methods=['patch'])
    def close(self, request, pk=None):
        task = self.get_object()
        serializer = TaskCloseSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = lifecycle.close_task(
            request.user, task,
            serializer.validated_data['resolution'],
            serializer.validated_data.get('resolution_note'),
            serializer.validated_data.get('metadata'),
        )
        return self._task_response(task)

    @extend_schema(request=TaskAssignSerializer, responses={200: DevTaskSerializer})
    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """Replace the developers assigned to the task."""
        task = self.get_object()
        serializer = TaskAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        lifecycle.assign_developers(request.user, task, serializer.validated_data['user_ids'])
        task.refresh_from_db()
        return self._task_response(task, message='Developers assigned successfully')

    def _spawn(self, request, ticket_id, legacy):
        ticket = get_ticket_for_user(request.user, ticket_id)
        serializer = DevTaskWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        task = SpawnTaskCommand(request.user, ticket, serializer.validated_data, legacy=legacy).execute()
        return self._task_response(
            task, status.HTTP_201_CREATED,
            message=f'Task {task.issue_key} created from ticket {ticket.issue_key}',
        )

    @extend_schema(
        request=DevTaskWriteSerializer,
        responses={201: DevTaskSerializer, 400: OpenApiResponse(description='Missing implementor, developer or tester')},
    )
    @action(detail=False, methods=['post'], url_path=r'spawn-from-ticket/(?P<ticket_id>[^/.]+)')
    def spawn_from_ticket(self, request, ticket_id=None):
        """
        Create a bug or task from a support ticket with its implementor,
        developer and tester. The ticket is assigned to the implementor and
        moved to in_progress.
        """
        return self._spawn(request, ticket_id, legacy=False)

    @extend_schema(request=DevTaskWriteSerializer, responses={201: DevTaskSerializer})
    @action(detail=False, methods=['post'], url_path=r'spawn-from-ticket-legacy/(?P<ticket_id>[^/.]+)')
    def spawn_from_ticket_legacy(self, request, ticket_id=None):
        """Create a task under a feature from a support ticket, leaving the ticket as it is."""
        return self._spawn(request, ticket_id, legacy=True)


class SprintViewSet(viewsets.ModelViewSet):
    serializer_class = SprintSerializer
    permission_classes = [IsInternalUser]
    filter_backends = [DjangoFilterBackend, filters.OrderingFilter]
    filterset_fields = ['product', 'status']
    ordering = ['-start_date', '-created_at']

    def get_queryset(self):
        return Sprint.objects.filter(tenant_id=self.request.user.tenant_id).select_related('product')

    def perform_create(self, serializer):
        serializer.save(tenant_id=self.request.user.tenant_id)
