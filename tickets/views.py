from django_filters.rest_framework import DjangoFilterBackend
from drf_spectacular.utils import extend_schema, OpenApiResponse
from rest_framework import filters, mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from trackdesk.exceptions import AuthorizationError
from users.permissions import IsInternalUser
from . import audit, lifecycle
from . import links as link_registry
from . import watchers as watcher_registry
from .serializers import (
    TicketSerializer, TicketListSerializer, TicketSummarySerializer, TicketWriteSerializer,
    TicketStatusCommandSerializer, TicketCommentSerializer, TicketAttachmentSerializer,
    TicketAuditLogSerializer, TicketLinkCreateSerializer, TicketWatcherSerializer,
    TicketWatcherRequestSerializer, serialize_link_row,
)


class TicketViewSet(mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    Support tickets. Detail routes accept either the record id or the issue
    key (``/api/tickets/CRM-B001/``).
    """
    serializer_class = TicketSerializer
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['status', 'type', 'product', 'client', 'assigned_to', 'reporter']
    search_fields = ['issue_key', 'title', 'description']
    ordering_fields = ['created_at', 'updated_at', 'client_priority', 'internal_priority', 'status']
    ordering = ['-created_at']

    def get_serializer_class(self):
        if self.action in ('list', 'triage'):
            return TicketListSerializer
        return TicketSerializer

    def get_queryset(self):
        return lifecycle.visible_tickets(self.request.user).select_related(
            'product', 'client', 'assigned_to'
        )

    def get_object(self):
        return lifecycle.get_ticket_for_user(self.request.user, self.kwargs['pk'])

    def _ticket_response(self, ticket, status_code=status.HTTP_200_OK):
        data = TicketSerializer(ticket, context=self.get_serializer_context()).data
        return Response({'ticket': data}, status=status_code)

    def retrieve(self, request, pk=None):
        ticket = self.get_object()
        return Response(self.get_serializer(ticket).data)

    @extend_schema(request=TicketWriteSerializer, responses={201: TicketSerializer})
    def create(self, request):
        serializer = TicketWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = lifecycle.create_ticket(request.user, serializer.validated_data)
        return self._ticket_response(ticket, status.HTTP_201_CREATED)

    @extend_schema(request=TicketWriteSerializer, responses={200: TicketSerializer})
    def partial_update(self, request, pk=None):
        ticket = self.get_object()
        serializer = TicketWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        ticket = lifecycle.update_ticket(request.user, ticket, serializer.validated_data)
        return self._ticket_response(ticket)

    @extend_schema(request=TicketStatusCommandSerializer, responses={200: TicketSerializer})
    @action(detail=True, methods=['post'])
    def close(self, request, pk=None):
        """Close the ticket, optionally with a resolution and a reason."""
        ticket = self.get_object()
        serializer = TicketStatusCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = lifecycle.close_ticket(
            request.user, ticket,
            resolution=serializer.validated_data.get('resolution'),
            resolution_note=serializer.validated_data.get('resolution_note'),
            reason=serializer.validated_data['reason'],
        )
        return self._ticket_response(ticket)

    @extend_schema(request=TicketStatusCommandSerializer, responses={200: TicketSerializer})
    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        ticket = self.get_object()
        serializer = TicketStatusCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = lifecycle.cancel_ticket(request.user, ticket, reason=serializer.validated_data['reason'])
        return self._ticket_response(ticket)

    @extend_schema(request=TicketStatusCommandSerializer, responses={200: TicketSerializer})
    @action(detail=True, methods=['post'])
    def reopen(self, request, pk=None):
        ticket = self.get_object()
        serializer = TicketStatusCommandSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        ticket = lifecycle.reopen_ticket(request.user, ticket, reason=serializer.validated_data['reason'])
        return self._ticket_response(ticket)

    @action(detail=False, methods=['get'], permission_classes=[IsInternalUser])
    def triage(self, request):
        """Client tickets waiting in pending_internal_review, oldest first."""
        queryset = lifecycle.triage_queue(request.user).select_related('product', 'client', 'assigned_to')
        page = self.paginate_queryset(queryset)
        if page is not None:
            serializer = self.get_serializer(page, many=True)
            return self.get_paginated_response(serializer.data)
        serializer = self.get_serializer(queryset, many=True)
        return Response(serializer.data)

    @extend_schema(request=TicketCommentSerializer, responses={201: TicketCommentSerializer})
    @action(detail=True, methods=['get', 'post'])
    def comments(self, request, pk=None):
        """List comments, or add one. Internal notes are hidden from client users."""
        ticket = self.get_object()
        if request.method == 'GET':
            comments = lifecycle.comments_for(request.user, ticket)
            return Response(TicketCommentSerializer(comments, many=True).data)

        serializer = TicketCommentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        comment = lifecycle.add_comment(
            request.user, ticket,
            serializer.validated_data['content'],
            serializer.validated_data.get('is_internal', False),
        )
        return Response(
            {'comment': TicketCommentSerializer(comment).data},
            status=status.HTTP_201_CREATED
        )

    @action(
        detail=True, methods=['get', 'post'],
        parser_classes=[MultiPartParser, FormParser, JSONParser]
    )
    def attachments(self, request, pk=None):
        """
        List attachments, or upload one or more files in the ``files`` field.
        Colleagues from the ticket's client may upload without seeing the ticket.
        """
        context = self.get_serializer_context()
        if request.method == 'GET':
            ticket = self.get_object()
            return Response(TicketAttachmentSerializer(ticket.attachments.all(), many=True, context=context).data)

        ticket = lifecycle.get_tenant_ticket(request.user, pk)
        files = request.FILES.getlist('files')
        attachments = lifecycle.add_attachments(request.user, ticket, files)
        return Response(
            {'attachments': TicketAttachmentSerializer(attachments, many=True, context=context).data},
            status=status.HTTP_201_CREATED
        )

    @extend_schema(
        request=TicketLinkCreateSerializer,
        responses={
            201: OpenApiResponse(description='Link created'),
            409: OpenApiResponse(description='Link already exists'),
        },
    )
    @action(detail=True, methods=['get', 'post'])
    def links(self, request, pk=None):
        ticket = self.get_object()
        if request.method == 'GET':
            rows = link_registry.links_for(ticket, request.user)
            return Response([serialize_link_row(*row) for row in rows])

        serializer = TicketLinkCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        link = link_registry.create_link(
            request.user, ticket,
            serializer.validated_data['target_ticket_id'],
            serializer.validated_data['link_type'],
        )
        return Response({
            'link': serialize_link_row(link, link.link_type, link.target),
            'source_ticket': TicketSummarySerializer(link.source).data,
            'target_ticket': TicketSummarySerializer(link.target).data,
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['delete'], url_path=r'links/(?P<link_id>\d+)')
    def delete_link(self, request, pk=None, link_id=None):
        ticket = self.get_object()
        link_registry.delete_link(ticket, link_id, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(request=TicketWatcherRequestSerializer, responses={201: TicketWatcherSerializer})
    @action(detail=True, methods=['get', 'post', 'delete'])
    def watchers(self, request, pk=None):
        """
        List, add or remove watchers. Add and remove take ``user_id`` or
        ``email``; emails that match no tenant user become external watchers.
        """
        ticket = self.get_object()
        if request.method == 'GET':
            return Response(TicketWatcherSerializer(watcher_registry.watchers_for(ticket), many=True).data)

        serializer = TicketWatcherRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_id = serializer.validated_data.get('user_id')
        email = serializer.validated_data.get('email')

        if request.method == 'DELETE':
            watcher_registry.remove_watcher(request.user, ticket, user_id=user_id, email=email)
            return Response(status=status.HTTP_204_NO_CONTENT)

        watcher = watcher_registry.add_watcher(request.user, ticket, user_id=user_id, email=email)
        return Response({'watcher': TicketWatcherSerializer(watcher).data}, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'])
    def history(self, request, pk=None):
        """Audit trail, oldest first. Client users do not see internal overrides."""
        ticket = self.get_object()
        entries = list(audit.history_for(ticket))
        if not request.user.is_internal:
            entries = [
                entry for entry in entries
                if not str((entry.metadata or {}).get('field', '')).startswith('internal_')
            ]
        return Response(TicketAuditLogSerializer(entries, many=True).data)

    @action(detail=True, methods=['get'])
    def tasks(self, request, pk=None):
        """Dev tasks linked to this ticket."""
        from tasks.serializers import DevTaskListSerializer

        ticket = self.get_object()
        if not request.user.is_internal:
            raise AuthorizationError('Only internal users can see development tasks')
        return Response(DevTaskListSerializer(link_registry.tasks_for_ticket(ticket), many=True).data)
