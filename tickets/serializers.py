from rest_framework import serializers

from users.serializers import UserMinimalSerializer
from .models import (
    Ticket, TicketComment, TicketAttachment, TicketAuditLog, TicketWatcher, LEVEL_CHOICES
)
from .workflow import STATUS_CHOICES, RESOLUTION_CHOICES

LEVELS = [value for value, _ in LEVEL_CHOICES]

# Stripped from ticket payloads sent to client users
INTERNAL_ONLY_FIELDS = (
    'internal_priority', 'internal_severity', 'effective_priority', 'effective_severity',
    'story_points', 'estimate', 'due_date', 'metadata',
)


class TicketSummarySerializer(serializers.ModelSerializer):
    """Compact reference used inside links, tasks and parents."""

    class Meta:
        model = Ticket
        fields = ['id', 'issue_key', 'title', 'status', 'type']
        read_only_fields = fields


class InternalFieldsMixin:
    """Drops internal-only fields unless the requesting user is internal."""

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        if not (user and user.is_authenticated and user.is_internal):
            for field in INTERNAL_ONLY_FIELDS:
                data.pop(field, None)
        return data


class TicketListSerializer(InternalFieldsMixin, serializers.ModelSerializer):
    assigned_to = UserMinimalSerializer(read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    client_name = serializers.CharField(source='client.name', read_only=True, default=None)

    class Meta:
        model = Ticket
        fields = [
            'id', 'issue_key', 'title', 'type', 'status',
            'client_priority', 'client_severity', 'internal_priority', 'internal_severity',
            'effective_priority', 'effective_severity',
            'product', 'product_name', 'client', 'client_name', 'assigned_to',
            'labels', 'due_date', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class TicketSerializer(InternalFieldsMixin, serializers.ModelSerializer):
    """Full ticket representation."""
    created_by = UserMinimalSerializer(read_only=True)
    reporter = UserMinimalSerializer(read_only=True)
    assigned_to = UserMinimalSerializer(read_only=True)
    parent = TicketSummarySerializer(read_only=True)
    product_name = serializers.CharField(source='product.name', read_only=True)
    client_name = serializers.CharField(source='client.name', read_only=True, default=None)

    class Meta:
        model = Ticket
        fields = [
            'id', 'issue_key', 'title', 'description', 'type', 'status',
            'client_priority', 'client_severity', 'internal_priority', 'internal_severity',
            'effective_priority', 'effective_severity',
            'product', 'product_name', 'client', 'client_name',
            'created_by', 'reporter', 'assigned_to', 'parent',
            'labels', 'story_points', 'estimate', 'due_date', 'metadata',
            'resolution', 'resolution_note',
            'created_at', 'updated_at', 'closed_at',
        ]
        read_only_fields = fields


class TicketWriteSerializer(serializers.Serializer):
    """
    Shape check for create and update payloads. Business rules (who may set
    what, tenant ownership, transitions) are enforced by tickets.lifecycle.
    """
    title = serializers.CharField(max_length=255, required=False)
    description = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=Ticket.TYPE_CHOICES, required=False)
    product_id = serializers.IntegerField(required=False)
    client_id = serializers.IntegerField(required=False, allow_null=True)
    reporter_id = serializers.IntegerField(required=False, allow_null=True)
    client_priority = serializers.ChoiceField(choices=LEVELS, required=False)
    client_severity = serializers.ChoiceField(choices=LEVELS, required=False)

    internal_priority = serializers.ChoiceField(choices=LEVELS, required=False, allow_null=True)
    internal_severity = serializers.ChoiceField(choices=LEVELS, required=False, allow_null=True)
    assigned_to_id = serializers.IntegerField(required=False, allow_null=True)
    parent_id = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    labels = serializers.ListField(child=serializers.CharField(max_length=50), required=False)
    story_points = serializers.IntegerField(required=False, allow_null=True)
    estimate = serializers.DecimalField(max_digits=7, decimal_places=2, required=False, allow_null=True)
    due_date = serializers.DateField(required=False, allow_null=True)

    status = serializers.ChoiceField(choices=STATUS_CHOICES, required=False)
    resolution = serializers.ChoiceField(choices=RESOLUTION_CHOICES, required=False, allow_blank=True)
    resolution_note = serializers.CharField(required=False, allow_blank=True)


class TicketStatusCommandSerializer(serializers.Serializer):
    """Body of the close, cancel and reopen actions."""
    reason = serializers.CharField(required=False, allow_blank=True, default='')
    resolution = serializers.ChoiceField(choices=RESOLUTION_CHOICES, required=False)
    resolution_note = serializers.CharField(required=False, allow_blank=True)


class TicketCommentSerializer(serializers.ModelSerializer):
    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = TicketComment
        fields = ['id', 'user', 'content', 'is_internal', 'created_at']
        read_only_fields = ['id', 'user', 'created_at']


class TicketAttachmentSerializer(serializers.ModelSerializer):
    uploaded_by = UserMinimalSerializer(read_only=True)
    url = serializers.SerializerMethodField()

    class Meta:
        model = TicketAttachment
        fields = ['id', 'file_name', 'file_size', 'mime_type', 'url', 'uploaded_by', 'created_at']
        read_only_fields = fields

    def get_url(self, obj):
        if not obj.file:
            return None
        request = self.context.get('request')
        url = obj.file.url
        if request and url.startswith('/'):
            return request.build_absolute_uri(url)
        return url


class TicketAuditLogSerializer(serializers.ModelSerializer):
    user = UserMinimalSerializer(read_only=True)

    class Meta:
        model = TicketAuditLog
        fields = ['id', 'change_type', 'user', 'old_value', 'new_value', 'metadata', 'created_at']
        read_only_fields = fields


class TicketLinkCreateSerializer(serializers.Serializer):
    target_ticket_id = serializers.CharField()
    link_type = serializers.CharField()


def serialize_link_row(link, link_type, other):
    """One row of tickets.links.links_for as a dict."""
    return {
        'id': link.pk,
        'link_type': link_type,
        'ticket': TicketSummarySerializer(other).data,
        'created_at': link.created_at,
        'created_by': link.created_by_id,
    }


class TicketWatcherSerializer(serializers.ModelSerializer):
    user = UserMinimalSerializer(read_only=True)
    is_external = serializers.BooleanField(read_only=True)

    class Meta:
        model = TicketWatcher
        fields = ['id', 'user', 'email', 'is_external', 'created_at']
        read_only_fields = fields


class TicketWatcherRequestSerializer(serializers.Serializer):
    user_id = serializers.IntegerField(required=False, allow_null=True)
    email = serializers.EmailField(required=False, allow_blank=True)
