"""
Ticket lifecycle: creation, updates, status changes, comments and
attachments, plus the visibility rules every read goes through.

Internal users are the tenant's own team (no client). Client users only
see their own tickets, or their whole client's tickets when they are the
client's company admin.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Q
from django.utils import timezone

from products.issue_keys import GLOBAL_TYPE_CODES, allocate_global_scoped, allocate_product_scoped
from products.models import Product
from tasks.workflow import validate_story_points
from tenants.models import Client
from trackdesk.exceptions import AuthorizationError, NotFoundError, ValidationError
from . import workflow
from .audit import comment_preview, record_change_on_commit
from .models import Ticket, TicketAttachment, TicketComment

logger = logging.getLogger(__name__)
User = get_user_model()

TICKET_TYPES = {value for value, _ in Ticket.TYPE_CHOICES}
RESOLUTIONS = {value for value, _ in workflow.RESOLUTION_CHOICES}
LEVELS = {1, 2, 3, 4}

# Fields only the tenant's own team may set; silently dropped for client users
INTERNAL_FIELDS = (
    'internal_priority', 'internal_severity', 'assigned_to_id', 'labels',
    'story_points', 'estimate', 'due_date', 'parent_id', 'product_id',
)


# Visibility

def visible_tickets(user):
    """Tickets of the user's tenant that ``user`` may see."""
    tickets = Ticket.objects.filter(tenant_id=user.tenant_id)
    if user.is_internal:
        return tickets
    if user.is_client_admin:
        return tickets.filter(client_id=user.client_id)
    return tickets.filter(Q(created_by=user) | Q(reporter=user))


def can_view(user, ticket):
    if ticket.tenant_id != user.tenant_id:
        return False
    if user.is_internal:
        return True
    if user.is_client_admin:
        return ticket.client_id == user.client_id
    return user.pk in (ticket.created_by_id, ticket.reporter_id)


def get_tenant_ticket(user, id_or_key):
    """Resolve a ticket of the user's tenant by record id or issue key, without visibility checks."""
    ticket = Ticket.objects.filter(
        Q(pk=id_or_key) | Q(issue_key=id_or_key), tenant_id=user.tenant_id
    ).select_related('product', 'client', 'created_by', 'reporter', 'assigned_to').first()
    if ticket is None:
        raise NotFoundError(f'Ticket not found: {id_or_key}')
    return ticket


def get_ticket_for_user(user, id_or_key):
    """
    Resolve a ticket by record id or issue key.

    Tickets of other tenants are reported as not found; tickets of the
    same tenant outside the user's visibility raise AuthorizationError.
    """
    ticket = get_tenant_ticket(user, id_or_key)
    if not can_view(user, ticket):
        raise AuthorizationError('You do not have access to this ticket')
    return ticket


def triage_queue(user):
    """Client tickets waiting for the internal team to pick them up."""
    if not user.is_internal:
        raise AuthorizationError('Only internal users can triage tickets')
    return visible_tickets(user).filter(
        status=workflow.PENDING_INTERNAL_REVIEW
    ).order_by('created_at')


# Field helpers

def _tenant_user(tenant_id, user_id, field):
    user = User.objects.filter(pk=user_id, tenant_id=tenant_id).first()
    if user is None:
        raise NotFoundError(f'User not found: {user_id}', field=field)
    return user


def _tenant_product(tenant_id, product_id):
    product = Product.objects.filter(pk=product_id, tenant_id=tenant_id).first()
    if product is None:
        raise NotFoundError(f'Product not found: {product_id}', field='product_id')
    return product


def _parent_ticket(tenant_id, parent_id, child=None):
    parent = Ticket.objects.filter(
        Q(pk=parent_id) | Q(issue_key=parent_id), tenant_id=tenant_id
    ).first()
    if parent is None:
        raise NotFoundError(f'Parent ticket not found: {parent_id}', field='parent_id')
    if parent.parent_id:
        raise ValidationError('Parent ticket cannot itself have a parent', field='parent_id')
    if child is not None:
        if parent.pk == child.pk:
            raise ValidationError('A ticket cannot be its own parent', field='parent_id')
        if child.children.exists():
            raise ValidationError('A ticket with sub-tickets cannot get a parent', field='parent_id')
    return parent


def _level(value, field, nullable=False):
    if value is None and nullable:
        return None
    try:
        value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{field} must be between 1 and 4', field=field)
    if value not in LEVELS:
        raise ValidationError(f'{field} must be between 1 and 4', field=field)
    return value


def normalize_labels(labels):
    """Strip, drop blanks and duplicates, keep first-seen order."""
    if labels is None:
        return []
    if isinstance(labels, str) or not hasattr(labels, '__iter__'):
        raise ValidationError('Labels must be a list of strings', field='labels')
    result = []
    for label in labels:
        label = str(label).strip()
        if label and label not in result:
            result.append(label)
    return result


def _apply_internal_fields(ticket, data, user):
    """Copy the internal-only fields present in ``data`` onto ``ticket``."""
    tenant_id = user.tenant_id
    if 'internal_priority' in data:
        ticket.internal_priority = _level(data['internal_priority'], 'internal_priority', nullable=True)
    if 'internal_severity' in data:
        ticket.internal_severity = _level(data['internal_severity'], 'internal_severity', nullable=True)
    if 'assigned_to_id' in data:
        assignee_id = data['assigned_to_id']
        ticket.assigned_to = _tenant_user(tenant_id, assignee_id, 'assigned_to_id') if assignee_id else None
    if 'labels' in data:
        ticket.labels = normalize_labels(data['labels'])
    if 'story_points' in data:
        ticket.story_points = validate_story_points(data['story_points'])
    if 'estimate' in data:
        ticket.estimate = data['estimate']
    if 'due_date' in data:
        ticket.due_date = data['due_date']
    if 'parent_id' in data:
        parent_id = data['parent_id']
        existing = ticket if ticket.pk and not ticket._state.adding else None
        ticket.parent = _parent_ticket(tenant_id, parent_id, existing) if parent_id else None
    if data.get('product_id'):
        ticket.product = _tenant_product(tenant_id, data['product_id'])


# Create

@transaction.atomic
def create_ticket(user, data):
    """
    Create a ticket for ``user``.

    Client users raising support or feature requests draw from the
    tenant-wide key pool and land in the triage queue; everything else gets
    a product key and starts open.
    """
    title = (data.get('title') or '').strip()
    if not title:
        raise ValidationError('Title is required', field='title')
    if not data.get('product_id'):
        raise ValidationError('Product is required', field='product_id')

    ticket_type = data.get('type') or 'support'
    if ticket_type not in TICKET_TYPES:
        raise ValidationError(f'Invalid ticket type: {ticket_type}', field='type')

    product = _tenant_product(user.tenant_id, data['product_id'])

    reporter = user
    if user.is_internal and data.get('reporter_id'):
        reporter = _tenant_user(user.tenant_id, data['reporter_id'], 'reporter_id')

    if not user.is_internal:
        client = user.client
    elif data.get('client_id'):
        client = Client.objects.filter(pk=data['client_id'], tenant_id=user.tenant_id).first()
        if client is None:
            raise NotFoundError(f"Client not found: {data['client_id']}", field='client_id')
    else:
        client = reporter.client

    ticket = Ticket(
        tenant_id=user.tenant_id,
        title=title,
        description=data.get('description') or '',
        type=ticket_type,
        client_priority=_level(data.get('client_priority') or 3, 'client_priority'),
        client_severity=_level(data.get('client_severity') or 3, 'client_severity'),
        client=client,
        product=product,
        created_by=user,
        reporter=reporter,
    )
    if user.is_internal:
        _apply_internal_fields(ticket, {k: v for k, v in data.items() if k != 'product_id'}, user)

    if not user.is_internal and ticket_type in GLOBAL_TYPE_CODES:
        issue = allocate_global_scoped(user.tenant, ticket_type)
        ticket.status = workflow.PENDING_INTERNAL_REVIEW
    else:
        issue = allocate_product_scoped(product.pk, ticket_type, tenant=user.tenant_id)
        ticket.status = workflow.OPEN

    ticket.id = issue.id
    ticket.issue_key = issue.key
    ticket.save(force_insert=True)

    record_change_on_commit(
        ticket.tenant_id, ticket.pk, 'created', user,
        new_value=ticket.status,
        metadata={'issue_key': ticket.issue_key, 'type': ticket.type},
    )
    logger.info(f'Ticket {ticket.issue_key} created by {user.email}')
    return ticket


# Update

def _set_status(ticket, new_status):
    old_status = ticket.status
    workflow.ensure_transition(old_status, new_status)
    if new_status == old_status:
        return
    ticket.status = new_status
    if new_status in workflow.CLOSING_STATUSES and ticket.closed_at is None:
        ticket.closed_at = timezone.now()
    if workflow.is_reopen(old_status, new_status):
        ticket.closed_at = None
        ticket.resolution = ''


def update_ticket(user, ticket, data, audit_metadata=None):
    """
    Apply a partial update and record one audit entry per changed dimension.

    ``audit_metadata`` is attached to the status change entry (close and
    cancel reasons).
    """
    with transaction.atomic():
        ticket = Ticket.objects.select_for_update().get(pk=ticket.pk, tenant_id=user.tenant_id)
        before = {
            'status': ticket.status,
            'internal_priority': ticket.internal_priority,
            'client_priority': ticket.client_priority,
            'internal_severity': ticket.internal_severity,
            'client_severity': ticket.client_severity,
            'assigned_to_id': ticket.assigned_to_id,
        }

        if 'title' in data:
            title = (data['title'] or '').strip()
            if not title:
                raise ValidationError('Title cannot be blank', field='title')
            ticket.title = title
        if 'description' in data:
            ticket.description = data['description'] or ''
        if 'client_priority' in data:
            ticket.client_priority = _level(data['client_priority'], 'client_priority')
        if 'client_severity' in data:
            ticket.client_severity = _level(data['client_severity'], 'client_severity')

        if user.is_internal:
            _apply_internal_fields(ticket, data, user)
        else:
            ignored = [field for field in INTERNAL_FIELDS if field in data]
            if ignored:
                logger.debug(f'Ignoring internal fields from client user {user.pk}: {ignored}')

        if data.get('status'):
            _set_status(ticket, data['status'])
        if 'resolution' in data:
            resolution = data['resolution'] or ''
            if resolution and resolution not in RESOLUTIONS:
                raise ValidationError(f'Invalid resolution: {resolution}', field='resolution')
            ticket.resolution = resolution
        if 'resolution_note' in data:
            ticket.resolution_note = data['resolution_note'] or ''

        ticket.save()
        _record_update(user, ticket, before, audit_metadata or {})

    return ticket


def _record_update(user, ticket, before, audit_metadata):
    change_type = workflow.classify_status_change(before['status'], ticket.status)
    if change_type:
        record_change_on_commit(
            ticket.tenant_id, ticket.pk, change_type, user,
            old_value=before['status'], new_value=ticket.status,
            metadata=audit_metadata,
        )

    for dimension, change_type in (('priority', 'priority_changed'), ('severity', 'severity_changed')):
        for field in (f'internal_{dimension}', f'client_{dimension}'):
            new_value = getattr(ticket, field)
            if before[field] != new_value:
                record_change_on_commit(
                    ticket.tenant_id, ticket.pk, change_type, user,
                    old_value=before[field], new_value=new_value,
                    metadata={'field': field},
                )

    if before['assigned_to_id'] != ticket.assigned_to_id:
        record_change_on_commit(
            ticket.tenant_id, ticket.pk, 'assigned', user,
            old_value=before['assigned_to_id'], new_value=ticket.assigned_to_id,
        )


def close_ticket(user, ticket, resolution=None, resolution_note=None, reason=''):
    data = {'status': workflow.CLOSED}
    if resolution is not None:
        data['resolution'] = resolution
    if resolution_note is not None:
        data['resolution_note'] = resolution_note
    return update_ticket(user, ticket, data, audit_metadata={'reason': reason} if reason else None)


def cancel_ticket(user, ticket, reason=''):
    return update_ticket(
        user, ticket, {'status': workflow.CANCELLED},
        audit_metadata={'reason': reason} if reason else None,
    )


def reopen_ticket(user, ticket, reason=''):
    if ticket.status != workflow.RESOLVED:
        raise ValidationError(
            f'Only resolved tickets can be reopened; {ticket.issue_key} is {ticket.status}',
            field='status',
        )
    return update_ticket(
        user, ticket, {'status': workflow.REOPENED},
        audit_metadata={'reason': reason} if reason else None,
    )


# Comments and attachments

def comments_for(user, ticket):
    comments = ticket.comments.select_related('user')
    if not user.is_internal:
        comments = comments.filter(is_internal=False)
    return comments


def add_comment(user, ticket, content, is_internal=False):
    content = (content or '').strip()
    if not content:
        raise ValidationError('Comment content is required', field='content')
    is_internal = bool(is_internal) and user.is_internal

    with transaction.atomic():
        comment = TicketComment.objects.create(
            tenant_id=ticket.tenant_id,
            ticket=ticket,
            user=user,
            content=content,
            is_internal=is_internal,
        )
        if not is_internal:
            record_change_on_commit(
                ticket.tenant_id, ticket.pk, 'comment_added', user,
                new_value=comment_preview(content),
                metadata={'comment_id': comment.pk},
            )
    return comment


def can_attach(user, ticket):
    if user.is_internal or ticket.created_by_id == user.pk:
        return True
    return user.client_id is not None and user.client_id == ticket.client_id


def add_attachments(user, ticket, files):
    if not can_attach(user, ticket):
        raise AuthorizationError('You cannot add attachments to this ticket')
    if not files:
        raise ValidationError('No files uploaded', field='files')

    attachments = []
    with transaction.atomic():
        for upload in files:
            attachment = TicketAttachment.objects.create(
                tenant_id=ticket.tenant_id,
                ticket=ticket,
                file=upload,
                file_name=upload.name,
                file_size=upload.size,
                mime_type=getattr(upload, 'content_type', '') or '',
                uploaded_by=user,
            )
            attachments.append(attachment)
            record_change_on_commit(
                ticket.tenant_id, ticket.pk, 'attachment_added', user,
                new_value=attachment.file_name,
                metadata={'attachment_id': attachment.pk, 'file_size': attachment.file_size},
            )
    return attachments
