"""
Ticket link registry.

Links are stored once, in the direction they were created. Reading the
links of a ticket also returns the incoming ones, shown with the inverse
link type (a ``blocks`` link into T reads as ``blocked_by`` from T).
"""
import logging

from django.db import IntegrityError, transaction
from django.db.models import Q

from trackdesk.exceptions import ConflictError, NotFoundError, ValidationError
from .lifecycle import can_view
from .models import Ticket, TicketLink, TicketTaskLink

logger = logging.getLogger(__name__)

INVERSE_LINK_TYPES = {
    'blocks': 'blocked_by',
    'blocked_by': 'blocks',
    'relates_to': 'relates_to',
    'duplicates': 'duplicated_by',
    'duplicated_by': 'duplicates',
    'parent_of': 'child_of',
    'child_of': 'parent_of',
}


def resolve_ticket(user, id_or_key):
    """
    Find a ticket ``user`` can see by record id or issue key. Tickets outside
    the user's scope are reported as not found.
    """
    if not id_or_key:
        raise ValidationError('Ticket id is required', field='target_ticket_id')
    ticket = Ticket.objects.filter(
        Q(pk=id_or_key) | Q(issue_key=id_or_key), tenant_id=user.tenant_id
    ).first()
    if ticket is None or not can_view(user, ticket):
        raise NotFoundError(f'Ticket not found: {id_or_key}')
    return ticket


def create_link(user, source, target_id, link_type):
    """
    Link ``source`` to the ticket identified by ``target_id``.

    Raises:
        ValidationError: unknown link type, or a link from a ticket to itself
        NotFoundError: target is not a ticket ``user`` can see
        ConflictError: the same (source, target, type) link already exists
    """
    if link_type not in INVERSE_LINK_TYPES:
        raise ValidationError(
            f"Invalid link type: {link_type}. Valid types: {', '.join(INVERSE_LINK_TYPES)}",
            field='link_type',
        )

    target = resolve_ticket(user, target_id)
    if target.pk == source.pk:
        raise ValidationError('A ticket cannot be linked to itself', field='target_ticket_id')

    if TicketLink.objects.filter(source=source, target=target, link_type=link_type).exists():
        raise ConflictError(f'{source.issue_key} already {link_type} {target.issue_key}')

    try:
        with transaction.atomic():
            link = TicketLink.objects.create(
                tenant_id=source.tenant_id,
                source=source,
                target=target,
                link_type=link_type,
                created_by=user,
            )
    except IntegrityError:
        raise ConflictError(f'{source.issue_key} already {link_type} {target.issue_key}')

    logger.info(f'Linked {source.issue_key} {link_type} {target.issue_key}')
    return link


def delete_link(source, link_id, user=None):
    """
    Remove a link that starts or ends at ``source``. With ``user``, the
    ticket at the other end must be one they can see.
    """
    link = TicketLink.objects.filter(
        Q(source=source) | Q(target=source),
        pk=link_id,
        tenant_id=source.tenant_id,
    ).select_related('source', 'target').first()
    if link is None:
        raise NotFoundError(f'Link not found: {link_id}')
    other = link.target if link.source_id == source.pk else link.source
    if user is not None and not can_view(user, other):
        raise NotFoundError(f'Link not found: {link_id}')
    link.delete()


def links_for(ticket, user=None):
    """
    Every link touching ``ticket`` as (link, link_type, other_ticket) rows,
    with incoming links given their inverse type. With ``user``, rows whose
    other ticket the user cannot see are left out.
    """
    rows = []
    outgoing = TicketLink.objects.filter(source=ticket).select_related('target')
    for link in outgoing:
        rows.append((link, link.link_type, link.target))
    incoming = TicketLink.objects.filter(target=ticket).select_related('source')
    for link in incoming:
        rows.append((link, INVERSE_LINK_TYPES[link.link_type], link.source))
    if user is not None:
        rows = [row for row in rows if can_view(user, row[2])]
    return rows


def link_ticket_to_task(ticket, task):
    link, _ = TicketTaskLink.objects.get_or_create(
        tenant_id=ticket.tenant_id, ticket=ticket, task=task
    )
    return link


def tasks_for_ticket(ticket):
    from tasks.models import DevTask

    return DevTask.objects.filter(
        tenant_id=ticket.tenant_id, ticket_links__ticket=ticket
    ).select_related('product', 'implementor', 'developer', 'tester')
