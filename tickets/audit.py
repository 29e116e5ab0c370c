"""
Ticket audit recorder.

History is best effort: a failed insert is logged and dropped so that the
change it describes still goes through. Lifecycle code records through
``record_change_on_commit`` so nothing is written for a change that later
rolls back.
"""
import logging
from functools import partial

from django.db import transaction

from .models import TicketAuditLog

logger = logging.getLogger(__name__)

COMMENT_PREVIEW_LENGTH = 100


def _pk(obj):
    return getattr(obj, 'pk', obj)


def record_change(tenant, ticket_id, change_type, user, old_value=None,
                  new_value=None, metadata=None):
    """
    Append one audit entry. Never raises.

    Returns the created entry, or None when the write failed.
    """
    try:
        with transaction.atomic():
            return TicketAuditLog.objects.create(
                tenant_id=_pk(tenant),
                ticket_id=ticket_id,
                change_type=change_type,
                user_id=_pk(user),
                old_value=old_value,
                new_value=new_value,
                metadata=metadata or {},
            )
    except Exception:
        logger.exception(f'Failed to record {change_type} audit entry for ticket {ticket_id}')
        return None


def record_change_on_commit(tenant, ticket_id, change_type, user, old_value=None,
                            new_value=None, metadata=None):
    """Queue ``record_change`` to run once the current transaction commits."""
    transaction.on_commit(partial(
        record_change, tenant, ticket_id, change_type, user,
        old_value=old_value, new_value=new_value, metadata=metadata,
    ))


def comment_preview(content):
    return content[:COMMENT_PREVIEW_LENGTH]


def history_for(ticket):
    """Audit entries for ``ticket``, oldest first."""
    return TicketAuditLog.objects.filter(
        tenant_id=ticket.tenant_id, ticket_id=ticket.pk
    ).select_related('user').order_by('created_at', 'id')
