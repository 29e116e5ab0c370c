"""
Ticket watcher registry.

A watcher is added by user id, or by email. An email that matches a user
of the tenant is stored as that user; anything else is kept as an external
watcher so outside contacts can still be notified.

Client users may only add or remove watchers from their own client. For
them, unknown emails and users of other clients are refused alike.
"""
import logging

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import IntegrityError, transaction

from trackdesk.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from .audit import record_change_on_commit
from .models import TicketWatcher

logger = logging.getLogger(__name__)
User = get_user_model()


def _candidates(actor, ticket):
    users = User.objects.filter(tenant_id=ticket.tenant_id)
    if not actor.is_internal:
        users = users.filter(client_id=actor.client_id)
    return users


def _resolve_watcher(actor, ticket, user_id=None, email=None):
    """Returns (user, email) for the watcher to add or remove."""
    if user_id:
        user = _candidates(actor, ticket).filter(pk=user_id).first()
        if user is None:
            raise NotFoundError(f'User not found: {user_id}')
        return user, ''

    email = (email or '').strip().lower()
    if not email:
        raise ValidationError('Either user_id or email is required', field='user_id')
    try:
        validate_email(email)
    except DjangoValidationError:
        raise ValidationError(f'Invalid email address: {email}', field='email')

    user = _candidates(actor, ticket).filter(email__iexact=email).first()
    if user is not None:
        return user, ''
    if not actor.is_internal:
        raise AuthorizationError('You can only manage watchers from your own organisation')
    return None, email
def add_watcher(actor, ticket, user_id=None, email=None):
    user, external_email = _resolve_watcher(actor, ticket, user_id, email)

    existing = TicketWatcher.objects.filter(ticket=ticket)
    if user is not None:
        existing = existing.filter(user=user)
    else:
        existing = existing.filter(user__isnull=True, email=external_email)
    if existing.exists():
        raise ConflictError(f'{user or external_email} is already watching {ticket.issue_key}')

    try:
        with transaction.atomic():
            watcher = TicketWatcher.objects.create(
                tenant_id=ticket.tenant_id,
                ticket=ticket,
                user=user,
                email=external_email,
                added_by=actor,
            )
    except IntegrityError:
        raise ConflictError(f'{user or external_email} is already watching {ticket.issue_key}')

    record_change_on_commit(
        ticket.tenant_id, ticket.pk, 'watcher_added', actor,
        new_value=user.email if user else external_email,
        metadata={'external': user is None},
    )
    return watcher


def remove_watcher(actor, ticket, user_id=None, email=None):
    user, external_email = _resolve_watcher(actor, ticket, user_id, email)

    watchers = TicketWatcher.objects.filter(ticket=ticket)
    if user is not None:
        watchers = watchers.filter(user=user)
    else:
        watchers = watchers.filter(user__isnull=True, email=external_email)

    deleted, _ = watchers.delete()
    if not deleted:
        raise NotFoundError(f'{user or external_email} is not watching {ticket.issue_key}')

    record_change_on_commit(
        ticket.tenant_id, ticket.pk, 'watcher_removed', actor,
        old_value=user.email if user else external_email,
    )


def watchers_for(ticket):
    return TicketWatcher.objects.filter(ticket=ticket).select_related('user')
