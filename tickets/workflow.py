"""
Ticket status machine.

The transition table is the single source of truth for which status
changes are legal. ``classify_status_change`` decides which audit entry a
legal change produces.
"""
from trackdesk.exceptions import ValidationError

PENDING_INTERNAL_REVIEW = 'pending_internal_review'
OPEN = 'open'
IN_PROGRESS = 'in_progress'
WAITING_FOR_CUSTOMER = 'waiting_for_customer'
REBUTTAL = 'rebuttal'
RESOLVED = 'resolved'
REOPENED = 'reopened'
CLOSED = 'closed'
CANCELLED = 'cancelled'

STATUS_CHOICES = [
    (PENDING_INTERNAL_REVIEW, 'Pending Internal Review'),
    (OPEN, 'Open'),
    (IN_PROGRESS, 'In Progress'),
    (WAITING_FOR_CUSTOMER, 'Waiting for Customer'),
    (REBUTTAL, 'Rebuttal'),
    (RESOLVED, 'Resolved'),
    (REOPENED, 'Reopened'),
    (CLOSED, 'Closed'),
    (CANCELLED, 'Cancelled'),
]

TRANSITIONS = {
    PENDING_INTERNAL_REVIEW: {OPEN, IN_PROGRESS, CANCELLED},
    OPEN: {IN_PROGRESS, WAITING_FOR_CUSTOMER, RESOLVED, CLOSED, CANCELLED},
    IN_PROGRESS: {OPEN, WAITING_FOR_CUSTOMER, REBUTTAL, RESOLVED, CLOSED, CANCELLED},
    WAITING_FOR_CUSTOMER: {OPEN, IN_PROGRESS, REBUTTAL, RESOLVED, CLOSED, CANCELLED},
    REBUTTAL: {OPEN, IN_PROGRESS, WAITING_FOR_CUSTOMER, RESOLVED, CANCELLED},
    RESOLVED: {OPEN, IN_PROGRESS, REOPENED, CLOSED},
    REOPENED: {OPEN, IN_PROGRESS, WAITING_FOR_CUSTOMER, RESOLVED, CLOSED, CANCELLED},
    CLOSED: set(),
    CANCELLED: set(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Entering one of these stamps closed_at
CLOSING_STATUSES = frozenset({RESOLVED, CLOSED, CANCELLED})

RESOLUTION_CHOICES = [
    ('fixed', 'Fixed'),
    ('answered', 'Answered'),
    ('workaround', 'Workaround Provided'),
    ('duplicate', 'Duplicate'),
    ('wont_fix', "Won't Fix"),
    ('cannot_reproduce', 'Cannot Reproduce'),
    ('invalid', 'Invalid'),
    ('implemented', 'Implemented'),
]


def is_valid_status(status):
    return status in TRANSITIONS


def can_transition(current, target):
    return target == current or target in TRANSITIONS.get(current, ())


def ensure_transition(current, target):
    """Raise ValidationError unless ``current -> target`` is allowed."""
    if not is_valid_status(target):
        raise ValidationError(f'Unknown ticket status: {target}', field='status')
    if not can_transition(current, target):
        allowed = ', '.join(sorted(TRANSITIONS.get(current, ()))) or 'none'
        raise ValidationError(
            f'Cannot move ticket from {current} to {target}. Allowed: {allowed}',
            field='status',
        )


def classify_status_change(old, new):
    """
    Audit change type for ``old -> new``, or None when nothing changed.

    Entering ``resolved`` is ``resolved``; going back from it to active work
    is ``reopened``; everything else, including resolved -> closed, is
    ``status_changed``.
    """
    if old == new:
        return None
    if new == RESOLVED:
        return 'resolved'
    if is_reopen(old, new):
        return 'reopened'
    return 'status_changed'


def is_reopen(old, new):
    return old in CLOSING_STATUSES and new not in CLOSING_STATUSES
