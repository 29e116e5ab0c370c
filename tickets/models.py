from django.conf import settings
from django.db import models

from products.issue_keys import generate_record_id
from trackdesk.file_utils import tenant_upload_to
from .workflow import STATUS_CHOICES, RESOLUTION_CHOICES, OPEN

LEVEL_CHOICES = [
    (1, 'Critical'),
    (2, 'High'),
    (3, 'Medium'),
    (4, 'Low'),
]


class Ticket(models.Model):
    """
    A customer-visible support or feature request.

    Client priority/severity are what the customer asked for; the internal
    pair are triage overrides that only the tenant's own team sees.
    """
    TYPE_CHOICES = [
        ('support', 'Support'),
        ('feature_request', 'Feature Request'),
        ('epic', 'Epic'),
        ('feature', 'Feature'),
        ('task', 'Task'),
        ('bug', 'Bug'),
        ('spike', 'Spike'),
        ('note', 'Note'),
    ]

    id = models.CharField(primary_key=True, max_length=32, default=generate_record_id, editable=False)
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='tickets')
    issue_key = models.CharField(max_length=40, db_index=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='support')
    status = models.CharField(max_length=30, choices=STATUS_CHOICES, default=OPEN)

    client_priority = models.PositiveSmallIntegerField(choices=LEVEL_CHOICES, default=3)
    client_severity = models.PositiveSmallIntegerField(choices=LEVEL_CHOICES, default=3)
    internal_priority = models.PositiveSmallIntegerField(choices=LEVEL_CHOICES, null=True, blank=True)
    internal_severity = models.PositiveSmallIntegerField(choices=LEVEL_CHOICES, null=True, blank=True)

    client = models.ForeignKey(
        'tenants.Client',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tickets',
        help_text='Empty for internal-only tickets'
    )
    product = models.ForeignKey('products.Product', on_delete=models.PROTECT, related_name='tickets')
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='created_tickets'
    )
    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='reported_tickets',
        help_text='Who the ticket is on behalf of; differs from created_by when staff file for a client'
    )
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_tickets'
    )
    parent = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='children'
    )

    labels = models.JSONField(default=list, blank=True)
    story_points = models.PositiveSmallIntegerField(null=True, blank=True)
    estimate = models.DecimalField(
        max_digits=7, decimal_places=2, null=True, blank=True,
        help_text='Estimated effort in hours'
    )
    due_date = models.DateField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)

    resolution = models.CharField(max_length=30, choices=RESOLUTION_CHOICES, blank=True)
    resolution_note = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'issue_key'], name='unique_ticket_issue_key'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status']),
        ]

    def __str__(self):
        return f'{self.issue_key}: {self.title}'

    @property
    def effective_priority(self):
        if self.internal_priority is not None:
            return self.internal_priority
        if self.client_priority is not None:
            return self.client_priority
        return settings.DEFAULT_TICKET_PRIORITY

    @property
    def effective_severity(self):
        if self.internal_severity is not None:
            return self.internal_severity
        if self.client_severity is not None:
            return self.client_severity
        return settings.DEFAULT_TICKET_PRIORITY


class TicketComment(models.Model):
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='comments')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='ticket_comments')
    content = models.TextField()
    is_internal = models.BooleanField(
        default=False,
        help_text='Internal notes are hidden from client users'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']

    def __str__(self):
        return f'Comment by {self.user} on {self.ticket.issue_key}'


class TicketAttachment(models.Model):
    """File attachments for tickets."""
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='attachments')
    file = models.FileField(upload_to=tenant_upload_to('ticket_attachments'))
    file_name = models.CharField(max_length=255, help_text='Original filename')
    file_size = models.PositiveIntegerField(help_text='File size in bytes')
    mime_type = models.CharField(max_length=100, blank=True)
    uploaded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='ticket_attachments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.file_name} - {self.ticket.issue_key}'


class TicketAuditLog(models.Model):
    """Append-only change record. Written by tickets.audit only."""
    CHANGE_TYPE_CHOICES = [
        ('created', 'Created'),
        ('status_changed', 'Status Changed'),
        ('reopened', 'Reopened'),
        ('resolved', 'Resolved'),
        ('priority_changed', 'Priority Changed'),
        ('severity_changed', 'Severity Changed'),
        ('assigned', 'Assigned'),
        ('comment_added', 'Comment Added'),
        ('attachment_added', 'Attachment Added'),
        ('watcher_added', 'Watcher Added'),
        ('watcher_removed', 'Watcher Removed'),
    ]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='audit_entries')
    change_type = models.CharField(max_length=30, choices=CHANGE_TYPE_CHOICES)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+'
    )
    old_value = models.JSONField(null=True, blank=True)
    new_value = models.JSONField(null=True, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        verbose_name = 'Ticket Audit Entry'
        verbose_name_plural = 'Ticket Audit Log'

    def __str__(self):
        return f'{self.ticket_id} {self.change_type}'


class TicketLink(models.Model):
    LINK_TYPE_CHOICES = [
        ('blocks', 'Blocks'),
        ('blocked_by', 'Blocked By'),
        ('relates_to', 'Relates To'),
        ('duplicates', 'Duplicates'),
        ('duplicated_by', 'Duplicated By'),
        ('parent_of', 'Parent Of'),
        ('child_of', 'Child Of'),
    ]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    source = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='outgoing_links')
    target = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='incoming_links')
    link_type = models.CharField(max_length=20, choices=LINK_TYPE_CHOICES)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['source', 'target', 'link_type'], name='unique_ticket_link'
            ),
            models.CheckConstraint(
                condition=~models.Q(source=models.F('target')), name='ticket_link_no_self_loop'
            ),
        ]

    def __str__(self):
        return f'{self.source_id} {self.link_type} {self.target_id}'


class TicketTaskLink(models.Model):
    """Join row between a ticket and a dev task spawned from (or tied to) it."""
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='task_links')
    task = models.ForeignKey('tasks.DevTask', on_delete=models.CASCADE, related_name='ticket_links')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(fields=['ticket', 'task'], name='unique_ticket_task_link'),
        ]

    def __str__(self):
        return f'{self.ticket_id} -> {self.task_id}'


class TicketWatcher(models.Model):
    """
    Subscriber to a ticket. Either a tenant user, or an outside email
    address that did not match any user.
    """
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    ticket = models.ForeignKey(Ticket, on_delete=models.CASCADE, related_name='watchers')
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='watched_tickets'
    )
    email = models.EmailField(blank=True)
    added_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['ticket', 'user'],
                condition=models.Q(user__isnull=False),
                name='unique_ticket_watcher_user',
            ),
            models.UniqueConstraint(
                fields=['ticket', 'email'],
                condition=models.Q(user__isnull=True),
                name='unique_ticket_watcher_email',
            ),
        ]

    def __str__(self):
        return f'{self.user or self.email} watching {self.ticket_id}'

    @property
    def is_external(self):
        return self.user_id is None
