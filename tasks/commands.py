"""
Spawning dev tasks from support tickets.

Spawning touches both sides: besides the new task it links the ticket,
and in the role-based flow it also hands the ticket to the implementor
and moves it to in_progress. ``SpawnTaskCommand`` keeps all of those
writes in one place and in one transaction.
"""
import logging

from django.db import transaction

from products.issue_keys import allocate_product_scoped
from tickets import links, workflow as ticket_workflow
from tickets.audit import record_change_on_commit
from tickets.models import Ticket
from trackdesk.exceptions import ValidationError
from .lifecycle import (
    ROLE_FIELDS, bug_fields, ensure_internal, product_structure, tenant_feature, tenant_user
)
from .models import DevTask, TaskAssignment

logger = logging.getLogger(__name__)


class SpawnTaskCommand:
    """
    Create a dev task from ``ticket``.

    Role-based (default): ``implementor_id``, ``developer_id`` and
    ``tester_id`` are all required, ``feature_id`` is optional.
    Legacy: only ``feature_id`` is required and the ticket is left alone
    apart from the link.

    Usage:
        command = SpawnTaskCommand(request.user, ticket, request.data)
        task = command.execute()
    """

    def __init__(self, user, ticket, data, legacy=False):
        self.user = user
        self.ticket = ticket
        self.data = data
        self.legacy = legacy
        self.task = None

    def planned_writes(self):
        """The rows this command writes, in order."""
        writes = [
            ('products.ProductSequence', 'update'),
            ('tasks.DevTask', 'insert'),
            ('tickets.TicketTaskLink', 'insert'),
        ]
        if not self.legacy:
            writes += [
                ('tasks.TaskAssignment', 'insert'),
                ('tickets.Ticket', 'update'),
            ]
        return writes

    def _validate(self):
        ensure_internal(self.user, 'spawn tasks from tickets')
        tenant_id = self.user.tenant_id
        data = self.data

        if self.ticket.status in ticket_workflow.TERMINAL_STATUSES:
            raise ValidationError(
                f'Cannot spawn a task from {self.ticket.status} ticket {self.ticket.issue_key}',
                field='status',
            )

        roles = {}
        if not self.legacy:
            missing = [field for field in ROLE_FIELDS if not data.get(field)]
            if missing:
                raise ValidationError(
                    f"Missing required roles: {', '.join(missing)}",
                    field='roles',
                    missing=missing,
                )
            for field in ROLE_FIELDS:
                roles[field[:-3]] = tenant_user(tenant_id, data[field], field)
        elif not data.get('feature_id'):
            raise ValidationError('feature_id is required', field='feature_id')

        feature = None
        if data.get('feature_id'):
            feature = tenant_feature(tenant_id, data['feature_id'])
            if feature.epic.product_id != self.ticket.product_id:
                raise ValidationError(
                    "Feature belongs to another product than the ticket's",
                    field='feature_id',
                )

        task_type = data.get('type') or 'bug'
        severity, environment = bug_fields(task_type, data.get('severity'), data.get('environment'))

        fields = {
            'feature': feature,
            'type': task_type,
            'severity': severity,
            'environment': environment,
            'title': (data.get('title') or '').strip() or self.ticket.title,
            'description': data.get('description') or self.ticket.description or '',
            'priority': self.ticket.effective_priority,
            **roles,
        }
        fields.update(product_structure(tenant_id, self.ticket.product_id, data))
        return fields

    def execute(self):
        fields = self._validate()
        ticket = self.ticket

        with transaction.atomic():
            issue = allocate_product_scoped(ticket.product_id, fields['type'], tenant=self.user.tenant_id)
            task = DevTask.objects.create(
                tenant_id=ticket.tenant_id,
                product_id=ticket.product_id,
                issue_key=issue.key,
                support_ticket=ticket,
                created_by=self.user,
                reporter=self.user,
                **fields
            )
            links.link_ticket_to_task(ticket, task)

            if not self.legacy:
                role_users = {fields['implementor'], fields['developer'], fields['tester']}
                TaskAssignment.objects.bulk_create([
                    TaskAssignment(tenant_id=ticket.tenant_id, task=task, user=role_user)
                    for role_user in sorted(role_users, key=lambda u: u.pk)
                ])
                self._hand_over_ticket(task, fields['implementor'])

        self.task = task
        logger.info(f'Spawned {task.issue_key} from ticket {ticket.issue_key}')
        return task

    def _hand_over_ticket(self, task, implementor):
        """Assign the ticket to the implementor and force it to in_progress."""
        ticket = Ticket.objects.select_for_update().get(pk=self.ticket.pk)
        old_status = ticket.status
        old_assignee = ticket.assigned_to_id

        ticket.assigned_to = implementor
        ticket.status = ticket_workflow.IN_PROGRESS
        if ticket_workflow.is_reopen(old_status, ticket.status):
            ticket.closed_at = None
            ticket.resolution = ''
        ticket.save()

        metadata = {'task_id': task.pk, 'task_key': task.issue_key}
        change_type = ticket_workflow.classify_status_change(old_status, ticket.status)
        if change_type:
            record_change_on_commit(
                ticket.tenant_id, ticket.pk, change_type, self.user,
                old_value=old_status, new_value=ticket.status, metadata=metadata,
            )
        if old_assignee != implementor.pk:
            record_change_on_commit(
                ticket.tenant_id, ticket.pk, 'assigned', self.user,
                old_value=old_assignee, new_value=implementor.pk, metadata=metadata,
            )
        self.ticket = ticket
