"""
Dev task lifecycle.

Internal users manage every task of their tenant. Anyone else only sees,
updates and closes the tasks they are assigned to.
"""
import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone

from products.issue_keys import allocate_product_scoped
from products.models import Addon, Component, Feature, Module
from tickets.lifecycle import normalize_labels
from tickets.models import TicketTaskLink
from trackdesk.exceptions import AuthorizationError, NotFoundError, ValidationError
from . import workflow
from .metadata import MetadataMap
from .models import DevTask, Sprint, TaskAssignment

logger = logging.getLogger(__name__)
User = get_user_model()

TASK_TYPES = {value for value, _ in DevTask.TYPE_CHOICES}
SEVERITIES = {value for value, _ in workflow.SEVERITY_CHOICES}
ENVIRONMENTS = {value for value, _ in workflow.ENVIRONMENT_CHOICES}
PRIORITIES = {1, 2, 3, 4}

ROLE_FIELDS = ('implementor_id', 'developer_id', 'tester_id')


# Lookups and checks shared with tasks.commands

def ensure_internal(user, action='manage tasks'):
    if not user.is_internal:
        raise AuthorizationError(f'Only internal users can {action}')


def tenant_user(tenant_id, user_id, field):
    user = User.objects.filter(pk=user_id, tenant_id=tenant_id).first()
    if user is None:
        raise NotFoundError(f'User not found: {user_id}', field=field)
    return user


def tenant_feature(tenant_id, feature_id):
    feature = Feature.objects.filter(
        pk=feature_id, tenant_id=tenant_id
    ).select_related('epic__product').first()
    if feature is None:
        raise NotFoundError(f'Feature not found: {feature_id}', field='feature_id')
    if feature.epic.tenant_id != tenant_id:
        raise NotFoundError(f'Epic not found: {feature.epic_id}', field='feature_id')
    return feature


def product_structure(tenant_id, product_id, data):
    """
    Resolve optional module/component/addon ids, each of which must belong
    to ``product_id``. Returns a dict ready to pass to the model.
    """
    resolved = {}
    lookups = (
        ('module_id', Module, 'product_id'),
        ('component_id', Component, 'module__product_id'),
        ('addon_id', Addon, 'product_id'),
    )
    for field, model, product_path in lookups:
        object_id = data.get(field)
        if not object_id:
            continue
        obj = model.objects.filter(pk=object_id, tenant_id=tenant_id).values(product_path).first()
        name = model.__name__.lower()
        if obj is None:
            raise NotFoundError(f'{model.__name__} not found: {object_id}', field=field)
        if obj[product_path] != product_id:
            raise ValidationError(f'{model.__name__} {object_id} belongs to another product', field=field)
        resolved[f'{name}_id'] = object_id
    return resolved


def validate_priority(value):
    try:
        priority = int(value)
    except (TypeError, ValueError):
        raise ValidationError('Priority must be between 1 and 4', field='priority')
    if priority not in PRIORITIES:
        raise ValidationError('Priority must be between 1 and 4', field='priority')
    return priority


def bug_fields(task_type, severity=None, environment=None):
    """
    Severity and environment for a task of ``task_type``.

    Bugs default to major severity; any other type must not carry either.
    """
    if task_type not in TASK_TYPES:
        raise ValidationError(f'Invalid task type: {task_type}', field='type')
    if task_type != 'bug':
        if severity or environment:
            raise ValidationError(
                'Severity and environment can only be set on bugs',
                field='severity' if severity else 'environment',
            )
        return None, None
    if severity and severity not in SEVERITIES:
        raise ValidationError(f'Invalid severity: {severity}', field='severity')
    if environment and environment not in ENVIRONMENTS:
        raise ValidationError(f'Invalid environment: {environment}', field='environment')
    return severity or workflow.DEFAULT_BUG_SEVERITY, environment or None


def _distinct_tenant_users(tenant_id, user_ids, field):
    if isinstance(user_ids, (str, bytes)) or not hasattr(user_ids, '__iter__'):
        raise ValidationError(f'{field} must be a list of user ids', field=field)
    unique_ids = list(dict.fromkeys(user_ids))
    users = list(User.objects.filter(pk__in=unique_ids, tenant_id=tenant_id))
    found = {user.pk for user in users}
    missing = [user_id for user_id in unique_ids if user_id not in found]
    if missing:
        raise NotFoundError(f'Users not found: {missing}', field=field)
    return users


# Reads and access

def visible_tasks(user):
    tasks = DevTask.objects.filter(tenant_id=user.tenant_id)
    if user.is_internal:
        return tasks
    return tasks.filter(assignments__user=user).distinct()


def my_tasks(user):
    """Tasks ``user`` is assigned to, internal or not."""
    return DevTask.objects.filter(
        tenant_id=user.tenant_id, assignments__user=user
    ).distinct().order_by('-created_at')


def is_assigned(user, task):
    return TaskAssignment.objects.filter(task=task, user=user).exists()


def ensure_can_modify(user, task):
    if user.is_internal:
        return
    if not is_assigned(user, task):
        raise AuthorizationError('Forbidden: Not assigned to this task')


def get_task_for_user(user, task_id):
    """
    Tasks of other tenants are not found; tasks of the same tenant that a
    non-internal user is not assigned to raise AuthorizationError.
    """
    task = DevTask.objects.filter(pk=task_id, tenant_id=user.tenant_id).select_related(
        'product', 'feature', 'sprint', 'implementor', 'developer', 'tester', 'support_ticket'
    ).first()
    if task is None:
        raise NotFoundError(f'Task not found: {task_id}')
    ensure_can_modify(user, task)
    return task


# Create

@transaction.atomic
def create_task(user, data):
    ensure_internal(user, 'create tasks')

    title = (data.get('title') or '').strip()
    if not data.get('feature_id') or not title:
        raise ValidationError('feature_id and title are required', field='feature_id' if title else 'title')

    feature = tenant_feature(user.tenant_id, data['feature_id'])
    product = feature.epic.product

    task_type = data.get('type') or 'task'
    severity, environment = bug_fields(task_type, data.get('severity'), data.get('environment'))

    fields = {
        'title': title,
        'description': data.get('description') or '',
        'type': task_type,
        'priority': validate_priority(data.get('priority') or 3),
        'story_points': workflow.validate_story_points(data.get('story_points')),
        'estimate': data.get('estimate'),
        'due_date': data.get('due_date'),
        'labels': normalize_labels(data.get('labels')),
        'severity': severity,
        'environment': environment,
        'metadata': MetadataMap(data.get('metadata')).as_dict(),
        'reporter': user,
    }
    if data.get('reporter_id'):
        fields['reporter'] = tenant_user(user.tenant_id, data['reporter_id'], 'reporter_id')
    for role_field in ROLE_FIELDS:
        if data.get(role_field):
            fields[role_field[:-3]] = tenant_user(user.tenant_id, data[role_field], role_field)
        else:
            fields[role_field[:-3]] = getattr(product, f'default_{role_field[:-3]}')
    if data.get('sprint_id'):
        fields['sprint'] = _product_sprint(user.tenant_id, product.pk, data['sprint_id'])
    fields.update(product_structure(user.tenant_id, product.pk, data))

    assignees = []
    if data.get('assignees'):
        assignees = _distinct_tenant_users(user.tenant_id, data['assignees'], 'assignees')

    issue = allocate_product_scoped(product.pk, task_type, tenant=user.tenant_id)
    task = DevTask.objects.create(
        tenant_id=user.tenant_id,
        product=product,
        feature=feature,
        issue_key=issue.key,
        created_by=user,
        **fields
    )
    TaskAssignment.objects.bulk_create([
        TaskAssignment(tenant_id=user.tenant_id, task=task, user=assignee)
        for assignee in assignees
    ])

    logger.info(f'Task {task.issue_key} created by {user.email}')
    return task


# Update

def _product_sprint(tenant_id, product_id, sprint_id):
    sprint = Sprint.objects.filter(pk=sprint_id, tenant_id=tenant_id).first()
    if sprint is None:
        raise NotFoundError(f'Sprint not found: {sprint_id}', field='sprint_id')
    if sprint.product_id != product_id:
        raise ValidationError('Sprint belongs to another product', field='sprint_id')
    return sprint


def _set_status(task, new_status, resolution=None):
    old_status = task.status
    workflow.ensure_transition(old_status, new_status)
    if new_status == old_status:
        return
    task.status = new_status
    if old_status == workflow.BLOCKED:
        task.blocked_reason = ''
    if new_status == workflow.DONE:
        task.closed_at = timezone.now()
        task.resolution = resolution or workflow.DEFAULT_RESOLUTION
    elif old_status == workflow.DONE:
        task.closed_at = None
        task.resolution = ''


def update_task(user, task, data):
    """
    Partial update. Metadata is merged into what is already stored, and
    role, sprint and reporter fields are only taken from internal users.
    """
    ensure_can_modify(user, task)

    with transaction.atomic():
        task = DevTask.objects.select_for_update().get(pk=task.pk, tenant_id=user.tenant_id)

        if 'title' in data:
            title = (data['title'] or '').strip()
            if not title:
                raise ValidationError('Title cannot be blank', field='title')
            task.title = title
        if 'description' in data:
            task.description = data['description'] or ''
        if 'priority' in data:
            task.priority = validate_priority(data['priority'])
        if 'story_points' in data:
            task.story_points = workflow.validate_story_points(data['story_points'])
        for field in ('estimate', 'actual_time', 'due_date'):
            if field in data:
                setattr(task, field, data[field])
        if 'labels' in data:
            task.labels = normalize_labels(data['labels'])
        if 'blocked_reason' in data:
            task.blocked_reason = data['blocked_reason'] or ''
        if 'resolution_note' in data:
            task.resolution_note = data['resolution_note'] or ''

        if 'type' in data or 'severity' in data or 'environment' in data:
            task_type = data.get('type') or task.type
            type_changed = task_type != task.type
            severity = data['severity'] if 'severity' in data else (None if type_changed else task.severity)
            environment = data['environment'] if 'environment' in data else (None if type_changed else task.environment)
            task.severity, task.environment = bug_fields(task_type, severity, environment)
            task.type = task_type

        if data.get('status'):
            resolution = data.get('resolution')
            if resolution:
                workflow.validate_resolution(resolution)
            _set_status(task, data['status'], resolution)
        if task.status != workflow.BLOCKED:
            task.blocked_reason = ''

        if user.is_internal:
            for role_field in ROLE_FIELDS:
                if role_field in data:
                    user_id = data[role_field]
                    setattr(task, role_field[:-3], tenant_user(user.tenant_id, user_id, role_field) if user_id else None)
            if 'sprint_id' in data:
                sprint_id = data['sprint_id']
                task.sprint = _product_sprint(user.tenant_id, task.product_id, sprint_id) if sprint_id else None
            task_structure = {field: data[field] for field in ('module_id', 'component_id', 'addon_id') if field in data}
            if task_structure:
                for field, value in task_structure.items():
                    if not value:
                        setattr(task, field, None)
                for field, value in product_structure(user.tenant_id, task.product_id, task_structure).items():
                    setattr(task, field, value)

        if 'metadata' in data:
            task.metadata = MetadataMap(task.metadata).merge(data['metadata']).as_dict()

        task.save()
    return task


def set_story_points(user, task, value):
    ensure_internal(user, 'estimate tasks')
    points = workflow.validate_story_points(value)
    task.story_points = points
    task.save(update_fields=['story_points', 'updated_at'])
    return task


def assign_sprint(user, task, sprint_id):
    """Move ``task`` into a sprint of its product, or to the backlog with None."""
    ensure_internal(user, 'plan sprints')
    task.sprint = _product_sprint(user.tenant_id, task.product_id, sprint_id) if sprint_id else None
    task.save(update_fields=['sprint', 'updated_at'])
    return task


def assign_developers(user, task, user_ids):
    """Replace the task's assignment set. Old and new sets never mix."""
    ensure_internal(user, 'assign developers')
    if not user_ids:
        raise ValidationError('user_ids array is required', field='user_ids')
    users = _distinct_tenant_users(user.tenant_id, user_ids, 'user_ids')

    with transaction.atomic():
        TaskAssignment.objects.filter(task=task).delete()
        TaskAssignment.objects.bulk_create([
            TaskAssignment(tenant_id=task.tenant_id, task=task, user=assignee)
            for assignee in users
        ])
    logger.info(f'Task {task.issue_key} assigned to {[u.pk for u in users]}')
    return users


def close_task(user, task, resolution, resolution_note=None, metadata=None):
    """Close ``task`` as done with a resolution, merging in closing metadata."""
    workflow.validate_resolution(resolution)
    ensure_can_modify(user, task)

    with transaction.atomic():
        task = DevTask.objects.select_for_update().get(pk=task.pk, tenant_id=user.tenant_id)
        task.metadata = MetadataMap(task.metadata).merge(metadata).as_dict()
        task.status = workflow.DONE
        task.resolution = resolution
        task.resolution_note = resolution_note or ''
        task.blocked_reason = ''
        task.closed_at = timezone.now()
        task.save()
    logger.info(f'Task {task.issue_key} closed as {resolution}')
    return task


def delete_task(user, task):
    ensure_internal(user, 'delete tasks')
    issue_key = task.issue_key
    with transaction.atomic():
        TaskAssignment.objects.filter(task=task).delete()
        TicketTaskLink.objects.filter(task=task).delete()
        task.delete()
    logger.info(f'Task {issue_key} deleted by {user.email}')
