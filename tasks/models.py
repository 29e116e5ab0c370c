from django.conf import settings
from django.db import models

from .workflow import (
    STATUS_CHOICES, RESOLUTION_CHOICES, SEVERITY_CHOICES, ENVIRONMENT_CHOICES, TODO
)


class Sprint(models.Model):
    """Time-boxed iteration of a product team."""
    STATUS_CHOICES = [
        ('planning', 'Planning'),
        ('active', 'Active'),
        ('completed', 'Completed'),
    ]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    product = models.ForeignKey('products.Product', on_delete=models.CASCADE, related_name='sprints')
    name = models.CharField(max_length=200)
    goal = models.TextField(blank=True)
    start_date = models.DateField(null=True, blank=True)
    end_date = models.DateField(null=True, blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='planning')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-start_date', '-created_at']

    def __str__(self):
        return f'{self.product.name}: {self.name}'


class DevTask(models.Model):
    """
    Internal unit of engineering work, optionally spawned from a support
    ticket. Severity and environment are only set on bugs.
    """
    TYPE_CHOICES = [
        ('task', 'Task'),
        ('bug', 'Bug'),
    ]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='dev_tasks')
    product = models.ForeignKey('products.Product', on_delete=models.PROTECT, related_name='dev_tasks')
    feature = models.ForeignKey(
        'products.Feature',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='dev_tasks'
    )
    sprint = models.ForeignKey(
        Sprint,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='tasks',
        help_text='Empty means backlog'
    )
    issue_key = models.CharField(max_length=40, db_index=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    type = models.CharField(max_length=10, choices=TYPE_CHOICES, default='task')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=TODO)
    priority = models.PositiveSmallIntegerField(default=3)

    story_points = models.PositiveSmallIntegerField(null=True, blank=True)
    estimate = models.DecimalField(
        max_digits=7, decimal_places=2, null=True, blank=True,
        help_text='Estimated hours'
    )
    actual_time = models.DecimalField(
        max_digits=7, decimal_places=2, null=True, blank=True,
        help_text='Hours spent'
    )
    due_date = models.DateField(null=True, blank=True)
    labels = models.JSONField(default=list, blank=True)
    blocked_reason = models.TextField(blank=True)

    # Bugs only
    severity = models.CharField(max_length=10, choices=SEVERITY_CHOICES, null=True, blank=True)
    environment = models.CharField(max_length=15, choices=ENVIRONMENT_CHOICES, null=True, blank=True)

    implementor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='implementing_tasks'
    )
    developer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='developing_tasks'
    )
    tester = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='testing_tasks'
    )

    module = models.ForeignKey('products.Module', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    component = models.ForeignKey('products.Component', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')
    addon = models.ForeignKey('products.Addon', on_delete=models.SET_NULL, null=True, blank=True, related_name='+')

    support_ticket = models.ForeignKey(
        'tickets.Ticket',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='spawned_tasks'
    )
    metadata = models.JSONField(default=dict, blank=True)

    resolution = models.CharField(max_length=20, choices=RESOLUTION_CHOICES, blank=True)
    resolution_note = models.TextField(blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='created_dev_tasks'
    )
    reporter = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name='reported_dev_tasks'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'issue_key'], name='unique_dev_task_issue_key'),
        ]
        indexes = [
            models.Index(fields=['tenant', 'status']),
        ]

    def __str__(self):
        return f'{self.issue_key}: {self.title}'

    @property
    def is_bug(self):
        return self.type == 'bug'


class TaskAssignment(models.Model):
    """A developer working on a task. Replaced as a whole set by assign_developers."""
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    task = models.ForeignKey(DevTask, on_delete=models.CASCADE, related_name='assignments')
    user = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='task_assignments')
    assigned_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['assigned_at']
        constraints = [
            models.UniqueConstraint(fields=['task', 'user'], name='unique_task_assignment'),
        ]

    def __str__(self):
        return f'{self.user} on {self.task.issue_key}'
