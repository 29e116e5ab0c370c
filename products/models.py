from django.conf import settings
from django.db import models


class Product(models.Model):
    """A product owned by the tenant. Its code prefixes issue keys (e.g. CRM-B001)."""
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='products')
    name = models.CharField(max_length=200)
    code = models.CharField(
        max_length=20,
        blank=True,
        help_text='Issue key prefix, e.g. CRM. Keys cannot be generated until it is set.'
    )
    description = models.TextField(blank=True)

    # Default team for dev tasks
    default_implementor = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    default_developer = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    default_tester = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(
                fields=['tenant', 'code'],
                condition=~models.Q(code=''),
                name='unique_product_code_per_tenant',
            ),
        ]

    def __str__(self):
        return f'{self.name} ({self.code})' if self.code else self.name

    def save(self, *args, **kwargs):
        self.code = (self.code or '').strip().upper()
        super().save(*args, **kwargs)


class Module(models.Model):
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='modules')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f'{self.product.name} / {self.name}'


class Component(models.Model):
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name='components')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f'{self.module} / {self.name}'


class Addon(models.Model):
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='addons')
    name = models.CharField(max_length=200)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f'{self.product.name} + {self.name}'


class Epic(models.Model):
    """Internal development planning container under a product."""
    STATUS_CHOICES = [
        ('backlog', 'Backlog'),
        ('planned', 'Planned'),
        ('in_progress', 'In Progress'),
        ('completed', 'Completed'),
        ('cancelled', 'Cancelled'),
    ]

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='epics')
    issue_key = models.CharField(max_length=40, blank=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='backlog')
    priority = models.PositiveSmallIntegerField(default=3)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.issue_key} {self.title}'.strip()


class Feature(models.Model):
    """Part of an epic. Dev tasks hang off features."""
    STATUS_CHOICES = Epic.STATUS_CHOICES

    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    epic = models.ForeignKey(Epic, on_delete=models.CASCADE, related_name='features')
    issue_key = models.CharField(max_length=40, blank=True)
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='backlog')
    priority = models.PositiveSmallIntegerField(default=3)
    acceptance_criteria = models.TextField(blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='+'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f'{self.issue_key} {self.title}'.strip()


class ProductSequence(models.Model):
    """Per-product, per-type issue number counter. Created on first use."""
    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='sequences')
    issue_type = models.CharField(max_length=1)
    next_num = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['product', 'issue_type'], name='unique_product_sequence'),
        ]

    def __str__(self):
        return f'{self.product.code}-{self.issue_type}: next {self.next_num}'


class GlobalTicketCounter(models.Model):
    """Tenant-wide counter for client tickets raised before product triage (SUP-S###)."""
    tenant = models.ForeignKey('tenants.Tenant', on_delete=models.CASCADE, related_name='+')
    issue_type = models.CharField(max_length=1)
    next_num = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'issue_type'], name='unique_global_ticket_counter'),
        ]

    def __str__(self):
        return f'{self.tenant} {self.issue_type}: next {self.next_num}'
