from django.db import models


class Tenant(models.Model):
    """
    Tenant model for multi-tenancy support.
    Each tenant is a separate organization running its own tracker; every
    ticket, task and product row carries the owning tenant.
    """
    PLAN_CHOICES = [
        ('free', 'Free'),
        ('starter', 'Starter'),
        ('business', 'Business'),
        ('enterprise', 'Enterprise'),
    ]

    name = models.CharField(max_length=100)
    slug = models.SlugField(max_length=63, unique=True)
    plan = models.CharField(max_length=20, choices=PLAN_CHOICES, default='starter')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return self.name


class Client(models.Model):
    """A customer of the tenant. Client users raise tickets on its behalf."""
    TYPE_CHOICES = [
        ('owner', 'Owner'),
        ('customer', 'Customer'),
        ('partner', 'Partner'),
    ]
    TIER_CHOICES = [
        ('enterprise', 'Enterprise'),
        ('business', 'Business'),
        ('starter', 'Starter'),
    ]

    tenant = models.ForeignKey(Tenant, on_delete=models.CASCADE, related_name='clients')
    name = models.CharField(max_length=200)
    domain = models.CharField(
        max_length=255,
        blank=True,
        help_text='Email domain used to match users (e.g., acme.com)'
    )
    type = models.CharField(max_length=20, choices=TYPE_CHOICES, default='customer')
    tier = models.CharField(max_length=20, choices=TIER_CHOICES, default='starter')
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['name']
        constraints = [
            models.UniqueConstraint(fields=['tenant', 'name'], name='unique_client_name_per_tenant'),
        ]

    def __str__(self):
        return f'{self.name} ({self.tenant.name})'
