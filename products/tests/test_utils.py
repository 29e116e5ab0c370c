"""
Test utilities and fixtures shared by the tracker apps.
Provides helper functions for creating tenants, users and the product tree.
"""
from django.contrib.auth import get_user_model
from tenants.models import Tenant, Client
from products.models import Product, Module, Component, Addon, Epic, Feature

User = get_user_model()


class TestDataMixin:
    """Mixin providing test data creation methods."""

    _user_counter = 0
    _tenant_counter = 0

    @classmethod
    def create_test_tenant(cls, name=None, **kwargs):
        """Create a tenant with a unique slug."""
        cls._tenant_counter += 1
        if name is None:
            name = f'Tenant {cls._tenant_counter}'
        defaults = {
            'slug': f'tenant-{cls._tenant_counter}',
            'plan': 'business',
        }
        defaults.update(kwargs)
        return Tenant.objects.create(name=name, **defaults)

    @staticmethod
    def create_test_client(tenant, name='Acme Corp', **kwargs):
        """Create a customer of the tenant."""
        defaults = {
            'domain': 'acme.com',
            'type': 'customer',
        }
        defaults.update(kwargs)
        return Client.objects.create(tenant=tenant, name=name, **defaults)

    @classmethod
    def create_test_user(cls, tenant, email=None, password='testpass123', **kwargs):
        """Create a test user with unique email. Internal unless a client is given."""
        if email is None:
            cls._user_counter += 1
            email = f'test{cls._user_counter}@example.com'

        defaults = {
            'first_name': 'Test',
            'last_name': 'User',
            'is_active': True,
        }
        defaults.update(kwargs)

        return User.objects.create_user(
            email=email,
            password=password,
            tenant=tenant,
            **defaults
        )

    @classmethod
    def create_client_user(cls, tenant, client, **kwargs):
        """Create a user belonging to one of the tenant's clients."""
        return cls.create_test_user(tenant, client=client, **kwargs)

    @staticmethod
    def create_test_product(tenant, name='CRM Suite', code='CRM', **kwargs):
        """Create a product with an issue-key code."""
        return Product.objects.create(tenant=tenant, name=name, code=code, **kwargs)

    @staticmethod
    def create_test_epic(product, title='Onboarding', **kwargs):
        return Epic.objects.create(
            tenant=product.tenant, product=product, title=title, **kwargs
        )

    @classmethod
    def create_test_feature(cls, product=None, epic=None, title='Signup flow', **kwargs):
        """Create a feature, with a fresh epic under ``product`` unless one is given."""
        if epic is None:
            epic = cls.create_test_epic(product)
        return Feature.objects.create(
            tenant=epic.tenant, epic=epic, title=title, **kwargs
        )

    @staticmethod
    def create_test_structure(product):
        """Create one module, one component in it, and one addon for ``product``."""
        module = Module.objects.create(tenant=product.tenant, product=product, name='Billing')
        component = Component.objects.create(tenant=product.tenant, module=module, name='Invoices')
        addon = Addon.objects.create(tenant=product.tenant, product=product, name='Exports')
        return module, component, addon
