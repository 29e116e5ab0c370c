"""
Test utilities and fixtures for tickets tests.
Provides helper functions for creating test data.
"""
from products.tests.test_utils import TestDataMixin as ProductTestDataMixin
from tickets import lifecycle
from tickets.models import TicketAuditLog


class TestDataMixin(ProductTestDataMixin):
    """Mixin providing ticket creation helpers on top of the tenant/product ones."""

    def setUpTenant(self):
        """One tenant with a product, a client, an internal user and a client user."""
        self.tenant = self.create_test_tenant()
        self.product = self.create_test_product(self.tenant)
        self.acme = self.create_test_client(self.tenant)
        self.staff = self.create_test_user(self.tenant, email='staff@tracker.test', role='support')
        self.customer = self.create_client_user(self.tenant, self.acme, email='jane@acme.com')

    def create_test_ticket(self, user=None, product=None, title='Login page is broken', **data):
        """Create a ticket through the lifecycle, committing its audit entries."""
        payload = {
            'title': title,
            'description': 'Users get a 500 after submitting the form',
            'product_id': (product or self.product).pk,
        }
        payload.update(data)
        with self.captureOnCommitCallbacks(execute=True):
            return lifecycle.create_ticket(user or self.staff, payload)

    @staticmethod
    def audit_types(ticket):
        return list(
            TicketAuditLog.objects.filter(ticket_id=ticket.pk)
            .order_by('created_at', 'id')
            .values_list('change_type', flat=True)
        )
