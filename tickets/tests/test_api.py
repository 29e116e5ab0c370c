"""
Test cases for tickets API endpoints.
Tests the lifecycle routes, error payloads and per-user visibility.
"""
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from tickets.models import Ticket, TicketLink, TicketWatcher
from tickets.tests.test_utils import TestDataMixin


class TicketAPITest(APITestCase, TestDataMixin):
    """Test the ticket create, read and update endpoints."""

    def setUp(self):
        """Set up a tenant and an authenticated staff client."""
        self.setUpTenant()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)

    def test_requires_authentication(self):
        """Test anonymous requests are rejected."""
        self.client.force_authenticate(user=None)
        response = self.client.get(reverse('tickets:ticket-list'))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_create_ticket(self):
        """Test staff creating a product-scoped ticket."""
        data = {
            'title': 'Invoices export times out',
            'type': 'bug',
            'product_id': self.product.pk,
            'internal_priority': 1,
        }
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(reverse('tickets:ticket-list'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        ticket = response.data['ticket']
        self.assertEqual(ticket['issue_key'], 'CRM-B001')
        self.assertEqual(ticket['status'], 'open')
        self.assertEqual(ticket['effective_priority'], 1)

    def test_client_creates_support_ticket(self):
        """Test a client support ticket lands in triage with a global key."""
        self.client.force_authenticate(user=self.customer)
        data = {'title': 'Cannot log in', 'product_id': self.product.pk, 'internal_priority': 1}
        response = self.client.post(reverse('tickets:ticket-list'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        ticket = response.data['ticket']
        self.assertEqual(ticket['issue_key'], 'SUP-S001')
        self.assertEqual(ticket['status'], 'pending_internal_review')
        self.assertNotIn('internal_priority', ticket)
        self.assertIsNone(Ticket.objects.get().internal_priority)

    def test_create_without_title(self):
        """Test the error payload for a missing title."""
        response = self.client.post(
            reverse('tickets:ticket-list'), {'product_id': self.product.pk}, format='json'
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['code'], 'validation_error')
        self.assertEqual(response.data['field'], 'title')

    def test_create_with_invalid_type(self):
        """Test serializer errors for an unknown type."""
        data = {'title': 'X', 'product_id': self.product.pk, 'type': 'incident'}
        response = self.client.post(reverse('tickets:ticket-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('type', response.data)

    def test_retrieve_by_issue_key(self):
        """Test detail routes accept the issue key."""
        ticket = self.create_test_ticket()
        response = self.client.get(reverse('tickets:ticket-detail', args=[ticket.issue_key]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['id'], ticket.pk)

    def test_list_is_scoped_to_user(self):
        """Test client users only list their own tickets."""
        self.create_test_ticket(title='Internal')
        self.create_test_ticket(user=self.customer, title='Mine')

        response = self.client.get(reverse('tickets:ticket-list'))
        self.assertEqual(response.data['count'], 2)

        self.client.force_authenticate(user=self.customer)
        response = self.client.get(reverse('tickets:ticket-list'))
        self.assertEqual([t['title'] for t in response.data['results']], ['Mine'])

    def test_filter_by_status(self):
        """Test the status filter."""
        self.create_test_ticket(title='Open one')
        self.create_test_ticket(user=self.customer, title='Pending one')
        response = self.client.get(reverse('tickets:ticket-list'), {'status': 'pending_internal_review'})
        self.assertEqual([t['title'] for t in response.data['results']], ['Pending one'])

    def test_other_tenant_ticket_is_not_found(self):
        """Test tickets of another tenant answer 404."""
        other_tenant = self.create_test_tenant()
        other_user = self.create_test_user(other_tenant)
        ticket = self.create_test_ticket(user=other_user, product=self.create_test_product(other_tenant))

        response = self.client.get(reverse('tickets:ticket-detail', args=[ticket.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['code'], 'not_found')

    def test_other_client_ticket_is_forbidden(self):
        """Test same-tenant tickets outside the user's client answer 403."""
        ticket = self.create_test_ticket(user=self.customer)
        globex = self.create_test_client(self.tenant, name='Globex')
        self.client.force_authenticate(user=self.create_client_user(self.tenant, globex))

        response = self.client.get(reverse('tickets:ticket-detail', args=[ticket.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partial_update(self):
        """Test updating status and assignment."""
        ticket = self.create_test_ticket()
        url = reverse('tickets:ticket-detail', args=[ticket.pk])
        data = {'status': 'in_progress', 'assigned_to_id': self.staff.pk}
        response = self.client.patch(url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ticket']['status'], 'in_progress')
        self.assertEqual(response.data['ticket']['assigned_to']['id'], self.staff.pk)

    def test_disallowed_transition(self):
        """Test an illegal status change answers 400."""
        ticket = self.create_test_ticket()
        url = reverse('tickets:ticket-detail', args=[ticket.pk])
        self.client.patch(url, {'status': 'cancelled'}, format='json')

        response = self.client.patch(url, {'status': 'open'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'status')


class TicketCommandAPITest(APITestCase, TestDataMixin):
    """Test the close, cancel, reopen and triage endpoints."""

    def setUp(self):
        self.setUpTenant()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)
        self.ticket = self.create_test_ticket()

    def test_close(self):
        """Test closing with a resolution."""
        url = reverse('tickets:ticket-close', args=[self.ticket.pk])
        response = self.client.post(url, {'resolution': 'fixed', 'reason': 'Deployed'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['ticket']['status'], 'closed')
        self.assertIsNotNone(response.data['ticket']['closed_at'])

    def test_cancel(self):
        """Test cancelling a ticket."""
        url = reverse('tickets:ticket-cancel', args=[self.ticket.pk])
        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.data['ticket']['status'], 'cancelled')

    def test_reopen_requires_resolved(self):
        """Test reopening an open ticket answers 400."""
        url = reverse('tickets:ticket-reopen', args=[self.ticket.pk])
        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_triage_queue(self):
        """Test the triage queue lists pending client tickets only."""
        pending = self.create_test_ticket(user=self.customer, title='Pending')
        response = self.client.get(reverse('tickets:ticket-triage'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([t['id'] for t in response.data['results']], [pending.pk])

    def test_triage_forbidden_for_clients(self):
        """Test client users cannot see the triage queue."""
        self.client.force_authenticate(user=self.customer)
        response = self.client.get(reverse('tickets:ticket-triage'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class TicketCommentAPITest(APITestCase, TestDataMixin):
    """Test comment and attachment endpoints."""

    def setUp(self):
        self.setUpTenant()
        self.client = APIClient()
        self.ticket = self.create_test_ticket(user=self.customer)
        self.url = reverse('tickets:ticket-comments', args=[self.ticket.pk])

    def test_internal_comment_hidden_from_client(self):
        """Test client users do not receive internal notes."""
        self.client.force_authenticate(user=self.staff)
        response = self.client.post(self.url, {'content': 'Check the logs', 'is_internal': True}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['comment']['is_internal'])
        self.client.post(self.url, {'content': 'Working on it'}, format='json')

        self.client.force_authenticate(user=self.customer)
        response = self.client.get(self.url)
        self.assertEqual([c['content'] for c in response.data], ['Working on it'])

    def test_upload_attachments(self):
        """Test multipart upload of several files."""
        self.client.force_authenticate(user=self.customer)
        url = reverse('tickets:ticket-attachments', args=[self.ticket.pk])
        files = [
            SimpleUploadedFile('trace.txt', b'Traceback ...', content_type='text/plain'),
            SimpleUploadedFile('screen.png', b'\x89PNG', content_type='image/png'),
        ]
        response = self.client.post(url, {'files': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(
            sorted(a['file_name'] for a in response.data['attachments']),
            ['screen.png', 'trace.txt']
        )

    def test_upload_without_files(self):
        """Test an empty upload answers 400."""
        self.client.force_authenticate(user=self.staff)
        url = reverse('tickets:ticket-attachments', args=[self.ticket.pk])
        response = self.client.post(url, {}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_colleague_from_same_client_can_upload(self):
        """Test a non-admin colleague of the ticket's client can attach files."""
        colleague = self.create_client_user(self.tenant, self.acme, email='colleague@acme.com')
        self.client.force_authenticate(user=colleague)
        url = reverse('tickets:ticket-attachments', args=[self.ticket.pk])
        files = [SimpleUploadedFile('repro.txt', b'Steps to reproduce', content_type='text/plain')]
        response = self.client.post(url, {'files': files}, format='multipart')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['attachments'][0]['file_name'], 'repro.txt')
        self.assertEqual(self.ticket.attachments.get().uploaded_by, colleague)

    def test_other_client_cannot_upload(self):
        """Test users of another client are refused."""
        globex = self.create_test_client(self.tenant, name='Globex', domain='globex.com')
        self.client.force_authenticate(user=self.create_client_user(self.tenant, globex))
        url = reverse('tickets:ticket-attachments', args=[self.ticket.pk])
        files = [SimpleUploadedFile('repro.txt', b'...', content_type='text/plain')]
        response = self.client.post(url, {'files': files}, format='multipart')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(self.ticket.attachments.exists())


class TicketLinkAPITest(APITestCase, TestDataMixin):
    """Test the link endpoints."""

    def setUp(self):
        self.setUpTenant()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)
        self.source = self.create_test_ticket(title='Source')
        self.target = self.create_test_ticket(title='Target')
        self.url = reverse('tickets:ticket-links', args=[self.source.pk])

    def test_create_link(self):
        """Test creating a link returns both tickets."""
        data = {'target_ticket_id': self.target.issue_key, 'link_type': 'blocks'}
        response = self.client.post(self.url, data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['link']['link_type'], 'blocks')
        self.assertEqual(response.data['source_ticket']['id'], self.source.pk)
        self.assertEqual(response.data['target_ticket']['id'], self.target.pk)

    def test_duplicate_link_conflict(self):
        """Test the same link twice answers 409."""
        data = {'target_ticket_id': self.target.pk, 'link_type': 'blocks'}
        self.client.post(self.url, data, format='json')
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(TicketLink.objects.count(), 1)

    def test_self_link(self):
        """Test linking a ticket to itself answers 400."""
        data = {'target_ticket_id': self.source.pk, 'link_type': 'relates_to'}
        response = self.client.post(self.url, data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_list_from_target_side(self):
        """Test incoming links are listed with the inverse type."""
        self.client.post(self.url, {'target_ticket_id': self.target.pk, 'link_type': 'duplicates'}, format='json')
        response = self.client.get(reverse('tickets:ticket-links', args=[self.target.pk]))
        self.assertEqual(response.data[0]['link_type'], 'duplicated_by')
        self.assertEqual(response.data[0]['ticket']['id'], self.source.pk)

    def test_delete_link(self):
        """Test deleting a link."""
        response = self.client.post(
            self.url, {'target_ticket_id': self.target.pk, 'link_type': 'blocks'}, format='json'
        )
        link_id = response.data['link']['id']
        url = reverse('tickets:ticket-delete-link', args=[self.source.pk, link_id])

        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        response = self.client.delete(url)
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_client_cannot_link_to_ticket_of_another_client(self):
        """Test tickets outside the client's scope read as not found."""
        globex = self.create_test_client(self.tenant, name='Globex', domain='globex.com')
        outsider = self.create_client_user(self.tenant, globex, email='ops@globex.com')
        secret = self.create_test_ticket(user=outsider, title='Globex secret outage')
        own = self.create_test_ticket(user=self.customer, title='Acme invoice export')

        self.client.force_authenticate(user=self.customer)
        url = reverse('tickets:ticket-links', args=[own.pk])
        response = self.client.post(url, {'target_ticket_id': secret.issue_key, 'link_type': 'relates_to'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertNotIn('Globex secret outage', str(response.data))
        self.assertFalse(TicketLink.objects.exists())

    def test_links_to_hidden_tickets_are_not_listed(self):
        """Test a client only sees links whose other ticket they can see."""
        own = self.create_test_ticket(user=self.customer, title='Acme invoice export')
        TicketLink.objects.create(tenant=self.tenant, source=own, target=self.target, link_type='relates_to')

        self.client.force_authenticate(user=self.customer)
        response = self.client.get(reverse('tickets:ticket-links', args=[own.pk]))
        self.assertEqual(response.data, [])

        self.client.force_authenticate(user=self.staff)
        response = self.client.get(reverse('tickets:ticket-links', args=[own.pk]))
        self.assertEqual(len(response.data), 1)


class TicketWatcherAPITest(APITestCase, TestDataMixin):
    """Test the watcher endpoints."""

    def setUp(self):
        self.setUpTenant()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)
        self.ticket = self.create_test_ticket()
        self.url = reverse('tickets:ticket-watchers', args=[self.ticket.pk])

    def test_add_list_remove(self):
        """Test adding, listing and removing an external watcher."""
        response = self.client.post(self.url, {'email': 'ops@vendor.io'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['watcher']['is_external'])

        response = self.client.get(self.url)
        self.assertEqual(len(response.data), 1)

        response = self.client.delete(self.url, {'email': 'ops@vendor.io'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertEqual(TicketWatcher.objects.count(), 0)

    def test_duplicate_watcher(self):
        """Test watching twice answers 409."""
        self.client.post(self.url, {'user_id': self.customer.pk}, format='json')
        response = self.client.post(self.url, {'user_id': self.customer.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_client_adds_colleague_and_self(self):
        """Test client users may add themselves and people from their own client."""
        ticket = self.create_test_ticket(user=self.customer)
        url = reverse('tickets:ticket-watchers', args=[ticket.pk])
        colleague = self.create_client_user(self.tenant, self.acme, email='colleague@acme.com')
        self.client.force_authenticate(user=self.customer)

        response = self.client.post(url, {'user_id': self.customer.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        response = self.client.post(url, {'email': 'COLLEAGUE@acme.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertFalse(response.data['watcher']['is_external'])
        self.assertTrue(TicketWatcher.objects.filter(ticket=ticket, user=colleague).exists())

    def test_client_cannot_add_outsiders(self):
        """Test client users cannot add staff, other clients or external emails."""
        ticket = self.create_test_ticket(user=self.customer)
        url = reverse('tickets:ticket-watchers', args=[ticket.pk])
        globex = self.create_test_client(self.tenant, name='Globex', domain='globex.com')
        self.create_client_user(self.tenant, globex, email='ops@globex.com')
        self.client.force_authenticate(user=self.customer)

        response = self.client.post(url, {'user_id': self.staff.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        response = self.client.post(url, {'email': 'ops@globex.com'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.post(url, {'email': 'nobody@vendor.io'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertNotIn('is_external', str(response.data))
        self.assertFalse(TicketWatcher.objects.exists())


class TicketHistoryAPITest(APITestCase, TestDataMixin):
    """Test the audit history endpoint."""

    def setUp(self):
        self.setUpTenant()
        self.client = APIClient()
        self.ticket = self.create_test_ticket(user=self.customer)
        self.url = reverse('tickets:ticket-history', args=[self.ticket.pk])

    def test_history_hides_internal_overrides_from_clients(self):
        """Test internal priority changes are only shown to staff."""
        self.client.force_authenticate(user=self.staff)
        with self.captureOnCommitCallbacks(execute=True):
            self.client.patch(
                reverse('tickets:ticket-detail', args=[self.ticket.pk]),
                {'status': 'open', 'internal_priority': 1},
                format='json'
            )

        response = self.client.get(self.url)
        self.assertEqual(
            [entry['change_type'] for entry in response.data],
            ['created', 'status_changed', 'priority_changed']
        )

        self.client.force_authenticate(user=self.customer)
        response = self.client.get(self.url)
        self.assertEqual(
            [entry['change_type'] for entry in response.data],
            ['created', 'status_changed']
        )

    def test_tasks_forbidden_for_clients(self):
        """Test client users cannot list linked dev tasks."""
        self.client.force_authenticate(user=self.customer)
        response = self.client.get(reverse('tickets:ticket-tasks', args=[self.ticket.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
