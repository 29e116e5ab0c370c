"""
Test cases for dev task and sprint API endpoints.
"""
from unittest import mock

from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase, APIClient

from tasks import lifecycle
from tasks.models import DevTask, Sprint, TaskAssignment
from tasks.tests.test_utils import TestDataMixin
from tickets.models import TicketTaskLink


class DevTaskAPITest(APITestCase, TestDataMixin):
    """Test the task CRUD endpoints."""

    def setUp(self):
        """Set up a team and an authenticated staff client."""
        self.setUpTeam()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)

    def test_create_task(self):
        """Test creating a task under a feature."""
        data = {'feature_id': self.feature.pk, 'title': 'Paginate invoices', 'story_points': 5}
        response = self.client.post(reverse('tasks:task-list'), data, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['task']['issue_key'], 'CRM-T001')
        self.assertEqual(response.data['task']['story_points'], 5)

    def test_create_forbidden_for_clients(self):
        """Test client users cannot create tasks."""
        self.client.force_authenticate(user=self.customer)
        data = {'feature_id': self.feature.pk, 'title': 'X'}
        response = self.client.post(reverse('tasks:task-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_partial_update_merges_metadata(self):
        """Test PATCH merges metadata into the stored map."""
        task = self.create_test_task(metadata={'ci': 'green'})
        url = reverse('tasks:task-detail', args=[task.pk])
        response = self.client.patch(url, {'metadata': {'coverage': 87}}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['task']['metadata'], {'ci': 'green', 'coverage': 87})

    def test_unassigned_user_cannot_update(self):
        """Test a non-internal user outside the assignments gets 403."""
        task = self.create_test_task()
        self.client.force_authenticate(user=self.customer)
        response = self.client.patch(reverse('tasks:task-detail', args=[task.pk]), {'title': 'Mine'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['error'], 'Forbidden: Not assigned to this task')

    def test_story_points_endpoint(self):
        """Test story points accept Fibonacci values only."""
        task = self.create_test_task(story_points=3)
        url = reverse('tasks:task-points', args=[task.pk])

        response = self.client.patch(url, {'story_points': 4}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        task.refresh_from_db()
        self.assertEqual(task.story_points, 3)

        response = self.client.patch(url, {'story_points': 8}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['task']['story_points'], 8)

    def test_sprint_endpoint(self):
        """Test moving a task into a sprint and back to the backlog."""
        task = self.create_test_task()
        sprint = Sprint.objects.create(tenant=self.tenant, product=self.product, name='Sprint 1')
        url = reverse('tasks:task-sprint', args=[task.pk])

        response = self.client.patch(url, {'sprint_id': sprint.pk}, format='json')
        self.assertEqual(response.data['task']['sprint'], sprint.pk)
        response = self.client.patch(url, {'sprint_id': None}, format='json')
        self.assertIsNone(response.data['task']['sprint'])

    def test_assign_replaces_developers(self):
        """Test the assign endpoint replaces the assignment set."""
        task = self.create_test_task(assignees=[self.developer.pk])
        url = reverse('tasks:task-assign', args=[task.pk])
        response = self.client.post(url, {'user_ids': [self.tester.pk]}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['message'], 'Developers assigned successfully')
        self.assertEqual([a['user']['id'] for a in response.data['task']['assignments']], [self.tester.pk])

    def test_assign_empty_list(self):
        """Test an empty user_ids list answers 400."""
        task = self.create_test_task()
        response = self.client.post(reverse('tasks:task-assign', args=[task.pk]), {'user_ids': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_close_with_invalid_resolution(self):
        """Test closing with an unknown resolution answers 400."""
        task = self.create_test_task()
        url = reverse('tasks:task-close', args=[task.pk])
        response = self.client.patch(url, {'resolution': 'shipped'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['field'], 'resolution')

    def test_assigned_user_can_close(self):
        """Test an assigned non-internal user can close the task."""
        task = self.create_test_task()
        lifecycle.assign_developers(self.staff, task, [self.customer.pk])
        self.client.force_authenticate(user=self.customer)

        url = reverse('tasks:task-close', args=[task.pk])
        response = self.client.patch(url, {'resolution': 'completed', 'metadata': {'pr': 12}}, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['task']['status'], 'done')
        self.assertEqual(response.data['task']['metadata'], {'pr': 12})

    def test_delete_task(self):
        """Test deleting a task removes its assignments and ticket links."""
        ticket = self.create_test_ticket()
        task = self.create_test_task(assignees=[self.developer.pk])
        TicketTaskLink.objects.create(tenant=self.tenant, ticket=ticket, task=task)

        response = self.client.delete(reverse('tasks:task-detail', args=[task.pk]))
        self.assertEqual(response.status_code, status.HTTP_204_NO_CONTENT)
        self.assertFalse(DevTask.objects.exists())
        self.assertFalse(TaskAssignment.objects.exists())
        self.assertFalse(TicketTaskLink.objects.exists())

    def test_my_tasks(self):
        """Test my-tasks lists only the current user's assignments."""
        mine = self.create_test_task(title='Mine', assignees=[self.developer.pk])
        self.create_test_task(title='Theirs', assignees=[self.tester.pk])
        self.client.force_authenticate(user=self.developer)

        response = self.client.get(reverse('tasks:task-my-tasks'))
        self.assertEqual([t['id'] for t in response.data['results']], [mine.pk])

    def test_other_tenant_task(self):
        """Test tasks of another tenant answer 404."""
        task = self.create_test_task()
        self.client.force_authenticate(user=self.create_test_user(self.create_test_tenant()))
        response = self.client.get(reverse('tasks:task-detail', args=[task.pk]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SpawnFromTicketAPITest(APITestCase, TestDataMixin):
    """Test the spawn-from-ticket endpoints."""

    def setUp(self):
        self.setUpTeam()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)
        self.ticket = self.create_test_ticket(user=self.customer, title='Export fails')

    def test_spawn_bug(self):
        """Test the support ticket to bug scenario."""
        url = reverse('tasks:task-spawn-from-ticket', args=[self.ticket.issue_key])
        with self.captureOnCommitCallbacks(execute=True):
            response = self.client.post(url, self.role_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(response.data['task']['issue_key'], 'CRM-B001')
        self.assertEqual(response.data['task']['support_ticket_key'], 'SUP-S001')
        self.assertEqual(response.data['message'], 'Task CRM-B001 created from ticket SUP-S001')

        ticket = self.client.get(reverse('tickets:ticket-detail', args=[self.ticket.pk])).data
        self.assertEqual(ticket['status'], 'in_progress')
        self.assertEqual(ticket['assigned_to']['id'], self.implementor.pk)

        tasks = self.client.get(reverse('tickets:ticket-tasks', args=[self.ticket.pk])).data
        self.assertEqual([t['issue_key'] for t in tasks], ['CRM-B001'])

    def test_spawn_missing_roles(self):
        """Test missing roles answer 400 with the missing fields."""
        url = reverse('tasks:task-spawn-from-ticket', args=[self.ticket.pk])
        response = self.client.post(url, {'implementor_id': self.implementor.pk}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['missing'], ['developer_id', 'tester_id'])

    def test_spawn_rolls_back_on_link_failure(self):
        """Test nothing is written when linking the ticket fails."""
        url = reverse('tasks:task-spawn-from-ticket', args=[self.ticket.pk])
        with mock.patch('tickets.links.link_ticket_to_task', side_effect=RuntimeError('link failed')):
            response = self.client.post(url, self.role_payload(), format='json')

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertFalse(DevTask.objects.exists())
        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, 'pending_internal_review')

    def test_spawn_legacy(self):
        """Test the legacy endpoint requires a feature and leaves the ticket alone."""
        url = reverse('tasks:task-spawn-from-ticket-legacy', args=[self.ticket.pk])
        response = self.client.post(url, {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        response = self.client.post(url, {'feature_id': self.feature.pk}, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.ticket.refresh_from_db()
        self.assertEqual(self.ticket.status, 'pending_internal_review')

    def test_spawn_forbidden_for_clients(self):
        """Test client users cannot spawn tasks."""
        self.client.force_authenticate(user=self.customer)
        url = reverse('tasks:task-spawn-from-ticket', args=[self.ticket.pk])
        response = self.client.post(url, self.role_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_unknown_ticket(self):
        """Test spawning from an unknown ticket answers 404."""
        url = reverse('tasks:task-spawn-from-ticket', args=['SUP-S999'])
        response = self.client.post(url, self.role_payload(), format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class SprintAPITest(APITestCase, TestDataMixin):
    """Test the sprint endpoints."""

    def setUp(self):
        self.setUpTeam()
        self.client = APIClient()
        self.client.force_authenticate(user=self.staff)

    def test_create_sprint(self):
        """Test creating a sprint for a product."""
        data = {'product': self.product.pk, 'name': 'Sprint 1', 'start_date': '2026-01-05', 'end_date': '2026-01-16'}
        response = self.client.post(reverse('tasks:sprint-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Sprint.objects.get().tenant, self.tenant)

    def test_end_before_start(self):
        """Test the date order is validated."""
        data = {'product': self.product.pk, 'name': 'Sprint 1', 'start_date': '2026-01-16', 'end_date': '2026-01-05'}
        response = self.client.post(reverse('tasks:sprint-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_product_of_other_tenant(self):
        """Test sprints cannot target another tenant's product."""
        other_product = self.create_test_product(self.create_test_tenant())
        data = {'product': other_product.pk, 'name': 'Sprint 1'}
        response = self.client.post(reverse('tasks:sprint-list'), data, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_clients_forbidden(self):
        """Test client users cannot see sprints."""
        self.client.force_authenticate(user=self.customer)
        response = self.client.get(reverse('tasks:sprint-list'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
