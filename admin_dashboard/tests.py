from unittest.mock import patch

import redis
from django.contrib.auth import get_user_model
from django.db import OperationalError
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from courses.models import Section
from enrollment import services
from admin_dashboard.utils import (
    check_database_health,
    check_broker_health,
    get_seat_utilization,
    get_waitlist_sizes
)

User = get_user_model()


class UtilityFunctionsTests(TestCase):
    """Test cases for utility functions"""

    def setUp(self):
        """Set up test data"""
        self.section_a = Section.objects.create(label='Section A', max_capacity=5)
        self.section_b = Section.objects.create(label='Section B', max_capacity=5)

        # Fill Section B and queue two more students
        for i in range(7):
            services.signup(self.section_b.id, f'cs_test_b{i}')
        services.signup(self.section_a.id, 'cs_test_a0')

    def test_database_health_check(self):
        """Test database health check function"""
        result = check_database_health()
        self.assertTrue(result['status'])
        self.assertIsNotNone(result['response_time'])
        self.assertIn('healthy', result['message'].lower())
        self.assertIn('sqlite', result['message'])

    def test_database_health_check_failure(self):
        """Test that a database error is reported instead of raised"""
        with patch('admin_dashboard.utils.connection.cursor', side_effect=OperationalError('server closed the connection')):
            result = check_database_health()

        self.assertFalse(result['status'])
        self.assertIsNone(result['response_time'])
        self.assertIn('server closed the connection', result['message'])

    def test_get_seat_utilization(self):
        """Test seat utilization function"""
        utilization = get_seat_utilization()

        # Waitlisted students do not take seats
        self.assertEqual(utilization['total_seats'], 10)
        self.assertEqual(utilization['filled_seats'], 6)
        self.assertEqual(utilization['utilization_percentage'], 60.0)

    def test_get_waitlist_sizes(self):
        """Test waitlist size per section"""
        sizes = get_waitlist_sizes()

        self.assertEqual([s['label'] for s in sizes], ['Section A', 'Section B'])
        self.assertEqual(sizes[0]['waitlisted'], 0)
        self.assertEqual(sizes[1]['waitlisted'], 2)
        self.assertEqual(sizes[1]['enrolled_count'], 5)

    @override_settings(CELERY_BROKER_URL='memory://')
    def test_broker_health_skips_non_redis(self):
        result = check_broker_health()
        self.assertTrue(result['status'])
        self.assertIsNone(result['queue_depth'])

    @override_settings(CELERY_BROKER_URL='redis://localhost:6399/0')
    def test_broker_health_reports_redis_errors(self):
        with patch('admin_dashboard.utils.redis.from_url') as mock_from_url:
            mock_from_url.return_value.ping.side_effect = redis.ConnectionError('refused')
            result = check_broker_health()

        self.assertFalse(result['status'])
        self.assertIn('refused', result['message'])

    @override_settings(CELERY_BROKER_URL='redis://localhost:6399/0')
    def test_broker_health_queue_depth(self):
        with patch('admin_dashboard.utils.redis.from_url') as mock_from_url:
            mock_from_url.return_value.llen.return_value = 3
            result = check_broker_health()

        self.assertTrue(result['status'])
        self.assertEqual(result['queue_depth'], 3)


class AdminOverviewViewTests(TestCase):
    """Test cases for the admin overview endpoint"""

    def setUp(self):
        self.client = APIClient()
        self.admin_user = User.objects.create_user(username='admin', password='testpass123', is_staff=True)
        self.section = Section.objects.create(label='Section A', max_capacity=1)
        services.signup(self.section.id, 'cs_test_1')
        services.confirm_payment('cs_test_1')
        services.signup(self.section.id, 'cs_test_2')

    def test_overview_requires_staff(self):
        """Test that only staff users can access the overview"""
        response = self.client.get('/api/admin/overview/')
        self.assertIn(response.status_code, (401, 403))

        student = User.objects.create_user(username='student', password='testpass123')
        self.client.force_authenticate(user=student)
        response = self.client.get('/api/admin/overview/')
        self.assertEqual(response.status_code, 403)

    def test_overview_content(self):
        """Test that the overview provides statistics, analytics and health"""
        self.client.force_authenticate(user=self.admin_user)
        response = self.client.get('/api/admin/overview/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual(data['statistics']['enrollments_by_status'], {'PENDING': 0, 'PAID': 1, 'WAITLISTED': 1})
        self.assertEqual(data['statistics']['total_enrollments'], 2)
        self.assertEqual(data['analytics']['seat_utilization']['utilization_percentage'], 100.0)
        self.assertEqual(data['analytics']['sections'][0]['waitlisted'], 1)
        self.assertTrue(data['system_health']['database']['status'])
