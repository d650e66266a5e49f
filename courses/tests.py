from io import StringIO

from django.core.cache import cache
from django.core.cache.backends.locmem import LocMemCache
from django.core.management import call_command
from django.db import transaction
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from courses.capacity import release_seat, try_admit
from courses.models import Section
from courses.throttling import FixedWindowRateLimiter


class CapacityTrackerTests(TestCase):
    """Test cases for seat accounting"""

    def setUp(self):
        self.section = Section.objects.create(label='Section A', max_capacity=2)

    def test_admits_until_full(self):
        """Test that the (M+1)-th admission is refused and the counter stops at M"""
        with transaction.atomic():
            results = [try_admit(self.section.id) for _ in range(3)]

        self.assertEqual([r.admitted for r in results], [True, True, False])
        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 2)
        self.assertEqual(self.section.status, Section.Status.FULL)
        self.assertEqual(self.section.seats_left, 0)

    def test_rollback_undoes_admission(self):
        """Test that a failed enrollment write leaves the seat count unchanged"""
        with self.assertRaises(RuntimeError):
            with transaction.atomic():
                try_admit(self.section.id)
                raise RuntimeError('enrollment insert failed')

        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 0)

    def test_release_reopens_section(self):
        with transaction.atomic():
            try_admit(self.section.id)
            try_admit(self.section.id)
            section = release_seat(self.section.id)

        self.assertEqual(section.enrolled_count, 1)
        self.assertEqual(section.status, Section.Status.OPEN)

    def test_release_never_goes_negative(self):
        with transaction.atomic():
            section = release_seat(self.section.id)
        self.assertEqual(section.enrolled_count, 0)


class FixedWindowRateLimiterTests(SimpleTestCase):
    """Test cases for the fixed window limiter"""

    def setUp(self):
        self.now = 1000.0
        self.limiter = FixedWindowRateLimiter(
            window_seconds=60,
            limits={'sections': 3},
            default_limit=2,
            cache=LocMemCache('ratelimit-tests', {}),
            clock=lambda: self.now,
        )
        self.limiter.cache.clear()

    def test_limits_by_key_prefix(self):
        self.assertTrue(all(self.limiter.check('sections:1.2.3.4').allowed for _ in range(3)))
        self.assertFalse(self.limiter.check('sections:1.2.3.4').allowed)

        self.assertTrue(self.limiter.check('login:1.2.3.4').allowed)
        self.assertTrue(self.limiter.check('login:1.2.3.4').allowed)
        self.assertFalse(self.limiter.check('login:1.2.3.4').allowed)

    def test_keys_are_independent(self):
        for _ in range(2):
            self.limiter.check('login:1.1.1.1')
        self.assertTrue(self.limiter.check('login:2.2.2.2').allowed)

    def test_window_expiry_resets_counter(self):
        """Test that a new window opens once the old one has passed"""
        self.limiter.check('login:1.2.3.4')
        self.limiter.check('login:1.2.3.4')
        self.now += 20
        denied = self.limiter.check('login:1.2.3.4')
        self.assertFalse(denied.allowed)
        self.assertEqual(denied.retry_after, 40)

        self.now += 40
        self.assertTrue(self.limiter.check('login:1.2.3.4').allowed)

    def test_clear(self):
        self.limiter.check('login:1.2.3.4')
        self.limiter.check('login:1.2.3.4')
        self.limiter.clear('login:1.2.3.4')
        self.assertTrue(self.limiter.check('login:1.2.3.4').allowed)


class SectionListViewTests(TestCase):
    """Test cases for the public section listing"""

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        Section.objects.create(label='Section B', max_capacity=5, enrolled_count=5, status=Section.Status.FULL)
        Section.objects.create(label='Section A', max_capacity=5, enrolled_count=2)

    def test_lists_seat_counts(self):
        response = self.client.get('/api/sections/')

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([s['label'] for s in data], ['Section A', 'Section B'])
        self.assertEqual(data[0]['seats_left'], 3)
        self.assertEqual(data[1]['status'], 'FULL')
        self.assertEqual(data[1]['waitlist_size'], 0)

    @override_settings(RATE_LIMITS={'sections': 2})
    def test_rate_limited(self):
        """Test that polling beyond the limit is throttled with Retry-After"""
        for _ in range(2):
            self.assertEqual(self.client.get('/api/sections/').status_code, 200)

        response = self.client.get('/api/sections/')

        self.assertEqual(response.status_code, 429)
        self.assertIn('Retry-After', response)
        self.assertIn('error', response.json())


class SeedSectionsCommandTests(TestCase):

    def test_seed_is_idempotent(self):
        out = StringIO()
        call_command('seed_sections', stdout=out)
        call_command('seed_sections', stdout=out)

        self.assertEqual(list(Section.objects.values_list('label', 'max_capacity')), [('Section A', 5), ('Section B', 5)])
        self.assertIn('Nothing to do', out.getvalue())
