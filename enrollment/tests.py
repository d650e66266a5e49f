import random
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core import mail
from django.db import transaction
from django.test import TestCase
from rest_framework.test import APIClient

from courses.capacity import try_admit
from courses.models import Section
from enrollment import services, waitlist
from enrollment.exceptions import InvalidState, NotFound, ValidationError
from enrollment.models import Enrollment

User = get_user_model()


def positions(section):
    return list(
        Enrollment.objects
        .filter(section=section, payment_status=Enrollment.PaymentStatus.WAITLISTED)
        .order_by('waitlist_position')
        .values_list('waitlist_position', flat=True)
    )


class SignupTestCase(TestCase):
    """Test cases for admission and waitlisting at signup"""

    def setUp(self):
        self.section = Section.objects.create(label='Section A', max_capacity=3)

    def test_capacity_never_exceeded(self):
        """Test that signups beyond capacity are waitlisted, never admitted"""
        results = [
            services.signup(self.section.id, f'cs_test_{i}', email=f'student{i}@test.com')
            for i in range(6)
        ]

        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 3)
        self.assertEqual(self.section.status, Section.Status.FULL)

        statuses = [r.enrollment.payment_status for r in results]
        self.assertEqual(statuses[:3], [Enrollment.PaymentStatus.PENDING] * 3)
        self.assertEqual(statuses[3:], [Enrollment.PaymentStatus.WAITLISTED] * 3)
        self.assertEqual([r.enrollment.waitlist_position for r in results[3:]], [1, 2, 3])

    def test_signup_is_idempotent_per_session(self):
        """Test that a repeated session returns the same enrollment"""
        first = services.signup(self.section.id, 'cs_test_same')
        second = services.signup(self.section.id, 'cs_test_same')

        self.assertTrue(first.created)
        self.assertFalse(second.created)
        self.assertEqual(first.enrollment.id, second.enrollment.id)
        self.assertEqual(Enrollment.objects.count(), 1)

        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 1)

    def test_signup_unknown_section(self):
        """Test that signing up for a missing section raises NotFound"""
        with self.assertRaises(NotFound):
            services.signup(9999, 'cs_test_missing')
        self.assertFalse(Enrollment.objects.exists())

    def test_signup_requires_session(self):
        with self.assertRaises(ValidationError):
            services.signup(self.section.id, '')

    def test_closed_section_waitlists(self):
        """Test that a closed section admits nobody"""
        self.section.status = Section.Status.CLOSED
        self.section.save()

        result = services.signup(self.section.id, 'cs_test_closed')

        self.assertTrue(result.waitlisted)
        self.assertEqual(result.enrollment.waitlist_position, 1)

    def test_try_admit_unknown_section(self):
        with transaction.atomic():
            with self.assertRaises(NotFound):
                try_admit(12345)


class PaymentConfirmationTestCase(TestCase):
    """Test cases for payment confirmation and cancellation"""

    def setUp(self):
        self.section = Section.objects.create(label='Section A', max_capacity=1)

    def test_confirm_marks_pending_as_paid(self):
        services.signup(self.section.id, 'cs_test_1')

        enrollment = services.confirm_payment('cs_test_1')

        self.assertEqual(enrollment.payment_status, Enrollment.PaymentStatus.PAID)
        self.assertTrue(enrollment.payment_collected)

    def test_confirm_keeps_waitlisted_in_queue(self):
        """Test that money collected for a full section leaves the student waitlisted"""
        services.signup(self.section.id, 'cs_test_1')
        services.signup(self.section.id, 'cs_test_2')

        enrollment = services.confirm_payment('cs_test_2')

        self.assertEqual(enrollment.payment_status, Enrollment.PaymentStatus.WAITLISTED)
        self.assertEqual(enrollment.waitlist_position, 1)
        self.assertTrue(enrollment.payment_collected)

    def test_confirm_twice_is_noop(self):
        services.signup(self.section.id, 'cs_test_1')
        services.confirm_payment('cs_test_1')
        enrollment = services.confirm_payment('cs_test_1')

        self.assertEqual(enrollment.payment_status, Enrollment.PaymentStatus.PAID)

    def test_confirm_unknown_session(self):
        with self.assertRaises(NotFound):
            services.confirm_payment('cs_test_missing')

    def test_cancel_pending_releases_seat(self):
        """Test that cancelling an unpaid admission reopens the section"""
        result = services.signup(self.section.id, 'cs_test_1')
        self.section.refresh_from_db()
        self.assertEqual(self.section.status, Section.Status.FULL)

        section = services.cancel_pending(result.enrollment.id)

        self.assertEqual(section.enrolled_count, 0)
        self.assertEqual(section.status, Section.Status.OPEN)
        self.assertFalse(Enrollment.objects.exists())

    def test_cancel_paid_enrollment_rejected(self):
        result = services.signup(self.section.id, 'cs_test_1')
        services.confirm_payment('cs_test_1')

        with self.assertRaises(InvalidState):
            services.cancel_pending(result.enrollment.id)

    def test_cancel_locks_section_before_enrollment(self):
        """Test that cancelling takes the section lock first, like waitlist operations"""
        result = services.signup(self.section.id, 'cs_test_1')
        order = []
        real_lock_section = waitlist.lock_section

        def record_section(section_id):
            order.append('section')
            return real_lock_section(section_id)

        real_select_for_update = Enrollment.objects.select_for_update

        def record_enrollment(*args, **kwargs):
            order.append('enrollment')
            return real_select_for_update(*args, **kwargs)

        with patch('enrollment.waitlist.lock_section', side_effect=record_section), \
                patch.object(Enrollment.objects, 'select_for_update', side_effect=record_enrollment):
            services.cancel_pending(result.enrollment.id)

        self.assertEqual(order[:2], ['section', 'enrollment'])

    def test_cancel_unknown_enrollment(self):
        with self.assertRaises(NotFound):
            services.cancel_pending(99999)

    def test_enrollment_status_lookup(self):
        services.signup(self.section.id, 'cs_test_1')
        services.signup(self.section.id, 'cs_test_2')

        self.assertEqual(services.enrollment_status('cs_test_missing'), {'found': False})
        status = services.enrollment_status('cs_test_2')
        self.assertTrue(status['found'])
        self.assertEqual(status['status'], Enrollment.PaymentStatus.WAITLISTED)
        self.assertEqual(status['section'], 'Section A')
        self.assertEqual(status['waitlist_position'], 1)


class WaitlistTestCase(TestCase):
    """Test cases for waitlist ordering"""

    def setUp(self):
        # Section A is already full
        self.section = Section.objects.create(
            label='Section A', max_capacity=5, enrolled_count=5, status=Section.Status.FULL
        )
        self.counter = 0

    def join(self, email=''):
        self.counter += 1
        return services.signup(self.section.id, f'cs_test_{self.counter}', email=email).enrollment

    def test_full_section_scenario(self):
        """Test the waitlist of a full section through a removal"""
        first = self.join()
        second = self.join()
        self.assertEqual(first.payment_status, Enrollment.PaymentStatus.WAITLISTED)
        self.assertEqual(first.waitlist_position, 1)
        self.assertEqual(second.waitlist_position, 2)

        result = waitlist.remove(first.id)

        self.assertTrue(result.success)
        self.assertIsNone(result.warning)
        second.refresh_from_db()
        self.assertEqual(second.waitlist_position, 1)
        self.assertEqual(positions(self.section), [1])

        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 5)

    def test_positions_stay_dense(self):
        """Test that any sequence of joins and removals leaves positions 1..N"""
        rng = random.Random(7)
        live = []
        for _ in range(40):
            if live and rng.random() < 0.4:
                victim = live.pop(rng.randrange(len(live)))
                waitlist.remove(victim)
            else:
                live.append(self.join().id)
            self.assertEqual(positions(self.section), list(range(1, len(live) + 1)))

    def test_removal_keeps_relative_order(self):
        entries = [self.join() for _ in range(4)]

        waitlist.remove(entries[1].id)

        order = list(waitlist.waitlisted(self.section.id).values_list('id', flat=True))
        self.assertEqual(order, [entries[0].id, entries[2].id, entries[3].id])

    def test_remove_paid_enrollment_rejected(self):
        """Test that removing a non-waitlisted enrollment changes nothing"""
        open_section = Section.objects.create(label='Section B', max_capacity=5)
        paid = services.signup(open_section.id, 'cs_test_paid').enrollment
        services.confirm_payment('cs_test_paid')
        waiting = [self.join(), self.join()]

        with self.assertRaises(InvalidState):
            waitlist.remove(paid.id)

        self.assertTrue(Enrollment.objects.filter(id=paid.id).exists())
        self.assertEqual(positions(self.section), [1, 2])
        open_section.refresh_from_db()
        self.assertEqual(open_section.enrolled_count, 1)
        for entry in waiting:
            before = entry.waitlist_position
            entry.refresh_from_db()
            self.assertEqual(entry.waitlist_position, before)

    def test_remove_unknown_enrollment(self):
        with self.assertRaises(NotFound):
            waitlist.remove(424242)

    def test_remove_paid_waitlisted_warns_about_refund(self):
        """Test that removing a waitlisted student who paid still succeeds with a warning"""
        entry = self.join()
        services.confirm_payment(entry.stripe_session_id)

        result = waitlist.remove(entry.id)

        self.assertTrue(result.success)
        self.assertIn('refund', result.warning)
        self.assertFalse(Enrollment.objects.filter(id=entry.id).exists())

    def test_reorder_exact_positions(self):
        """Test that reorder assigns positions in the given order"""
        a, b, c = self.join(), self.join(), self.join()

        waitlist.reorder(self.section.id, [c.id, a.id, b.id])

        for entry in (a, b, c):
            entry.refresh_from_db()
        self.assertEqual(c.waitlist_position, 1)
        self.assertEqual(a.waitlist_position, 2)
        self.assertEqual(b.waitlist_position, 3)

    def test_reorder_then_remove_respects_new_order(self):
        a, b, c = self.join(), self.join(), self.join()
        waitlist.reorder(self.section.id, [c.id, a.id, b.id])

        waitlist.remove(c.id)

        order = list(waitlist.waitlisted(self.section.id).values_list('id', 'waitlist_position'))
        self.assertEqual(order, [(a.id, 1), (b.id, 2)])

    def test_reorder_rejects_empty_list(self):
        with self.assertRaises(ValidationError):
            waitlist.reorder(self.section.id, [])

    def test_reorder_rejects_incomplete_list(self):
        """Test that a partial ordering is rejected without touching positions"""
        a, b, c = self.join(), self.join(), self.join()

        with self.assertRaises(ValidationError) as ctx:
            waitlist.reorder(self.section.id, [c.id, a.id])

        self.assertIn(str(b.id), str(ctx.exception.detail))
        self.assertEqual(
            list(waitlist.waitlisted(self.section.id).values_list('id', flat=True)),
            [a.id, b.id, c.id]
        )

    def test_reorder_rejects_foreign_and_duplicate_ids(self):
        a, b = self.join(), self.join()
        other = Section.objects.create(label='Section B', max_capacity=1, enrolled_count=1)
        stranger = services.signup(other.id, 'cs_test_other').enrollment

        with self.assertRaises(ValidationError):
            waitlist.reorder(self.section.id, [a.id, b.id, stranger.id])
        with self.assertRaises(ValidationError):
            waitlist.reorder(self.section.id, [a.id, a.id, b.id])

    def test_promote_into_free_seat(self):
        """Test promoting a waitlisted student once a seat frees up"""
        first, second, third = self.join(), self.join(), self.join()
        services.confirm_payment(second.stripe_session_id)
        Section.objects.filter(id=self.section.id).update(enrolled_count=4, status=Section.Status.OPEN)

        result = waitlist.promote(second.id)

        self.assertEqual(result.enrollment.payment_status, Enrollment.PaymentStatus.PAID)
        self.assertIsNone(result.enrollment.waitlist_position)
        self.assertEqual(result.enrolled_count, 5)
        first.refresh_from_db()
        third.refresh_from_db()
        self.assertEqual((first.waitlist_position, third.waitlist_position), (1, 2))
        self.section.refresh_from_db()
        self.assertEqual(self.section.status, Section.Status.FULL)

    def test_promote_unpaid_becomes_pending(self):
        entry = self.join()
        Section.objects.filter(id=self.section.id).update(enrolled_count=4)

        result = waitlist.promote(entry.id)

        self.assertEqual(result.enrollment.payment_status, Enrollment.PaymentStatus.PENDING)

    def test_promote_into_full_section_rejected(self):
        entry = self.join()

        with self.assertRaises(InvalidState):
            waitlist.promote(entry.id)

        entry.refresh_from_db()
        self.assertEqual(entry.waitlist_position, 1)
        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 5)

    def test_waitlists_by_section_backfills_positions(self):
        """Test that legacy rows without positions get numbered by signup time"""
        entries = [self.join(), self.join(), self.join()]
        Enrollment.objects.filter(id=entries[1].id).update(waitlist_position=None)
        Enrollment.objects.filter(id=entries[2].id).update(waitlist_position=7)

        grouped = waitlist.waitlists_by_section()

        self.assertEqual([e.id for e in grouped[self.section.id]], [entries[0].id, entries[2].id, entries[1].id])
        self.assertEqual(positions(self.section), [1, 2, 3])

    def test_position_change_notifications(self):
        """Test that remaining students are emailed their new positions after commit"""
        first = self.join(email='first@test.com')
        self.join(email='second@test.com')
        self.join()

        with self.captureOnCommitCallbacks(execute=True):
            waitlist.remove(first.id)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ['second@test.com'])
        self.assertIn('Current Position: #1', mail.outbox[0].body)


class WaitlistAdminViewTestCase(TestCase):
    """Test cases for the admin waitlist endpoints"""

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='testpass123', is_staff=True)
        self.client.force_authenticate(user=self.admin)
        self.section = Section.objects.create(
            label='Section A', max_capacity=1, enrolled_count=1, status=Section.Status.FULL
        )
        self.a = services.signup(self.section.id, 'cs_test_a', email='a@test.com').enrollment
        self.b = services.signup(self.section.id, 'cs_test_b', email='b@test.com').enrollment
        self.c = services.signup(self.section.id, 'cs_test_c', email='c@test.com').enrollment

    def test_requires_staff(self):
        """Test that anonymous and non-staff users are turned away"""
        anonymous = APIClient()
        response = anonymous.post('/api/admin/waitlist/remove/', {'enrollment_id': self.a.id}, format='json')
        self.assertIn(response.status_code, (401, 403))

        student = User.objects.create_user(username='student', password='testpass123')
        client = APIClient()
        client.force_authenticate(user=student)
        response = client.get('/api/admin/waitlist/')
        self.assertEqual(response.status_code, 403)
        self.assertTrue(Enrollment.objects.filter(id=self.a.id).exists())

    def test_list_waitlist(self):
        response = self.client.get('/api/admin/waitlist/')

        self.assertEqual(response.status_code, 200)
        section = response.json()['sections'][0]
        self.assertEqual(section['label'], 'Section A')
        self.assertEqual(
            [(e['id'], e['waitlist_position']) for e in section['waitlisted']],
            [(self.a.id, 1), (self.b.id, 2), (self.c.id, 3)]
        )

    def test_remove(self):
        response = self.client.post('/api/admin/waitlist/remove/', {'enrollment_id': self.a.id}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True})
        self.b.refresh_from_db()
        self.assertEqual(self.b.waitlist_position, 1)

    def test_remove_paid_waitlisted_returns_warning(self):
        services.confirm_payment('cs_test_a')

        response = self.client.post('/api/admin/waitlist/remove/', {'enrollment_id': self.a.id}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])
        self.assertIn('refund', response.json()['warning'])

    def test_remove_errors(self):
        response = self.client.post('/api/admin/waitlist/remove/', {}, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.post('/api/admin/waitlist/remove/', {'enrollment_id': 99999}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertIn('not found', response.json()['error'])

        open_section = Section.objects.create(label='Section B', max_capacity=5)
        paid = services.signup(open_section.id, 'cs_test_paid').enrollment
        services.confirm_payment('cs_test_paid')
        response = self.client.post('/api/admin/waitlist/remove/', {'enrollment_id': paid.id}, format='json')
        self.assertEqual(response.status_code, 409)
        self.assertIn('not waitlisted', response.json()['error'])

    def test_reorder(self):
        response = self.client.patch('/api/admin/waitlist/reorder/', {
            'section_id': self.section.id,
            'ordered_ids': [self.c.id, self.a.id, self.b.id],
        }, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'success': True})
        self.c.refresh_from_db()
        self.assertEqual(self.c.waitlist_position, 1)

    def test_reorder_errors(self):
        response = self.client.patch('/api/admin/waitlist/reorder/', {
            'section_id': self.section.id, 'ordered_ids': [],
        }, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.patch('/api/admin/waitlist/reorder/', {
            'section_id': self.section.id, 'ordered_ids': [self.c.id],
        }, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.patch('/api/admin/waitlist/reorder/', {
            'section_id': 99999, 'ordered_ids': [self.c.id],
        }, format='json')
        self.assertEqual(response.status_code, 404)

    def test_promote(self):
        Section.objects.filter(id=self.section.id).update(enrolled_count=0, status=Section.Status.OPEN)

        response = self.client.post('/api/admin/waitlist/promote/', {'enrollment_id': self.b.id}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['enrolled_count'], 1)
        self.assertEqual(response.json()['enrollment']['payment_status'], 'PENDING')

        response = self.client.post('/api/admin/waitlist/promote/', {'enrollment_id': self.c.id}, format='json')
        self.assertEqual(response.status_code, 409)


class EnrollmentStatusViewTestCase(TestCase):

    def setUp(self):
        self.section = Section.objects.create(label='Section A', max_capacity=5)
        services.signup(self.section.id, 'cs_test_1')

    def test_public_lookup(self):
        response = APIClient().get('/api/enrollment-status/', {'session_id': 'cs_test_1'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['section'], 'Section A')

    def test_missing_session_id(self):
        response = APIClient().get('/api/enrollment-status/')
        self.assertEqual(response.status_code, 400)


class CancelPendingViewTestCase(TestCase):
    """Test cases for the admin cancel endpoint"""

    url = '/api/admin/enrollments/cancel/'

    def setUp(self):
        self.client = APIClient()
        self.admin = User.objects.create_user(username='admin', password='testpass123', is_staff=True)
        self.client.force_authenticate(user=self.admin)
        self.section = Section.objects.create(label='Section A', max_capacity=1)
        self.pending = services.signup(self.section.id, 'cs_test_1').enrollment

    def test_cancel_frees_seat(self):
        response = self.client.post(self.url, {'enrollment_id': self.pending.id}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {
            'success': True, 'section_id': self.section.id, 'enrolled_count': 0, 'status': 'OPEN',
        })
        self.assertFalse(Enrollment.objects.exists())

    def test_cancel_paid_is_conflict(self):
        services.confirm_payment('cs_test_1')

        response = self.client.post(self.url, {'enrollment_id': self.pending.id}, format='json')

        self.assertEqual(response.status_code, 409)
        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 1)

    def test_cancel_requires_staff(self):
        response = APIClient().post(self.url, {'enrollment_id': self.pending.id}, format='json')

        self.assertIn(response.status_code, (401, 403))
        self.assertTrue(Enrollment.objects.filter(id=self.pending.id).exists())
