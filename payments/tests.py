from datetime import date
from io import StringIO
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import stripe
from django.core.cache import cache
from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from courses.models import Section
from enrollment.exceptions import ExternalServiceError, InvalidState, ValidationError
from enrollment.models import Enrollment
from payments.gateway import (
    CheckoutSession, Obligation, ObligationPage, ObligationStatus, PaymentGateway,
    PaymentIntentInfo, StripeGateway, build_gateway,
)
from payments.scheduler import BalanceScheduler, SchedulerReport
from payments.tasks import finalize_balance_obligations

COURSE = 'braille-summer-2026'
PLAN_PRICES = {'deposit': 'price_deposit', 'full': 'price_full'}


def balance(obligation_id, scheduled_date, course=COURSE, kind='balance', status=ObligationStatus.DRAFT):
    metadata = {'type': kind, 'course': course}
    if scheduled_date is not None:
        metadata['scheduled_date'] = scheduled_date
    return Obligation(id=obligation_id, customer_id=f'cus_{obligation_id}', status=status, metadata=metadata)


class FakeGateway(PaymentGateway):
    """In-memory processor: pages drafts and records finalize/pay calls."""

    def __init__(self, obligations=(), page_size=100, finalize_errors=None, pay_errors=None):
        self.obligations = list(obligations)
        self.page_size = page_size
        self.finalize_errors = finalize_errors or {}
        self.pay_errors = pay_errors or {}
        self.calls = []
        self.pages_requested = 0
        self.created_obligations = []
        self.idempotency_keys = []
        self.checkout_calls = []
        self.event = None

    def list_draft_obligations(self, page_token=None):
        self.pages_requested += 1
        start = 0
        if page_token:
            start = [o.id for o in self.obligations].index(page_token) + 1
        items = self.obligations[start:start + self.page_size]
        has_more = start + self.page_size < len(self.obligations)
        return ObligationPage(items=items, next_page_token=items[-1].id if has_more and items else None)

    def finalize(self, obligation_id):
        self.calls.append(('finalize', obligation_id))
        if obligation_id in self.finalize_errors:
            raise self.finalize_errors[obligation_id]

    def pay(self, obligation_id):
        self.calls.append(('pay', obligation_id))
        if obligation_id in self.pay_errors:
            raise self.pay_errors[obligation_id]

    def get_payment_intent(self, payment_intent_id):
        return PaymentIntentInfo(id=payment_intent_id, payment_method_id='pm_card', kind='deposit')

    def create_checkout_session(self, section_id, plan, course, description, return_url,
                                submit_message='', idempotency_key=None):
        self.checkout_calls.append({
            'section_id': section_id, 'plan': plan, 'course': course,
            'description': description, 'idempotency_key': idempotency_key,
        })
        return CheckoutSession(id=f'cs_test_{len(self.checkout_calls)}', client_secret='cs_secret')

    def create_balance_obligation(self, customer_id, payment_method_id, course, scheduled_date, idempotency_key=None):
        obligation = Obligation(
            id=f'in_{len(self.created_obligations) + 1}',
            customer_id=customer_id,
            status=ObligationStatus.DRAFT,
            metadata={'course': course, 'type': 'balance', 'scheduled_date': scheduled_date},
        )
        self.created_obligations.append((obligation, payment_method_id))
        self.idempotency_keys.append(idempotency_key)
        return obligation

    def construct_event(self, payload, signature):
        if signature != 'valid':
            raise ValidationError('Invalid signature')
        return self.event


class BalanceSchedulerTests(SimpleTestCase):
    """Test cases for the deferred balance payment run"""

    today = date(2026, 5, 1)

    def run_scheduler(self, gateway, **kwargs):
        return BalanceScheduler(gateway, course=COURSE, today=self.today, **kwargs).run()

    def test_only_due_obligations_are_charged(self):
        """Test that yesterday's and today's balances are charged and tomorrow's is skipped"""
        gateway = FakeGateway([
            balance('in_yesterday', '2026-04-30'),
            balance('in_today', '2026-05-01'),
            balance('in_tomorrow', '2026-05-02'),
        ])

        report = self.run_scheduler(gateway)

        self.assertEqual(report.as_dict(), {'found': 2, 'finalized': 2, 'failed': 0, 'failed_ids': []})
        self.assertEqual(gateway.calls, [
            ('finalize', 'in_yesterday'), ('pay', 'in_yesterday'),
            ('finalize', 'in_today'), ('pay', 'in_today'),
        ])

    def test_other_courses_kinds_and_undated_are_skipped(self):
        gateway = FakeGateway([
            balance('in_other_course', '2026-04-01', course='braille-summer-2025'),
            balance('in_deposit', '2026-04-01', kind='deposit'),
            balance('in_undated', None),
            balance('in_open', '2026-04-01', status=ObligationStatus.FINALIZED),
            balance('in_due', '2026-04-01'),
        ])

        report = self.run_scheduler(gateway)

        self.assertEqual(report.found, 1)
        self.assertEqual(gateway.calls, [('finalize', 'in_due'), ('pay', 'in_due')])

    def test_failure_is_isolated(self):
        """Test that a failing obligation does not stop the next one from being charged"""
        gateway = FakeGateway(
            [balance('in_first', '2026-04-30'), balance('in_second', '2026-04-30')],
            finalize_errors={'in_first': InvalidState('Invoice in_first is not a draft')},
        )

        report = self.run_scheduler(gateway)

        self.assertEqual(report.finalized, 1)
        self.assertEqual(report.failed, 1)
        self.assertEqual(report.failed_ids, ['in_first'])
        self.assertIn(('pay', 'in_second'), gateway.calls)
        self.assertNotIn(('pay', 'in_first'), gateway.calls)

    def test_declined_payment_and_unexpected_errors_are_reported(self):
        gateway = FakeGateway(
            [balance('in_declined', '2026-04-30'), balance('in_broken', '2026-04-30'), balance('in_ok', '2026-04-30')],
            pay_errors={
                'in_declined': ExternalServiceError('Your card was declined.'),
                'in_broken': RuntimeError('connection reset'),
            },
        )

        report = self.run_scheduler(gateway)

        self.assertEqual(report.as_dict(), {
            'found': 3, 'finalized': 1, 'failed': 2, 'failed_ids': ['in_declined', 'in_broken'],
        })

    def test_follows_pages_until_exhausted(self):
        obligations = [balance(f'in_{i:03d}', '2026-04-30') for i in range(250)]
        gateway = FakeGateway(obligations, page_size=100)

        report = self.run_scheduler(gateway)

        self.assertEqual(gateway.pages_requested, 3)
        self.assertEqual(report.found, 250)
        self.assertEqual(report.finalized, 250)

    def test_stops_at_record_cap(self):
        """Test that listing stops once the safety cap is reached"""
        obligations = [balance(f'in_{i:03d}', '2026-04-30') for i in range(50)]
        gateway = FakeGateway(obligations, page_size=10)

        report = self.run_scheduler(gateway, max_records=25)

        self.assertEqual(gateway.pages_requested, 3)
        self.assertEqual(report.found, 25)

    def test_empty_run(self):
        report = self.run_scheduler(FakeGateway())
        self.assertEqual(report.as_dict(), {'found': 0, 'finalized': 0, 'failed': 0, 'failed_ids': []})

    def test_rerun_after_partial_run(self):
        """Test that a second run only sees obligations still in draft"""
        gateway = FakeGateway([
            balance('in_done', '2026-04-30', status=ObligationStatus.PAID),
            balance('in_left', '2026-04-30'),
        ])

        report = self.run_scheduler(gateway)

        self.assertEqual(report.found, 1)
        self.assertEqual(gateway.calls, [('finalize', 'in_left'), ('pay', 'in_left')])


def invoice(invoice_id, status='draft', metadata=None, customer='cus_1'):
    return SimpleNamespace(id=invoice_id, status=status, customer=customer, metadata=metadata or {})


class StripeGatewayTests(SimpleTestCase):
    """Test cases for the Stripe adapter"""

    def setUp(self):
        self.gateway = StripeGateway(
            api_key='sk_test_dummy',
            balance_price_id='price_balance',
            webhook_secret='whsec_test',
            plan_price_ids=PLAN_PRICES,
        )

    def test_requires_api_key(self):
        with self.assertRaises(ImproperlyConfigured):
            StripeGateway(api_key='', balance_price_id='price_balance', webhook_secret='whsec_test', plan_price_ids=PLAN_PRICES)

    def test_missing_prices_and_webhook_secret_fail_at_construction(self):
        """Test that an incomplete configuration is refused before any webhook arrives"""
        with self.assertRaises(ImproperlyConfigured) as ctx:
            StripeGateway(api_key='sk_test_dummy', balance_price_id='', webhook_secret='', plan_price_ids={'full': 'price_full'})

        message = str(ctx.exception)
        self.assertIn('STRIPE_PRICE_BALANCE', message)
        self.assertIn('STRIPE_WEBHOOK_SECRET', message)
        self.assertIn('STRIPE_PRICE_DEPOSIT', message)
        self.assertNotIn('STRIPE_PRICE_FULL', message)

    @override_settings(STRIPE_PRICE_BALANCE='')
    def test_build_gateway_reads_settings(self):
        with self.assertRaises(ImproperlyConfigured):
            build_gateway()

    @patch('payments.gateway.stripe.checkout.Session.create')
    def test_create_deposit_checkout_session(self, mock_create):
        mock_create.return_value = SimpleNamespace(id='cs_test_1', client_secret='cs_secret')

        session = self.gateway.create_checkout_session(
            section_id=3, plan='deposit', course=COURSE, description='Course - Mon',
            return_url='https://example.org/done', submit_message='Card saved', idempotency_key='checkout_1',
        )

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['line_items'], [{'price': 'price_deposit', 'quantity': 1}])
        self.assertEqual(kwargs['metadata'], {'section_id': '3', 'plan': 'deposit', 'course': COURSE})
        self.assertEqual(kwargs['payment_intent_data']['setup_future_usage'], 'off_session')
        self.assertEqual(kwargs['payment_intent_data']['metadata']['type'], 'deposit')
        self.assertEqual(kwargs['custom_text'], {'submit': {'message': 'Card saved'}})
        self.assertEqual(kwargs['idempotency_key'], 'checkout_1')
        self.assertEqual(kwargs['api_key'], 'sk_test_dummy')
        self.assertEqual(session, CheckoutSession(id='cs_test_1', client_secret='cs_secret'))

    @patch('payments.gateway.stripe.checkout.Session.create')
    def test_full_checkout_does_not_save_card(self, mock_create):
        mock_create.return_value = SimpleNamespace(id='cs_test_1', client_secret='cs_secret')

        self.gateway.create_checkout_session(
            section_id=3, plan='full', course=COURSE, description='Course - Mon', return_url='https://example.org/done',
        )

        kwargs = mock_create.call_args.kwargs
        self.assertEqual(kwargs['line_items'][0]['price'], 'price_full')
        self.assertNotIn('setup_future_usage', kwargs['payment_intent_data'])
        self.assertNotIn('idempotency_key', kwargs)
        self.assertNotIn('custom_text', kwargs)

    @patch('payments.gateway.stripe.Invoice.list')
    def test_list_draft_obligations(self, mock_list):
        mock_list.return_value = SimpleNamespace(
            data=[invoice('in_1', metadata={'type': 'balance'}), invoice('in_2')],
            has_more=True,
        )

        page = self.gateway.list_draft_obligations('in_0')

        mock_list.assert_called_once_with(status='draft', limit=100, starting_after='in_0', api_key='sk_test_dummy')
        self.assertEqual([o.id for o in page.items], ['in_1', 'in_2'])
        self.assertEqual(page.items[0].kind, 'balance')
        self.assertEqual(page.items[0].status, ObligationStatus.DRAFT)
        self.assertEqual(page.next_page_token, 'in_2')

    @patch('payments.gateway.stripe.Invoice.list')
    def test_last_page_has_no_token(self, mock_list):
        mock_list.return_value = SimpleNamespace(data=[invoice('in_1')], has_more=False)

        page = self.gateway.list_draft_obligations()

        self.assertNotIn('starting_after', mock_list.call_args.kwargs)
        self.assertIsNone(page.next_page_token)

    @patch('payments.gateway.stripe.Invoice.finalize_invoice')
    def test_finalize_maps_status(self, mock_finalize):
        mock_finalize.return_value = invoice('in_1', status='open')

        obligation = self.gateway.finalize('in_1')

        mock_finalize.assert_called_once_with('in_1', api_key='sk_test_dummy', auto_advance=False)
        self.assertEqual(obligation.status, ObligationStatus.FINALIZED)

    @patch('payments.gateway.stripe.Invoice.finalize_invoice')
    def test_double_finalize_is_invalid_state(self, mock_finalize):
        mock_finalize.side_effect = stripe.InvalidRequestError('This invoice is already finalized', None)

        with self.assertRaises(InvalidState):
            self.gateway.finalize('in_1')

    @patch('payments.gateway.stripe.Invoice.pay')
    def test_declined_card_is_external_error(self, mock_pay):
        mock_pay.side_effect = stripe.CardError('Your card was declined.', None, 'card_declined')

        with self.assertRaises(ExternalServiceError) as ctx:
            self.gateway.pay('in_1')
        self.assertIn('declined', str(ctx.exception.detail))

    @patch('payments.gateway.stripe.Invoice.create')
    @patch('payments.gateway.stripe.InvoiceItem.create')
    @patch('payments.gateway.stripe.Customer.modify')
    def test_create_balance_obligation(self, mock_modify, mock_item, mock_invoice):
        mock_invoice.return_value = invoice(
            'in_new', metadata={'course': COURSE, 'type': 'balance', 'scheduled_date': '2026-05-01'}
        )

        obligation = self.gateway.create_balance_obligation('cus_1', 'pm_1', COURSE, '2026-05-01')

        mock_modify.assert_called_once_with(
            'cus_1', api_key='sk_test_dummy', invoice_settings={'default_payment_method': 'pm_1'}
        )
        mock_item.assert_called_once_with(api_key='sk_test_dummy', customer='cus_1', price='price_balance')
        kwargs = mock_invoice.call_args.kwargs
        self.assertEqual(kwargs['collection_method'], 'charge_automatically')
        self.assertFalse(kwargs['auto_advance'])
        self.assertEqual(kwargs['metadata'], {'course': COURSE, 'type': 'balance', 'scheduled_date': '2026-05-01'})
        self.assertEqual(obligation.scheduled_date, '2026-05-01')
        self.assertNotIn('idempotency_key', kwargs)

    @patch('payments.gateway.stripe.Invoice.create')
    @patch('payments.gateway.stripe.InvoiceItem.create')
    @patch('payments.gateway.stripe.Customer.modify')
    def test_balance_obligation_retry_reuses_idempotency_keys(self, mock_modify, mock_item, mock_invoice):
        mock_invoice.return_value = invoice('in_new')

        self.gateway.create_balance_obligation('cus_1', 'pm_1', COURSE, '2026-05-01', idempotency_key='balance-cs_1')

        self.assertEqual(mock_item.call_args.kwargs['idempotency_key'], 'balance-cs_1-item')
        self.assertEqual(mock_invoice.call_args.kwargs['idempotency_key'], 'balance-cs_1-invoice')

    @patch('payments.gateway.stripe.Webhook.construct_event')
    def test_bad_signature(self, mock_construct):
        mock_construct.side_effect = stripe.SignatureVerificationError('bad', 'sig')

        with self.assertRaises(ValidationError):
            self.gateway.construct_event(b'{}', 'sig')


@override_settings(CRON_SECRET='test-cron-secret', COURSE_SLUG=COURSE)
class FinalizeBalanceViewTests(TestCase):
    """Test cases for the cron endpoint"""

    url = '/api/cron/finalize-balance/'

    def setUp(self):
        self.client = APIClient()
        self.gateway = FakeGateway([
            balance('in_due', '2020-01-01'),
            balance('in_later', '2999-01-01'),
        ])

    def test_rejects_missing_and_wrong_secret_alike(self):
        """Test that every bad credential gets the same 401"""
        responses = [
            self.client.get(self.url),
            self.client.get(self.url, HTTP_AUTHORIZATION='Bearer wrong'),
            self.client.get(self.url, HTTP_AUTHORIZATION='test-cron-secret'),
        ]
        for response in responses:
            self.assertEqual(response.status_code, 401)
            self.assertEqual(response.json(), {'error': 'Unauthorized'})

    @override_settings(CRON_SECRET='')
    def test_unset_secret_rejects_everything(self):
        response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer ')
        self.assertEqual(response.status_code, 401)

    def test_runs_scheduler(self):
        with patch('payments.scheduler.get_gateway', return_value=self.gateway):
            response = self.client.get(self.url, HTTP_AUTHORIZATION='Bearer test-cron-secret')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'found': 1, 'finalized': 1, 'failed': 0, 'failed_ids': []})

    def test_periodic_task_returns_report(self):
        with patch('payments.scheduler.get_gateway', return_value=self.gateway):
            result = finalize_balance_obligations()

        self.assertEqual(result['finalized'], 1)

    def test_management_command(self):
        out = StringIO()
        self.gateway.finalize_errors = {'in_due': InvalidState('not a draft')}
        with patch('payments.scheduler.get_gateway', return_value=self.gateway):
            call_command('run_balance_scheduler', '--date', '2026-05-01', stdout=out)

        self.assertIn('Failed: 1', out.getvalue())
        self.assertIn('in_due', out.getvalue())


@override_settings(COURSE_SLUG=COURSE, BALANCE_DUE_DATE='2026-05-01')
class StripeWebhookTests(TestCase):
    """Test cases for checkout confirmation"""

    url = '/api/webhooks/stripe/'

    def setUp(self):
        self.client = APIClient()
        self.section = Section.objects.create(label='Section A', max_capacity=1)
        self.gateway = FakeGateway()
        patcher = patch('payments.views.get_gateway', return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)

    def checkout_event(self, session_id, plan='deposit', section_id=None):
        return {
            'type': 'checkout.session.completed',
            'data': {'object': {
                'id': session_id,
                'customer': 'cus_1',
                'payment_intent': 'pi_1',
                'customer_details': {'email': 'student@test.com'},
                'metadata': {'section_id': str(section_id or self.section.id), 'plan': plan},
            }},
        }

    def post(self, signature='valid'):
        return self.client.post(self.url, data='{}', content_type='application/json', HTTP_STRIPE_SIGNATURE=signature)

    def test_deposit_checkout_enrolls_and_schedules_balance(self):
        self.gateway.event = self.checkout_event('cs_test_1')

        response = self.post()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'received': True})
        enrollment = Enrollment.objects.get(stripe_session_id='cs_test_1')
        self.assertEqual(enrollment.payment_status, Enrollment.PaymentStatus.PAID)
        self.assertEqual(enrollment.plan, Enrollment.Plan.DEPOSIT)
        self.assertEqual(enrollment.email, 'student@test.com')
        self.assertEqual(len(self.gateway.created_obligations), 1)
        obligation, payment_method = self.gateway.created_obligations[0]
        self.assertEqual(payment_method, 'pm_card')
        self.assertEqual(obligation.metadata, {'course': COURSE, 'type': 'balance', 'scheduled_date': '2026-05-01'})

    def test_redelivered_event_is_idempotent(self):
        """Test that a duplicate event neither adds an enrollment nor a second balance invoice"""
        self.gateway.event = self.checkout_event('cs_test_1')

        self.post()
        self.post()

        self.assertEqual(Enrollment.objects.count(), 1)
        self.assertEqual(len(self.gateway.created_obligations), 1)
        self.assertEqual(Enrollment.objects.get().balance_invoice_id, 'in_1')
        self.section.refresh_from_db()
        self.assertEqual(self.section.enrolled_count, 1)

    def test_full_plan_has_no_balance(self):
        self.gateway.event = self.checkout_event('cs_test_1', plan='full')

        self.post()

        self.assertEqual(Enrollment.objects.get().plan, Enrollment.Plan.FULL)
        self.assertEqual(self.gateway.created_obligations, [])

    def test_full_section_waitlists_paid_checkout(self):
        self.gateway.event = self.checkout_event('cs_test_1', plan='full')
        self.post()
        self.gateway.event = self.checkout_event('cs_test_2', plan='full')
        self.post()

        late = Enrollment.objects.get(stripe_session_id='cs_test_2')
        self.assertEqual(late.payment_status, Enrollment.PaymentStatus.WAITLISTED)
        self.assertEqual(late.waitlist_position, 1)
        self.assertTrue(late.payment_collected)

    def test_balance_creation_failure_still_acknowledges(self):
        self.gateway.event = self.checkout_event('cs_test_1')
        self.gateway.create_balance_obligation = MagicMock(side_effect=ExternalServiceError('Stripe down'))

        response = self.post()

        self.assertEqual(response.status_code, 200)
        enrollment = Enrollment.objects.get(stripe_session_id='cs_test_1')
        self.assertEqual(enrollment.balance_invoice_id, '')

    def test_resent_event_retries_missing_balance_invoice(self):
        """Test that a resent deposit checkout opens the balance invoice the first delivery failed to create"""
        self.gateway.event = self.checkout_event('cs_test_1')
        create = self.gateway.create_balance_obligation
        self.gateway.create_balance_obligation = MagicMock(side_effect=ExternalServiceError('Stripe down'))
        self.post()

        self.gateway.create_balance_obligation = MagicMock(wraps=create)
        response = self.post()
        self.post()

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.gateway.create_balance_obligation.call_count, 1)
        self.assertEqual(self.gateway.idempotency_keys, ['balance-cs_test_1'])
        enrollment = Enrollment.objects.get(stripe_session_id='cs_test_1')
        self.assertEqual(enrollment.balance_invoice_id, 'in_1')
        self.assertEqual(enrollment.payment_status, Enrollment.PaymentStatus.PAID)
        self.assertEqual(Enrollment.objects.count(), 1)

    def test_unknown_section_is_ignored(self):
        self.gateway.event = self.checkout_event('cs_test_1', section_id=99999)

        response = self.post()

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Enrollment.objects.exists())

    def test_other_events_are_acknowledged(self):
        self.gateway.event = {'type': 'invoice.paid', 'data': {'object': {'id': 'in_1'}}}

        response = self.post()

        self.assertEqual(response.status_code, 200)
        self.assertFalse(Enrollment.objects.exists())

    def test_signature_required(self):
        response = self.client.post(self.url, data='{}', content_type='application/json')
        self.assertEqual(response.status_code, 400)

        response = self.post(signature='forged')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {'error': 'Invalid signature'})


@override_settings(
    COURSE_SLUG=COURSE,
    COURSE_NAME='Summer Braille Course',
    BALANCE_AMOUNT=350,
    BALANCE_DUE_DATE='2026-05-01',
    SECTION_SCHEDULES={'Section A': 'Mon & Wed, 1-2 PM ET'},
)
class CheckoutViewTests(TestCase):
    """Test cases for starting a checkout"""

    url = '/api/checkout/'

    def setUp(self):
        cache.clear()
        self.client = APIClient()
        self.section = Section.objects.create(label='Section A', max_capacity=1)
        self.gateway = FakeGateway()
        patcher = patch('payments.views.get_gateway', return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_deposit_checkout(self):
        response = self.client.post(self.url, {'section_id': self.section.id, 'plan': 'deposit'}, format='json')

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {'client_secret': 'cs_secret'})
        call = self.gateway.checkout_calls[0]
        self.assertEqual(call['section_id'], self.section.id)
        self.assertEqual(call['plan'], 'deposit')
        self.assertEqual(call['course'], COURSE)
        self.assertEqual(call['description'], 'Summer Braille Course - Mon & Wed, 1-2 PM ET')
        self.assertTrue(call['idempotency_key'].startswith('checkout_'))
        self.assertIn(f"_{self.section.id}_deposit_", call['idempotency_key'])

    def test_deposit_message_names_balance_and_date(self):
        from payments.views import submit_message

        self.assertEqual(
            submit_message('deposit'),
            'Your card will be saved securely. The remaining $350 balance will be charged automatically on May 1.',
        )
        self.assertIn('confirmation email', submit_message('full'))

    def test_full_section_refused_before_charging(self):
        self.section.enrolled_count = 1
        self.section.status = Section.Status.FULL
        self.section.save()

        response = self.client.post(self.url, {'section_id': self.section.id, 'plan': 'full'}, format='json')

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json(), {'error': 'This section is full'})
        self.assertEqual(self.gateway.checkout_calls, [])

    def test_invalid_input(self):
        response = self.client.post(self.url, {'section_id': self.section.id, 'plan': 'monthly'}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertIn('plan', response.json()['error'])

        response = self.client.post(self.url, {'plan': 'full'}, format='json')
        self.assertEqual(response.status_code, 400)

        response = self.client.post(self.url, {'section_id': 99999, 'plan': 'full'}, format='json')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.gateway.checkout_calls, [])

    @override_settings(ENROLLMENT_ENABLED=False)
    def test_enrollment_closed(self):
        response = self.client.post(self.url, {'section_id': self.section.id, 'plan': 'full'}, format='json')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json(), {'error': 'Enrollment is currently closed'})

    @override_settings(RATE_LIMITS={'checkout': 2})
    def test_rate_limited(self):
        for _ in range(2):
            self.client.post(self.url, {'section_id': self.section.id, 'plan': 'full'}, format='json')

        response = self.client.post(self.url, {'section_id': self.section.id, 'plan': 'full'}, format='json')

        self.assertEqual(response.status_code, 429)
        self.assertIn('Retry-After', response)
        self.assertEqual(len(self.gateway.checkout_calls), 2)
