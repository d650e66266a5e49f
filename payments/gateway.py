"""
Payment processor boundary.

Balance obligations are Stripe invoices tagged with metadata
``{"course": ..., "type": "deposit" | "balance", "scheduled_date": "YYYY-MM-DD"}``.
Stripe owns their state; this module only reads and advances it and never
keeps copies between calls.
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import stripe
from django.apps import apps
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from enrollment.exceptions import ExternalServiceError, InvalidState, ValidationError

logger = logging.getLogger(__name__)

PAGE_SIZE = 100


class ObligationStatus(Enum):
    DRAFT = 'DRAFT'
    FINALIZED = 'FINALIZED'
    PAID = 'PAID'
    VOID = 'VOID'
    UNCOLLECTIBLE = 'UNCOLLECTIBLE'

    @classmethod
    def from_stripe(cls, status):
        return STRIPE_STATUSES[status]


STRIPE_STATUSES = {
    'draft': ObligationStatus.DRAFT,
    'open': ObligationStatus.FINALIZED,
    'paid': ObligationStatus.PAID,
    'void': ObligationStatus.VOID,
    'uncollectible': ObligationStatus.UNCOLLECTIBLE,
}


@dataclass(frozen=True)
class Obligation:
    id: str
    customer_id: str
    status: ObligationStatus
    metadata: dict = field(default_factory=dict)

    @property
    def kind(self):
        return self.metadata.get('type')

    @property
    def course(self):
        return self.metadata.get('course')

    @property
    def scheduled_date(self):
        return self.metadata.get('scheduled_date')


@dataclass(frozen=True)
class ObligationPage:
    items: list
    next_page_token: Optional[str] = None


@dataclass(frozen=True)
class CheckoutSession:
    id: str
    client_secret: str


@dataclass(frozen=True)
class PaymentIntentInfo:
    id: str
    payment_method_id: str
    kind: Optional[str] = None


class PaymentGateway(ABC):
    """Operations the enrollment system needs from a payment processor."""

    @abstractmethod
    def list_draft_obligations(self, page_token=None):
        """Return one ObligationPage of DRAFT obligations, starting after ``page_token``."""

    @abstractmethod
    def finalize(self, obligation_id):
        """DRAFT -> FINALIZED."""

    @abstractmethod
    def pay(self, obligation_id):
        """FINALIZED -> PAID, charging the customer's saved payment method."""

    @abstractmethod
    def get_payment_intent(self, payment_intent_id):
        pass

    @abstractmethod
    def create_checkout_session(self, section_id, plan, course, description, return_url,
                                submit_message='', idempotency_key=None):
        """Open an embedded checkout for one seat; ``plan`` is ``deposit`` or ``full``."""

    @abstractmethod
    def create_balance_obligation(self, customer_id, payment_method_id, course, scheduled_date,
                                  idempotency_key=None):
        pass

    @abstractmethod
    def construct_event(self, payload, signature):
        pass


def _obligation_from_invoice(invoice):
    customer = invoice.customer
    return Obligation(
        id=invoice.id,
        customer_id=customer if isinstance(customer, str) else getattr(customer, 'id', ''),
        status=ObligationStatus.from_stripe(invoice.status),
        metadata=dict(invoice.metadata or {}),
    )


class StripeGateway(PaymentGateway):

    def __init__(self, api_key, balance_price_id, webhook_secret, plan_price_ids, page_size=PAGE_SIZE):
        plan_price_ids = dict(plan_price_ids or {})
        required = {
            'STRIPE_SECRET_KEY': api_key,
            'STRIPE_PRICE_BALANCE': balance_price_id,
            'STRIPE_WEBHOOK_SECRET': webhook_secret,
            'STRIPE_PRICE_DEPOSIT': plan_price_ids.get('deposit'),
            'STRIPE_PRICE_FULL': plan_price_ids.get('full'),
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ImproperlyConfigured(f"Missing payment settings: {', '.join(missing)}")

        self.api_key = api_key
        self.balance_price_id = balance_price_id
        self.webhook_secret = webhook_secret
        self.plan_price_ids = plan_price_ids
        self.page_size = min(page_size, PAGE_SIZE)

    def _call(self, description, func, *args, **params):
        try:
            return func(*args, api_key=self.api_key, **params)
        except stripe.InvalidRequestError as exc:
            # e.g. finalizing an invoice that is no longer a draft
            raise InvalidState(f'{description}: {exc.user_message or exc}')
        except stripe.StripeError as exc:
            raise ExternalServiceError(f'{description}: {exc.user_message or exc}')

    def list_draft_obligations(self, page_token=None):
        params = {'status': 'draft', 'limit': self.page_size}
        if page_token:
            params['starting_after'] = page_token
        page = self._call('List draft invoices', stripe.Invoice.list, **params)

        items = [_obligation_from_invoice(invoice) for invoice in page.data]
        next_token = items[-1].id if page.has_more and items else None
        return ObligationPage(items=items, next_page_token=next_token)

    def finalize(self, obligation_id):
        invoice = self._call(
            f'Finalize invoice {obligation_id}',
            stripe.Invoice.finalize_invoice, obligation_id, auto_advance=False,
        )
        return _obligation_from_invoice(invoice)

    def pay(self, obligation_id):
        invoice = self._call(f'Pay invoice {obligation_id}', stripe.Invoice.pay, obligation_id)
        return _obligation_from_invoice(invoice)

    def get_payment_intent(self, payment_intent_id):
        intent = self._call(
            f'Retrieve payment intent {payment_intent_id}',
            stripe.PaymentIntent.retrieve, payment_intent_id,
        )
        method = intent.payment_method
        return PaymentIntentInfo(
            id=intent.id,
            payment_method_id=method if isinstance(method, str) else getattr(method, 'id', ''),
            kind=(intent.metadata or {}).get('type'),
        )

    def create_checkout_session(self, section_id, plan, course, description, return_url,
                                submit_message='', idempotency_key=None):
        if plan not in self.plan_price_ids:
            raise ValidationError(f'Unknown plan {plan!r}')

        payment_intent_data = {
            'metadata': {'course': course, 'type': plan, 'section_id': str(section_id)},
            'description': description,
        }
        if plan == 'deposit':
            # Keeps the card for the off-session balance charge
            payment_intent_data['setup_future_usage'] = 'off_session'

        params = {
            'mode': 'payment',
            'ui_mode': 'embedded',
            'customer_creation': 'always',
            'line_items': [{'price': self.plan_price_ids[plan], 'quantity': 1}],
            'metadata': {'section_id': str(section_id), 'plan': plan, 'course': course},
            'payment_intent_data': payment_intent_data,
            'return_url': return_url,
        }
        if submit_message:
            params['custom_text'] = {'submit': {'message': submit_message}}
        if idempotency_key:
            params['idempotency_key'] = idempotency_key

        session = self._call(
            f'Create checkout session for section {section_id}',
            stripe.checkout.Session.create, **params,
        )
        return CheckoutSession(id=session.id, client_secret=session.client_secret)

    def create_balance_obligation(self, customer_id, payment_method_id, course, scheduled_date,
                                  idempotency_key=None):
        """
        Save the deposit's card on the customer and open a draft balance
        invoice that the scheduler will charge on ``scheduled_date``.

        Retrying with the same ``idempotency_key`` returns the invoice item and
        invoice Stripe already created for it instead of adding new ones.
        """
        item_keys, invoice_keys = {}, {}
        if idempotency_key:
            item_keys = {'idempotency_key': f'{idempotency_key}-item'}
            invoice_keys = {'idempotency_key': f'{idempotency_key}-invoice'}

        self._call(
            f'Set default payment method for {customer_id}',
            stripe.Customer.modify, customer_id,
            invoice_settings={'default_payment_method': payment_method_id},
        )
        self._call(
            f'Create balance invoice item for {customer_id}',
            stripe.InvoiceItem.create, customer=customer_id, price=self.balance_price_id,
            **item_keys,
        )
        invoice = self._call(
            f'Create balance invoice for {customer_id}',
            stripe.Invoice.create,
            customer=customer_id,
            collection_method='charge_automatically',
            auto_advance=False,
            pending_invoice_items_behavior='include',
            metadata={'course': course, 'type': 'balance', 'scheduled_date': scheduled_date},
            **invoice_keys,
        )
        return _obligation_from_invoice(invoice)

    def construct_event(self, payload, signature):
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError:
            raise ValidationError('Invalid webhook payload')
        except stripe.SignatureVerificationError:
            raise ValidationError('Invalid signature')


def build_gateway():
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        balance_price_id=settings.STRIPE_PRICE_BALANCE,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
        plan_price_ids={
            'deposit': settings.STRIPE_PRICE_DEPOSIT,
            'full': settings.STRIPE_PRICE_FULL,
        },
    )


def get_gateway():
    """The process-wide gateway built at startup."""
    return apps.get_app_config('payments').gateway
