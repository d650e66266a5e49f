"""
Checkout confirmation from the payment processor.

``checkout.session.completed`` is where an enrollment comes into existence:
the seat is claimed (or the student queued), the payment is recorded, and for
the deposit plan the draft balance invoice is opened for the scheduler.
"""
import logging

from django.conf import settings

from enrollment import services
from enrollment.exceptions import ExternalServiceError, InvalidState, NotFound
from enrollment.models import Enrollment

logger = logging.getLogger(__name__)


def _object_id(value):
    if isinstance(value, str) or value is None:
        return value
    return value.get('id')


def handle_checkout_completed(session, gateway):
    customer_id = _object_id(session.get('customer'))
    payment_intent_id = _object_id(session.get('payment_intent'))
    if not customer_id or not payment_intent_id:
        return None

    metadata = session.get('metadata') or {}
    plan = (metadata.get('plan') or 'full').upper()
    if plan not in Enrollment.Plan.values:
        plan = Enrollment.Plan.FULL
    email = (session.get('customer_details') or {}).get('email') or ''

    enrollment = None
    section_id = metadata.get('section_id') or metadata.get('sectionId')
    if section_id:
        try:
            result = services.signup(int(section_id), session['id'], email, plan, customer_id)
        except (ValueError, NotFound) as exc:
            logger.error(f"Checkout {session['id']} references unknown section {section_id}: {exc}")
            return None

        enrollment = services.confirm_payment(session['id'])
        if not result.created:
            logger.info(f"Checkout {session['id']} redelivered, enrollment {enrollment.id} already exists")

    if plan != Enrollment.Plan.DEPOSIT:
        logger.info(f"Full payment completed for customer {customer_id}, no balance invoice needed")
        return enrollment

    if enrollment is not None and enrollment.balance_invoice_id:
        return enrollment

    try:
        intent = gateway.get_payment_intent(payment_intent_id)
        obligation = gateway.create_balance_obligation(
            customer_id,
            intent.payment_method_id,
            course=settings.COURSE_SLUG,
            scheduled_date=settings.BALANCE_DUE_DATE,
            idempotency_key=f"balance-{session['id']}",
        )
    except (ExternalServiceError, InvalidState) as exc:
        # The deposit is already captured; answer the webhook, a resent event retries
        logger.error(f"Could not create balance invoice for customer {customer_id}: {exc.detail}")
        return enrollment

    if enrollment is not None:
        services.record_balance_obligation(enrollment.id, obligation.id)
        enrollment.balance_invoice_id = obligation.id
    logger.info(f"Draft invoice {obligation.id} created for customer {customer_id}")
    return enrollment


EVENT_HANDLERS = {
    'checkout.session.completed': handle_checkout_completed,
}


def dispatch(event, gateway):
    handler = EVENT_HANDLERS.get(event['type'])
    if handler is None:
        return None
    return handler(event['data']['object'], gateway)
