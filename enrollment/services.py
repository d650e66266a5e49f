"""
Enrollment lifecycle: signup, payment confirmation and cancellation.

    signup ──> PENDING ──confirm_payment──> PAID
          └──> WAITLISTED (section full) ──remove──> deleted
                          └──promote──> PAID / PENDING

A balance obligation getting paid later never touches ``payment_status``;
that state lives in the payment processor.
"""
import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction

from courses.capacity import release_seat, try_admit
from . import waitlist
from .exceptions import InvalidState, NotFound, ValidationError
from .models import Enrollment

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SignupResult:
    enrollment: Enrollment
    created: bool

    @property
    def waitlisted(self):
        return self.enrollment.payment_status == Enrollment.PaymentStatus.WAITLISTED


def signup(section_id, session_id, email='', plan=Enrollment.Plan.FULL, customer_id=''):
    """
    Claim a seat for a checkout session, or queue it when the section is full.

    Idempotent per ``session_id``: a repeated call returns the enrollment
    created the first time.
    """
    if not session_id:
        raise ValidationError('A payment session reference is required')

    existing = Enrollment.objects.filter(stripe_session_id=session_id).first()
    if existing:
        return SignupResult(enrollment=existing, created=False)

    try:
        with transaction.atomic():
            # Locks the section row until commit, serializing concurrent signups
            admission = try_admit(section_id)
            enrollment = Enrollment.objects.create(
                section=admission.section,
                email=email or '',
                plan=plan,
                stripe_session_id=session_id,
                stripe_customer_id=customer_id or '',
                payment_status=Enrollment.PaymentStatus.PENDING,
            )
            if not admission.admitted:
                waitlist.append(enrollment)
    except IntegrityError:
        # Lost a race with a duplicate delivery of the same session
        existing = Enrollment.objects.filter(stripe_session_id=session_id).first()
        if existing is None:
            raise
        return SignupResult(enrollment=existing, created=False)

    logger.info(f"Signup for session {session_id} in section {section_id}: {enrollment.payment_status}")
    return SignupResult(enrollment=enrollment, created=True)


def confirm_payment(session_id):
    """
    Record that the processor collected payment for a checkout session.

    PENDING becomes PAID. A WAITLISTED enrollment keeps its place in the queue
    and is flagged as paid, so removing it later warns about a refund.
    """
    with transaction.atomic():
        try:
            enrollment = Enrollment.objects.select_for_update().get(stripe_session_id=session_id)
        except Enrollment.DoesNotExist:
            raise NotFound(f'No enrollment for session {session_id}')

        if enrollment.payment_collected and enrollment.payment_status != Enrollment.PaymentStatus.PENDING:
            return enrollment

        enrollment.payment_collected = True
        if enrollment.payment_status == Enrollment.PaymentStatus.PENDING:
            enrollment.payment_status = Enrollment.PaymentStatus.PAID
        enrollment.save(update_fields=['payment_collected', 'payment_status'])

    if enrollment.payment_status == Enrollment.PaymentStatus.WAITLISTED:
        logger.warning(
            f"Payment collected for session {session_id} but section {enrollment.section_id} is full. "
            f"Waitlisted at #{enrollment.waitlist_position}, manual refund may be needed."
        )
    return enrollment


def cancel_pending(enrollment_id):
    """Drop an admitted enrollment whose payment never arrived and free its seat."""
    with transaction.atomic():
        # Section first, then enrollment: the same order waitlist operations use
        enrollment = waitlist.locked_enrollment(enrollment_id)

        if enrollment.payment_status != Enrollment.PaymentStatus.PENDING:
            raise InvalidState(f'Enrollment {enrollment_id} is not pending')

        section_id = enrollment.section_id
        enrollment.delete()
        section = release_seat(section_id)

    logger.info(f"Cancelled pending enrollment {enrollment_id}, section {section_id} now {section.enrolled_count}/{section.max_capacity}")
    return section


def record_balance_obligation(enrollment_id, obligation_id):
    """Remember the balance invoice opened for a deposit so redelivered events skip it."""
    Enrollment.objects.filter(id=enrollment_id).update(balance_invoice_id=obligation_id)


def enrollment_status(session_id):
    """What the post-checkout page shows for a session."""
    enrollment = (
        Enrollment.objects
        .select_related('section')
        .filter(stripe_session_id=session_id)
        .first()
    )
    if enrollment is None:
        return {'found': False}

    return {
        'found': True,
        'status': enrollment.payment_status,
        'section': enrollment.section.label,
        'waitlist_position': enrollment.waitlist_position,
    }
