import hmac
import time
from datetime import date

from django.conf import settings
from rest_framework import permissions, views
from rest_framework.exceptions import PermissionDenied
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle

from courses.models import Section
from courses.throttling import FixedWindowThrottle
from enrollment.exceptions import InvalidState, NotFound, Unauthorized, ValidationError
from .gateway import get_gateway
from .scheduler import run_balance_scheduler
from .serializers import CheckoutSerializer
from .webhooks import dispatch

# Double clicks inside one bucket reuse the same checkout session
CHECKOUT_IDEMPOTENCY_SECONDS = 10


def has_cron_secret(request):
    """Constant-time check of ``Authorization: Bearer <CRON_SECRET>``."""
    expected = settings.CRON_SECRET
    presented = request.headers.get('Authorization', '')
    if not expected:
        return False
    return hmac.compare_digest(presented.encode(), f'Bearer {expected}'.encode())


def submit_message(plan):
    if plan == 'deposit':
        due = date.fromisoformat(settings.BALANCE_DUE_DATE)
        return (
            f'Your card will be saved securely. The remaining ${settings.BALANCE_AMOUNT} balance '
            f'will be charged automatically on {due:%B} {due.day}.'
        )
    return 'You will receive a confirmation email with your schedule and course details shortly after payment.'


class CheckoutView(views.APIView):
    """
    Starts an embedded checkout for one seat.

    A full or closed section is refused here, before the student is charged.
    The seat itself is only claimed when the processor confirms the payment.
    """
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [FixedWindowThrottle]
    throttle_scope = 'checkout'

    def post(self, request):
        serializer = CheckoutSerializer(data=request.data)
        if not serializer.is_valid():
            field, errors = next(iter(serializer.errors.items()))
            raise ValidationError(f"{field}: {' '.join(str(e) for e in errors)}")
        section_id = serializer.validated_data['section_id']
        plan = serializer.validated_data['plan']

        if not settings.ENROLLMENT_ENABLED:
            raise PermissionDenied('Enrollment is currently closed')

        section = Section.objects.filter(id=section_id).first()
        if section is None:
            raise NotFound('Section not found')
        if section.status == Section.Status.CLOSED or section.is_full:
            raise InvalidState('This section is full')

        schedule = settings.SECTION_SCHEDULES.get(section.label, section.label)
        bucket = int(time.time() // CHECKOUT_IDEMPOTENCY_SECONDS)
        ident = BaseThrottle().get_ident(request)

        session = get_gateway().create_checkout_session(
            section_id=section.id,
            plan=plan,
            course=settings.COURSE_SLUG,
            description=f'{settings.COURSE_NAME} - {schedule}',
            return_url=f'{settings.SITE_URL}/summer/success?session_id={{CHECKOUT_SESSION_ID}}',
            submit_message=submit_message(plan),
            idempotency_key=f'checkout_{ident}_{section.id}_{plan}_{bucket}',
        )
        return Response({'client_secret': session.client_secret})


class FinalizeBalanceView(views.APIView):
    """Triggered by the external cron; runs the balance scheduler once."""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def get(self, request):
        if not has_cron_secret(request):
            raise Unauthorized()
        report = run_balance_scheduler()
        return Response(report.as_dict())


class StripeWebhookView(views.APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request):
        signature = request.headers.get('Stripe-Signature')
        if not signature:
            raise ValidationError('Missing stripe-signature header')

        gateway = get_gateway()
        event = gateway.construct_event(request.body, signature)
        dispatch(event, gateway)
        return Response({'received': True})
