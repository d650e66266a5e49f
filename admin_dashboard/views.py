from rest_framework import views
from rest_framework.response import Response

from enrollment.models import Enrollment
from .utils import (
    check_database_health,
    check_broker_health,
    get_seat_utilization,
    get_waitlist_sizes
)


class AdminOverviewView(views.APIView):
    """
    Seat utilization, waitlist sizes and system health for the admin panel.
    Only accessible to staff users.
    """

    def get(self, request):
        counts = {
            status: Enrollment.objects.filter(payment_status=status).count()
            for status in (
                Enrollment.PaymentStatus.PENDING,
                Enrollment.PaymentStatus.PAID,
                Enrollment.PaymentStatus.WAITLISTED,
            )
        }

        last_enrollment = Enrollment.objects.order_by('-created_at').first()

        return Response({
            'statistics': {
                'enrollments_by_status': counts,
                'total_enrollments': sum(counts.values()),
                'last_enrollment_time': last_enrollment.created_at if last_enrollment else None,
            },
            'analytics': {
                'seat_utilization': get_seat_utilization(),
                'sections': get_waitlist_sizes(),
            },
            'system_health': {
                'database': check_database_health(),
                'broker': check_broker_health(),
            },
        })
