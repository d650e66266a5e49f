import logging
import time

import redis
from django.conf import settings
from django.db import DatabaseError, connection

logger = logging.getLogger(__name__)


def check_database_health():
    """Round-trip time of a trivial query on the default database, in ms."""
    started = time.perf_counter()
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError as e:
        logger.error(f"Database health check failed: {e}")
        return {
            'status': False,
            'response_time': None,
            'message': f'Database unreachable ({connection.vendor}): {e}'
        }

    return {
        'status': True,
        'response_time': round((time.perf_counter() - started) * 1000, 2),
        'message': f'Database is healthy ({connection.vendor})'
    }


def check_broker_health():
    """
    Check the Redis broker behind celery (beat runs the balance scheduler through it).
    Returns: dict with 'status' (bool) and 'queue_depth' (int)
    """
    broker_url = settings.CELERY_BROKER_URL
    if not broker_url.startswith(('redis://', 'rediss://')):
        return {
            'status': True,
            'queue_depth': None,
            'message': f'Broker is not Redis ({broker_url.split(":", 1)[0]}), skipped'
        }

    try:
        r = redis.from_url(broker_url)
        r.ping()
        # Default celery queue name
        queue_depth = r.llen('celery')
        return {
            'status': True,
            'queue_depth': queue_depth,
            'message': 'Task queue is healthy'
        }
    except redis.RedisError as e:
        return {
            'status': False,
            'queue_depth': None,
            'message': f'Task queue error: {str(e)}'
        }


def get_seat_utilization():
    """
    Calculate seat utilization across all sections.
    Returns: dict with 'total_seats', 'filled_seats', 'utilization_percentage'
    """
    from courses.models import Section
    from django.db.models import Sum

    totals = Section.objects.aggregate(
        total_capacity=Sum('max_capacity'),
        total_enrolled=Sum('enrolled_count')
    )

    total_seats = totals['total_capacity'] or 0
    filled_seats = totals['total_enrolled'] or 0
    utilization = (filled_seats / total_seats * 100) if total_seats > 0 else 0

    return {
        'total_seats': total_seats,
        'filled_seats': filled_seats,
        'utilization_percentage': round(utilization, 2)
    }


def get_waitlist_sizes():
    """
    Waitlisted count per section.
    Returns: list of dicts with 'section_id', 'label', 'enrolled_count', 'max_capacity' and 'waitlisted'
    """
    from courses.models import Section
    from enrollment.models import Enrollment
    from django.db.models import Count, Q

    sections = Section.objects.annotate(
        waitlisted=Count(
            'enrollments',
            filter=Q(enrollments__payment_status=Enrollment.PaymentStatus.WAITLISTED)
        )
    ).order_by('label')

    return [
        {
            'section_id': section.id,
            'label': section.label,
            'enrolled_count': section.enrolled_count,
            'max_capacity': section.max_capacity,
            'waitlisted': section.waitlisted,
        }
        for section in sections
    ]
