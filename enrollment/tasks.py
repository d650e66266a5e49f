from celery import shared_task
from django.core.mail import send_mail
from django.conf import settings
import logging

logger = logging.getLogger(__name__)


@shared_task
def notify_waitlist_positions(section_id):
    """
    Email every waitlisted student of a section their current position.

    Queued after a removal, reorder or promotion has committed.

    Args:
        section_id (int): The ID of the section.

    Returns:
        str: Status message indicating how many students were notified.
    """
    from courses.models import Section
    from .waitlist import waitlisted

    try:
        section = Section.objects.get(id=section_id)
    except Section.DoesNotExist:
        return f"Section {section_id} not found."

    entries = [entry for entry in waitlisted(section_id) if entry.email]
    total = waitlisted(section_id).count()

    for entry in entries:
        send_mail(
            subject=f'Waitlist Position Update: {section.label}',
            message=(
                f'Hello,\n\n'
                f'Your position on the waitlist for {section.label} has been updated.\n\n'
                f'Current Position: #{entry.waitlist_position}\n'
                f'Total in Waitlist: {total}\n\n'
                f'We will contact you if a seat becomes available.\n'
            ),
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[entry.email],
            fail_silently=True,
        )

    logger.info(f"Notified {len(entries)} waitlisted students of section {section_id}")
    return f"Notified {len(entries)} students about position changes."
