"""
Per-section seat accounting.

Both functions lock the section row with SELECT ... FOR UPDATE, so they must be
called inside ``transaction.atomic()``; the caller's enrollment write then
commits or rolls back together with the counter change.
"""
import logging
from dataclasses import dataclass

from django.db.models import F

from enrollment.exceptions import NotFound
from .models import Section

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AdmissionResult:
    admitted: bool
    section: Section


def lock_section(section_id):
    """Fetch a section holding its row lock for the rest of the transaction."""
    try:
        return Section.objects.select_for_update().get(id=section_id)
    except Section.DoesNotExist:
        raise NotFound(f'Section {section_id} not found')


def try_admit(section_id):
    """
    Take one seat in the section if one is free.

    Returns an AdmissionResult; ``admitted`` is False when the section is full
    or closed, in which case nothing is changed and the caller routes the
    signup to the waitlist.
    """
    section = lock_section(section_id)

    if section.status == Section.Status.CLOSED or section.enrolled_count >= section.max_capacity:
        logger.info(f"Section {section.id} has no free seat ({section.enrolled_count}/{section.max_capacity})")
        return AdmissionResult(admitted=False, section=section)

    new_count = section.enrolled_count + 1
    Section.objects.filter(id=section.id).update(
        enrolled_count=F('enrolled_count') + 1,
        status=Section.Status.FULL if new_count >= section.max_capacity else Section.Status.OPEN,
    )
    section.refresh_from_db()
    logger.info(f"Admitted into section {section.id}, now {section.enrolled_count}/{section.max_capacity}")
    return AdmissionResult(admitted=True, section=section)


def release_seat(section_id):
    """Give back one seat, reopening a full section."""
    section = lock_section(section_id)
    if section.enrolled_count == 0:
        logger.warning(f"Release requested for section {section.id} with no admitted enrollments")
        return section

    updates = {'enrolled_count': F('enrolled_count') - 1}
    if section.status == Section.Status.FULL:
        updates['status'] = Section.Status.OPEN
    Section.objects.filter(id=section.id).update(**updates)
    section.refresh_from_db()
    return section
