"""
Waitlist ordering for full sections.

Positions are a dense 1-based rank per section. Every mutation rewrites the
affected positions from scratch inside one transaction that first locks the
owning section row, so concurrent removals, reorders and promotions on the
same section run one after the other and never see a half-renumbered list.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from django.db import transaction
from django.db.models import F, Max

from courses.capacity import lock_section, try_admit
from .exceptions import InvalidState, NotFound, ValidationError
from .models import Enrollment

logger = logging.getLogger(__name__)

WAITLISTED = Enrollment.PaymentStatus.WAITLISTED

REFUND_WARNING = 'This student already paid. Consider issuing a refund via Stripe.'


@dataclass(frozen=True)
class RemovalResult:
    success: bool
    warning: Optional[str] = None


@dataclass(frozen=True)
class PromotionResult:
    enrollment: Enrollment
    enrolled_count: int


def waitlisted(section_id):
    """Waitlisted enrollments of a section in queue order."""
    return (
        Enrollment.objects
        .filter(section_id=section_id, payment_status=WAITLISTED)
        .select_related('section')
        .order_by(F('waitlist_position').asc(nulls_last=True), 'created_at', 'id')
    )


def append(enrollment):
    """
    Put an enrollment at the back of its section's waitlist.

    The caller must hold the section lock (``try_admit`` takes it).
    """
    current_max = (
        Enrollment.objects
        .filter(section_id=enrollment.section_id, payment_status=WAITLISTED)
        .exclude(id=enrollment.id)
        .aggregate(current_max=Max('waitlist_position'))['current_max']
    ) or 0

    enrollment.payment_status = WAITLISTED
    enrollment.waitlist_position = current_max + 1
    enrollment.save(update_fields=['payment_status', 'waitlist_position'])
    logger.info(f"Enrollment {enrollment.id} waitlisted at position {enrollment.waitlist_position} in section {enrollment.section_id}")
    return enrollment


def renumber(section_id):
    """
    Rewrite positions of the section's waitlist to 1..N, keeping queue order.

    Only rows whose position changes are written, in a single bulk update.
    Returns the waitlist in its new order.
    """
    entries = list(waitlisted(section_id))
    changed = []
    for position, entry in enumerate(entries, start=1):
        if entry.waitlist_position != position:
            entry.waitlist_position = position
            changed.append(entry)

    if changed:
        Enrollment.objects.bulk_update(changed, ['waitlist_position'])
    return entries


def locked_enrollment(enrollment_id):
    """Lock the owning section, then re-read the enrollment under that lock."""
    try:
        section_id = Enrollment.objects.values_list('section_id', flat=True).get(id=enrollment_id)
    except Enrollment.DoesNotExist:
        raise NotFound(f'Enrollment {enrollment_id} not found')

    lock_section(section_id)
    try:
        return Enrollment.objects.select_for_update().get(id=enrollment_id)
    except Enrollment.DoesNotExist:
        # Deleted by a concurrent request while we waited for the lock
        raise NotFound(f'Enrollment {enrollment_id} not found')


def _queue_position_notices(section_id):
    from .tasks import notify_waitlist_positions
    transaction.on_commit(lambda: notify_waitlist_positions.delay(section_id))


def remove(enrollment_id):
    """
    Delete a waitlisted enrollment and close the gap it leaves.

    Raises NotFound for unknown ids and InvalidState when the enrollment is not
    waitlisted; in both cases nothing changes. When money was already taken
    for the enrollment the result carries a refund warning. Refunds stay a
    manual decision.
    """
    with transaction.atomic():
        enrollment = locked_enrollment(enrollment_id)
        if enrollment.payment_status != WAITLISTED:
            raise InvalidState(f'Enrollment {enrollment_id} is not waitlisted')

        section_id = enrollment.section_id
        warning = REFUND_WARNING if enrollment.payment_collected else None
        enrollment.delete()
        remaining = renumber(section_id)
        _queue_position_notices(section_id)

    logger.info(f"Removed enrollment {enrollment_id} from waitlist of section {section_id}, {len(remaining)} still waiting")
    if warning:
        logger.warning(f"Removed waitlisted enrollment {enrollment_id} had already paid; refund may be owed")
    return RemovalResult(success=True, warning=warning)


def reorder(section_id, ordered_ids):
    """
    Overwrite a section's waitlist order: ``ordered_ids[i]`` gets position i + 1.

    The list must name every waitlisted enrollment of the section exactly
    once; anything else raises ValidationError before any row is touched.
    """
    ordered_ids = list(ordered_ids or [])
    if not ordered_ids:
        raise ValidationError('ordered_ids must be a non-empty list')
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError('ordered_ids contains duplicate enrollment ids')

    with transaction.atomic():
        lock_section(section_id)
        entries = {entry.id: entry for entry in waitlisted(section_id).select_for_update(of=('self',))}

        missing = sorted(set(entries) - set(ordered_ids))
        unknown = sorted(set(ordered_ids) - set(entries))
        if missing or unknown:
            problems = []
            if missing:
                problems.append(f"missing waitlisted enrollments {missing}")
            if unknown:
                problems.append(f"ids not waitlisted in section {section_id}: {unknown}")
            raise ValidationError('ordered_ids must list the whole waitlist: ' + '; '.join(problems))

        for position, enrollment_id in enumerate(ordered_ids, start=1):
            entries[enrollment_id].waitlist_position = position
        Enrollment.objects.bulk_update(list(entries.values()), ['waitlist_position'])
        _queue_position_notices(section_id)

    logger.info(f"Reordered waitlist of section {section_id}: {ordered_ids}")


def promote(enrollment_id):
    """
    Move a waitlisted enrollment into a free seat.

    The enrollment becomes PAID when its checkout payment was collected,
    otherwise PENDING. Raises InvalidState when it is not waitlisted or the
    section is still full.
    """
    with transaction.atomic():
        enrollment = locked_enrollment(enrollment_id)
        if enrollment.payment_status != WAITLISTED:
            raise InvalidState(f'Enrollment {enrollment_id} is not waitlisted')

        admission = try_admit(enrollment.section_id)
        if not admission.admitted:
            raise InvalidState('Section is full, cannot promote')

        enrollment.payment_status = (
            Enrollment.PaymentStatus.PAID if enrollment.payment_collected
            else Enrollment.PaymentStatus.PENDING
        )
        enrollment.waitlist_position = None
        enrollment.save(update_fields=['payment_status', 'waitlist_position'])
        renumber(enrollment.section_id)
        _queue_position_notices(enrollment.section_id)

    logger.info(f"Promoted enrollment {enrollment_id} into section {enrollment.section_id}")
    return PromotionResult(enrollment=enrollment, enrolled_count=admission.section.enrolled_count)


def waitlists_by_section():
    """
    All waitlisted enrollments grouped by section id, in queue order.

    Rows without a position (or with gaps) are renumbered on the way out.
    """
    section_ids = sorted(set(
        Enrollment.objects.filter(payment_status=WAITLISTED).values_list('section_id', flat=True)
    ))
    grouped = {}
    with transaction.atomic():
        for section_id in section_ids:
            lock_section(section_id)
            grouped[section_id] = renumber(section_id)
    return grouped
