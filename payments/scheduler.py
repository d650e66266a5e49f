"""
Deferred balance payments.

Each run pages through the processor's draft invoices, picks the balance
obligations of this course whose scheduled date has arrived, and for each one
finalizes the invoice and charges the saved card. A failure on one obligation
is recorded and the run moves on; nothing is retried automatically, so the
``failed_ids`` of the report is the list to follow up by hand.
"""
import logging
from dataclasses import dataclass, field

from django.conf import settings
from django.utils import timezone

from enrollment.exceptions import ExternalServiceError, InvalidState
from .gateway import ObligationStatus, get_gateway

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECORDS = 10_000


@dataclass
class SchedulerReport:
    found: int = 0
    finalized: int = 0
    failed_ids: list = field(default_factory=list)

    @property
    def failed(self):
        return len(self.failed_ids)

    def as_dict(self):
        return {
            'found': self.found,
            'finalized': self.finalized,
            'failed': self.failed,
            'failed_ids': list(self.failed_ids),
        }


class BalanceScheduler:

    def __init__(self, gateway, course, today=None, max_records=DEFAULT_MAX_RECORDS):
        self.gateway = gateway
        self.course = course
        self.today = today or timezone.localdate()
        self.max_records = max_records

    def draft_obligations(self):
        """All DRAFT obligations, following pages until exhausted or the cap is hit."""
        drafts = []
        page_token = None
        while True:
            page = self.gateway.list_draft_obligations(page_token)
            drafts.extend(page.items)
            if len(drafts) >= self.max_records:
                if page.next_page_token or len(drafts) > self.max_records:
                    logger.warning(f"Stopped listing draft invoices at the cap of {self.max_records}")
                return drafts[:self.max_records]
            if not page.next_page_token:
                return drafts
            page_token = page.next_page_token

    def is_due(self, obligation):
        # ISO dates compare correctly as strings; an obligation dated today is due
        scheduled = obligation.scheduled_date
        return (
            obligation.status == ObligationStatus.DRAFT
            and obligation.kind == 'balance'
            and obligation.course == self.course
            and bool(scheduled)
            and scheduled <= self.today.isoformat()
        )

    def due_obligations(self):
        return [obligation for obligation in self.draft_obligations() if self.is_due(obligation)]

    def run(self):
        due = self.due_obligations()
        report = SchedulerReport(found=len(due))

        for obligation in due:
            try:
                self.gateway.finalize(obligation.id)
                self.gateway.pay(obligation.id)
            except (InvalidState, ExternalServiceError) as exc:
                logger.warning(f"Balance invoice {obligation.id} for customer {obligation.customer_id} failed: {exc.detail}")
                report.failed_ids.append(obligation.id)
                continue
            except Exception:
                logger.exception(f"Unexpected error charging balance invoice {obligation.id}")
                report.failed_ids.append(obligation.id)
                continue

            report.finalized += 1
            logger.info(f"Finalized and charged invoice {obligation.id} for customer {obligation.customer_id}")

        summary = (
            f"Balance scheduler for {self.course} on {self.today.isoformat()}: "
            f"found={report.found} finalized={report.finalized} failed={report.failed}"
        )
        if report.failed_ids:
            logger.warning(f"{summary} failed_ids={report.failed_ids}")
        else:
            logger.info(summary)
        return report


def run_balance_scheduler(gateway=None, today=None):
    scheduler = BalanceScheduler(
        gateway=gateway or get_gateway(),
        course=settings.COURSE_SLUG,
        today=today,
        max_records=settings.SCHEDULER_MAX_RECORDS,
    )
    return scheduler.run()
