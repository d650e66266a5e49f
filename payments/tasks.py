from celery import shared_task
import logging

logger = logging.getLogger(__name__)


@shared_task
def finalize_balance_obligations():
    """
    Periodic (celery beat) run of the balance scheduler.

    Returns:
        dict: found, finalized, failed and failed_ids for this run.
    """
    from .scheduler import run_balance_scheduler

    report = run_balance_scheduler()
    return report.as_dict()
