from datetime import date

from django.core.management.base import BaseCommand, CommandError
from payments.scheduler import run_balance_scheduler


class Command(BaseCommand):
    help = 'Finalizes and charges balance invoices that are due'

    def add_arguments(self, parser):
        parser.add_argument('--date', help='Run as of this ISO date (YYYY-MM-DD) instead of today')

    def handle(self, *args, **options):
        today = None
        if options['date']:
            try:
                today = date.fromisoformat(options['date'])
            except ValueError:
                raise CommandError(f"Invalid --date {options['date']!r}, expected YYYY-MM-DD")

        report = run_balance_scheduler(today=today)

        self.stdout.write(
            f'Summary:\n'
            f'  - Found: {report.found}\n'
            f'  - Finalized: {report.finalized}\n'
            f'  - Failed: {report.failed}'
        )
        if report.failed_ids:
            self.stdout.write(self.style.WARNING(f"Failed invoices: {', '.join(report.failed_ids)}"))
        else:
            self.stdout.write(self.style.SUCCESS('All due balance invoices were charged.'))
