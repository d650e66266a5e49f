from django.core.management.base import BaseCommand
from courses.models import Section


class Command(BaseCommand):
    help = 'Creates the course sections if they do not exist yet'

    def add_arguments(self, parser):
        parser.add_argument('--capacity', type=int, default=5, help='Seats per section')
        parser.add_argument('--labels', nargs='+', default=['Section A', 'Section B'], help='Section labels to create')

    def handle(self, *args, **options):
        created_labels = []
        for label in options['labels']:
            _, created = Section.objects.get_or_create(
                label=label,
                defaults={'max_capacity': options['capacity']},
            )
            if created:
                created_labels.append(label)

        if not created_labels:
            self.stdout.write(self.style.SUCCESS('All sections already exist. Nothing to do.'))
            return

        self.stdout.write(self.style.SUCCESS(f"Seeded {', '.join(created_labels)}"))
