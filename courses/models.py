from django.db import models


class Section(models.Model):
    """A fixed-capacity offering of the course with its own seat count and waitlist."""

    class Status(models.TextChoices):
        OPEN = 'OPEN', 'Open'
        FULL = 'FULL', 'Full'
        CLOSED = 'CLOSED', 'Closed'

    label = models.CharField(max_length=100, unique=True)  # e.g., "Section A"
    max_capacity = models.PositiveIntegerField()
    # Cached count of admitted enrollments, maintained by courses.capacity
    enrolled_count = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.OPEN)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['label']
        constraints = [
            models.CheckConstraint(
                condition=models.Q(enrolled_count__lte=models.F('max_capacity')),
                name='section_enrolled_within_capacity',
            ),
            models.CheckConstraint(
                condition=models.Q(max_capacity__gt=0),
                name='section_capacity_positive',
            ),
        ]

    def __str__(self):
        return f"{self.label} ({self.enrolled_count}/{self.max_capacity})"

    @property
    def seats_left(self):
        return max(self.max_capacity - self.enrolled_count, 0)

    @property
    def is_full(self):
        return self.enrolled_count >= self.max_capacity
