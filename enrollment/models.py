from django.db import models


class Enrollment(models.Model):
    """
    One student's claim on a section, created when a checkout session completes.

    Admitted enrollments count toward ``Section.enrolled_count``; waitlisted ones
    hold a dense 1-based ``waitlist_position`` instead. Removing an enrollment
    deletes the row.
    """

    class PaymentStatus(models.TextChoices):
        PENDING = 'PENDING', 'Pending'
        PAID = 'PAID', 'Paid'
        WAITLISTED = 'WAITLISTED', 'Waitlisted'
        # Reported by removals, never stored: removed enrollments are deleted
        REMOVED = 'REMOVED', 'Removed'

    class Plan(models.TextChoices):
        DEPOSIT = 'DEPOSIT', 'Deposit'
        FULL = 'FULL', 'Full'

    section = models.ForeignKey(
        'courses.Section',
        on_delete=models.PROTECT,
        related_name='enrollments'
    )
    email = models.EmailField(blank=True)
    plan = models.CharField(max_length=10, choices=Plan.choices, default=Plan.FULL)
    payment_status = models.CharField(
        max_length=12,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING
    )
    waitlist_position = models.PositiveIntegerField(null=True, blank=True)
    stripe_session_id = models.CharField(max_length=255, unique=True)
    stripe_customer_id = models.CharField(max_length=255, blank=True)
    payment_collected = models.BooleanField(
        default=False,
        help_text="Whether the processor confirmed money was taken for this checkout"
    )
    balance_invoice_id = models.CharField(
        max_length=255,
        blank=True,
        help_text="Draft balance invoice opened for a deposit checkout"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['section_id', 'created_at']
        indexes = [
            models.Index(fields=['section', 'payment_status', 'waitlist_position'], name='enrollment_waitlist_idx'),
        ]

    def __str__(self):
        if self.payment_status == self.PaymentStatus.WAITLISTED:
            return f"{self.email or self.stripe_session_id} waiting #{self.waitlist_position} for {self.section.label}"
        return f"{self.email or self.stripe_session_id} -> {self.section.label} ({self.payment_status})"

    @property
    def is_waitlisted(self):
        return self.payment_status == self.PaymentStatus.WAITLISTED
