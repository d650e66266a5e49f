from django.contrib import admin
from .models import Enrollment


@admin.register(Enrollment)
class EnrollmentAdmin(admin.ModelAdmin):
    list_display = ['email', 'section', 'plan', 'payment_status', 'waitlist_position', 'payment_collected', 'created_at']
    list_filter = ['payment_status', 'plan', 'section']
    search_fields = ['email', 'stripe_session_id', 'stripe_customer_id']
    raw_id_fields = ['section']
    # Positions and counts are only changed through the waitlist operations
    readonly_fields = ['payment_status', 'waitlist_position', 'stripe_session_id']
