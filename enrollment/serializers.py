from rest_framework import serializers
from .models import Enrollment


class EnrollmentSerializer(serializers.ModelSerializer):
    section_label = serializers.CharField(source='section.label', read_only=True)

    class Meta:
        model = Enrollment
        fields = [
            'id', 'section', 'section_label', 'email', 'plan', 'payment_status',
            'waitlist_position', 'payment_collected', 'balance_invoice_id', 'stripe_customer_id',
            'stripe_session_id', 'created_at',
        ]
        read_only_fields = fields


class EnrollmentIdSerializer(serializers.Serializer):
    enrollment_id = serializers.IntegerField(min_value=1)


class ReorderWaitlistSerializer(serializers.Serializer):
    section_id = serializers.IntegerField(min_value=1)
    ordered_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=True,
    )


class SessionLookupSerializer(serializers.Serializer):
    session_id = serializers.CharField(max_length=255)
