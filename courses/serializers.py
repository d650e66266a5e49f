from rest_framework import serializers
from .models import Section


class SectionSerializer(serializers.ModelSerializer):
    seats_left = serializers.IntegerField(read_only=True)
    waitlist_size = serializers.SerializerMethodField()

    class Meta:
        model = Section
        fields = ['id', 'label', 'max_capacity', 'enrolled_count', 'seats_left', 'status', 'waitlist_size']
        read_only_fields = ['enrolled_count', 'status']

    def get_waitlist_size(self, obj):
        from enrollment.models import Enrollment
        return Enrollment.objects.filter(
            section=obj, payment_status=Enrollment.PaymentStatus.WAITLISTED
        ).count()
