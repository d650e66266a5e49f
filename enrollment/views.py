from rest_framework import permissions, views
from rest_framework.response import Response

from courses.models import Section
from courses.throttling import FixedWindowThrottle
from . import services, waitlist
from .exceptions import NotFound, ValidationError
from .serializers import (
    EnrollmentIdSerializer, EnrollmentSerializer,
    ReorderWaitlistSerializer, SessionLookupSerializer,
)


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        field, errors = next(iter(serializer.errors.items()))
        raise ValidationError(f"{field}: {' '.join(str(e) for e in errors)}")
    return serializer.validated_data


class WaitlistView(views.APIView):
    """Waitlisted enrollments grouped by section, in queue order."""

    def get(self, request):
        grouped = waitlist.waitlists_by_section()
        labels = dict(Section.objects.filter(id__in=grouped).values_list('id', 'label'))
        return Response({
            'sections': [
                {
                    'section_id': section_id,
                    'label': labels.get(section_id),
                    'waitlisted': EnrollmentSerializer(entries, many=True).data,
                }
                for section_id, entries in grouped.items()
            ]
        })


class RemoveFromWaitlistView(views.APIView):

    def post(self, request):
        data = _validated(EnrollmentIdSerializer, request.data)
        result = waitlist.remove(data['enrollment_id'])
        body = {'success': result.success}
        if result.warning:
            body['warning'] = result.warning
        return Response(body)


class ReorderWaitlistView(views.APIView):

    def patch(self, request):
        data = _validated(ReorderWaitlistSerializer, request.data)
        if not Section.objects.filter(id=data['section_id']).exists():
            raise NotFound(f"Section {data['section_id']} not found")
        waitlist.reorder(data['section_id'], data['ordered_ids'])
        return Response({'success': True})


class PromoteFromWaitlistView(views.APIView):

    def post(self, request):
        data = _validated(EnrollmentIdSerializer, request.data)
        result = waitlist.promote(data['enrollment_id'])
        return Response({
            'success': True,
            'enrollment': EnrollmentSerializer(result.enrollment).data,
            'enrolled_count': result.enrolled_count,
        })


class EnrollmentStatusView(views.APIView):
    """Looked up by the post-checkout page with the processor's session id."""
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [FixedWindowThrottle]
    throttle_scope = 'enrollment-status'

    def get(self, request):
        data = _validated(SessionLookupSerializer, request.query_params)
        return Response(services.enrollment_status(data['session_id']))


class CancelPendingView(views.APIView):
    """Drops an admitted enrollment that never paid, giving its seat back."""

    def post(self, request):
        data = _validated(EnrollmentIdSerializer, request.data)
        section = services.cancel_pending(data['enrollment_id'])
        return Response({
            'success': True,
            'section_id': section.id,
            'enrolled_count': section.enrolled_count,
            'status': section.status,
        })
