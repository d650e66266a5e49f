from rest_framework import generics, permissions

from .models import Section
from .serializers import SectionSerializer
from .throttling import FixedWindowThrottle


class SectionListView(generics.ListAPIView):
    """
    Public seat counts for every section, polled by the enrollment page.
    """
    queryset = Section.objects.all().order_by('label')
    serializer_class = SectionSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []
    throttle_classes = [FixedWindowThrottle]
    throttle_scope = 'sections'
    pagination_class = None
