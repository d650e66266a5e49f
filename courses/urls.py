from django.urls import path
from .views import SectionListView

urlpatterns = [
    path('sections/', SectionListView.as_view(), name='section-list'),
]
