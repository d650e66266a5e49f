from django.urls import path
from .views import (
    CancelPendingView, EnrollmentStatusView, PromoteFromWaitlistView, RemoveFromWaitlistView,
    ReorderWaitlistView, WaitlistView,
)

urlpatterns = [
    path('admin/waitlist/', WaitlistView.as_view(), name='admin-waitlist'),
    path('admin/waitlist/remove/', RemoveFromWaitlistView.as_view(), name='admin-waitlist-remove'),
    path('admin/waitlist/reorder/', ReorderWaitlistView.as_view(), name='admin-waitlist-reorder'),
    path('admin/waitlist/promote/', PromoteFromWaitlistView.as_view(), name='admin-waitlist-promote'),
    path('admin/enrollments/cancel/', CancelPendingView.as_view(), name='admin-enrollment-cancel'),
    path('enrollment-status/', EnrollmentStatusView.as_view(), name='enrollment-status'),
]
