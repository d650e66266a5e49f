"""
URL configuration for the cohort registration project.

All JSON endpoints live under /api/. Admin endpoints require a staff session
(or basic auth); the cron and webhook endpoints authenticate themselves.
"""
from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView, SpectacularSwaggerView

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('courses.urls')),
    path('api/', include('enrollment.urls')),
    path('api/', include('payments.urls')),
    path('api/', include('admin_dashboard.urls')),

    # API Schema & Documentation
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
    path('api/redoc/', SpectacularRedocView.as_view(url_name='schema'), name='redoc'),
]
