"""
URL configuration for backend project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/4.2/topics/http/urls/
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include
from django.http import JsonResponse

import health_checks

urlpatterns = [
    path("admin/", admin.site.urls),

    # API endpoints
    path("api/auth/", include('authentication.urls')),
    path("api/courses/", include('courses.urls')),
    path("api/student/", include('student.urls')),
    path("api/enrollments/", include('enrollments.urls')),
    path("api/tutor/", include('tutor.urls')),
    path("api/gamification/", include('gamification.urls')),
    path("api/chat/", include('chat.urls')),
    path("api/analytics/", include('analytics.urls')),

    # Health check endpoints
    path("health/", health_checks.health_check, name="health_check"),
    path("health/enrollments/", health_checks.enrollment_health_check, name="enrollment_health_check"),

    # Root endpoint
    path("", lambda request: JsonResponse({
        "message": "NUET Prep Academy API",
        "status": "running",
    })),
]

# Serve uploaded files in development
if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
