"""
Health check endpoints for monitoring system health
"""
import logging

from django.db import connection
from django.db.models import Count
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.http import require_http_methods

from enrollments.models import EnrollmentRequest
from student.models import CourseEnrollment

logger = logging.getLogger(__name__)


@require_http_methods(["GET"])
def health_check(request):
    """Basic health check endpoint"""
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")

        return JsonResponse({
            'status': 'healthy',
            'timestamp': timezone.now().isoformat(),
            'database': 'connected'
        })
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JsonResponse({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': timezone.now().isoformat()
        }, status=500)


@require_http_methods(["GET"])
def enrollment_health_check(request):
    """Enrollment pipeline: course enrollments and open requests by status"""
    try:
        enrollments = {status: 0 for status, _ in CourseEnrollment.STATUS_CHOICES}
        for row in CourseEnrollment.objects.values('status').annotate(count=Count('id')):
            enrollments[row['status']] = row['count']

        requests = {status: 0 for status, _ in EnrollmentRequest.STATUS_CHOICES}
        for row in EnrollmentRequest.objects.values('status').annotate(count=Count('id')):
            requests[row['status']] = row['count']

        return JsonResponse({
            'status': 'healthy',
            'timestamp': timezone.now().isoformat(),
            'enrollments': {
                **{status.lower(): count for status, count in enrollments.items()},
                'total': sum(enrollments.values()),
            },
            'requests': {
                **{status.lower(): count for status, count in requests.items()},
                'open': sum(requests[status] for status in EnrollmentRequest.OPEN_STATUSES),
            },
        })
    except Exception as e:
        logger.error(f"Enrollment health check failed: {e}")
        return JsonResponse({
            'status': 'unhealthy',
            'error': str(e),
            'timestamp': timezone.now().isoformat()
        }, status=500)
